"""
Targets the workflow acts upon: the cohort, and the shards it is split into.
"""

import hashlib
from dataclasses import dataclass

from .filetypes import Artifact, RecalibrationModel
from .intervals import IntervalChain


class Cohort:
    """
    All samples jointly genotyped in one run, with their GVCFs.
    """

    def __init__(self, name: str, gvcf_by_sample: dict[str, Artifact]):
        self.name = name
        self.gvcf_by_sample = dict(gvcf_by_sample)

    def __repr__(self):
        return f'Cohort("{self.name}", {len(self)} samples)'

    def __len__(self) -> int:
        return len(self.gvcf_by_sample)

    def get_sample_ids(self) -> list[str]:
        return list(self.gvcf_by_sample)

    def get_job_attrs(self) -> dict:
        """
        Attributes for jobs acting on the cohort.
        """
        return {'cohort': self.name, 'samples': str(len(self))}

    def alignment_inputs_hash(self) -> str:
        """
        Unique hash string of the sample inputs, to tell apart outputs of
        different cohort compositions.
        """
        s = ' '.join(sorted(f'{sid}={gvcf.path}' for sid, gvcf in self.gvcf_by_sample.items()))
        h = hashlib.sha256(s.encode()).hexdigest()[:38]
        return f'{h}_{len(self)}'


@dataclass(frozen=True)
class CallingShard:
    """
    Unit of parallel joint genotyping: one interval chain.
    """

    index: int
    chain: IntervalChain

    @property
    def label(self) -> str:
        return f'{self.index + 1}'

    def get_job_attrs(self) -> dict:
        return {'part': self.label, 'interval': str(self.chain)}


@dataclass(frozen=True)
class ShardArtifacts:
    """
    Everything one calling shard produces, kept together instead of in
    parallel lists indexed by shard number.
    """

    shard: CallingShard
    genomicsdb: Artifact | None
    vcf: Artifact | None
    filtered_vcf: Artifact
    siteonly_vcf: Artifact


@dataclass(frozen=True)
class RecalibrationShard:
    """
    Unit of parallel recalibration: one filtered VCF and its sites-only
    counterpart. Numbered the same as the calling shards they come from, but
    a different partition from the interval chains, so a different type.
    """

    index: int
    filtered_vcf: Artifact
    siteonly_vcf: Artifact

    @staticmethod
    def from_calling(shards: list[ShardArtifacts]) -> list['RecalibrationShard']:
        return [
            RecalibrationShard(index=i, filtered_vcf=s.filtered_vcf, siteonly_vcf=s.siteonly_vcf)
            for i, s in enumerate(shards)
        ]

    @property
    def label(self) -> str:
        return f'{self.index + 1}'

    def get_job_attrs(self) -> dict:
        return {'part': self.label}


@dataclass(frozen=True)
class RecalibratedShard:
    """
    A recalibration shard after both models were applied, INDEL first.
    `snp_recalibration` is set when the SNP model was scattered per shard.
    """

    shard: RecalibrationShard
    indel_applied_vcf: Artifact
    recalibrated_vcf: Artifact
    snp_recalibration: RecalibrationModel | None = None
