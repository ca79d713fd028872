"""
Wrappers for the files passed between jobs (VCFs, recalibration tables, tranches).

Every job output is an `Artifact`: a primary file plus its index sibling where the
format has one. Artifacts are written once by the job that produces them and only
read afterwards.
"""

from dataclasses import dataclass
from enum import Enum

from . import Path, to_path
from .utils import exists_not_cached


class ArtifactKind(Enum):
    """
    Known artifact layouts, defining the index sibling suffix.
    """

    VCF = ('.vcf.gz', '.tbi')
    RECAL_TABLE = ('.recal', '.idx')
    TRANCHES = ('.tranches', None)
    MODEL_REPORT = ('.report', None)
    TAR = ('.tar', None)
    DETAIL_METRICS = ('.variant_calling_detail_metrics', None)
    SUMMARY_METRICS = ('.variant_calling_summary_metrics', None)

    @property
    def ext(self) -> str:
        return self.value[0]

    @property
    def index_ext(self) -> str | None:
        return self.value[1]


@dataclass(frozen=True)
class Artifact:
    """
    A `(primary_file, index_file)` pair. `index_path` is None for formats
    without an index (tranches, model reports, metrics, tarballs).
    """

    path: Path
    index_path: Path | None = None

    @staticmethod
    def of_kind(path: str | Path, kind: ArtifactKind) -> 'Artifact':
        """
        >>> Artifact.of_kind('/tmp/a.vcf.gz', ArtifactKind.VCF)
        Artifact(/tmp/a.vcf.gz+.tbi)
        """
        path = to_path(path)
        index = to_path(f'{path}{kind.index_ext}') if kind.index_ext else None
        return Artifact(path, index)

    @staticmethod
    def vcf(path: str | Path) -> 'Artifact':
        return Artifact.of_kind(path, ArtifactKind.VCF)

    @staticmethod
    def single(path: str | Path) -> 'Artifact':
        return Artifact(to_path(path))

    def relocated(self, path: str | Path) -> 'Artifact':
        """
        The same layout at another location, e.g. where a job output is copied to.
        >>> Artifact.vcf('/tmp/a.vcf.gz').relocated('/out/b.vcf.gz')
        Artifact(/out/b.vcf.gz+.tbi)
        """
        path = to_path(path)
        if not self.index_path:
            return Artifact(path)
        suffix = str(self.index_path)[len(str(self.path)) :]
        return Artifact(path, to_path(f'{path}{suffix}'))

    def files(self) -> list[Path]:
        """
        All files making up the artifact.
        """
        return [self.path] + ([self.index_path] if self.index_path else [])

    def exists(self) -> bool:
        """
        Both the primary file and the index exist. Not cached, as artifacts
        appear while the batch is running.
        """
        return all(exists_not_cached(p) for p in self.files())

    def __str__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        if self.index_path:
            suffix = str(self.index_path).replace(str(self.path), '')
            return f'Artifact({self.path}+{suffix})'
        return f'Artifact({self.path})'


class VariantClass(Enum):
    """
    Variant class modelled by its own recalibration model.
    """

    INDEL = 'INDEL'
    SNP = 'SNP'


@dataclass(frozen=True)
class RecalibrationModel:
    """
    Trained filter for one variant class: a recalibration table with its index
    and a tranches file. `model_report` is set when the SNP model was trained
    once on a downsampled callset and reused per shard.
    """

    variant_class: VariantClass
    recalibration: Artifact
    tranches: Artifact
    model_report: Artifact | None = None

    def artifacts(self) -> list[Artifact]:
        return [self.recalibration, self.tranches] + ([self.model_report] if self.model_report else [])


@dataclass(frozen=True)
class CallingMetrics:
    """
    Picard variant calling metrics: a detail and a summary file sharing a prefix.
    """

    detail: Artifact
    summary: Artifact

    @staticmethod
    def at_prefix(prefix: str | Path) -> 'CallingMetrics':
        """
        >>> CallingMetrics.at_prefix('/out/cohort').summary
        Artifact(/out/cohort.variant_calling_summary_metrics)
        """
        return CallingMetrics(
            detail=Artifact.single(f'{prefix}{ArtifactKind.DETAIL_METRICS.ext}'),
            summary=Artifact.single(f'{prefix}{ArtifactKind.SUMMARY_METRICS.ext}'),
        )

    @property
    def prefix(self) -> str:
        detail = str(self.detail.path)
        if not detail.endswith(ArtifactKind.DETAIL_METRICS.ext):
            raise ValueError(f'Unexpected detail metrics file name: {detail}')
        prefix = detail[: -len(ArtifactKind.DETAIL_METRICS.ext)]
        if str(self.summary.path) != f'{prefix}{ArtifactKind.SUMMARY_METRICS.ext}':
            raise ValueError(f'Detail and summary metrics don\'t share a prefix: {self}')
        return prefix

    def artifacts(self) -> list[Artifact]:
        return [self.detail, self.summary]
