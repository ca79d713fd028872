"""
Reference files from the [references] config section, as artifacts jobs read.
"""

from . import to_path
from .config import PipelineConfig
from .filetypes import Artifact


def fasta(config: PipelineConfig) -> Artifact:
    """
    Reference FASTA with its .fai index. The sequence dictionary is expected
    next to it too.
    """
    path = config.references.ref_fasta
    return Artifact(to_path(path), to_path(f'{path}.fai'))


def reference_vcf(config: PipelineConfig, name: str) -> Artifact:
    """
    Known sites or a truth/training resource VCF, e.g. `hapmap_vcf`.
    """
    return Artifact.vcf(getattr(config.references, name))


def evaluation_intervals(config: PipelineConfig) -> Artifact:
    return Artifact.single(config.references.evaluation_interval_list)
