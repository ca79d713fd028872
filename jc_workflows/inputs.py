"""
Reading the cohort from the sample map.
"""

import logging

import pandas as pd

from . import Path, to_path
from .exceptions import MalformedInputError
from .filetypes import Artifact
from .targets import Cohort


def read_sample_map(path: str | Path) -> dict[str, str]:
    """
    Read a tab-separated sample map without a header: sample name, GVCF path.
    """
    path = to_path(path)
    if not path.exists():
        raise MalformedInputError(f'Sample map {path} does not exist')
    with path.open() as f:
        try:
            df = pd.read_csv(f, sep='\t', header=None, dtype=str, comment='#', skip_blank_lines=True)
        except pd.errors.EmptyDataError as e:
            raise MalformedInputError(f'Sample map {path} is empty') from e
    if len(df.columns) != 2:
        raise MalformedInputError(f'Sample map {path} must have 2 columns (sample, GVCF path), found {len(df.columns)}')
    df.columns = ['sample', 'gvcf']
    df = df.apply(lambda col: col.str.strip())
    if df.isnull().values.any() or (df == '').values.any():
        raise MalformedInputError(f'Sample map {path} has empty values')
    if duplicated := sorted(set(df['sample'][df['sample'].duplicated()])):
        raise MalformedInputError(f'Sample map {path} has duplicated samples: {", ".join(duplicated)}')
    return dict(zip(df['sample'], df['gvcf']))


def load_cohort(name: str, sample_map_path: str | Path) -> Cohort:
    """
    Build the cohort from the sample map. GVCFs are expected to have `.tbi`
    indices next to them.
    """
    gvcf_by_sample = {sid: Artifact.vcf(gvcf) for sid, gvcf in read_sample_map(sample_map_path).items()}
    cohort = Cohort(name, gvcf_by_sample)
    logging.info(f'Read {len(cohort)} samples from {sample_map_path}')
    return cohort


def write_sample_map(cohort: Cohort, path: str | Path) -> Path:
    """
    Write the sample map in the format GenomicsDBImport --sample-name-map expects.
    """
    path = to_path(path)
    df = pd.DataFrame(
        [{'id': sid, 'path': str(gvcf.path)} for sid, gvcf in cohort.gvcf_by_sample.items()],
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w') as fp:
        df.to_csv(fp, index=False, header=False, sep='\t')
    return path
