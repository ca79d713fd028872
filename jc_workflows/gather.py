"""
Gathering recalibrated shards into the final outputs, and selecting them.

Small cohorts get their shards merged into one VCF, with metrics collected
once on it. Larger cohorts stay sharded: metrics are collected per shard and
accumulated into one pair. Which of the two happens is decided once, when the
jobs are created, and recorded in a `GatherPlan`.
"""

import json
import logging
from dataclasses import dataclass
from typing import ClassVar, Union

from . import Path, get_version, to_path
from .batch import Batch, BatchResult, JobStatus
from .config import PipelineConfig
from .exceptions import IncompleteOutputError
from .filetypes import Artifact, CallingMetrics
from .jobs.picard import accumulate_metrics, vcf_qc
from .jobs.vcf import gather_vcfs, subset_vcf_to_samples
from .routing import Route
from .targets import Cohort, RecalibratedShard
from .utils import exists_not_cached


@dataclass(frozen=True)
class SmallCohortResult:
    """
    One merged VCF and its metrics.
    """

    branch: ClassVar[str] = 'small'

    vcf: Artifact
    metrics: CallingMetrics

    def artifacts(self) -> list[Artifact]:
        return [self.vcf] + self.metrics.artifacts()

    def as_dict(self) -> dict:
        return {
            'branch': self.branch,
            'vcf': str(self.vcf.path),
            'vcf_index': str(self.vcf.index_path),
            'detail_metrics': str(self.metrics.detail.path),
            'summary_metrics': str(self.metrics.summary.path),
        }


@dataclass(frozen=True)
class LargeCohortResult:
    """
    Per-shard VCFs, never merged, and metrics accumulated across them.
    """

    branch: ClassVar[str] = 'non-small'

    shard_vcfs: tuple[Artifact, ...]
    metrics: CallingMetrics

    def artifacts(self) -> list[Artifact]:
        return list(self.shard_vcfs) + self.metrics.artifacts()

    def as_dict(self) -> dict:
        return {
            'branch': self.branch,
            'shard_vcfs': [str(vcf.path) for vcf in self.shard_vcfs],
            'detail_metrics': str(self.metrics.detail.path),
            'summary_metrics': str(self.metrics.summary.path),
        }


CohortResult = Union[SmallCohortResult, LargeCohortResult]


@dataclass(frozen=True)
class GatherPlan:
    """
    The branch chosen for the cohort and the outputs it is expected to produce
    once the batch has run.
    """

    expected: CohortResult

    @property
    def branch(self) -> str:
        return self.expected.branch


def make_gather_jobs(
    b: Batch,
    recalibrated: list[RecalibratedShard],
    cohort: Cohort,
    route: Route,
    config: PipelineConfig,
    tmp_prefix: Path,
    out_prefix: Path,
    job_attrs: dict | None = None,
) -> GatherPlan:
    """
    Add the jobs of exactly one gather branch, according to the cohort size.
    """
    if not recalibrated:
        raise ValueError('No recalibrated shards to gather')
    shard_vcfs = [s.recalibrated_vcf for s in recalibrated]

    if route.is_small:
        logging.info(f'{route.num_samples} samples: merging {len(shard_vcfs)} shards into one VCF')
        merge_j, vcf = gather_vcfs(
            b,
            input_vcfs=shard_vcfs,
            config=config,
            out_vcf_path=out_prefix / f'{cohort.name}.vcf.gz',
            sample_count=len(cohort),
            job_attrs=job_attrs,
        )
        if merge_j:
            merge_j.name = f'Gather: {merge_j.name}'
        if config.workflow.sample_subset:
            _, vcf = subset_vcf_to_samples(
                b,
                vcf=vcf,
                sample_expression=config.workflow.sample_subset,
                config=config,
                out_vcf_path=out_prefix / f'{cohort.name}-subset.vcf.gz',
                job_attrs=job_attrs,
            )
        _, metrics = vcf_qc(
            b,
            vcf=vcf,
            config=config,
            output_prefix=out_prefix / cohort.name,
            job_attrs=job_attrs,
        )
        return GatherPlan(SmallCohortResult(vcf=vcf, metrics=metrics))

    logging.info(f'{route.num_samples} samples: keeping {len(shard_vcfs)} shards, accumulating metrics')
    shard_metrics = []
    for shard in recalibrated:
        _, metrics = vcf_qc(
            b,
            vcf=shard.recalibrated_vcf,
            config=config,
            output_prefix=tmp_prefix / 'metrics' / f'part{shard.shard.label}',
            job_attrs=(job_attrs or {}) | shard.shard.get_job_attrs(),
        )
        shard_metrics.append(metrics)
    _, metrics = accumulate_metrics(
        b,
        metrics=shard_metrics,
        config=config,
        output_prefix=out_prefix / cohort.name,
        job_attrs=job_attrs,
    )
    return GatherPlan(LargeCohortResult(shard_vcfs=tuple(shard_vcfs), metrics=metrics))


def select_outputs(plan: GatherPlan, b: Batch | None = None, result: BatchResult | None = None) -> CohortResult:
    """
    Return the outputs of the branch that ran. An output is missing if the job
    producing it didn't succeed, or if the file is not there. Raises
    IncompleteOutputError naming the branch rather than returning a partial result.
    """
    missing: list[str] = []
    for artifact in plan.expected.artifacts():
        producer = b.producer_of(artifact) if b else None
        if producer and result and result.status_by_job.get(producer) is not JobStatus.SUCCEEDED:
            missing.append(f'{artifact.path} ({producer.name}: {result.status_by_job[producer].value})')
            continue
        missing.extend(str(path) for path in artifact.files() if not exists_not_cached(path))
    if missing:
        raise IncompleteOutputError(plan.branch, missing)
    return plan.expected


def write_manifest(result: CohortResult, path: str | Path, cohort: Cohort) -> Path:
    """
    Write the selected outputs as JSON.
    """
    path = to_path(path)
    d = {
        'version': get_version(),
        'cohort': cohort.name,
        'samples': len(cohort),
        'inputs_hash': cohort.alignment_inputs_hash(),
    }
    d |= result.as_dict()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w') as f:
        json.dump(d, f, indent=2)
    logging.info(f'Wrote outputs manifest to {path}')
    return path
