"""
Jobs that run Picard tools to collect variant calling metrics.
"""

from jc_workflows import Path
from jc_workflows.batch import Batch, Job
from jc_workflows.command import command
from jc_workflows.config import PipelineConfig
from jc_workflows.filetypes import Artifact, ArtifactKind, CallingMetrics
from jc_workflows.references import evaluation_intervals, fasta, reference_vcf
from jc_workflows.resources import set_task_resources
from jc_workflows.utils import can_reuse


def _can_reuse_metrics(metrics: CallingMetrics, config: PipelineConfig) -> bool:
    return can_reuse(
        [metrics.detail.path, metrics.summary.path],
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    )


def vcf_qc(
    b: Batch,
    vcf: Artifact,
    config: PipelineConfig,
    output_prefix: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, CallingMetrics]:
    """
    Make job that runs Picard CollectVariantCallingMetrics. Outputs are written
    to `{output_prefix}.variant_calling_detail_metrics` and
    `{output_prefix}.variant_calling_summary_metrics`.
    """
    out_metrics = CallingMetrics.at_prefix(output_prefix)
    if _can_reuse_metrics(out_metrics, config):
        return None, out_metrics

    job_attrs = (job_attrs or {}) | {'tool': 'picard CollectVariantCallingMetrics'}
    j = b.new_job('CollectVariantCallingMetrics', job_attrs)
    j.image(config.image('picard'))
    res = set_task_resources(j, config, 'metrics', storage_gb=20, mem_gb=3)
    reference = j.read_input(fasta(config))
    dbsnp_vcf = j.read_input(reference_vcf(config, 'dbsnp_vcf'))
    intervals_file = j.read_input(evaluation_intervals(config))
    j.read_input(vcf)
    detail = j.declare_artifact('detail', ArtifactKind.DETAIL_METRICS)
    summary = j.declare_artifact('summary', ArtifactKind.SUMMARY_METRICS)

    cmd = f"""\
    picard -Xms2000m -Xmx{res.get_java_mem_mb()}m \\
    CollectVariantCallingMetrics \\
    INPUT={vcf.path} \\
    OUTPUT=prefix \\
    DBSNP={dbsnp_vcf.path} \\
    SEQUENCE_DICTIONARY={str(reference.path).rsplit('.', 1)[0]}.dict \\
    TARGET_INTERVALS={intervals_file.path} \\
    GVCF_INPUT=false \\
    THREAD_COUNT={res.get_nthreads()}

    cp prefix.variant_calling_summary_metrics {summary.path}
    cp prefix.variant_calling_detail_metrics {detail.path}
    """
    j.command(command(cmd))

    return j, CallingMetrics(
        detail=b.write_output(detail, out_metrics.detail.path),
        summary=b.write_output(summary, out_metrics.summary.path),
    )


def accumulate_metrics(
    b: Batch,
    metrics: list[CallingMetrics],
    config: PipelineConfig,
    output_prefix: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, CallingMetrics]:
    """
    Combine per-shard metrics into one pair with Picard
    AccumulateVariantCallingMetrics. Counts are summed across shards, and
    ratios recomputed from the sums.
    """
    if not metrics:
        raise ValueError('No metrics to accumulate')
    out_metrics = CallingMetrics.at_prefix(output_prefix)
    if _can_reuse_metrics(out_metrics, config):
        return None, out_metrics

    job_attrs = (job_attrs or {}) | {'tool': 'picard AccumulateVariantCallingMetrics'}
    j = b.new_job(f'AccumulateVariantCallingMetrics ({len(metrics)} shards)', job_attrs)
    j.image(config.image('picard'))
    set_task_resources(j, config, 'metrics', mem_gb=7, storage_gb=20)
    for m in metrics:
        j.read_input(m.detail)
        j.read_input(m.summary)
    detail = j.declare_artifact('detail', ArtifactKind.DETAIL_METRICS)
    summary = j.declare_artifact('summary', ArtifactKind.SUMMARY_METRICS)

    inputs = ' '.join(f'INPUT={m.prefix}' for m in metrics)
    cmd = f"""\
    picard -Xms2000m -Xmx6500m \\
    AccumulateVariantCallingMetrics \\
    {inputs} \\
    OUTPUT=gathered

    cp gathered.variant_calling_summary_metrics {summary.path}
    cp gathered.variant_calling_detail_metrics {detail.path}
    """
    j.command(command(cmd))

    return j, CallingMetrics(
        detail=b.write_output(detail, out_metrics.detail.path),
        summary=b.write_output(summary, out_metrics.summary.path),
    )
