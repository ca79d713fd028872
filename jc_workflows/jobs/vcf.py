"""
Helper jobs to merge and subset VCFs.
"""

from jc_workflows import Path
from jc_workflows.batch import Batch, Job
from jc_workflows.command import command
from jc_workflows.config import PipelineConfig
from jc_workflows.filetypes import Artifact, ArtifactKind
from jc_workflows.resources import set_task_resources, storage_for_joint_vcf
from jc_workflows.utils import can_reuse


def gather_vcfs(
    b: Batch,
    input_vcfs: list[Artifact],
    config: PipelineConfig,
    out_vcf_path: Path,
    site_only: bool = False,
    sample_count: int | None = None,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Combines per-interval scattered VCFs into a single VCF.

    Requires all VCFs to be strictly distinct and ordered by position, which
    holds for VCFs produced from consecutive interval chains.

    @param b: Batch object
    @param input_vcfs: interval-split VCFs indexed with tabix, in genomic order
    @param config: run config
    @param out_vcf_path: path to permanently write the resulting VCF
    @param site_only: input VCFs are site-only
    @param sample_count: number of samples used for input VCFs (to determine the
        storage size)
    @param job_attrs: job attributes dictionary
    """
    if not input_vcfs:
        raise ValueError('No VCFs to gather')
    if can_reuse(
        Artifact.vcf(out_vcf_path).files(),
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    ):
        return None, Artifact.vcf(out_vcf_path)

    job_name = f'Merge {len(input_vcfs)} {"site-only " if site_only else ""}VCFs'
    j = b.new_job(job_name, (job_attrs or {}) | {'tool': 'bcftools concat'})
    j.image(config.image('bcftools'))
    res = set_task_resources(
        j,
        config,
        'gather',
        storage_gb=storage_for_joint_vcf(sample_count, config.workflow.sequencing_type, site_only),
    )
    for vcf in input_vcfs:
        j.read_input(vcf)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    cmd = f"""
    bcftools concat --threads {res.get_nthreads() - 1} -a \\
    {" ".join(str(vcf.path) for vcf in input_vcfs)} \\
    -Oz -o {output_vcf.path}
    tabix -p vcf {output_vcf.path}
    """
    j.command(command(cmd, monitor_space=True))
    return j, b.write_output(output_vcf, out_vcf_path)


def subset_vcf_to_samples(
    b: Batch,
    vcf: Artifact,
    sample_expression: str,
    config: PipelineConfig,
    out_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Subset a VCF to samples with `bcftools view -s`. The expression is a
    comma-separated list of sample names; a leading `^` excludes them instead.
    Sites that lose all their alleles are kept.
    """
    if not sample_expression.lstrip('^').strip(', '):
        raise ValueError(f'Empty sample expression: "{sample_expression}"')
    if can_reuse(
        Artifact.vcf(out_vcf_path).files(),
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    ):
        return None, Artifact.vcf(out_vcf_path)

    j = b.new_job('Subset VCF to samples', (job_attrs or {}) | {'tool': 'bcftools view'})
    j.image(config.image('bcftools'))
    set_task_resources(j, config, 'gather', ncpu=2)
    j.read_input(vcf)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    cmd = f"""
    bcftools view --force-samples -s '{sample_expression}' \\
    {vcf.path} -Oz -o {output_vcf.path}
    tabix -p vcf {output_vcf.path}
    """
    j.command(command(cmd, monitor_space=True))
    return j, b.write_output(output_vcf, out_vcf_path)
