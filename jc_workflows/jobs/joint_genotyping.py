"""
Create jobs for joint genotyping, scattered over interval chains.
"""

import logging
from enum import Enum

from jc_workflows import Path
from jc_workflows.batch import Batch, Job
from jc_workflows.command import command
from jc_workflows.config import PipelineConfig
from jc_workflows.filetypes import Artifact, ArtifactKind
from jc_workflows.references import fasta, reference_vcf
from jc_workflows.resources import joint_calling_storage_gb, set_task_resources
from jc_workflows.targets import CallingShard, Cohort, ShardArtifacts
from jc_workflows.utils import can_reuse


class JointGenotyperTool(Enum):
    """
    Tool used for joint genotyping. GenotypeGVCFs is more stable,
    GnarlyGenotyper is faster but more experimental.
    """

    GenotypeGVCFs = 1
    GnarlyGenotyper = 2


def make_joint_genotyping_jobs(
    b: Batch,
    cohort: Cohort,
    shards: list[CallingShard],
    sample_map: Artifact,
    config: PipelineConfig,
    tmp_prefix: Path,
    job_attrs: dict | None = None,
) -> list[ShardArtifacts]:
    """
    Per interval chain: import the GVCFs into a GenomicsDB, genotype it, flag
    sites with excess heterozygosity and make a sites-only VCF. Shards don't
    depend on each other.
    """
    if len(cohort) == 0:
        raise ValueError('Provided cohort for joint calling should contain at least one sample')
    if not shards:
        raise ValueError('No interval chains to genotype')

    tool = JointGenotyperTool.GnarlyGenotyper if config.workflow.use_gnarly else JointGenotyperTool.GenotypeGVCFs
    overwrite = config.workflow.overwrite
    check_intermediates = config.workflow.check_intermediates
    logging.info(f'Submitting joint-calling jobs for {len(cohort)} samples over {len(shards)} interval chains')

    results: list[ShardArtifacts] = []
    for shard in shards:
        attrs = (job_attrs or {}) | shard.get_job_attrs()
        filtered_path = tmp_prefix / 'excess-filter' / f'part{shard.label}.vcf.gz'
        siteonly_path = tmp_prefix / 'siteonly' / f'part{shard.label}.vcf.gz'
        filtered = Artifact.vcf(filtered_path)
        siteonly = Artifact.vcf(siteonly_path)
        if can_reuse(filtered.files() + siteonly.files(), overwrite, check_intermediates):
            results.append(ShardArtifacts(shard, None, None, filtered, siteonly))
            continue

        _, db = genomicsdb(
            b,
            sample_map=sample_map,
            shard=shard,
            config=config,
            output_path=tmp_prefix / 'genomicsdbs' / f'part{shard.label}.tar',
            job_attrs=attrs,
        )
        _, vcf = joint_genotyper(
            b,
            genomicsdb_tar=db,
            shard=shard,
            config=config,
            number_of_samples=len(cohort),
            tool=tool,
            output_vcf_path=tmp_prefix / 'joint-genotyper' / f'part{shard.label}.vcf.gz',
            job_attrs=attrs,
        )
        _, filtered = excess_het_filter(
            b,
            input_vcf=vcf,
            config=config,
            output_vcf_path=filtered_path,
            job_attrs=attrs,
        )
        _, siteonly = make_sitesonly(
            b,
            input_vcf=filtered,
            config=config,
            output_vcf_path=siteonly_path,
            job_attrs=attrs,
        )
        results.append(ShardArtifacts(shard, db, vcf, filtered, siteonly))
    return results


def genomicsdb(
    b: Batch,
    sample_map: Artifact,
    shard: CallingShard,
    config: PipelineConfig,
    output_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Create a GenomicsDB for an interval chain, packed into a tarball so it
    can be passed between jobs.
    """
    if can_reuse(output_path, config.workflow.overwrite, config.workflow.check_intermediates):
        return None, Artifact.single(output_path)

    job_name = 'Joint genotyping: creating GenomicsDB'
    j = b.new_job(job_name, (job_attrs or {}) | dict(tool='gatk GenomicsDBImport'))
    j.image(config.image('gatk'))

    j.read_input(sample_map)
    db_tar = j.declare_artifact('genomicsdb', ArtifactKind.TAR)

    # The Broad: testing has shown that the multithreaded reader initialization
    # does not scale well beyond 5 threads, so don't increase beyond that.
    nthreads = 5

    # The Broad: The memory setting here is very important and must be several
    # GiB lower than the total memory allocated to the VM because this tool uses
    # a significant amount of non-heap memory for native libraries.
    xms_gb = 8
    xmx_gb = 25

    set_task_resources(j, config, 'genomicsdb', nthreads=nthreads, mem_gb=xmx_gb + 1, storage_gb=20)

    params = [
        # The Broad:
        # > We've seen some GenomicsDB performance regressions related
        #   to intervals, so we're going to pretend we only have a single interval
        #   using the --merge-input-intervals arg. There's no data in between since we
        #   didn't run HaplotypeCaller over those loci, so we're not wasting any
        #   compute.
        '--merge-input-intervals',
        '--consolidate',
        # The Broad:
        # > The batch_size value was carefully chosen here as it is the optimal value
        #   for the amount of memory allocated within the task; please do not change
        #   it without consulting the Hellbender (GATK engine) team!
        '--batch-size',
        '50',
    ]
    intervals = ' '.join(f'-L {interval}' for interval in shard.chain.intervals)

    cmd = f"""\
    WORKSPACE=genomicsdb_part{shard.label}

    # Multiple GenomicsDBImport read same GVCFs in parallel, which could lead to
    # some of the jobs failing reading a GVCF, so wrapping the command in a
    # "retry" call. --overwrite-existing-genomicsdb-workspace is to make sure the
    # $WORKSPACE directory from a previous attempt is not in the way of a new attempt.
    function run {{
    gatk --java-options "-Xms{xms_gb}g -Xmx{xmx_gb}g" \\
    GenomicsDBImport \\
    --genomicsdb-workspace-path $WORKSPACE \\
    {intervals} \\
    --sample-name-map {sample_map.path} \\
    --reader-threads {nthreads} \\
    --overwrite-existing-genomicsdb-workspace \\
    {" ".join(params)} && \\
    tar -cf {db_tar.path} $WORKSPACE
    }}
    retry run
    """
    j.command(command(cmd, monitor_space=True, define_retry_function=True))
    return j, b.write_output(db_tar, output_path)


def joint_genotyper(
    b: Batch,
    genomicsdb_tar: Artifact,
    shard: CallingShard,
    config: PipelineConfig,
    number_of_samples: int,
    output_vcf_path: Path,
    tool: JointGenotyperTool = JointGenotyperTool.GenotypeGVCFs,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Runs GATK GnarlyGenotyper or GenotypeGVCFs on a GenomicsDB workspace.

    GenotypeGVCFs is a standard GATK joint-genotyping tool.

    GnarlyGenotyper is an experimental GATK joint-genotyping tool that performs
    "quick and dirty" joint genotyping on large cohorts, of GVCFs post-processed
    with ReblockGVCF.
    """
    if can_reuse(
        Artifact.vcf(output_vcf_path).files(),
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    ):
        return None, Artifact.vcf(output_vcf_path)

    job_name = f'Joint genotyping: {tool.name}'
    j = b.new_job(job_name, (job_attrs or {}) | {'tool': f'gatk {tool.name}'})
    j.image(config.image('gatk'))
    res = set_task_resources(
        j,
        config,
        'genotype',
        ncpu=4,
        storage_gb=joint_calling_storage_gb(number_of_samples, config.workflow.sequencing_type),
    )

    reference = j.read_input(fasta(config))
    dbsnp = j.read_input(reference_vcf(config, 'dbsnp_vcf'))
    j.read_input(genomicsdb_tar)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    cmd = f"""\
    tar -xf {genomicsdb_tar.path} -C .
    WORKSPACE=gendb://genomicsdb_part{shard.label}

    gatk --java-options "-Xmx{res.get_java_mem_mb()}m" \\
    {tool.name} \\
    -R {reference.path} \\
    -O {output_vcf.path} \\
    -D {dbsnp.path} \\
    -V $WORKSPACE \\
    -L {shard.chain.collapsed()} \\
    --only-output-calls-starting-in-intervals \\
    """
    if tool == JointGenotyperTool.GnarlyGenotyper:
        cmd += """\
    --keep-all-sites \\
    --create-output-variant-index
    """
    else:
        cmd += """\
    --merge-input-intervals \\
    -G AS_StandardAnnotation
    """
    j.command(command(cmd, monitor_space=True))
    return j, b.write_output(output_vcf, output_vcf_path)


def excess_het_filter(
    b: Batch,
    input_vcf: Artifact,
    config: PipelineConfig,
    output_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Flag sites on Excess Heterozygosity. Sites are not removed, only get
    the ExcessHet filter set.

    ExcessHet estimates the probability of the called samples exhibiting excess
    heterozygosity with respect to the null hypothesis that the samples are unrelated.
    The higher the score, the higher the chance that the variant is a technical artifact
    or that there is consanguinity among the samples. In contrast to Inbreeding
    Coefficient, there is no minimal number of samples for this annotation.
    """
    if can_reuse(
        Artifact.vcf(output_vcf_path).files(),
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    ):
        return None, Artifact.vcf(output_vcf_path)

    job_name = 'Joint genotyping: ExcessHet filter'
    j = b.new_job(job_name, (job_attrs or {}) | {'tool': 'gatk VariantFiltration'})
    j.image(config.image('gatk'))
    set_task_resources(j, config, 'filter', mem_gb=8, storage_gb=32)
    j.read_input(input_vcf)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    j.command(
        command(
            f"""
    # Capturing stderr to avoid the job log blowing up with millions of
    # warning messages from VariantFiltration, e.g.:
    # > JexlEngine - ![0,9]: 'ExcessHet > 54.69;' undefined variable ExcessHet
    gatk --java-options -Xms3g \\
    VariantFiltration \\
    --filter-expression 'ExcessHet > {config.vqsr.excess_het_threshold}' \\
    --filter-name ExcessHet \\
    -O {output_vcf.path} \\
    -V {input_vcf.path} \\
    2> variant_filtration.stderr
    """,
        ),
    )
    return j, b.write_output(output_vcf, output_vcf_path)


def make_sitesonly(
    b: Batch,
    input_vcf: Artifact,
    config: PipelineConfig,
    output_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Create sites-only VCF with only site-level annotations.
    Speeds up the analysis in the AS-VQSR modeling step.
    """
    if can_reuse(
        Artifact.vcf(output_vcf_path).files(),
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    ):
        return None, Artifact.vcf(output_vcf_path)

    job_name = 'Joint genotyping: MakeSitesOnlyVcf'
    j = b.new_job(job_name, (job_attrs or {}) | {'tool': 'gatk MakeSitesOnlyVcf'})
    j.image(config.image('gatk'))
    set_task_resources(j, config, 'filter', mem_gb=8, storage_gb=32)
    j.read_input(input_vcf)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    j.command(
        command(
            f"""
    gatk --java-options -Xms6g \\
    MakeSitesOnlyVcf \\
    -I {input_vcf.path} \\
    -O {output_vcf.path}
    """,
        ),
    )
    return j, b.write_output(output_vcf, output_vcf_path)
