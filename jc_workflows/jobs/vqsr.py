"""
Create jobs to train and apply AS-VQSR models.

Parameters are borrowed from WARP:
WGS VQSR: https://github.com/broadinstitute/warp/blob/79261cde9bd06bb6b1d4a83d75dc54f734541fec/pipelines/broad/dna_seq/germline/joint_genotyping/wgs/JointGenotyping.inputs.json#L29-L35 (there is no direct example config for WGS AS-VQSR, but adjusted correspondingly)
Exome AS-VQSR: https://github.com/broadinstitute/warp/blob/79261cde9bd06bb6b1d4a83d75dc54f734541fec/pipelines/broad/dna_seq/germline/joint_genotyping/exome/JointGenotyping.inputs.json#L8-L11
Note that there is no example settings config for WGS AS-VQSR, so we construct it
from WGS VQSR and Exome AS-VQSR settings.

The INDEL model is always trained in one go on the full sites-only VCF. The SNP
model is trained either the same way, or, for large cohorts, once on a
downsampled callset and then re-applied to every shard with the tranches
gathered afterwards. Both models are applied to every shard, INDEL first.
"""

import logging

from jc_workflows import Path
from jc_workflows.batch import Batch, Job
from jc_workflows.command import command
from jc_workflows.config import PipelineConfig
from jc_workflows.filetypes import Artifact, ArtifactKind, RecalibrationModel, VariantClass
from jc_workflows.references import reference_vcf
from jc_workflows.resources import HIGHMEM, STANDARD, MachineType, set_task_resources, vqsr_disk_sizes
from jc_workflows.routing import Route
from jc_workflows.targets import RecalibratedShard, RecalibrationShard
from jc_workflows.utils import can_reuse

STANDARD_FEATURES = [
    'ReadPosRankSum',
    'MQRankSum',
    'QD',
    'FS',
    'SOR',
]
SNP_STANDARD_FEATURES = STANDARD_FEATURES + ['MQ']
INDEL_STANDARD_FEATURES = STANDARD_FEATURES

ALLELE_SPECIFIC_FEATURES = [
    'AS_ReadPosRankSum',
    'AS_MQRankSum',
    'AS_QD',
    'AS_FS',
    'AS_SOR',
    # Not using depth for the following reasons:
    # 1. The Broad pipelines don't use it;
    # 2. -G AS_StandardAnnotation flag to GenotypeGVCFs doesn't include it;
    # 3. For exomes, depth is an irrelevant feature and should be skipped:
    # 'AS_VarDP'
    # Note that for consistency, we also skip it for WGS.
]
SNP_ALLELE_SPECIFIC_FEATURES = ALLELE_SPECIFIC_FEATURES + ['AS_MQ']
INDEL_ALLELE_SPECIFIC_FEATURES = ALLELE_SPECIFIC_FEATURES

SNP_RECALIBRATION_TRANCHE_VALUES = [
    100.0,
    99.95,
    99.9,
    99.8,
    99.6,
    99.5,
    99.4,
    99.3,
    99.0,
    98.0,
    97.0,
    90.0,
]
INDEL_RECALIBRATION_TRANCHE_VALUES = [
    100.0,
    99.95,
    99.9,
    99.5,
    99.0,
    97.0,
    96.0,
    95.0,
    94.0,
    93.5,
    93.0,
    92.0,
    91.0,
    90.0,
]

INDEL_MAX_GAUSSIANS = 4


def snp_max_gaussians(route: Route) -> int:
    """
    Fewer clusters for small callsets, which otherwise fail with "No data found".
    >>> from jc_workflows.routing import route
    >>> snp_max_gaussians(route(500)), snp_max_gaussians(route(5000)), snp_max_gaussians(route(100000))
    (4, 6, 8)
    """
    if route.is_small:
        return 4
    if route.is_huge:
        return 8
    return 6


def _machine(route: Route) -> MachineType:
    # Smaller datasets fit a standard instance, larger ones need a highmem one
    return STANDARD if route.is_small else HIGHMEM


def _annotations_cmdl(variant_class: VariantClass, use_as_annotations: bool) -> str:
    if variant_class == VariantClass.SNP:
        features = SNP_ALLELE_SPECIFIC_FEATURES if use_as_annotations else SNP_STANDARD_FEATURES
    else:
        features = INDEL_ALLELE_SPECIFIC_FEATURES if use_as_annotations else INDEL_STANDARD_FEATURES
    return ' '.join(f'-an {v}' for v in features)


def _tranches_cmdl(variant_class: VariantClass) -> str:
    values = SNP_RECALIBRATION_TRANCHE_VALUES if variant_class == VariantClass.SNP else INDEL_RECALIBRATION_TRANCHE_VALUES
    return ' '.join(f'-tranche {v}' for v in values)


def _snp_resources_cmdl(j: Job, config: PipelineConfig) -> str:
    hapmap = j.read_input(reference_vcf(config, 'hapmap_vcf'))
    omni = j.read_input(reference_vcf(config, 'omni_vcf'))
    one_thousand_genomes = j.read_input(reference_vcf(config, 'one_thousand_genomes_vcf'))
    dbsnp = j.read_input(reference_vcf(config, 'dbsnp_vcf'))
    return (
        f'-resource:hapmap,known=false,training=true,truth=true,prior=15 {hapmap.path} \\\n'
        f'-resource:omni,known=false,training=true,truth=true,prior=12 {omni.path} \\\n'
        f'-resource:1000G,known=false,training=true,truth=false,prior=10 {one_thousand_genomes.path} \\\n'
        f'-resource:dbsnp,known=true,training=false,truth=false,prior=7 {dbsnp.path}'
    )


def _model_at(variant_class: VariantClass, prefix: Path, with_report: bool = False) -> RecalibrationModel:
    return RecalibrationModel(
        variant_class=variant_class,
        recalibration=Artifact.of_kind(f'{prefix}{ArtifactKind.RECAL_TABLE.ext}', ArtifactKind.RECAL_TABLE),
        tranches=Artifact.single(f'{prefix}{ArtifactKind.TRANCHES.ext}'),
        model_report=Artifact.single(f'{prefix}{ArtifactKind.MODEL_REPORT.ext}') if with_report else None,
    )


def _can_reuse(artifacts: list[Artifact], config: PipelineConfig) -> bool:
    return can_reuse(
        [path for a in artifacts for path in a.files()],
        config.workflow.overwrite,
        config.workflow.check_intermediates,
    )


def make_vqsr_jobs(
    b: Batch,
    siteonly_vcf: Artifact,
    shards: list[RecalibrationShard],
    route: Route,
    config: PipelineConfig,
    tmp_prefix: Path,
    out_prefix: Path,
    job_attrs: dict | None = None,
) -> list[RecalibratedShard]:
    """
    Add jobs that perform the allele-specific VQSR variant QC.

    @param b: Batch object to add jobs to
    @param siteonly_vcf: sites-only VCF gathered from all shards, to train models on
    @param shards: per-shard filtered VCFs to apply the models to
    @param route: cohort size routing decision
    @param config: run config
    @param tmp_prefix: prefix for intermediate files
    @param out_prefix: prefix for the recalibrated per-shard VCFs
    @param job_attrs: default job attributes
    @return: one recalibrated VCF per input shard, in the same order
    """
    if not shards:
        raise ValueError('No shards to recalibrate')

    # No edge between INDEL and SNP training.
    _, indel_model = indel_recalibrator_job(
        b,
        siteonly_vcf=siteonly_vcf,
        route=route,
        config=config,
        out_model=_model_at(VariantClass.INDEL, tmp_prefix / 'indel'),
        job_attrs=job_attrs,
    )

    snp_model_by_shard: dict[int, RecalibrationModel] = {}
    if route.train_model:
        logging.info(f'{route.num_samples} samples: training the SNP model on a downsampled callset')
        _, model_report = snps_recalibrator_create_model_job(
            b,
            siteonly_vcf=siteonly_vcf,
            route=route,
            config=config,
            out_model_report_path=tmp_prefix / f'snp{ArtifactKind.MODEL_REPORT.ext}',
            job_attrs=job_attrs,
        )
        scattered: list[RecalibrationModel] = []
        for shard in shards:
            _, shard_model = snps_recalibrator_scattered(
                b,
                siteonly_vcf=shard.siteonly_vcf,
                model_report=model_report,
                route=route,
                config=config,
                out_model=_model_at(VariantClass.SNP, tmp_prefix / 'snp-scattered' / f'part{shard.label}'),
                job_attrs=(job_attrs or {}) | shard.get_job_attrs(),
            )
            scattered.append(shard_model)
        _, gathered_tranches = snps_gather_tranches_job(
            b,
            tranches=[m.tranches for m in scattered],
            route=route,
            config=config,
            out_tranches_path=tmp_prefix / f'snp-gathered{ArtifactKind.TRANCHES.ext}',
            job_attrs=job_attrs,
        )
        for shard, shard_model in zip(shards, scattered):
            snp_model_by_shard[shard.index] = RecalibrationModel(
                variant_class=VariantClass.SNP,
                recalibration=shard_model.recalibration,
                tranches=gathered_tranches,
                model_report=model_report,
            )
    else:
        logging.info(f'{route.num_samples} samples: training the SNP model in one go')
        _, snp_model = snps_recalibrator_job(
            b,
            siteonly_vcf=siteonly_vcf,
            route=route,
            config=config,
            out_model=_model_at(VariantClass.SNP, tmp_prefix / 'snp'),
            job_attrs=job_attrs,
        )
        snp_model_by_shard = {shard.index: snp_model for shard in shards}

    results: list[RecalibratedShard] = []
    for shard in shards:
        attrs = (job_attrs or {}) | shard.get_job_attrs()
        _, indel_applied = apply_recalibration_indels(
            b,
            input_vcf=shard.filtered_vcf,
            model=indel_model,
            route=route,
            config=config,
            output_vcf_path=tmp_prefix / 'indel-applied' / f'part{shard.label}.vcf.gz',
            job_attrs=attrs,
        )
        snp_model = snp_model_by_shard[shard.index]
        _, recalibrated = apply_recalibration_snps(
            b,
            input_vcf=indel_applied,
            model=snp_model,
            route=route,
            config=config,
            output_vcf_path=out_prefix / f'part{shard.label}.vcf.gz',
            job_attrs=attrs,
        )
        results.append(
            RecalibratedShard(
                shard=shard,
                indel_applied_vcf=indel_applied,
                recalibrated_vcf=recalibrated,
                snp_recalibration=snp_model if route.train_model else None,
            ),
        )
    return results


def _variant_recalibrator_cmd(
    j: Job,
    variant_class: VariantClass,
    siteonly_vcf: Artifact,
    recalibration: Artifact,
    tranches: Artifact,
    java_mem_mb: int,
    nthreads: int,
    max_gaussians: int,
    resources_cmdl: str,
    use_as_annotations: bool,
    extra_args: str = '',
) -> None:
    j.command(
        command(
            f"""
    gatk --java-options \\
    "-Xms{java_mem_mb}m \\
    -XX:+UseParallelGC \\
    -XX:ParallelGCThreads={max(1, nthreads - 2)}" \\
    VariantRecalibrator \\
    -V {siteonly_vcf.path} \\
    -O {recalibration.path} \\
    --tranches-file {tranches.path} \\
    --trust-all-polymorphic \\
    {_tranches_cmdl(variant_class)} \\
    {_annotations_cmdl(variant_class, use_as_annotations)} \\
    -mode {variant_class.value} \\
    {"--use-allele-specific-annotations" if use_as_annotations else ""} \\
    {extra_args} \\
    --max-gaussians {max_gaussians} \\
    {resources_cmdl}
    """,
        ),
    )


def indel_recalibrator_job(
    b: Batch,
    siteonly_vcf: Artifact,
    route: Route,
    config: PipelineConfig,
    out_model: RecalibrationModel,
    job_attrs: dict | None = None,
) -> tuple[Job | None, RecalibrationModel]:
    """
    Run VariantRecalibrator to calculate VQSLOD tranches for indels

    The --max-gaussians parameter sets the expected number of clusters in modeling.
    If a dataset gives fewer distinct clusters, e.g. as can happen for smaller data,
    then the tool will tell you there is insufficient data with a No data found error
    message. In this case, try decrementing the --max-gaussians value. 4 is a
    reasonable default for indels, as their number is smaller than SNPs.
    """
    if _can_reuse(out_model.artifacts(), config):
        return None, out_model

    j = b.new_job('VQSR: IndelsVariantRecalibrator', (job_attrs or {}) | {'tool': 'gatk VariantRecalibrator'})
    j.image(config.image('gatk'))
    # We run it for the entire dataset in one job, so can take an entire instance.
    res = set_task_resources(
        j,
        config,
        'vqsr_train',
        machine_type=_machine(route),
        fraction=1,
        storage_gb=vqsr_disk_sizes(route).small,
    )
    j.read_input(siteonly_vcf)
    mills = j.read_input(reference_vcf(config, 'mills_vcf'))
    axiom_poly = j.read_input(reference_vcf(config, 'axiom_poly_vcf'))
    dbsnp = j.read_input(reference_vcf(config, 'dbsnp_vcf'))
    recalibration = j.declare_artifact('recalibration', ArtifactKind.RECAL_TABLE)
    tranches = j.declare_artifact('tranches', ArtifactKind.TRANCHES)

    _variant_recalibrator_cmd(
        j,
        VariantClass.INDEL,
        siteonly_vcf=siteonly_vcf,
        recalibration=recalibration,
        tranches=tranches,
        java_mem_mb=res.get_java_mem_mb(),
        nthreads=res.get_nthreads(),
        max_gaussians=INDEL_MAX_GAUSSIANS,
        resources_cmdl=(
            f'-resource:mills,known=false,training=true,truth=true,prior=12 {mills.path} \\\n'
            f'-resource:axiomPoly,known=false,training=true,truth=false,prior=10 {axiom_poly.path} \\\n'
            f'-resource:dbsnp,known=true,training=false,truth=false,prior=2 {dbsnp.path}'
        ),
        use_as_annotations=config.workflow.use_as_annotations,
    )
    return j, RecalibrationModel(
        variant_class=VariantClass.INDEL,
        recalibration=b.write_output(recalibration, out_model.recalibration.path),
        tranches=b.write_output(tranches, out_model.tranches.path),
    )


def snps_recalibrator_create_model_job(
    b: Batch,
    siteonly_vcf: Artifact,
    route: Route,
    config: PipelineConfig,
    out_model_report_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    First step of VQSR for SNPs: run VariantRecalibrator to subsample variants
    and produce a file of the VQSR model.

    To support cohorts with more than 10,000 WGS samples, the SNP recalibration process
    is broken down across genomic regions for parallel processing, and done in 3 steps:
    1. Run the recalibrator with the following additional arguments:
       --sample-every-Nth-variant <downsample_factor> --output-model <model_file>
    2. Apply the resulting model to each genomic interval with, running the recalibrator
       with the same base parameters, plus:
       --input-model <model-file> --output-tranches-for-scatter
    3. Collate the resulting per-interval tranches with GatherTranches
    """
    out_model_report = Artifact.single(out_model_report_path)
    if _can_reuse([out_model_report], config):
        return None, out_model_report

    j = b.new_job(
        'VQSR: SNPsVariantRecalibratorCreateModel',
        (job_attrs or {}) | {'tool': 'gatk VariantRecalibrator'},
    )
    j.image(config.image('gatk'))
    res = set_task_resources(
        j,
        config,
        'vqsr_train',
        machine_type=_machine(route),
        fraction=1,
        storage_gb=vqsr_disk_sizes(route).small,
    )
    j.read_input(siteonly_vcf)
    resources_cmdl = _snp_resources_cmdl(j, config)
    recalibration = j.declare_artifact('recalibration', ArtifactKind.RECAL_TABLE)
    tranches = j.declare_artifact('tranches', ArtifactKind.TRANCHES)
    model_report = j.declare_artifact('model', ArtifactKind.MODEL_REPORT)

    _variant_recalibrator_cmd(
        j,
        VariantClass.SNP,
        siteonly_vcf=siteonly_vcf,
        recalibration=recalibration,
        tranches=tranches,
        java_mem_mb=res.get_java_mem_mb(),
        nthreads=res.get_nthreads(),
        max_gaussians=snp_max_gaussians(route),
        resources_cmdl=resources_cmdl,
        use_as_annotations=config.workflow.use_as_annotations,
        extra_args=(
            f'--sample-every-Nth-variant {config.vqsr.snp_downsample_factor} '
            f'--output-model {model_report.path}'
        ),
    )
    return j, b.write_output(model_report, out_model_report_path)


def snps_recalibrator_scattered(
    b: Batch,
    siteonly_vcf: Artifact,
    model_report: Artifact,
    route: Route,
    config: PipelineConfig,
    out_model: RecalibrationModel,
    job_attrs: dict | None = None,
) -> tuple[Job | None, RecalibrationModel]:
    """
    Second step of VQSR for SNPs: run VariantRecalibrator on one shard's sites-only
    VCF, reusing the model report trained on the downsampled callset. Writes
    tranches for the scatter, which need to be gathered before applying.
    """
    if _can_reuse(out_model.artifacts(), config):
        return None, out_model

    j = b.new_job(
        'VQSR: SNPsVariantRecalibratorScattered',
        (job_attrs or {}) | {'tool': 'gatk VariantRecalibrator'},
    )
    j.image(config.image('gatk'))
    res = set_task_resources(
        j,
        config,
        'vqsr_scatter',
        machine_type=_machine(route),
        ncpu=4,
        storage_gb=vqsr_disk_sizes(route).small,
    )
    j.read_input(siteonly_vcf)
    j.read_input(model_report)
    resources_cmdl = _snp_resources_cmdl(j, config)
    recalibration = j.declare_artifact('recalibration', ArtifactKind.RECAL_TABLE)
    tranches = j.declare_artifact('tranches', ArtifactKind.TRANCHES)

    _variant_recalibrator_cmd(
        j,
        VariantClass.SNP,
        siteonly_vcf=siteonly_vcf,
        recalibration=recalibration,
        tranches=tranches,
        java_mem_mb=res.get_java_mem_mb(),
        nthreads=res.get_nthreads(),
        max_gaussians=snp_max_gaussians(route),
        resources_cmdl=resources_cmdl,
        use_as_annotations=config.workflow.use_as_annotations,
        extra_args=f'--input-model {model_report.path} --output-tranches-for-scatter',
    )
    return j, RecalibrationModel(
        variant_class=VariantClass.SNP,
        recalibration=b.write_output(recalibration, out_model.recalibration.path),
        tranches=b.write_output(tranches, out_model.tranches.path),
        model_report=model_report,
    )


def snps_recalibrator_job(
    b: Batch,
    siteonly_vcf: Artifact,
    route: Route,
    config: PipelineConfig,
    out_model: RecalibrationModel,
    job_attrs: dict | None = None,
) -> tuple[Job | None, RecalibrationModel]:
    """
    Recalibrate SNPs in one run (alternative to scatter-gather approach)
    """
    if _can_reuse(out_model.artifacts(), config):
        return None, out_model

    j = b.new_job('VQSR: SNPsVariantRecalibrator', (job_attrs or {}) | {'tool': 'gatk VariantRecalibrator'})
    j.image(config.image('gatk'))
    res = set_task_resources(
        j,
        config,
        'vqsr_train',
        machine_type=_machine(route),
        fraction=1,
        storage_gb=vqsr_disk_sizes(route).small,
    )
    j.read_input(siteonly_vcf)
    resources_cmdl = _snp_resources_cmdl(j, config)
    recalibration = j.declare_artifact('recalibration', ArtifactKind.RECAL_TABLE)
    tranches = j.declare_artifact('tranches', ArtifactKind.TRANCHES)

    _variant_recalibrator_cmd(
        j,
        VariantClass.SNP,
        siteonly_vcf=siteonly_vcf,
        recalibration=recalibration,
        tranches=tranches,
        java_mem_mb=res.get_java_mem_mb(),
        nthreads=res.get_nthreads(),
        max_gaussians=snp_max_gaussians(route),
        resources_cmdl=resources_cmdl,
        use_as_annotations=config.workflow.use_as_annotations,
    )
    return j, RecalibrationModel(
        variant_class=VariantClass.SNP,
        recalibration=b.write_output(recalibration, out_model.recalibration.path),
        tranches=b.write_output(tranches, out_model.tranches.path),
    )


def snps_gather_tranches_job(
    b: Batch,
    tranches: list[Artifact],
    route: Route,
    config: PipelineConfig,
    out_tranches_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Third step of VQSR for SNPs: run GatherTranches to gather scattered per-interval
    tranches outputs. Waits for every scattered recalibrator job.
    """
    out_tranches = Artifact.single(out_tranches_path)
    if _can_reuse([out_tranches], config):
        return None, out_tranches

    j = b.new_job('VQSR: SNPGatherTranches', (job_attrs or {}) | {'tool': 'gatk GatherTranches'})
    j.image(config.image('gatk'))
    res = set_task_resources(j, config, 'gather', ncpu=2, storage_gb=vqsr_disk_sizes(route).small)
    for t in tranches:
        j.read_input(t)
    gathered = j.declare_artifact('gathered', ArtifactKind.TRANCHES)

    inputs_cmdl = ' '.join(f'--input {t.path}' for t in tranches)
    j.command(
        command(
            f"""
    gatk --java-options -Xms{res.get_java_mem_mb()}m \\
    GatherTranches \\
    --mode SNP \\
    {inputs_cmdl} \\
    --output {gathered.path}
    """,
        ),
    )
    return j, b.write_output(gathered, out_tranches_path)


def _apply_recalibration(
    b: Batch,
    input_vcf: Artifact,
    model: RecalibrationModel,
    filter_level: float,
    route: Route,
    config: PipelineConfig,
    output_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Apply a score cutoff to filter variants based on a recalibration table.

    Targets indel_filter_level and snp_filter_level sensitivities. The tool matches
    them internally to a VQSLOD score cutoff based on the model's estimated sensitivity
    to a set of true variants.

    The filter determination is not just a pass/fail process. The tool evaluates for
    each variant which "tranche", or slice of the dataset, it falls into in terms of
    sensitivity to the truth-set. Variants in tranches that fall below the specified
    truth sensitivity filter level have their FILTER field annotated with the
    corresponding tranche level. No variant is removed from the VCF.
    """
    if _can_reuse([Artifact.vcf(output_vcf_path)], config):
        return None, Artifact.vcf(output_vcf_path)

    mode = model.variant_class.value
    j = b.new_job(f'VQSR: ApplyVQSR {mode}', (job_attrs or {}) | {'tool': 'gatk ApplyVQSR'})
    j.image(config.image('gatk'))
    res = set_task_resources(j, config, 'vqsr_apply', ncpu=2, storage_gb=vqsr_disk_sizes(route).huge)
    j.read_input(input_vcf)
    j.read_input(model.recalibration)
    j.read_input(model.tranches)
    output_vcf = j.declare_artifact('output', ArtifactKind.VCF)

    use_as = config.workflow.use_as_annotations
    cmd = f"""
    gatk --java-options -Xms{res.get_java_mem_mb()}m \\
    ApplyVQSR \\
    --tmp-dir . \\
    -O {output_vcf.path} \\
    -V {input_vcf.path} \\
    --recal-file {model.recalibration.path} \\
    --tranches-file {model.tranches.path} \\
    --truth-sensitivity-filter-level {filter_level} \\
    --create-output-variant-index true \\
    {'--use-allele-specific-annotations' if use_as else ''} \\
    -mode {mode}

    tabix -p vcf -f {output_vcf.path}
    """
    j.command(command(cmd, monitor_space=True))
    return j, b.write_output(output_vcf, output_vcf_path)


def apply_recalibration_indels(
    b: Batch,
    input_vcf: Artifact,
    model: RecalibrationModel,
    route: Route,
    config: PipelineConfig,
    output_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    First of the two apply steps on a shard: the INDEL model usually finishes
    training first, so shards don't wait for the SNP model to start.
    """
    if model.variant_class != VariantClass.INDEL:
        raise ValueError(f'Expected an INDEL model, got {model.variant_class}')
    return _apply_recalibration(
        b,
        input_vcf=input_vcf,
        model=model,
        filter_level=config.vqsr.indel_filter_level,
        route=route,
        config=config,
        output_vcf_path=output_vcf_path,
        job_attrs=job_attrs,
    )


def apply_recalibration_snps(
    b: Batch,
    input_vcf: Artifact,
    model: RecalibrationModel,
    route: Route,
    config: PipelineConfig,
    output_vcf_path: Path,
    job_attrs: dict | None = None,
) -> tuple[Job | None, Artifact]:
    """
    Second apply step on a shard, on the output of `apply_recalibration_indels`.
    """
    if model.variant_class != VariantClass.SNP:
        raise ValueError(f'Expected a SNP model, got {model.variant_class}')
    return _apply_recalibration(
        b,
        input_vcf=input_vcf,
        model=model,
        filter_level=config.vqsr.snp_filter_level,
        route=route,
        config=config,
        output_vcf_path=output_vcf_path,
        job_attrs=job_attrs,
    )
