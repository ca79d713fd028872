"""
Stage that trains and applies the AS-VQSR models.
"""

from jc_workflows.jobs.vqsr import make_vqsr_jobs
from jc_workflows.targets import Cohort, RecalibratedShard, RecalibrationShard
from jc_workflows.workflow import CohortStage, StageInput, StageOutput, stage

from .joint_genotyping import GatherSitesOnly, JointGenotyping


@stage(required_stages=[JointGenotyping, GatherSitesOnly])
class Vqsr(CohortStage):
    """
    Train the INDEL and SNP models on the gathered sites-only VCF, and apply
    both to every filtered shard.
    """

    def expected_outputs(self, cohort: Cohort) -> dict:
        # Small cohorts get the shards merged afterwards, so the recalibrated
        # shards are intermediate; otherwise they are the final result.
        return {
            'shards_prefix': self.tmp_prefix / 'recalibrated' if self.route.is_small else self.prefix,
        }

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        shards = RecalibrationShard.from_calling(inputs.get(JointGenotyping, 'shards'))
        recalibrated: list[RecalibratedShard] = make_vqsr_jobs(
            b=self.b,
            siteonly_vcf=inputs.get(GatherSitesOnly, 'siteonly'),
            shards=shards,
            route=self.route,
            config=self.config,
            tmp_prefix=self.tmp_prefix,
            out_prefix=self.expected_outputs(cohort)['shards_prefix'],
            job_attrs=self.get_job_attrs(cohort),
        )
        return self.make_outputs(cohort, data={'recalibrated': recalibrated})
