"""
Stages that perform joint genotyping of GVCFs using GATK, and gather the
sites-only VCFs the recalibration models are trained on.
"""

from jc_workflows.exceptions import MissingInputError
from jc_workflows.filetypes import Artifact
from jc_workflows.inputs import write_sample_map
from jc_workflows.jobs import joint_genotyping
from jc_workflows.jobs.vcf import gather_vcfs
from jc_workflows.targets import Cohort, ShardArtifacts
from jc_workflows.utils import exists
from jc_workflows.workflow import CohortStage, StageInput, StageOutput, stage

from .intervals import PlanIntervals


@stage(required_stages=PlanIntervals)
class JointGenotyping(CohortStage):
    """
    Joint-calling of GVCFs together, one job chain per interval chain.
    """

    def expected_outputs(self, cohort: Cohort) -> dict:
        return {
            'sample_map': self.tmp_prefix / 'sample_map.tsv',
        }

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        """
        Submit jobs.
        """
        not_found = [sid for sid, gvcf in cohort.gvcf_by_sample.items() if not exists(gvcf.path)]
        if not_found:
            raise MissingInputError(
                f'Joint genotyping: could not find GVCFs for {len(not_found)} samples: {", ".join(not_found[:10])}',
            )

        outputs = self.expected_outputs(cohort)
        sample_map = Artifact.single(write_sample_map(cohort, outputs['sample_map']))

        shards: list[ShardArtifacts] = joint_genotyping.make_joint_genotyping_jobs(
            b=self.b,
            cohort=cohort,
            shards=inputs.get(PlanIntervals, 'shards'),
            sample_map=sample_map,
            config=self.config,
            tmp_prefix=self.tmp_prefix,
            job_attrs=self.get_job_attrs(cohort),
        )
        return self.make_outputs(cohort, data=outputs | {'shards': shards})


@stage(required_stages=JointGenotyping)
class GatherSitesOnly(CohortStage):
    """
    Merge the per-shard sites-only VCFs to train the recalibration models on.
    """

    def expected_outputs(self, cohort: Cohort) -> dict:
        return {
            'siteonly': self.tmp_prefix / 'siteonly.vcf.gz',
        }

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        shards: list[ShardArtifacts] = inputs.get(JointGenotyping, 'shards')
        j, siteonly = gather_vcfs(
            b=self.b,
            input_vcfs=[s.siteonly_vcf for s in shards],
            config=self.config,
            out_vcf_path=self.expected_outputs(cohort)['siteonly'],
            site_only=True,
            job_attrs=self.get_job_attrs(cohort),
        )
        return self.make_outputs(cohort, data={'siteonly': siteonly}, jobs=j)
