"""
Stage that gathers the recalibrated shards into the final outputs.
"""

from jc_workflows.gather import GatherPlan, make_gather_jobs
from jc_workflows.targets import Cohort
from jc_workflows.workflow import CohortStage, StageInput, StageOutput, stage

from .vqsr import Vqsr


@stage(required_stages=Vqsr)
class GatherOutputs(CohortStage):
    """
    Merge-then-measure for small cohorts, measure-then-accumulate otherwise.
    """

    def expected_outputs(self, cohort: Cohort) -> dict:
        return {
            'manifest': self.workflow.prefix / 'manifest.json',
        }

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        plan: GatherPlan = make_gather_jobs(
            b=self.b,
            recalibrated=inputs.get(Vqsr, 'recalibrated'),
            cohort=cohort,
            route=self.route,
            config=self.config,
            tmp_prefix=self.tmp_prefix,
            out_prefix=self.workflow.prefix,
            job_attrs=self.get_job_attrs(cohort),
        )
        return self.make_outputs(cohort, data=self.expected_outputs(cohort) | {'plan': plan})
