"""
Stage that splits the calling intervals into shards for joint genotyping.
"""

import logging

from jc_workflows.exceptions import MalformedInputError
from jc_workflows.intervals import merge_intervals, read_interval_list, resolve_merge_count
from jc_workflows.targets import CallingShard, Cohort
from jc_workflows.workflow import CohortStage, StageInput, StageOutput, stage


@stage
class PlanIntervals(CohortStage):
    """
    Read the calling intervals once and merge adjacent ones into chains.
    """

    def expected_outputs(self, cohort: Cohort) -> dict:
        return {}

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        intervals_path = self.config.workflow.intervals_path
        intervals = read_interval_list(intervals_path)
        if not intervals:
            raise MalformedInputError(f'No intervals found in {intervals_path}')

        merge_count = resolve_merge_count(
            num_intervals=len(intervals),
            num_samples=len(cohort),
            fixed_merge_count=self.config.intervals.fixed_merge_count,
        )
        chains = merge_intervals(intervals, merge_count)
        shards = [CallingShard(index=i, chain=chain) for i, chain in enumerate(chains)]
        logging.info(f'Merged {len(intervals)} intervals into {len(shards)} chains of up to {merge_count}')
        return self.make_outputs(cohort, data={'shards': shards, 'merge_count': merge_count})
