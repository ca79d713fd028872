"""
Test the stage framework: resolving required stages, ordering them, passing
outputs between them.
"""

import pytest

from jc_workflows.exceptions import WorkflowError
from jc_workflows.targets import Cohort
from jc_workflows.workflow import (
    CohortStage,
    StageInput,
    StageInputNotFoundError,
    StageOutput,
    Workflow,
    stage,
)

from .factories.batch import create_local_batch
from .factories.cohort import create_cohort
from .factories.config import create_config


@stage
class Intervals(CohortStage):
    def expected_outputs(self, cohort: Cohort) -> dict:
        return {'count': 3}

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        return self.make_outputs(cohort, data=self.expected_outputs(cohort))


@stage(required_stages=Intervals)
class Genotype(CohortStage):
    def expected_outputs(self, cohort: Cohort) -> dict:
        return {}

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        jobs = [self.b.new_job(f'Genotype {i}') for i in range(inputs.get(Intervals, 'count'))]
        return self.make_outputs(cohort, data={'shards': len(jobs)}, jobs=jobs)


@stage(required_stages=[Intervals, Genotype])
class Gather(CohortStage):
    def expected_outputs(self, cohort: Cohort) -> dict:
        return {}

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        j = self.b.new_job('Gather').depends_on(*inputs.get_jobs())
        return self.make_outputs(cohort, data={'shards': inputs.get(Genotype, 'shards')}, jobs=j)


@stage
class Orphan(CohortStage):
    def expected_outputs(self, cohort: Cohort) -> dict:
        return {}

    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        inputs.get(Genotype, 'shards')
        return self.make_outputs(cohort)


def _workflow(tmp_path, num_samples: int = 5) -> Workflow:
    return Workflow(
        create_config(tmp_path),
        create_local_batch(tmp_path),
        create_cohort(tmp_path / 'gvcfs', num_samples, touch=False),
    )


def test_implicit_stages_in_order(tmp_path):
    wfl = _workflow(tmp_path)
    stages = wfl.set_stages([Gather])
    assert [s.name for s in stages] == ['Intervals', 'Genotype', 'Gather']
    assert wfl.get_stage(Gather).output.get('shards') == 3

    gather_j = [j for j in wfl.b.jobs if j.name == 'Gather'][0]
    assert wfl.b.graph.in_degree(gather_j) == 3
    assert all(j.attributes['stage'] for j in wfl.b.jobs)
    assert gather_j.attributes['stage'] == 'Gather'


def test_stage_paths(tmp_path):
    wfl = _workflow(tmp_path)
    wfl.set_stages([Genotype])
    genotype = wfl.get_stage(Genotype)
    assert genotype.prefix == tmp_path / 'out' / 'Genotype'
    assert genotype.tmp_prefix == tmp_path / 'tmp' / 'Genotype'
    assert genotype.route.num_samples == 5
    with pytest.raises(WorkflowError):
        wfl.get_stage(Gather)


def test_input_from_stage_not_required(tmp_path):
    with pytest.raises(StageInputNotFoundError, match='required_stages'):
        _workflow(tmp_path).set_stages([Orphan])


def test_missing_output_key(tmp_path):
    wfl = _workflow(tmp_path)
    wfl.set_stages([Intervals])
    with pytest.raises(StageInputNotFoundError):
        wfl.get_stage(Intervals).output.get('shards')


def test_circular_dependencies(tmp_path):
    deps: list = []

    @stage(required_stages=deps)
    class First(CohortStage):
        def expected_outputs(self, cohort):
            return {}

        def queue_jobs(self, cohort, inputs):
            return self.make_outputs(cohort)

    @stage(required_stages=First)
    class Second(CohortStage):
        def expected_outputs(self, cohort):
            return {}

        def queue_jobs(self, cohort, inputs):
            return self.make_outputs(cohort)

    deps.append(Second)
    with pytest.raises(WorkflowError, match='Circular'):
        _workflow(tmp_path).set_stages([Second])


def test_no_stages(tmp_path):
    with pytest.raises(WorkflowError):
        _workflow(tmp_path).set_stages([])


def test_empty_cohort(tmp_path):
    with pytest.raises(WorkflowError, match='no samples'):
        _workflow(tmp_path, num_samples=0)
