"""
Provides a `Workflow` class and a `@stage` decorator that allow to define workflows
in a declarative fashion.

A `Stage` object is responsible for creating jobs and declaring outputs
(files or other data) that are expected to be produced. Each stage acts on the
cohort. Stages that depend on other stages get their outputs through a
`StageInput` object, and dependencies between jobs come from the artifacts
the jobs read.

```python
@stage(required_stages=PlanIntervals)
class JointGenotyping(CohortStage):
    def expected_outputs(self, cohort: Cohort):
        ...
    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        ...

workflow = Workflow(config, batch, cohort)
workflow.set_stages([JointGenotyping])
```
"""

import functools
import logging
import pathlib
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Type, Union

import networkx as nx
from cloudpathlib import CloudPath

from . import Path
from .batch import Batch, BatchResult, Job
from .config import PipelineConfig
from .exceptions import WorkflowError
from .inputs import load_cohort
from .routing import Route, route
from .runner import Backend, LocalBackend, TaskRunner
from .targets import Cohort
from .utils import slugify, timestamp

StageDecorator = Callable[..., 'Stage']


class StageInputNotFoundError(WorkflowError):
    """
    Thrown when a stage requests input from another stage
    that doesn't exist.
    """


# noinspection PyShadowingNames
class StageOutput:
    """
    Represents a result of a specific stage, which was run on the cohort.
    A dictionary of paths, artifacts or other records.
    """

    def __init__(
        self,
        target: Cohort,
        data: dict[str, Any] | None = None,
        jobs: Sequence[Job | None] | Job | None = None,
        meta: dict | None = None,
        stage: Optional['Stage'] = None,
    ):
        self.data = data or {}
        self.stage = stage
        self.target = target
        _jobs = [jobs] if isinstance(jobs, Job) else (jobs or [])
        self.jobs: list[Job] = [j for j in _jobs if j is not None]
        self.meta: dict = meta or {}

    def __repr__(self) -> str:
        return f'StageOutput({self.data} target={self.target} stage={self.stage} meta={self.meta})'

    def get(self, key: str) -> Any:
        if key not in self.data:
            raise StageInputNotFoundError(f'{self.stage}: output "{key}" is not available')
        return self.data[key]


# noinspection PyShadowingNames
class StageInput:
    """
    Represents an input for a stage run. It wraps the outputs of all required upstream
    stages (e.g. the shards from PlanIntervals for JointGenotyping).

    An object of this class is passed to the public `queue_jobs` method of a Stage,
    and can be used to query dependency data.
    """

    def __init__(self, stage: 'Stage'):
        self.stage = stage
        self._outputs_by_stage: dict[str, StageOutput] = {}

    def add_other_stage_output(self, output: StageOutput):
        """
        Add output from another stage run.
        """
        assert output.stage is not None, output
        self._outputs_by_stage[output.stage.name] = output

    def get(self, stage: StageDecorator, key: str) -> Any:
        """
        Output `key` of a required `stage`.
        """
        if stage.__name__ not in self._outputs_by_stage:
            raise StageInputNotFoundError(
                f'Not found output from stage {stage.__name__}, required for stage '
                f'{self.stage.name}. Is {stage.__name__} in the `required_stages` '
                f'decorator? Available: {list(self._outputs_by_stage)}',
            )
        return self._outputs_by_stage[stage.__name__].get(key)

    def get_jobs(self) -> list[Job]:
        """
        Get list of jobs that the current stage depends on.
        """
        return [j for output in self._outputs_by_stage.values() for j in output.jobs]


class Stage(ABC):
    """
    Abstract class for a workflow stage acting on the cohort.
    """

    def __init__(
        self,
        name: str,
        workflow: 'Workflow',
        required_stages: list[StageDecorator] | StageDecorator | None = None,
    ):
        self._name = name
        self.workflow = workflow
        self.required_stages_classes: list[StageDecorator] = []
        if required_stages:
            if isinstance(required_stages, list):
                self.required_stages_classes.extend(required_stages)
            else:
                self.required_stages_classes.append(required_stages)

        # Dependencies. Populated in workflow.set_stages(), after we know all stages.
        self.required_stages: list[Stage] = []

        # Populated with the return value of `queue_for_cohort()`
        self.output: StageOutput | None = None

    @property
    def config(self) -> PipelineConfig:
        return self.workflow.config

    @property
    def b(self) -> Batch:
        return self.workflow.b

    @property
    def route(self) -> Route:
        return self.workflow.route

    @property
    def tmp_prefix(self) -> Path:
        return self.workflow.tmp_prefix / self.name

    @property
    def prefix(self) -> Path:
        return self.workflow.prefix / self.name

    def __str__(self):
        res = f'{self._name}'
        if self.required_stages:
            res += f' <- [{", ".join([s.name for s in self.required_stages])}]'
        return res

    @property
    def name(self) -> str:
        """
        Stage name (unique and descriptive stage)
        """
        return self._name

    @abstractmethod
    def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
        """
        Adds jobs that process the cohort. Assumes that outputs of the required
        stages are available in `inputs`.
        """

    @abstractmethod
    def expected_outputs(self, cohort: Cohort) -> dict[str, Any]:
        """
        Get path(s) to files that the stage is expected to generate for the cohort.
        Used within `queue_jobs()` to pass paths to outputs to job commands.
        """

    def make_outputs(
        self,
        cohort: Cohort,
        data: dict[str, Any] | None = None,
        jobs: Sequence[Job | None] | Job | None = None,
        meta: dict | None = None,
    ) -> StageOutput:
        """
        Create StageOutput for this stage.
        """
        return StageOutput(target=cohort, data=data, jobs=jobs, meta=meta, stage=self)

    def _make_inputs(self) -> StageInput:
        """
        Collects outputs from all dependencies and create input for this stage
        """
        inputs = StageInput(self)
        for prev_stage in self.required_stages:
            if prev_stage.output is None:
                raise WorkflowError(f'{self.name}: required stage {prev_stage.name} has not been queued')
            inputs.add_other_stage_output(prev_stage.output)
        return inputs

    def queue_for_cohort(self, cohort: Cohort) -> StageOutput:
        """
        Queues jobs for the cohort, and records the output.
        """
        jobs_before = len(self.b.jobs)
        self.output = self.queue_jobs(cohort, self._make_inputs())
        new_jobs = self.b.jobs[jobs_before:]
        for j in new_jobs:
            j.attributes.setdefault('stage', self.name)
        logging.info(f'{self.name}: queued {len(new_jobs)} jobs')
        return self.output

    def get_job_attrs(self, cohort: Cohort | None = None) -> dict[str, str]:
        """
        Create job attributes.
        """
        attrs = {'stage': self.name}
        if cohort:
            attrs |= cohort.get_job_attrs()
        return attrs


class CohortStage(Stage, ABC):
    """
    Cohort-level stage (all samples are processed together).
    """


def stage(
    cls: Optional[Type['Stage']] = None,
    *,
    required_stages: list[StageDecorator] | StageDecorator | None = None,
) -> Union[StageDecorator, Callable[..., StageDecorator]]:
    """
    Implements a standard class decorator pattern with optional arguments.
    The goal is to allow declaring workflow stages without requiring to implement
    a constructor method. E.g.

    @stage(required_stages=[PlanIntervals])
    class JointGenotyping(CohortStage):
        def expected_outputs(self, cohort: Cohort):
            ...
        def queue_jobs(self, cohort: Cohort, inputs: StageInput) -> StageOutput:
            ...

    @required_stages: list of other stage classes that are required prerequisites
        for this stage. Outputs of those stages will be passed to
        `Stage.queue_jobs(... , inputs)` as `inputs`.
    """

    def decorator_stage(_cls) -> StageDecorator:
        """Implements decorator."""

        @functools.wraps(_cls)
        def wrapper_stage(workflow: 'Workflow') -> Stage:
            """Decorator helper function."""
            return _cls(
                name=_cls.__name__,
                workflow=workflow,
                required_stages=required_stages,
            )

        return wrapper_stage

    if cls is None:
        return decorator_stage
    else:
        return decorator_stage(cls)


class Workflow:
    """
    Encapsulates a batch, the stages, and the cohort they act on.
    Responsible for orchestrating stages.
    """

    def __init__(self, config: PipelineConfig, b: Batch, cohort: Cohort):
        if len(cohort) == 0:
            raise WorkflowError('Cohort has no samples')
        self.config = config
        self.b = b
        self.cohort = cohort
        self.name = slugify(config.workflow.name)
        self.route = route(len(cohort), config.cohort)
        self.queued_stages: list[Stage] = []
        logging.info(
            f'Workflow "{self.name}": {len(cohort)} samples, {self.route.size_class.value} cohort, '
            f'SNP model {"trained on a downsampled callset" if self.route.train_model else "trained in one go"}',
        )

    @property
    def prefix(self) -> Path:
        return self.config.workflow.output_path

    @property
    def tmp_prefix(self) -> Path:
        return self.config.workflow.tmp_path

    def set_stages(self, requested_stages: list[StageDecorator]) -> list[Stage]:
        """
        Resolve the stages with their implicit dependencies, order them, and call
        their `queue_for_cohort` methods; through that, creates all jobs.
        """
        if not requested_stages:
            raise WorkflowError('No stages added')
        logging.info(f'End stages for the workflow "{self.name}": {[cls.__name__ for cls in requested_stages]}')

        # Round 1: initialising stage objects.
        _stages_d: dict[str, Stage] = {}
        for cls in requested_stages:
            if cls.__name__ in _stages_d:
                continue
            _stages_d[cls.__name__] = cls(self)

        # Round 2: depth search to find implicit stages.
        while True:  # might require few iterations to resolve dependencies recursively
            newly_implicitly_added_d = dict()
            for stg in _stages_d.values():
                for reqcls in stg.required_stages_classes:
                    if reqcls.__name__ in _stages_d:  # already added
                        continue
                    reqstg = reqcls(self)
                    newly_implicitly_added_d[reqstg.name] = reqstg

            if newly_implicitly_added_d:
                logging.info(f'Additional implicit stages: {list(newly_implicitly_added_d.keys())}')
                _stages_d |= newly_implicitly_added_d
            else:
                # No new implicit stages added, so can stop the depth-search here
                break

        # Round 3: set "stage.required_stages" fields to each stage.
        for stg in _stages_d.values():
            stg.required_stages = [_stages_d[cls.__name__] for cls in stg.required_stages_classes]

        # Round 4: determining order of execution.
        dag_node2nodes = dict()  # building a DAG
        for stg in _stages_d.values():
            dag_node2nodes[stg.name] = set(dep.name for dep in stg.required_stages)
        dag = nx.DiGraph(dag_node2nodes)
        try:
            stage_names = list(reversed(list(nx.topological_sort(dag))))
        except nx.NetworkXUnfeasible as e:
            logging.error('Circular dependencies found between stages')
            raise WorkflowError('Circular dependencies found between stages') from e

        logging.info(f'Stages in order of execution:\n{stage_names}')
        stages = [_stages_d[name] for name in stage_names]

        # Round 5: actually adding jobs from the stages.
        for i, stg in enumerate(stages):
            logging.info('*' * 60)
            logging.info(f'Stage #{i + 1}: {stg}')
            stg.queue_for_cohort(self.cohort)
        self.queued_stages = stages
        return stages

    def get_stage(self, cls: StageDecorator) -> Stage:
        for stg in self.queued_stages:
            if stg.name == cls.__name__:
                return stg
        raise WorkflowError(f'Stage {cls.__name__} was not queued')


@dataclass
class WorkflowResult:
    workflow: Workflow
    batch_result: BatchResult
    dry_run: bool = False


def _scratch_dir(config: PipelineConfig) -> pathlib.Path:
    """
    Jobs run locally, so their scratch space has to be local too, even when
    outputs go to a bucket.
    """
    tmp = config.workflow.tmp_path
    if isinstance(tmp, CloudPath):
        return pathlib.Path(tempfile.mkdtemp(prefix=f'{slugify(config.workflow.name)}-'))
    return tmp / 'scratch' / timestamp()


def run_workflow(
    config: PipelineConfig,
    stages: list[StageDecorator],
    cohort: Cohort | None = None,
    dry_run: bool = False,
    backend: Backend | None = None,
    max_parallel: int | None = None,
) -> WorkflowResult:
    """
    Prepare the stages for the cohort and run the resulting batch. With `dry_run`,
    the jobs are only logged.
    """
    if cohort is None:
        cohort = load_cohort(config.workflow.name, config.workflow.sample_map)
    b = Batch(config.workflow.name, _scratch_dir(config))
    wfl = Workflow(config, b, cohort)
    wfl.set_stages(stages)
    b.log_stats()
    if dry_run:
        return WorkflowResult(wfl, b.dry_run(), dry_run=True)

    runner = TaskRunner(backend or LocalBackend(), config.retry)
    result = b.run(runner, max_parallel=max_parallel or config.workflow.max_parallel_jobs)
    return WorkflowResult(wfl, result)
