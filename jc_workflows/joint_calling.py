"""
The joint-calling workflow: all stages, from the interval chains to the
selected outputs of one gather branch.
"""

import logging
from dataclasses import dataclass

from .config import PipelineConfig
from .gather import CohortResult, GatherPlan, select_outputs, write_manifest
from .runner import Backend
from .stages.gather import GatherOutputs
from .targets import Cohort
from .workflow import WorkflowResult, run_workflow

JOINT_CALLING_STAGES = [GatherOutputs]


@dataclass
class JointCallingResult:
    """
    `outputs` is None on a dry run, when nothing was produced.
    """

    run: WorkflowResult
    outputs: CohortResult | None = None


def run_joint_calling(
    config: PipelineConfig,
    cohort: Cohort | None = None,
    dry_run: bool = False,
    backend: Backend | None = None,
    max_parallel: int | None = None,
) -> JointCallingResult:
    """
    Build and run the workflow, then select the outputs of the gather branch
    chosen for the cohort and write a manifest listing them. Raises
    IncompleteOutputError if any of them is missing.
    """
    run = run_workflow(
        config,
        JOINT_CALLING_STAGES,
        cohort=cohort,
        dry_run=dry_run,
        backend=backend,
        max_parallel=max_parallel,
    )
    if run.dry_run:
        return JointCallingResult(run)

    gather_stage = run.workflow.get_stage(GatherOutputs)
    assert gather_stage.output
    plan: GatherPlan = gather_stage.output.get('plan')
    outputs = select_outputs(plan, b=run.workflow.b, result=run.batch_result)
    logging.info(f'Selected {outputs.branch} cohort outputs')
    write_manifest(outputs, gather_stage.output.get('manifest'), run.workflow.cohort)
    return JointCallingResult(run, outputs)
