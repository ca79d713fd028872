"""
Test running single jobs: input and output checks, preemption retries,
copying outputs.
"""

import pytest

from jc_workflows.batch import Job, JobStatus
from jc_workflows.config import RetryConfig
from jc_workflows.exceptions import (
    CommandFailedError,
    MissingInputError,
    MissingOutputError,
    PreemptedError,
    RetriesExhaustedError,
    TaskCrashedError,
)
from jc_workflows.filetypes import Artifact, ArtifactKind
from jc_workflows.runner import Backend, LocalBackend, TaskRunner

from .factories.batch import create_local_batch

RETRY = RetryConfig(copy_attempts=5, copy_backoff_seconds=0, max_retries=2)


class ScriptedBackend(Backend):
    """
    Raises the given errors on consecutive calls, then writes all outputs.
    """

    def __init__(self, errors: list[Exception] | None = None, write_outputs: bool = True):
        self.errors = list(errors or [])
        self.write_outputs = write_outputs
        self.calls = 0

    def run(self, job: Job) -> None:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.write_outputs:
            job.scratch_dir.mkdir(parents=True, exist_ok=True)
            for artifact in job.outputs.values():
                for path in artifact.files():
                    path.write_text('content')


def _job_with_output(tmp_path, max_retries: int | None = None) -> tuple[Job, Artifact]:
    b = create_local_batch(tmp_path)
    j = b.new_job('Genotype')
    j.max_retries = max_retries
    out = j.declare_artifact('output', ArtifactKind.VCF)
    dst = b.write_output(out, tmp_path / 'out' / 'genotyped.vcf.gz')
    return j, dst


def test_success_copies_outputs(tmp_path):
    j, dst = _job_with_output(tmp_path)
    TaskRunner(ScriptedBackend(), RETRY).run(j)
    assert dst.exists()
    assert dst.path.read_text() == 'content'


def test_missing_input_is_fatal(tmp_path):
    j, _ = _job_with_output(tmp_path)
    j.read_input(Artifact.vcf(tmp_path / 'missing.vcf.gz'))
    backend = ScriptedBackend()
    with pytest.raises(MissingInputError, match='missing.vcf.gz'):
        TaskRunner(backend, RETRY).run(j)
    assert backend.calls == 0


def test_missing_index_counts_as_missing_input(tmp_path):
    j, _ = _job_with_output(tmp_path)
    vcf = tmp_path / 'input.vcf.gz'
    vcf.touch()
    j.read_input(Artifact.vcf(vcf))
    with pytest.raises(MissingInputError, match='.tbi'):
        TaskRunner(ScriptedBackend(), RETRY).run(j)


def test_preemption_retried_within_budget(tmp_path):
    j, dst = _job_with_output(tmp_path)
    backend = ScriptedBackend([PreemptedError('reclaimed'), PreemptedError('reclaimed')])
    TaskRunner(backend, RETRY).run(j)
    assert backend.calls == 3
    assert dst.exists()


def test_preemption_budget_exhausted(tmp_path):
    j, _ = _job_with_output(tmp_path, max_retries=1)
    backend = ScriptedBackend([PreemptedError('reclaimed')] * 2)
    with pytest.raises(RetriesExhaustedError) as e:
        TaskRunner(backend, RETRY).run(j)
    assert e.value.attempts == 2
    assert isinstance(e.value.last_error, PreemptedError)
    assert backend.calls == 2


def test_non_preemptible_job_not_retried(tmp_path):
    j, dst = _job_with_output(tmp_path, max_retries=5)
    j.preemptible = False
    backend = ScriptedBackend([PreemptedError('reclaimed')] * 3)
    with pytest.raises(PreemptedError):
        TaskRunner(backend, RETRY).run(j)
    assert backend.calls == 1
    assert not dst.exists()


def test_backend_crash_becomes_task_error(tmp_path):
    j, _ = _job_with_output(tmp_path)
    backend = ScriptedBackend([FileNotFoundError('bash: not found')])
    with pytest.raises(TaskCrashedError, match='FileNotFoundError') as e:
        TaskRunner(backend, RETRY).run(j)
    assert isinstance(e.value.error, FileNotFoundError)
    assert backend.calls == 1


def test_backend_crash_fails_own_branch_only(tmp_path):
    b = create_local_batch(tmp_path)
    crashing = b.new_job('crashing')
    crashing.command('true')
    downstream = b.new_job('downstream').depends_on(crashing)
    sibling = b.new_job('sibling')
    sibling.declare_artifact('output', ArtifactKind.TRANCHES)

    class CrashingBackend(ScriptedBackend):
        def run(self, job: Job) -> None:
            if job is crashing:
                raise FileNotFoundError('bash: not found')
            super().run(job)

    result = b.run(TaskRunner(CrashingBackend(), RETRY))

    assert result.status_by_job[crashing] is JobStatus.FAILED
    assert isinstance(result.error_by_job[crashing], TaskCrashedError)
    assert result.status_by_job[downstream] is JobStatus.CANCELLED
    assert result.status_by_job[sibling] is JobStatus.SUCCEEDED


def test_command_failure_not_retried(tmp_path):
    j, _ = _job_with_output(tmp_path)
    backend = ScriptedBackend([CommandFailedError('Genotype', 1)])
    with pytest.raises(CommandFailedError):
        TaskRunner(backend, RETRY).run(j)
    assert backend.calls == 1


def test_missing_output_is_fatal(tmp_path):
    j, dst = _job_with_output(tmp_path)
    with pytest.raises(MissingOutputError, match='output'):
        TaskRunner(ScriptedBackend(write_outputs=False), RETRY).run(j)
    assert not dst.exists()


def test_local_backend(tmp_path):
    j, dst = _job_with_output(tmp_path)
    out = j.outputs['output']
    j.command(f'echo "sites" > {out.path}\ntouch {out.index_path}')
    TaskRunner(LocalBackend(), RETRY).run(j)
    assert dst.path.read_text() == 'sites\n'


@pytest.mark.parametrize('exit_code', [137, 143])
def test_local_backend_preemption(tmp_path, exit_code: int):
    j, _ = _job_with_output(tmp_path)
    j.command(f'exit {exit_code}')
    with pytest.raises(PreemptedError):
        LocalBackend().run(j)


def test_local_backend_failure(tmp_path):
    j, _ = _job_with_output(tmp_path)
    j.command('echo "no such tool" >&2; exit 3')
    with pytest.raises(CommandFailedError, match='no such tool') as e:
        LocalBackend().run(j)
    assert e.value.returncode == 3
