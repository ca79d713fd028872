"""
Test building the job graph and scheduling it.
"""

import threading
import time

import pytest

from jc_workflows.batch import Batch, Job, JobStatus
from jc_workflows.exceptions import CommandFailedError, WorkflowError
from jc_workflows.filetypes import Artifact, ArtifactKind

from .factories.batch import create_local_batch


class RecordingRunner:
    """
    Records the order jobs ran in, failing the ones named in `fail`.
    """

    def __init__(self, fail: set[str] | None = None, delay: float = 0.0):
        self.fail = fail or set()
        self.delay = delay
        self.order: list[str] = []
        self.running = 0
        self.max_running = 0
        self._lock = threading.Lock()

    def run(self, job: Job):
        with self._lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        time.sleep(self.delay)
        with self._lock:
            self.running -= 1
            self.order.append(job.name)
        if job.name in self.fail:
            raise CommandFailedError(job.name, 1)


def _scatter_gather(b: Batch, n: int = 3) -> tuple[list[Job], Job]:
    shards = []
    gather = b.new_job('gather')
    for i in range(n):
        j = b.new_job(f'shard {i}')
        out = j.declare_artifact('output', ArtifactKind.VCF)
        gather.read_input(b.write_output(out, b.scratch_dir / 'final' / f'part{i}.vcf.gz'))
        shards.append(j)
    return shards, gather


def test_edges_from_artifacts(tmp_path):
    b = create_local_batch(tmp_path)
    shards, gather = _scatter_gather(b)
    assert set(b.graph.predecessors(gather)) == set(shards)
    assert all(b.graph.edges[s, gather]['kind'] == 'artifact' for s in shards)


def test_explicit_order_edge(tmp_path):
    b = create_local_batch(tmp_path)
    j1, j2 = b.new_job('first'), b.new_job('second')
    j2.depends_on(j1)
    assert b.graph.edges[j1, j2]['kind'] == 'order'


def test_single_writer(tmp_path):
    b = create_local_batch(tmp_path)
    j1, j2 = b.new_job('first'), b.new_job('second')
    dst = tmp_path / 'out.vcf.gz'
    b.write_output(j1.declare_artifact('output', ArtifactKind.VCF), dst)
    with pytest.raises(WorkflowError, match='written by both'):
        b.write_output(j2.declare_artifact('output', ArtifactKind.VCF), dst)


def test_declare_twice(tmp_path):
    j = create_local_batch(tmp_path).new_job('job')
    j.declare_artifact('output', ArtifactKind.VCF)
    with pytest.raises(WorkflowError):
        j.declare_artifact('output', ArtifactKind.VCF)


def test_write_output_of_unknown_artifact(tmp_path):
    b = create_local_batch(tmp_path)
    with pytest.raises(WorkflowError, match='not an output'):
        b.write_output(Artifact.vcf(tmp_path / 'a.vcf.gz'), tmp_path / 'b.vcf.gz')


def test_cycle(tmp_path):
    b = create_local_batch(tmp_path)
    j1, j2 = b.new_job('first'), b.new_job('second')
    j2.depends_on(j1)
    j1.depends_on(j2)
    with pytest.raises(WorkflowError, match='cycle'):
        b.run(RecordingRunner())


def test_fan_in_waits_for_all_shards(tmp_path):
    b = create_local_batch(tmp_path)
    _, gather = _scatter_gather(b, n=5)
    runner = RecordingRunner(delay=0.01)
    result = b.run(runner, max_parallel=3)
    assert result.complete
    assert runner.order[-1] == 'gather'
    assert 1 < runner.max_running <= 3


def test_failure_cancels_dependants_only(tmp_path):
    b = create_local_batch(tmp_path)
    shards, gather = _scatter_gather(b, n=3)
    after_gather = b.new_job('after gather').depends_on(gather)
    unrelated = b.new_job('unrelated')

    result = b.run(RecordingRunner(fail={'shard 1'}), max_parallel=2)
    assert not result.complete
    assert result.status_by_job[shards[1]] is JobStatus.FAILED
    assert isinstance(result.error_by_job[shards[1]], CommandFailedError)
    assert result.status_by_job[shards[0]] is JobStatus.SUCCEEDED
    assert result.status_by_job[shards[2]] is JobStatus.SUCCEEDED
    assert result.status_by_job[unrelated] is JobStatus.SUCCEEDED
    assert set(result.cancelled) == {gather, after_gather}


def test_dry_run_runs_nothing(tmp_path):
    b = create_local_batch(tmp_path)
    _scatter_gather(b)
    result = b.dry_run()
    assert all(s is JobStatus.PENDING for s in result.status_by_job.values())


def test_stats(tmp_path):
    b = create_local_batch(tmp_path)
    b.new_job('a', {'tool': 'gatk'})
    b.new_job('b', {'tool': 'gatk'})
    b.log_stats()
    assert b.job_by_tool == {'gatk': 2}


def test_invalid_max_parallel(tmp_path):
    with pytest.raises(ValueError):
        create_local_batch(tmp_path).run(RecordingRunner(), max_parallel=0)
