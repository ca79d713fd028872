"""
A batch of jobs and the dependency graph between them.

Jobs are declared first and run afterwards, the same way a Hail Batch is built
and then submitted. Each job writes into its own scratch directory. Edges are
inferred from artifacts: a job that reads an artifact depends on the job that
writes it. Explicit ordering edges can be added with `Job.depends_on`.
"""

import logging
import pathlib
from collections import defaultdict, deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import networkx as nx

from . import Path
from .exceptions import TaskError, WorkflowError
from .filetypes import Artifact, ArtifactKind
from .utils import slugify

if TYPE_CHECKING:
    from .runner import TaskRunner


class JobStatus(Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


class Job:
    """
    One invocation of an external tool: a bash script plus the artifacts it
    reads and writes, the image it runs in and its resources.
    """

    def __init__(self, batch: 'Batch', uid: str, name: str, attributes: dict[str, str]):
        self._batch = batch
        self.uid = uid
        self.name = name
        self.attributes = attributes
        self.scratch_dir: pathlib.Path = batch.scratch_dir / uid

        self.commands: list[str] = []
        self.inputs: list[Artifact] = []
        self.outputs: dict[str, Artifact] = {}
        self.copy_outs: list[tuple[Artifact, Artifact]] = []

        self._image: str | None = None
        self._cpu: int | None = None
        self._memory: str | None = None
        self._storage: str | None = None
        self.machine_type: str | None = None
        self.task_class: str | None = None
        self.max_retries: int | None = None
        self.preemptible: bool = True

    def __repr__(self):
        return f'Job({self.name})'

    def image(self, image: str) -> 'Job':
        self._image = image
        return self

    def cpu(self, cpu: int) -> 'Job':
        self._cpu = cpu
        return self

    def memory(self, memory: str) -> 'Job':
        self._memory = memory
        return self

    def storage(self, storage: str) -> 'Job':
        self._storage = storage
        return self

    def get_image(self) -> str | None:
        return self._image

    def get_resources(self) -> dict[str, str | int | None]:
        return {'cpu': self._cpu, 'memory': self._memory, 'storage': self._storage}

    def command(self, command: str) -> 'Job':
        self.commands.append(command)
        return self

    def script(self) -> str:
        return '\n'.join(self.commands)

    def declare_artifact(self, name: str, kind: ArtifactKind) -> Artifact:
        """
        Declare an output in the job's scratch directory. The job must produce
        it, otherwise the job fails.
        """
        if name in self.outputs:
            raise WorkflowError(f'{self.name}: output "{name}" declared twice')
        artifact = Artifact.of_kind(self.scratch_dir / f'{name}{kind.ext}', kind)
        self._batch._register_output(self, artifact)
        self.outputs[name] = artifact
        return artifact

    def read_input(self, artifact: Artifact) -> Artifact:
        """
        Register an artifact the job reads. If another job in the batch writes
        it, this job depends on that job.
        """
        self._batch._register_input(self, artifact)
        self.inputs.append(artifact)
        return artifact

    def depends_on(self, *jobs: 'Job') -> 'Job':
        for job in jobs:
            self._batch._add_edge(job, self, kind='order')
        return self


@dataclass
class BatchResult:
    status_by_job: dict[Job, JobStatus]
    error_by_job: dict[Job, TaskError] = field(default_factory=dict)

    def _with_status(self, status: JobStatus) -> list[Job]:
        return [j for j, s in self.status_by_job.items() if s is status]

    @property
    def succeeded(self) -> list[Job]:
        return self._with_status(JobStatus.SUCCEEDED)

    @property
    def failed(self) -> list[Job]:
        return self._with_status(JobStatus.FAILED)

    @property
    def cancelled(self) -> list[Job]:
        return self._with_status(JobStatus.CANCELLED)

    @property
    def complete(self) -> bool:
        return all(s is JobStatus.SUCCEEDED for s in self.status_by_job.values())


class Batch:
    """
    Jobs and the graph of dependencies between them.
    """

    def __init__(self, name: str, scratch_dir: str | pathlib.Path):
        self.name = name
        self.scratch_dir = pathlib.Path(scratch_dir)
        self.graph = nx.DiGraph()
        self._jobs: list[Job] = []
        self._writer_by_path: dict[str, Job] = {}
        self.job_by_tool: dict[str, int] = defaultdict(int)
        self.job_by_label: dict[str, int] = defaultdict(int)

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs)

    def new_job(self, name: str, attributes: dict[str, str] | None = None) -> Job:
        """
        Add a job. `tool` and `label` attributes are counted for the stats.
        """
        attributes = dict(attributes or {})
        label = attributes.get('label', name)
        if tool := attributes.get('tool'):
            self.job_by_tool[tool] += 1
        self.job_by_label[label] += 1

        uid = f'{len(self._jobs):05d}-{slugify(name)[:80]}'
        j = Job(self, uid, name, attributes)
        self._jobs.append(j)
        self.graph.add_node(j)
        return j

    def write_output(self, artifact: Artifact, destination: str | Path) -> Artifact:
        """
        Copy a job output to `destination` once the job has finished. Returns
        the destination artifact, which later jobs can read.
        """
        writer = self._writer_by_path.get(str(artifact.path))
        if writer is None:
            raise WorkflowError(f'{artifact!r} is not an output of any job in the batch')
        dst = artifact.relocated(destination)
        self._register_output(writer, dst)
        writer.copy_outs.append((artifact, dst))
        return dst

    def producer_of(self, artifact: Artifact) -> Job | None:
        return self._writer_by_path.get(str(artifact.path))

    def _register_output(self, job: Job, artifact: Artifact):
        for path in map(str, artifact.files()):
            writer = self._writer_by_path.get(path)
            if writer is not None and writer is not job:
                raise WorkflowError(f'{path} is written by both "{writer.name}" and "{job.name}"')
            self._writer_by_path[path] = job

    def _register_input(self, job: Job, artifact: Artifact):
        writer = self._writer_by_path.get(str(artifact.path))
        if writer is not None and writer is not job:
            self._add_edge(writer, job, kind='artifact')

    def _add_edge(self, upstream: Job, downstream: Job, kind: str):
        if self.graph.has_edge(upstream, downstream) and kind == 'order':
            return
        self.graph.add_edge(upstream, downstream, kind=kind)

    def check_graph(self):
        try:
            cycle = nx.find_cycle(self.graph)
        except nx.NetworkXNoCycle:
            return
        raise WorkflowError(f'Job graph has a cycle: {" -> ".join(u.name for u, _ in cycle)}')

    def log_stats(self):
        logging.info(f'Batch "{self.name}": {len(self._jobs)} jobs')
        for label, count in sorted(self.job_by_label.items()):
            logging.info(f'  {label}: {count}')
        if self.job_by_tool:
            logging.info('Split by tool:')
            for tool, count in sorted(self.job_by_tool.items(), key=lambda x: -x[1]):
                logging.info(f'  {tool}: {count}')

    def dry_run(self) -> BatchResult:
        """
        Log the jobs in the order they would run, without running anything.
        """
        self.check_graph()
        for j in nx.topological_sort(self.graph):
            upstream = ', '.join(u.name for u in self.graph.predecessors(j))
            logging.info(f'[dry-run] {j.uid} "{j.name}" ({j.get_image()}) after [{upstream}]:\n{j.script()}')
        return BatchResult({j: JobStatus.PENDING for j in self._jobs})

    def run(self, runner: 'TaskRunner', max_parallel: int = 8) -> BatchResult:
        """
        Run jobs on up to `max_parallel` threads. A job starts once all its
        upstream jobs have succeeded. When a job fails, everything downstream
        of it is cancelled, while unrelated jobs keep running.
        """
        if max_parallel < 1:
            raise ValueError(f'max_parallel must be at least 1, got {max_parallel}')
        self.check_graph()
        status: dict[Job, JobStatus] = {j: JobStatus.PENDING for j in self._jobs}
        errors: dict[Job, TaskError] = {}
        waiting_for = {j: self.graph.in_degree(j) for j in self._jobs}
        ready = deque(j for j in self._jobs if waiting_for[j] == 0)

        with ThreadPoolExecutor(max_workers=max_parallel) as pool:
            running: dict[Future, Job] = {}
            while ready or running:
                while ready:
                    j = ready.popleft()
                    if status[j] is not JobStatus.PENDING:
                        continue
                    status[j] = JobStatus.RUNNING
                    logging.info(f'Starting "{j.name}"')
                    running[pool.submit(runner.run, j)] = j

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    j = running.pop(future)
                    try:
                        future.result()
                    except TaskError as e:
                        status[j] = JobStatus.FAILED
                        errors[j] = e
                        logging.error(f'"{j.name}" failed: {e}')
                        for downstream in nx.descendants(self.graph, j):
                            if status[downstream] is JobStatus.PENDING:
                                status[downstream] = JobStatus.CANCELLED
                                logging.warning(f'Cancelling "{downstream.name}", depends on failed "{j.name}"')
                        continue
                    status[j] = JobStatus.SUCCEEDED
                    for downstream in self.graph.successors(j):
                        waiting_for[downstream] -= 1
                        if waiting_for[downstream] == 0:
                            ready.append(downstream)

        result = BatchResult(status, errors)
        logging.info(
            f'Batch "{self.name}" finished: {len(result.succeeded)} succeeded, '
            f'{len(result.failed)} failed, {len(result.cancelled)} cancelled',
        )
        return result
