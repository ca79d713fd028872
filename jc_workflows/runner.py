"""
Running a single job: input checks, the command itself with retries on
preemption, output checks and copying outputs to their destinations.
"""

import logging
import subprocess
from abc import ABC, abstractmethod

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_never,
    stop_after_attempt,
)

from .batch import Job
from .config import RetryConfig
from .exceptions import (
    CommandFailedError,
    MissingInputError,
    MissingOutputError,
    PreemptedError,
    RetriesExhaustedError,
    TaskCrashedError,
    TaskError,
)
from .storage import Copier, copy_artifact, copy_file
from .utils import exists_not_cached

logger = logging.getLogger(__name__)


class Backend(ABC):
    """
    Executes a job's command.
    """

    @abstractmethod
    def run(self, job: Job) -> None:
        """
        Run the command, raising PreemptedError if the compute was reclaimed and
        CommandFailedError if the command failed.
        """


class LocalBackend(Backend):
    """
    Runs commands with bash on the local machine. Tools are expected to be on
    PATH; the job image is not used.
    """

    # Killed with SIGKILL or SIGTERM, which is what a reclaimed VM does to its processes.
    PREEMPTION_EXIT_CODES = (137, 143)

    def run(self, job: Job) -> None:
        job.scratch_dir.mkdir(parents=True, exist_ok=True)
        res = subprocess.run(
            ['bash', '-euo', 'pipefail', '-c', job.script()],
            cwd=job.scratch_dir,
            capture_output=True,
            text=True,
        )
        if res.stdout:
            logging.debug(f'{job.name} stdout:\n{res.stdout}')
        if res.returncode in self.PREEMPTION_EXIT_CODES:
            raise PreemptedError(f'{job.name}: killed with exit code {res.returncode}')
        if res.returncode != 0:
            raise CommandFailedError(job.name, res.returncode, res.stderr[-2000:])


class TaskRunner:
    """
    Runs one job against a backend with the retry and copy policies.
    """

    def __init__(self, backend: Backend, retry_config: RetryConfig, copier: Copier = copy_file):
        self.backend = backend
        self.retry_config = retry_config
        self.copier = copier

    def max_attempts(self, job: Job) -> int:
        """
        Preemptible jobs get the task class retry budget. A non-preemptible job
        gets one attempt: if its compute was reclaimed anyway, something else
        killed it.
        """
        if not job.preemptible:
            return 1
        max_retries = self.retry_config.max_retries if job.max_retries is None else job.max_retries
        return max_retries + 1

    def run(self, job: Job) -> None:
        """
        Run the job, raising a TaskError if it failed. Errors from outside the
        task error hierarchy are raised as TaskCrashedError, so a crash only
        fails this job and its dependants.
        """
        try:
            self._run(job)
        except TaskError:
            raise
        except Exception as e:
            logging.exception(f'{job.name}: crashed')
            raise TaskCrashedError(job.name, e) from e

    def _run(self, job: Job) -> None:
        missing = [str(path) for a in job.inputs for path in a.files() if not exists_not_cached(path)]
        if missing:
            raise MissingInputError(f'{job.name}: missing inputs: {", ".join(missing)}')

        attempts = self.max_attempts(job)
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            retry=retry_if_exception_type(PreemptedError) if job.preemptible else retry_never,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            for attempt in retrying:
                with attempt:
                    self.backend.run(job)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise RetriesExhaustedError(job.name, attempts, last_error) from last_error

        missing = [
            f'{name} ({path})'
            for name, artifact in job.outputs.items()
            for path in artifact.files()
            if not exists_not_cached(path)
        ]
        if missing:
            raise MissingOutputError(f'{job.name}: declared outputs not produced: {", ".join(missing)}')

        for src, dst in job.copy_outs:
            copy_artifact(src, dst, self.retry_config, self.copier)
        logging.debug(f'{job.name}: done')
