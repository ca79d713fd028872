"""
Exception classes
"""


class WorkflowError(Exception):
    """
    Error raised by workflow and stage implementation.
    """


class ConfigError(WorkflowError):
    """
    Configuration is missing a required key or has an invalid value.
    """


class MalformedInputError(WorkflowError):
    """
    An input file (interval list, sample map) can't be parsed.
    """


class TaskError(Exception):
    """
    Base class for errors raised while running a single job.
    """

    retryable = False


class PreemptedError(TaskError):
    """
    The compute running the job was reclaimed. Retried within the
    task class `max_retries` budget.
    """

    retryable = True


class TransientCopyError(TaskError):
    """
    Copying an artifact to or from storage failed in a way that is worth retrying.
    """

    retryable = True


class CommandFailedError(TaskError):
    """
    The job command exited with a non-zero code.
    """

    def __init__(self, job_name: str, returncode: int, stderr: str = ''):
        super().__init__(f'{job_name}: command exited with code {returncode}\n{stderr}'.rstrip())
        self.returncode = returncode


class MissingInputError(TaskError):
    """
    A job input artifact (or its index) does not exist.
    """


class MissingOutputError(TaskError):
    """
    A job finished without producing one of its declared outputs.
    """


class TaskCrashedError(TaskError):
    """
    Running a job raised an error that is not a task error, e.g. bash is
    missing or the storage client failed in an unexpected way. Fatal for the job.
    """

    def __init__(self, job_name: str, error: BaseException):
        super().__init__(f'{job_name}: {type(error).__name__}: {error}')
        self.error = error


class RetriesExhaustedError(TaskError):
    """
    A retryable error kept happening until the retry budget was used up.
    """

    def __init__(self, what: str, attempts: int, last_error: BaseException):
        super().__init__(f'{what}: giving up after {attempts} attempts: {last_error}')
        self.attempts = attempts
        self.last_error = last_error


class IncompleteOutputError(WorkflowError):
    """
    The selected result branch has outputs that were never produced.
    """

    def __init__(self, branch: str, missing: list[str]):
        shown = ', '.join(missing[:10]) + (f' (+{len(missing) - 10} more)' if len(missing) > 10 else '')
        super().__init__(f'{branch} outputs failed to materialise: {shown}')
        self.branch = branch
        self.missing = missing
