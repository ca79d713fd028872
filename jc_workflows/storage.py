"""
Copying artifacts between a job's scratch space and their destinations,
which can be local or in a bucket.
"""

import logging
import shutil
from typing import Callable

from cloudpathlib import CloudPath
from cloudpathlib.exceptions import CloudPathException
from google.api_core.exceptions import GoogleAPIError
from tenacity import RetryError, Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from . import Path, to_path
from .config import RetryConfig
from .exceptions import RetriesExhaustedError, TransientCopyError
from .filetypes import Artifact

logger = logging.getLogger(__name__)

Copier = Callable[[Path, Path], None]


def copy_file(src: Path, dst: Path) -> None:
    """
    Copy one file. Either side can be a cloud path; storage client errors are
    raised as TransientCopyError.
    """
    src, dst = to_path(src), to_path(dst)
    if not isinstance(src, CloudPath) and not isinstance(dst, CloudPath):
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)
        return
    try:
        if isinstance(src, CloudPath):
            src.copy(dst, force_overwrite_to_cloud=True)
        else:
            dst.upload_from(src, force_overwrite_to_cloud=True)
    except (GoogleAPIError, CloudPathException) as e:
        raise TransientCopyError(f'Copying {src} to {dst} failed: {e}') from e


def copy_with_retry(src: Path, dst: Path, policy: RetryConfig, copier: Copier = copy_file) -> None:
    """
    Copy a file, retrying transient failures `policy.copy_attempts` times in
    total with a fixed backoff between attempts.
    """
    retrying = Retrying(
        stop=stop_after_attempt(policy.copy_attempts),
        wait=wait_fixed(policy.copy_backoff_seconds),
        retry=retry_if_exception_type((TransientCopyError, OSError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    try:
        for attempt in retrying:
            with attempt:
                copier(src, dst)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetriesExhaustedError(f'Copying {src} to {dst}', policy.copy_attempts, last_error) from last_error


def copy_artifact(
    src: Artifact,
    dst: Artifact,
    policy: RetryConfig,
    copier: Copier = copy_file,
) -> Artifact:
    """
    Copy the primary file and the index of an artifact. The index is copied
    last, so an existing index implies a complete artifact.
    """
    if len(src.files()) != len(dst.files()):
        raise ValueError(f'Artifact layouts differ: {src!r} -> {dst!r}')
    for src_path, dst_path in zip(src.files(), dst.files()):
        copy_with_retry(src_path, dst_path, policy, copier)
    logging.debug(f'Copied {src!r} to {dst!r}')
    return dst
