"""
Utility functions and constants.
"""

import logging
import re
import string
import time
import unicodedata
from functools import lru_cache
from random import choices

from . import Path, to_path


@lru_cache
def exists(path: Path | str, verbose: bool = True) -> bool:
    """
    `exists_not_cached` that caches the result.

    The workflow graph is built entirely before any job runs, so there is no
    expectation that the object existence status would change while building it.
    This function uses `@lru_cache` to make sure that object existence is checked
    only once. Don't use it once jobs are running; use `exists_not_cached`.
    """
    return exists_not_cached(path, verbose)


def exists_not_cached(path: Path | str, verbose: bool = False) -> bool:
    """
    Check if the object by path exists, where the object can be a local file or
    directory, or a cloud object.
    @param path: path to the file/directory/object
    @param verbose: log on each check
    @return: True if the object exists
    """
    path = to_path(path)
    res = path.exists()
    if verbose:
        logging.debug(f'Checked {path} [' + ('exists' if res else 'missing') + ']')
    return res


def can_reuse(
    path: list[Path] | Path | str | None,
    overwrite: bool = False,
    check_intermediates: bool = True,
) -> bool:
    """
    True if every path exists and reusing outputs is allowed, i.e. `overwrite`
    is off and `check_intermediates` is on.
    """
    if overwrite or not check_intermediates or not path:
        return False

    paths = path if isinstance(path, list) else [path]
    if not all(exists(fp) for fp in paths):
        return False

    logging.debug(f'Reusing existing {path}')
    return True


def timestamp(rand_suffix_len: int = 5) -> str:
    """
    Current time as a string, e.g. `2024_0131_1542_X7K2Q`, with a random suffix
    of `rand_suffix_len` characters unless it is 0.
    """
    result = time.strftime('%Y_%m%d_%H%M')
    if rand_suffix_len:
        rand_bit = ''.join(choices(string.ascii_uppercase + string.digits, k=rand_suffix_len))
        result += f'_{rand_bit}'
    return result


def slugify(line: str):
    """
    Slugify a string.

    Example:
    >>> slugify(u'Héllø W.1')
    'hello-w-1'
    """

    line = unicodedata.normalize('NFKD', line).encode('ascii', 'ignore').decode()
    line = line.strip().lower()
    line = re.sub(
        r'[\s.:/]+',
        '-',
        line,
    )
    return line
