"""
Planning of the genomic intervals that joint genotyping is scattered over.

The calling interval list usually has many small intervals, and running the
import and genotyping steps on each of them separately carries a per-sample
overhead on every shard. Adjacent intervals are merged into chains to balance
the number of shards against that overhead.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from . import Path, to_path
from .exceptions import MalformedInputError


@dataclass(frozen=True, order=True)
class GenomicInterval:
    """
    1-based closed interval, as in Picard interval lists.
    """

    chrom: str
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f'Interval start is after end: {self}')

    def __str__(self) -> str:
        return f'{self.chrom}:{self.start}-{self.end}'

    def __len__(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class IntervalChain:
    """
    Positionally adjacent intervals on one chromosome, merged into one unit of work.
    """

    intervals: tuple[GenomicInterval, ...]

    def __post_init__(self):
        if not self.intervals:
            raise ValueError('An interval chain needs at least one interval')
        for prev, nxt in zip(self.intervals, self.intervals[1:]):
            if prev.chrom != nxt.chrom or prev.end + 1 != nxt.start:
                raise ValueError(f'Intervals {prev} and {nxt} are not adjacent')

    def __len__(self) -> int:
        return len(self.intervals)

    @property
    def chrom(self) -> str:
        return self.intervals[0].chrom

    def collapsed(self) -> GenomicInterval:
        """
        >>> a, b = GenomicInterval('chr1', 1, 10), GenomicInterval('chr1', 11, 20)
        >>> str(IntervalChain((a, b)).collapsed())
        'chr1:1-20'
        """
        return GenomicInterval(self.chrom, self.intervals[0].start, self.intervals[-1].end)

    def __str__(self) -> str:
        return str(self.collapsed())


def merge_intervals(intervals: Iterable[GenomicInterval], merge_count: int) -> list[IntervalChain]:
    """
    Greedily merge sorted, non-overlapping intervals into chains of at most
    `merge_count` members. A chain is flushed early whenever the next interval
    is not adjacent to it (other chromosome, or a gap), so adjacency takes
    priority over reaching `merge_count`.
    """
    if merge_count < 1:
        raise ValueError(f'merge_count must be at least 1, got {merge_count}')

    chains: list[IntervalChain] = []
    current: list[GenomicInterval] = []
    for interval in intervals:
        if current:
            last = current[-1]
            adjacent = interval.chrom == last.chrom and interval.start == last.end + 1
            if len(current) >= merge_count or not adjacent:
                chains.append(IntervalChain(tuple(current)))
                current = []
        current.append(interval)
    if current:
        chains.append(IntervalChain(tuple(current)))
    return chains


def possible_merge_count(num_intervals: int, num_samples: int) -> int:
    """
    Chain length that keeps the amount of work per shard roughly constant as
    the cohort grows: fewer, longer chains for small cohorts.

    >>> possible_merge_count(10000, 100)
    40
    >>> possible_merge_count(10000, 20000)
    1
    """
    if num_samples < 1:
        raise ValueError(f'Number of samples must be positive, got {num_samples}')
    return max(1, math.floor(num_intervals / num_samples / 2.5))


def resolve_merge_count(
    num_intervals: int,
    num_samples: int,
    fixed_merge_count: int | None,
) -> int:
    """
    Pick the chain length. A configured fixed value wins over the derived
    value; when both are available and disagree, the difference is logged so
    it's visible which one was used.
    """
    derived = possible_merge_count(num_intervals, num_samples)
    if fixed_merge_count is None:
        logging.info(f'Using derived merge count {derived} ({num_intervals} intervals, {num_samples} samples)')
        return derived
    if fixed_merge_count < 1:
        raise ValueError(f'merge_count must be at least 1, got {fixed_merge_count}')
    if fixed_merge_count != derived:
        logging.warning(
            f'Configured merge count {fixed_merge_count} differs from the value derived '
            f'from {num_intervals} intervals and {num_samples} samples ({derived}). '
            f'Using the configured {fixed_merge_count}',
        )
    return fixed_merge_count


def _check_sorted(intervals: Sequence[GenomicInterval], source: str):
    chrom_order: dict[str, int] = {}
    for prev, nxt in zip(intervals, intervals[1:]):
        chrom_order.setdefault(prev.chrom, len(chrom_order))
        if nxt.chrom == prev.chrom:
            if nxt.start <= prev.end:
                raise MalformedInputError(f'{source}: {nxt} overlaps or precedes {prev}')
        elif nxt.chrom in chrom_order:
            raise MalformedInputError(f'{source}: {nxt.chrom} intervals are not contiguous in the list')


def parse_intervals(lines: Iterable[str], bed: bool = False, source: str = '<input>') -> list[GenomicInterval]:
    """
    Parse interval list lines. Picard interval lists are 1-based closed and
    start with `@` header lines; BED is 0-based half-open.
    """
    intervals = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith('@') or line.startswith('#') or line.startswith('track'):
            continue
        fields = line.split('\t') if '\t' in line else line.split()
        try:
            chrom, start, end = fields[0], int(fields[1]), int(fields[2])
        except (IndexError, ValueError) as e:
            raise MalformedInputError(f'{source}:{lineno}: can\'t parse interval "{line}"') from e
        if bed:
            start += 1
        try:
            intervals.append(GenomicInterval(chrom, start, end))
        except ValueError as e:
            raise MalformedInputError(f'{source}:{lineno}: {e}') from e
    _check_sorted(intervals, source)
    return intervals


def read_interval_list(path: str | Path) -> list[GenomicInterval]:
    """
    Read a Picard `.interval_list` or a `.bed` file.
    """
    path = to_path(path)
    with path.open() as f:
        intervals = parse_intervals(f, bed=path.name.endswith(('.bed', '.bed.txt')), source=str(path))
    logging.info(f'Read {len(intervals)} intervals from {path}')
    return intervals
