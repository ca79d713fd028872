"""
Cohort-size routing.

Two independent decisions depend on the number of samples:
* whether per-shard outputs are merged into one VCF before collecting metrics
  (small cohorts), or kept sharded with metrics accumulated across shards;
* whether the SNP recalibration model is trained once on a downsampled callset
  and reused for every shard, or trained directly on the full sites-only VCF.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class CohortThresholds:
    """
    Sample count boundaries, inclusive on the lower class.
    """

    small_max_samples: int = 1000
    single_snp_model_max_samples: int = 10500
    huge_min_samples: int = 100000

    def __post_init__(self):
        if not 0 < self.small_max_samples <= self.single_snp_model_max_samples:
            raise ValueError(f'Inconsistent cohort thresholds: {self}')


DEFAULT_THRESHOLDS = CohortThresholds()


class CohortSizeClass(Enum):
    SMALL = 'small'
    MEDIUM = 'medium'
    LARGE = 'large'


@dataclass(frozen=True)
class Route:
    num_samples: int
    size_class: CohortSizeClass
    # Train the SNP model once on a downsampled callset and apply it per shard
    train_model: bool
    # More memory and disk for the largest callsets
    is_huge: bool = False

    @property
    def is_small(self) -> bool:
        """
        Small cohorts merge shards into a single VCF before collecting metrics.
        """
        return self.size_class is CohortSizeClass.SMALL


def classify(num_samples: int, thresholds: CohortThresholds = DEFAULT_THRESHOLDS) -> CohortSizeClass:
    """
    >>> classify(1000), classify(1001), classify(10501)
    (<CohortSizeClass.SMALL: 'small'>, <CohortSizeClass.MEDIUM: 'medium'>, <CohortSizeClass.LARGE: 'large'>)
    """
    if num_samples <= thresholds.small_max_samples:
        return CohortSizeClass.SMALL
    if num_samples <= thresholds.single_snp_model_max_samples:
        return CohortSizeClass.MEDIUM
    return CohortSizeClass.LARGE


def route(num_samples: int, thresholds: CohortThresholds = DEFAULT_THRESHOLDS) -> Route:
    """
    Decide the recalibration and gather topology for a cohort of `num_samples`.
    """
    if num_samples < 1:
        raise ValueError(f'Cohort must have at least one sample, got {num_samples}')
    return Route(
        num_samples=num_samples,
        size_class=classify(num_samples, thresholds),
        train_model=num_samples > thresholds.single_snp_model_max_samples,
        is_huge=num_samples >= thresholds.huge_min_samples,
    )
