"""
Test cohort size routing.
"""

import pytest

from jc_workflows.routing import CohortSizeClass, CohortThresholds, classify, route


def test_snp_model_training_boundary():
    assert route(10500).train_model is False
    assert route(10501).train_model is True


def test_gather_boundary():
    assert route(1000).is_small
    assert not route(1001).is_small


def test_thresholds_are_independent():
    # Both are non-small, but only one trains the SNP model on a downsampled callset
    medium, large = route(1001), route(10501)
    assert (medium.is_small, medium.train_model) == (False, False)
    assert (large.is_small, large.train_model) == (False, True)
    assert route(1).size_class is CohortSizeClass.SMALL


@pytest.mark.parametrize(
    'n,expected',
    [
        (500, CohortSizeClass.SMALL),
        (1000, CohortSizeClass.SMALL),
        (1001, CohortSizeClass.MEDIUM),
        (10500, CohortSizeClass.MEDIUM),
        (10501, CohortSizeClass.LARGE),
        (12000, CohortSizeClass.LARGE),
    ],
)
def test_classify(n: int, expected: CohortSizeClass):
    assert classify(n) is expected


def test_huge():
    assert not route(99999).is_huge
    assert route(100000).is_huge


def test_custom_thresholds():
    thresholds = CohortThresholds(small_max_samples=10, single_snp_model_max_samples=20)
    assert route(10, thresholds).is_small
    assert not route(11, thresholds).is_small
    assert route(21, thresholds).train_model


def test_invalid():
    with pytest.raises(ValueError):
        route(0)
    with pytest.raises(ValueError):
        CohortThresholds(small_max_samples=100, single_snp_model_max_samples=10)
