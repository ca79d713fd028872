"""
Test job resources.
"""

import pytest

from jc_workflows.resources import (
    HIGHMEM,
    STANDARD,
    joint_calling_storage_gb,
    set_task_resources,
    storage_for_joint_vcf,
    vqsr_disk_sizes,
)
from jc_workflows.routing import route

from .factories.batch import create_local_batch
from .factories.config import create_config


def test_request_resources_rounds_to_power_of_two():
    assert STANDARD.request_resources(ncpu=3).get_ncpu() == 4
    assert STANDARD.request_resources(nthreads=5).get_ncpu() == 4
    assert STANDARD.request_resources(mem_gb=26).get_ncpu() == 8
    assert STANDARD.request_resources().get_ncpu() == 2
    assert HIGHMEM.request_resources(fraction=1).get_ncpu() == 16


def test_request_too_many_cores():
    with pytest.raises(ValueError):
        STANDARD.request_resources(ncpu=32)


def test_java_memory():
    res = STANDARD.request_resources(ncpu=4)
    assert res.get_mem_gb() == 15
    assert res.get_java_mem_mb() == 14000


def test_storage_attaches_disk_for_whole_machine():
    res = STANDARD.request_resources(storage_gb=500)
    assert res.get_ncpu() == 16
    assert res.get_storage_gb() == pytest.approx(525)


def test_joint_calling_storage():
    assert joint_calling_storage_gb(10, 'genome') == 26
    assert joint_calling_storage_gb(200, 'genome') == 146
    assert joint_calling_storage_gb(10**9, 'genome') == 1000
    assert joint_calling_storage_gb(500, 'exome') < joint_calling_storage_gb(500, 'genome')


def test_storage_for_joint_vcf():
    assert storage_for_joint_vcf(None, 'genome') is None
    assert storage_for_joint_vcf(100, 'genome') == 100
    assert storage_for_joint_vcf(100, 'genome', site_only=False) == 150
    assert storage_for_joint_vcf(100, 'exome') == pytest.approx(10)


def test_vqsr_disk_sizes():
    assert vqsr_disk_sizes(route(500)).huge == 200
    assert vqsr_disk_sizes(route(5000)).huge == 500
    assert vqsr_disk_sizes(route(200000)).huge == 2000


def test_set_task_resources_with_overrides(tmp_path):
    config = create_config(
        tmp_path,
        {'resources': {'genotype': {'ncpu': 8, 'max_retries': 5, 'preemptible': False}}},
    )
    b = create_local_batch(tmp_path)
    j = b.new_job('Genotype')
    res = set_task_resources(j, config, 'genotype', ncpu=4)
    assert res.get_ncpu() == 8
    assert j.get_resources()['cpu'] == 8
    assert j.task_class == 'genotype'
    assert j.max_retries == 5
    assert j.preemptible is False

    j2 = b.new_job('Filter')
    set_task_resources(j2, config, 'filter', ncpu=4)
    assert j2.get_resources()['cpu'] == 4
    assert j2.max_retries == 2
    assert j2.preemptible is True
