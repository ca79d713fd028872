"""
Functions to set up job resources (cores, memory, storage).

Jobs request a share of a worker machine. Requests are expressed in cores,
threads, memory or storage, and all of them are converted to a number of
cores, rounded up to a power of two.
"""

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .config import PipelineConfig
from .routing import Route

if TYPE_CHECKING:
    from .batch import Job

# Image and system files, plus space reserved per core on every worker.
RESERVED_DISK_GB = 30
RESERVED_DISK_GB_PER_CORE = 5


@dataclass(frozen=True)
class MachineType:
    """
    Worker machine type jobs are packed onto.
    """

    name: str
    max_ncpu: int
    mem_gb_per_core: float
    disk_size_gb: int
    min_ncpu: int = 2

    @property
    def instance_disk_gb(self) -> int:
        """
        Storage available to jobs on one instance.
        """
        return self.disk_size_gb - RESERVED_DISK_GB - RESERVED_DISK_GB_PER_CORE * self.max_ncpu

    def request_resources(
        self,
        fraction: float | None = None,
        ncpu: int | None = None,
        nthreads: int | None = None,
        mem_gb: float | None = None,
        storage_gb: float | None = None,
    ) -> 'JobResource':
        """
        Smallest share of the machine satisfying every given requirement,
        `min_ncpu` cores if none is given. Storage beyond what an instance
        offers takes the whole machine and attaches a larger disk.
        """
        candidates = [self.round_ncpu(ncpu or self.min_ncpu)]
        if fraction:
            candidates.append(self.round_ncpu(math.ceil(self.max_ncpu * fraction)))
        if nthreads:
            candidates.append(self.round_ncpu(math.ceil(nthreads / 2)))
        if mem_gb:
            candidates.append(self.round_ncpu(math.ceil(mem_gb / self.mem_gb_per_core)))
        if storage_gb:
            share = min(storage_gb / self.instance_disk_gb, 1.0)
            candidates.append(self.round_ncpu(math.ceil(self.max_ncpu * share)))

        attach_gb = storage_gb if storage_gb and storage_gb > self.instance_disk_gb else None
        return JobResource(self, max(candidates), attach_disk_storage_gb=attach_gb)

    def round_ncpu(self, ncpu: int) -> int:
        """
        Nearest power of 2 not below `ncpu` and `min_ncpu` (15 -> 16, 17 -> 32).
        """
        if ncpu > self.max_ncpu:
            raise ValueError(f'Requesting more cores than available on {self.name} machine: {ncpu}>{self.max_ncpu}')
        ncpu = max(ncpu, self.min_ncpu)
        return 2 ** math.ceil(math.log2(ncpu))


# Default machine. More cores per instance would mean less storage per core.
STANDARD = MachineType('standard', max_ncpu=16, mem_gb_per_core=3.75, disk_size_gb=375)

# For memory consuming tools that don't benefit from multiple threads, like
# VariantRecalibrator.
HIGHMEM = MachineType('highmem', max_ncpu=16, mem_gb_per_core=6.5, disk_size_gb=375)


@dataclass(frozen=True)
class JobResource:
    """
    A share of a machine instance.
    """

    machine_type: MachineType
    ncpu: int
    attach_disk_storage_gb: float | None = None

    def __post_init__(self):
        if self.ncpu > self.machine_type.max_ncpu:
            raise ValueError(
                f'Max number of CPU on machine {self.machine_type.name} '
                f'is {self.machine_type.max_ncpu}, requested {self.ncpu}',
            )
        if self.attach_disk_storage_gb is not None and self.ncpu < self.machine_type.max_ncpu:
            raise ValueError(
                f'A disk can be attached only when the entire machine is used, '
                f'requested {self.ncpu} of {self.machine_type.max_ncpu} cores',
            )

    @property
    def fraction_of_full(self) -> float:
        return self.ncpu / self.machine_type.max_ncpu

    def get_ncpu(self) -> int:
        return self.ncpu

    def get_nthreads(self) -> int:
        return self.ncpu

    def get_mem_gb(self) -> float:
        return self.ncpu * self.machine_type.mem_gb_per_core

    def get_java_mem_mb(self) -> int:
        """
        Memory for -Xms/-Xmx options, leaving 1G for native libraries.
        """
        return int(math.floor((self.get_mem_gb() - 1) * 1000))

    def get_storage_gb(self) -> float:
        storage_gb = self.attach_disk_storage_gb or self.machine_type.instance_disk_gb * self.fraction_of_full
        # The scheduler grants 5% less than requested.
        return storage_gb * 1.05

    def set_to_job(self, j: 'Job') -> 'JobResource':
        """
        Set the resources to a Job object. Returns self for chaining, e.g.:
        >>> nthreads = STANDARD.request_resources(nthreads=4).set_to_job(j).get_nthreads()
        """
        j.storage(f'{self.get_storage_gb()}G')
        j.cpu(self.get_ncpu())
        j.memory(f'{self.get_mem_gb()}G')
        j.machine_type = self.machine_type.name
        return self


def set_task_resources(
    j: 'Job',
    config: PipelineConfig,
    task_class: str,
    machine_type: MachineType = STANDARD,
    **requested,
) -> JobResource:
    """
    Set resources for a job of `task_class`, letting [resources.<task_class>]
    in the config override the values requested by the job builder. Also
    assigns the task class retry budget and preemptibility to the job.
    """
    override = config.task_class(task_class)
    for key in ('ncpu', 'mem_gb', 'storage_gb'):
        if (value := getattr(override, key)) is not None:
            requested[key] = value
    res = machine_type.request_resources(**requested).set_to_job(j)
    j.task_class = task_class
    j.max_retries = config.max_retries(task_class)
    j.preemptible = override.preemptible
    return res


def joint_calling_storage_gb(n_samples: int, sequencing_type: str) -> int:
    """
    Calculate storage for a joint calling job, to fit a joint-called VCF
    and a genomics db. The required storage grows with a number of samples,
    but sublinearly.
    >>> joint_calling_storage_gb(1, 'genome')
    26
    >>> joint_calling_storage_gb(50, 'genome')
    26
    >>> joint_calling_storage_gb(100, 'genome')
    86
    >>> joint_calling_storage_gb(200, 'genome')
    146
    >>> joint_calling_storage_gb(10000, 'genome')
    486
    """
    disk_gb = 26  # Minimal disk (default for a 4-cpu standard machine)
    if n_samples >= 50:
        # for every 10x samples (starting from 50), add {multiplier}G
        multiplier = {
            'genome': 200,
            'exome': 20,
        }[sequencing_type]
        disk_gb += int(multiplier * math.log(n_samples / 50, 10))
    return min(1000, disk_gb)  # requesting 1T max


def storage_for_joint_vcf(
    sample_count: int | None,
    sequencing_type: str,
    site_only: bool = True,
) -> float | None:
    """
    Storage enough to fit and process a joint-called VCF
    """
    if not sample_count:
        return None
    if sequencing_type == 'exome':
        gb_per_sample = 0.1
    else:
        gb_per_sample = 1.0
        if not site_only:
            gb_per_sample = 1.5

    return gb_per_sample * sample_count


@dataclass(frozen=True)
class VqsrDiskSizes:
    # To fit only a site-only VCF
    small: int
    # To fit a joint-called VCF shard
    huge: int


def vqsr_disk_sizes(route: Route) -> VqsrDiskSizes:
    """
    >>> from jc_workflows.routing import route
    >>> vqsr_disk_sizes(route(100))
    VqsrDiskSizes(small=50, huge=200)
    >>> vqsr_disk_sizes(route(200000))
    VqsrDiskSizes(small=200, huge=2000)
    """
    if route.is_small:
        return VqsrDiskSizes(small=50, huge=200)
    if route.is_huge:
        return VqsrDiskSizes(small=200, huge=2000)
    return VqsrDiskSizes(small=100, huge=500)
