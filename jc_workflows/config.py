"""
Run configuration.

Configuration is read from TOML files merged left to right on top of the
packaged `defaults.toml`, so the rightmost file has the highest priority. The
result is a frozen `PipelineConfig` that is passed explicitly to everything that
needs it.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import toml

from . import Path, defaults_config_path, to_path
from .exceptions import ConfigError
from .routing import CohortThresholds

TASK_CLASSES = (
    'genomicsdb',
    'genotype',
    'filter',
    'gather',
    'vqsr_train',
    'vqsr_scatter',
    'vqsr_apply',
    'metrics',
)


@dataclass(frozen=True, kw_only=True)
class WorkflowConfig:
    sample_map: str
    intervals_path: str
    output_prefix: str
    tmp_prefix: str | None = None
    name: str = 'joint-calling'
    sequencing_type: str = 'genome'
    check_intermediates: bool = True
    overwrite: bool = False
    use_gnarly: bool = False
    use_as_annotations: bool = True
    sample_subset: str | None = None
    max_parallel_jobs: int = 8

    @property
    def output_path(self) -> Path:
        return to_path(self.output_prefix)

    @property
    def tmp_path(self) -> Path:
        return to_path(self.tmp_prefix) if self.tmp_prefix else to_path(self.output_prefix) / 'tmp'


@dataclass(frozen=True, kw_only=True)
class IntervalsConfig:
    merge_count: int = 3
    derive_merge_count: bool = False

    @property
    def fixed_merge_count(self) -> int | None:
        return None if self.derive_merge_count else self.merge_count


@dataclass(frozen=True, kw_only=True)
class VqsrConfig:
    snp_filter_level: float = 99.7
    indel_filter_level: float = 99.0
    snp_downsample_factor: int = 75
    excess_het_threshold: float = 54.69


@dataclass(frozen=True, kw_only=True)
class ReferencesConfig:
    ref_fasta: str
    dbsnp_vcf: str
    hapmap_vcf: str
    omni_vcf: str
    one_thousand_genomes_vcf: str
    mills_vcf: str
    axiom_poly_vcf: str
    evaluation_interval_list: str


@dataclass(frozen=True, kw_only=True)
class RetryConfig:
    copy_attempts: int = 5
    copy_backoff_seconds: float = 1.0
    max_retries: int = 2


@dataclass(frozen=True, kw_only=True)
class TaskClassConfig:
    """
    Resource and retry overrides for one class of tasks.
    """

    ncpu: int | None = None
    mem_gb: float | None = None
    storage_gb: float | None = None
    max_retries: int | None = None
    preemptible: bool = True


@dataclass(frozen=True, kw_only=True)
class PipelineConfig:
    workflow: WorkflowConfig
    references: ReferencesConfig
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    cohort: CohortThresholds = field(default_factory=CohortThresholds)
    vqsr: VqsrConfig = field(default_factory=VqsrConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    images: dict[str, str] = field(default_factory=dict)
    resources: dict[str, TaskClassConfig] = field(default_factory=dict)

    def task_class(self, name: str) -> TaskClassConfig:
        """
        Overrides for the task class, or an empty override.
        """
        return self.resources.get(name) or TaskClassConfig()

    def max_retries(self, task_class: str | None) -> int:
        override = self.task_class(task_class).max_retries if task_class else None
        return self.retry.max_retries if override is None else override

    def image(self, name: str) -> str:
        if name not in self.images:
            raise ConfigError(f'Image "{name}" is not defined in the [images] section')
        return self.images[name]

    def as_dict(self) -> dict[str, Any]:
        return _remove_none_values(dataclasses.asdict(self))


def _remove_none_values(d: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively remove keys with None values from a dictionary (TOML has no null).
    """
    return {
        key: (_remove_none_values(value) if isinstance(value, dict) else value)
        for key, value in d.items()
        if value is not None
    }


def update_dict(d1: dict, d2: dict) -> None:
    """
    Merge one dict into another, recursing into nested dicts.
    """
    for k, v2 in d2.items():
        v1 = d1.get(k)
        if isinstance(v1, dict) and isinstance(v2, dict):
            update_dict(v1, v2)
        else:
            d1[k] = v2


def _build(cls, section: str, values: dict[str, Any] | None):
    values = values or {}
    known = {f.name for f in dataclasses.fields(cls)}
    if unknown := sorted(set(values) - known):
        raise ConfigError(f'Unknown keys in [{section}]: {", ".join(unknown)}')
    try:
        return cls(**values)
    except TypeError as e:
        missing = sorted(
            f.name
            for f in dataclasses.fields(cls)
            if f.name not in values
            and f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        )
        raise ConfigError(f'Missing required keys in [{section}]: {", ".join(missing)}') from e
    except ValueError as e:
        raise ConfigError(f'Invalid values in [{section}]: {e}') from e


def config_from_dict(d: dict[str, Any]) -> PipelineConfig:
    """
    Build a PipelineConfig from a parsed (merged) TOML dictionary.
    """
    if unknown := sorted(set(d) - {f.name for f in dataclasses.fields(PipelineConfig)}):
        raise ConfigError(f'Unknown config sections: {", ".join(unknown)}')
    resources = {}
    for task_class, values in (d.get('resources') or {}).items():
        if task_class not in TASK_CLASSES:
            raise ConfigError(f'Unknown task class [resources.{task_class}], expected one of {TASK_CLASSES}')
        resources[task_class] = _build(TaskClassConfig, f'resources.{task_class}', values)

    config = PipelineConfig(
        workflow=_build(WorkflowConfig, 'workflow', d.get('workflow')),
        references=_build(ReferencesConfig, 'references', d.get('references')),
        intervals=_build(IntervalsConfig, 'intervals', d.get('intervals')),
        cohort=_build(CohortThresholds, 'cohort', d.get('cohort')),
        vqsr=_build(VqsrConfig, 'vqsr', d.get('vqsr')),
        retry=_build(RetryConfig, 'retry', d.get('retry')),
        images=dict(d.get('images') or {}),
        resources=resources,
    )
    if config.retry.copy_attempts < 1:
        raise ConfigError(f'retry.copy_attempts must be at least 1, got {config.retry.copy_attempts}')
    return config


def load_config(paths: Sequence[str | Path] = (), include_defaults: bool = True) -> PipelineConfig:
    """
    Read and merge TOML configs. Merging happens left to right, on top of the
    packaged defaults.
    """
    merged: dict[str, Any] = {}
    all_paths = ([defaults_config_path] if include_defaults else []) + [to_path(p) for p in paths]
    for path in all_paths:
        if not path.exists():
            raise ConfigError(f'Config file not found: {path}')
        with path.open() as f:
            try:
                update_dict(merged, toml.load(f))
            except toml.TomlDecodeError as e:
                raise ConfigError(f'Can\'t parse {path}: {e}') from e
        logging.debug(f'Loaded config {path}')
    return config_from_dict(merged)
