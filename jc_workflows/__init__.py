import importlib.metadata
import pathlib
from typing import Union

from cloudpathlib import AnyPath, CloudPath

# A local or a cloud path.
Path = Union[CloudPath, pathlib.Path]

__all__ = [
    'Path',
    'to_path',
    'defaults_config_path',
    'get_package_name',
    'get_version',
]


def to_path(path: str | Path) -> Path:
    """
    Convert a string into a pathlib.Path, or a CloudPath for gs:// and s3:// URLs.
    """
    return AnyPath(path)  # type: ignore[return-value]


defaults_config_path = pathlib.Path(__file__).parent / 'defaults.toml'


def get_package_name() -> str:
    """
    Get name of the package.
    """
    return __name__.split('.', 1)[0]


def get_version() -> str:
    """
    Get package version.
    """
    return importlib.metadata.version(get_package_name())
