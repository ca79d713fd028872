import logging
from pathlib import Path
from typing import Any

import toml

logging.basicConfig()
logging.getLogger().setLevel(logging.WARN)


def set_config(config: dict[str, Any], path: Path) -> Path:
    """
    Writes your config dictionary to `path` as TOML, to be passed to
    `load_config` or to the command line.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w') as f:
        toml.dump(config, f)
    return path
