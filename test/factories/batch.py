from pathlib import Path

from jc_workflows.batch import Batch


def create_local_batch(tmp_dir: Path | str, name: str = 'local-test') -> Batch:
    return Batch(name=name, scratch_dir=Path(tmp_dir) / 'scratch')
