from jc_workflows.batch import Batch, Job


def get_command_str(job: Job) -> str:
    return ''.join(job.commands)


def jobs_named(b: Batch, name: str) -> list[Job]:
    return [j for j in b.jobs if j.name == name]


def input_paths(job: Job) -> list[str]:
    return [str(a.path) for a in job.inputs]
