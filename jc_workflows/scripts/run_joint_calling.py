#!/usr/bin/env python3

"""
Entry point to run the joint-calling workflow.
"""

import logging
import sys

import click
import coloredlogs

from jc_workflows.config import load_config
from jc_workflows.exceptions import IncompleteOutputError
from jc_workflows.joint_calling import run_joint_calling


@click.command(no_args_is_help=True)
@click.option(
    '--config',
    'config_paths',
    multiple=True,
    required=True,
    help='Configuration files applied on top of the package defaults. '
    'Configs are merged left to right, meaning the rightmost file has the '
    'highest priority.',
)
@click.option(
    '--dry-run',
    'dry_run',
    is_flag=True,
    help='Dry run: only print the config and the jobs that would run, in order',
)
@click.option(
    '--max-parallel',
    'max_parallel',
    type=click.IntRange(min=1),
    help='Maximum number of jobs running at the same time, '
    'overrides workflow.max_parallel_jobs',
)
@click.option(
    '--verbose',
    'verbose',
    is_flag=True,
)
def cli_main(
    config_paths: list[str],
    dry_run: bool,
    max_parallel: int | None,
    verbose: bool,
):
    """
    Jointly genotype the GVCFs in the sample map, recalibrate and gather the
    callset, choosing the topology from the cohort size.
    """
    fmt = '%(asctime)s %(levelname)s (%(name)s %(lineno)s): %(message)s'
    coloredlogs.install(level='DEBUG' if verbose else 'INFO', fmt=fmt)

    config = load_config(config_paths)
    if dry_run:
        logging.info(f'Config: {config.as_dict()}')

    try:
        res = run_joint_calling(config, dry_run=dry_run, max_parallel=max_parallel)
    except IncompleteOutputError as e:
        logging.error(f'Run did not complete, {e.branch} outputs are missing: {e}')
        sys.exit(1)

    if res.outputs:
        for key, value in res.outputs.as_dict().items():
            click.echo(f'{key}: {value}')


if __name__ == '__main__':
    cli_main()  # pylint: disable=no-value-for-parameter
