'''
dynpool | CLI | Entry

The entry point for the CLI.
'''
import click

from ..modules.dp_logger import LOG_LEVELS, DynPoolLogger
from .groups.config.commands import config_command
from .groups.run.commands import bundle_command, call_command, run_command


@click.group()
@click.option('--log-level', envvar='DYNPOOL_LOG_LEVEL', default='WARN',
              type=click.Choice(LOG_LEVELS, case_sensitive=False),
              help="Log level of the CLI and its workers.")
def dynpool_cli(log_level):
    '''Run functions in a pool of isolated worker processes.'''
    # stdout carries the JSON result only.
    DynPoolLogger().set_level(log_level)

dynpool_cli.add_command(config_command) # dynpool config

dynpool_cli.add_command(run_command) # dynpool run
dynpool_cli.add_command(call_command) # dynpool call
dynpool_cli.add_command(bundle_command) # dynpool bundle
