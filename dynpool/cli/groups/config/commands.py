"""
Commands for the config command group
"""

import json
import sys

import click

from ....config import load_config
from ....error import ConfigurationError


@click.command("config", help="Shows the effective pool configuration.")
@click.option(
    "--profile", default="default", help="The profile to read from the config file."
)
@click.option("--check", is_flag=True, help="Only validate the configuration.")
def config_command(profile, check):
    """Prints the configuration after the config file and DYNPOOL_* overrides are applied."""
    try:
        config = load_config(profile).validate()
    except ConfigurationError as err:
        click.echo(f"Invalid configuration: {err}", err=True)
        sys.exit(1)

    if check:
        click.echo(f"Configuration is valid for profile: {profile}")
        return

    click.echo(json.dumps(config.to_dict(), indent=2))
