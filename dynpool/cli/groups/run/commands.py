'''
dynpool | CLI | Run | Commands
'''

import json
import sys

import click

from ....error import DynPoolError
from ....modules.dp_bundler import FORMATS, BundleOptions
from ....modules.dp_graph import PLATFORMS
from .functions import bundle_entry, call_source, format_result, parse_args, run_entry


def _arguments(raw_args):
    try:
        return parse_args(raw_args)
    except json.JSONDecodeError as err:
        raise click.BadParameter(f"not valid JSON: {err}", param_hint="--args") from err


def _bundle_options(entry, external, output_format, platform, minify, paths):
    return BundleOptions(
        entry_point=entry,
        format=output_format,
        platform=platform,
        external=list(external),
        minify=minify,
        paths=list(paths),
    )


def bundle_options(command):
    ''' Options shared by every command that bundles an entry point. '''
    command = click.option('--path', '-p', 'paths', multiple=True, type=click.Path(),
                           help="Extra directory searched for local modules.")(command)
    command = click.option('--minify', is_flag=True, default=False,
                           help="Strip docstrings from the bundle.")(command)
    command = click.option('--platform', type=click.Choice(PLATFORMS), default=PLATFORMS[0],
                           help="host: inline local modules only. "
                           "standalone: also inline installed pure-Python modules.")(command)
    command = click.option('--format', 'output_format', type=click.Choice(FORMATS),
                           default=FORMATS[0], help="Export style of the bundle.")(command)
    command = click.option('--external', '-e', multiple=True,
                           help="Module name or pattern that is never inlined.")(command)
    return command


# ------------------------------------ Run ----------------------------------- #
@click.command('run', help='Bundle an entry point and run one of its functions.')
@click.argument('entry', type=click.Path(exists=True, dir_okay=False))
@click.option('--target', '-t', 'function_name', required=True, help="Function to run.")
@click.option('--args', 'raw_args', default=None, help="Arguments as a JSON array.")
@click.option('--profile', default="default", help="Configuration profile to use.")
@bundle_options
def run_command(entry, function_name, raw_args, profile,
                external, output_format, platform, minify, paths):
    ''' Runs a bundled function and prints its result as JSON. '''
    args = _arguments(raw_args)
    options = _bundle_options(entry, external, output_format, platform, minify, paths)

    try:
        result = run_entry(entry, function_name, args, options, profile)
    except DynPoolError as err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)

    click.echo(format_result(result))
    sys.exit(0 if result.success else 1)


# ------------------------------------ Call ---------------------------------- #
@click.command('call', help='Run a function from a source file with injected modules.')
@click.argument('source_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--target', '-t', 'function_name', required=True, help="Function to run.")
@click.option('--args', 'raw_args', default=None, help="Arguments as a JSON array.")
@click.option('--dep', '-d', 'dependencies', multiple=True,
              help="Module to inject, e.g. json or 'numpy as np'.")
@click.option('--sync', 'is_sync', is_flag=True, default=False,
              help="Use the synchronous protocol.")
@click.option('--profile', default="default", help="Configuration profile to use.")
def call_command(source_file, function_name, raw_args, dependencies, is_sync, profile):
    ''' Runs an injected function and prints its result as JSON. '''
    args = _arguments(raw_args)

    try:
        result = call_source(
            source_file, function_name, args, list(dependencies), not is_sync, profile
        )
    except DynPoolError as err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)

    click.echo(format_result(result))
    sys.exit(0 if result.success else 1)


# ----------------------------------- Bundle --------------------------------- #
@click.command('bundle', help='Bundle an entry point without running it.')
@click.argument('entry', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', default=None, type=click.Path(dir_okay=False),
              help="File to write the bundle to, stdout when omitted.")
@bundle_options
def bundle_command(entry, output, external, output_format, platform, minify, paths):
    ''' Prints or writes the bundle of an entry point. '''
    options = _bundle_options(entry, external, output_format, platform, minify, paths)

    try:
        unit = bundle_entry(options)
    except DynPoolError as err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)

    if output is None:
        click.echo(unit.code, nl=False)
        return

    with open(output, 'w', encoding="UTF-8") as output_file:
        output_file.write(unit.code)

    click.echo(f"Wrote {unit.size} bytes to {output}", err=True)
    click.echo(f"Exports: {', '.join(unit.exports) or '(none)'}", err=True)
    if unit.modules:
        click.echo(f"Inlined: {', '.join(unit.modules)}", err=True)
