'''
dynpool | cli | groups | run | functions.py

Helpers behind the run, call and bundle commands.
'''

import asyncio
import json
from typing import Any, List, Optional, Sequence

from ....config import load_config
from ....core.pool import PoolManager
from ....core.task import ExecutionResult
from ....modules.dp_bundler import BundleOptions, BundleUnit, bundle
from ....service import execute_from_bundle, execute_function


def parse_args(raw_args: Optional[str]) -> List[Any]:
    '''
    Parses the --args option: a JSON array, or one JSON value used as the only argument.
    '''
    if raw_args is None or raw_args == "":
        return []

    value = json.loads(raw_args)
    if isinstance(value, list):
        return value
    return [value]


def format_result(result: ExecutionResult) -> str:
    ''' Renders a result as indented JSON, falling back to repr for exotic values. '''
    return json.dumps(result.to_dict(), indent=2, default=repr)


async def _submit_bundle(entry_point: str, function_name: str, args: Sequence[Any],
                         options: BundleOptions, profile: str) -> ExecutionResult:
    async with PoolManager(load_config(profile, min_workers=1, max_workers=1)) as manager:
        return await execute_from_bundle(entry_point, function_name, args, options, manager)


async def _submit_function(source: str, function_name: str, args: Sequence[Any],
                           dependencies: Sequence[str], is_async: bool,
                           profile: str) -> ExecutionResult:
    async with PoolManager(load_config(profile, min_workers=1, max_workers=1)) as manager:
        return await execute_function(
            source, function_name, args, dependencies, is_async, manager
        )


def run_entry(entry_point: str, function_name: str, args: Sequence[Any],
              options: BundleOptions, profile: str = "default") -> ExecutionResult:
    ''' Bundles an entry point and runs one of its functions on a one-worker pool. '''
    return asyncio.run(_submit_bundle(entry_point, function_name, args, options, profile))


def call_source(source_file: str, function_name: str, args: Sequence[Any],
                dependencies: Sequence[str], is_async: bool,
                profile: str = "default") -> ExecutionResult:
    ''' Runs a function defined in source_file with the named modules injected. '''
    with open(source_file, 'r', encoding="UTF-8") as source_fp:
        source = source_fp.read()

    return asyncio.run(
        _submit_function(source, function_name, args, dependencies, is_async, profile)
    )


def bundle_entry(options: BundleOptions) -> BundleUnit:
    ''' Bundles without running anything. '''
    return bundle(
        options.entry_point,
        format=options.format,
        platform=options.platform,
        external=options.external,
        minify=options.minify,
        paths=options.paths,
    )
