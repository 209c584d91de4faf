'''
dynpool | service.py

High level entry points: run a function given as source text, a bundle built
from an entry-point file, or a bundle built from inline code.
'''

import asyncio
import os
from dataclasses import replace
from typing import Any, Optional, Sequence

from .core.pool import PoolManager, get_pool_manager
from .core.task import ExecutionResult, Task
from .error import BundleError, EntryPointNotFoundError
from .modules.dp_bundler import BundleOptions, bundle
from .modules.dp_logger import DynPoolLogger
from .utils.dp_tempfile import temp_entry

log = DynPoolLogger()


def _manager(manager: Optional[PoolManager]) -> PoolManager:
    return manager if manager is not None else get_pool_manager()


async def execute_function(
    function_source: str,
    function_name: str,
    args: Sequence[Any] = (),
    dependencies: Sequence[str] = (),
    is_async: bool = True,
    manager: Optional[PoolManager] = None,
) -> ExecutionResult:
    '''
    Runs a function given as source text, with the named modules injected.

    Example:
        result = await execute_function(
            "def add(a, b):\\n    return a + b\\n", "add", [1, 2]
        )
    '''
    task = Task.injected(function_source, function_name, args, dependencies, is_async)
    return await _manager(manager).submit(task)


async def execute_from_bundle(
    entry_point: str,
    function_name: str,
    args: Sequence[Any] = (),
    options: Optional[BundleOptions] = None,
    manager: Optional[PoolManager] = None,
) -> ExecutionResult:
    '''
    Bundles entry_point and runs one of its exported functions on the pool.

    Bundling runs in a thread so the event loop keeps dispatching other tasks.

    Raises:
        EntryPointNotFoundError: entry_point does not exist.
    '''
    options = options or BundleOptions(entry_point=entry_point)

    try:
        unit = await asyncio.to_thread(
            bundle,
            entry_point,
            format=options.format,
            platform=options.platform,
            external=options.external,
            minify=options.minify,
            paths=options.paths,
        )
    except EntryPointNotFoundError:
        raise
    except BundleError as err:
        log.error(f"Bundling {entry_point} failed: {err}")
        return ExecutionResult.failure(err, function_name=function_name)

    if function_name not in unit.exports:
        log.warn(
            f"{function_name} is not among the statically found exports of "
            f"{os.path.basename(entry_point)}: {unit.exports}"
        )

    return await _manager(manager).submit(Task.bundle(unit.code, function_name, args))


async def execute_from_code(
    code: str,
    function_name: str,
    args: Sequence[Any] = (),
    options: Optional[BundleOptions] = None,
    manager: Optional[PoolManager] = None,
    scratch_dir: Optional[str] = None,
) -> ExecutionResult:
    '''
    Writes inline code to a temporary entry file, then runs it like execute_from_bundle.
    The temporary file is removed whatever the outcome.
    '''
    manager = _manager(manager)
    scratch_dir = scratch_dir or manager.config.scratch_dir

    with temp_entry(code, scratch_dir) as entry_point:
        if options is not None:
            options = replace(options, entry_point=entry_point)
        return await execute_from_bundle(entry_point, function_name, args, options, manager)
