'''
dynpool | modules | dp_runtime.py

The invocation protocols that run inside a worker process.

execute        - injected function, awaits an awaitable return value
execute_sync   - injected function, the target must return immediately
execute_bundle - bundle unit evaluated in a fresh module scope

None of the protocols raise: every failure is returned as an ExecutionResult.
'''

import ast
import asyncio
import builtins
import inspect
import keyword
import linecache
import os
import time
import types
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.task import ExecutionResult
from ..error import ExportNotFoundError
from .dp_logger import DynPoolLogger
from .dp_metrics import memory_snapshot
from .dp_resolver import DependencyResolver

log = DynPoolLogger()

# Dependency cache, private to this worker process.
resolver = DependencyResolver()

WRAPPER_NAME = "__dynpool_invoke__"
ARGS_NAME = "__dynpool_args__"
BUNDLE_FILENAME = "<bundle>"
BUNDLE_MODULE_NAME = "__bundle__"


# ---------------------------------------------------------------------------- #
#                                   Helpers                                    #
# ---------------------------------------------------------------------------- #
def _register_source(filename: str, source: str) -> None:
    '''
    Makes compiled in-memory source visible to tracebacks.
    '''
    lines = source.splitlines(keepends=True)
    linecache.cache[filename] = (len(source), None, lines, filename)


def _check_function_name(function_name: str) -> None:
    if not isinstance(function_name, str) or not function_name.isidentifier() \
            or keyword.iskeyword(function_name):
        raise ValueError(f"Invalid function name: {function_name!r}")


async def _await(awaitable):
    return await awaitable


def _run_awaitable(awaitable) -> Any:
    '''
    Resolves an awaitable on a fresh event loop.
    '''
    return asyncio.run(_await(awaitable))


def _result(started: float, **fields) -> ExecutionResult:
    return ExecutionResult(
        memory_usage=memory_snapshot(),
        worker_pid=os.getpid(),
        duration_ms=round((time.perf_counter() - started) * 1000, 3),
        **fields,
    )


def _failure(error: BaseException, started: float, **metadata) -> ExecutionResult:
    result = ExecutionResult.failure(error, **metadata)
    result.memory_usage = memory_snapshot()
    result.worker_pid = os.getpid()
    result.duration_ms = round((time.perf_counter() - started) * 1000, 3)
    return result


# ---------------------------------------------------------------------------- #
#                              Injected Functions                              #
# ---------------------------------------------------------------------------- #
def _wrapper_source(binding_names: Sequence[str], function_name: str) -> str:
    params = ", ".join([*binding_names, f"*{ARGS_NAME}"])
    return (
        f"def {WRAPPER_NAME}({params}):\n"
        f"    return {function_name}(*{ARGS_NAME})\n"
    )


def compile_injected(
    function_source: str,
    function_name: str,
    binding_names: Sequence[str] = (),
) -> Callable:
    '''
    Compiles the supplied source into a wrapper function.

    The wrapper's parameters are the dependency binding names followed by the
    positional task arguments. Its body is the supplied source followed by the
    call of function_name, so the dependencies are visible to the target as
    closure variables. The wrapper returns whatever the target returns, an
    awaitable included.

    Raises:
        SyntaxError: The source does not parse.
        ValueError: function_name is not an identifier.
    '''
    _check_function_name(function_name)

    filename = f"<injected {function_name}>"
    source_tree = ast.parse(function_source, filename=filename)

    wrapper_tree = ast.parse(_wrapper_source(binding_names, function_name))
    wrapper = wrapper_tree.body[0]
    wrapper.body = source_tree.body + wrapper.body
    ast.fix_missing_locations(wrapper_tree)

    _register_source(filename, function_source)
    namespace = {
        "__name__": "__injected__",
        "__builtins__": builtins,
    }
    exec(compile(wrapper_tree, filename, "exec"), namespace)  # pylint: disable=exec-used
    return namespace[WRAPPER_NAME]


def execute(
    function_source: str,
    function_name: str,
    args: Sequence[Any] = (),
    dependencies: Sequence[str] = (),
) -> ExecutionResult:
    '''
    Runs an injected function, awaiting its return value when it is awaitable.

    The target itself is called outside any event loop, so a synchronous
    target may start its own.
    '''
    started = time.perf_counter()
    dependencies_loaded = list(dependencies)

    try:
        binding_names, values = resolver.bindings(dependencies)
        invoke = compile_injected(function_source, function_name, binding_names)
        value = invoke(*values, *args)
        if inspect.isawaitable(value):
            value = _run_awaitable(value)
    except (Exception, SystemExit) as err:  # pylint: disable=broad-except
        log.debug(f"Injected function {function_name} failed: {err}")
        return _failure(err, started, dependencies_loaded=dependencies_loaded)

    return _result(started, success=True, value=value, dependencies_loaded=dependencies_loaded)


def execute_sync(
    function_source: str,
    function_name: str,
    args: Sequence[Any] = (),
    dependencies: Sequence[str] = (),
) -> ExecutionResult:
    '''
    Runs an injected function that must return its value immediately.
    '''
    started = time.perf_counter()
    dependencies_loaded = list(dependencies)

    try:
        binding_names, values = resolver.bindings(dependencies)
        invoke = compile_injected(function_source, function_name, binding_names)
        value = invoke(*values, *args)

        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            raise TypeError(
                f"{function_name} returned an awaitable, use the asynchronous protocol instead"
            )
    except (Exception, SystemExit) as err:  # pylint: disable=broad-except
        log.debug(f"Injected function {function_name} failed: {err}")
        return _failure(err, started, dependencies_loaded=dependencies_loaded)

    return _result(started, success=True, value=value, dependencies_loaded=dependencies_loaded)


# ---------------------------------------------------------------------------- #
#                                    Bundles                                   #
# ---------------------------------------------------------------------------- #
def load_bundle(bundle_code: str) -> types.ModuleType:
    '''
    Evaluates bundle code once inside a new module object.

    The module is never registered in sys.modules, so nothing it defines is
    visible to later tasks.
    '''
    module = types.ModuleType(BUNDLE_MODULE_NAME)
    module.__file__ = BUNDLE_FILENAME

    _register_source(BUNDLE_FILENAME, bundle_code)
    code = compile(bundle_code, BUNDLE_FILENAME, "exec")
    exec(code, module.__dict__)  # pylint: disable=exec-used
    return module


def runtime_exports(module: types.ModuleType) -> Dict[str, Any]:
    '''
    Returns the export set of an evaluated module.

    __all__ decides when the module defines it, otherwise every public name.
    '''
    namespace = vars(module)
    names = namespace.get("__all__")

    if names is None:
        names = [name for name in namespace if not name.startswith("_")]
    elif not isinstance(names, (list, tuple)) or \
            not all(isinstance(name, str) for name in names):
        raise TypeError("Bundle did not export a valid __all__ list")

    return {name: namespace[name] for name in names if name in namespace}


def callable_exports(exports: Dict[str, Any]) -> List[str]:
    ''' Names of the exports that can be invoked. '''
    return [name for name, value in exports.items() if callable(value)]


def execute_bundle(
    bundle_code: str,
    function_name: str,
    args: Sequence[Any] = (),
) -> ExecutionResult:
    '''
    Evaluates a bundle unit and invokes one of its exported functions.
    '''
    started = time.perf_counter()
    metadata = {
        "function_name": function_name,
        "bundle_size": len(bundle_code.encode("utf-8")) if bundle_code else 0,
    }

    try:
        module = load_bundle(bundle_code)
        exports = runtime_exports(module)
        target: Optional[Callable] = exports.get(function_name)

        if not callable(target):
            available = callable_exports(exports)
            raise ExportNotFoundError(
                f"Function '{function_name}' not found or not a function. "
                f"Available functions: [{', '.join(available)}]",
                available,
            )

        value = target(*args)
        if inspect.isawaitable(value):
            value = _run_awaitable(value)
    except (Exception, SystemExit) as err:  # pylint: disable=broad-except
        log.debug(f"Bundle function {function_name} failed: {err}")
        return _failure(err, started, **metadata)

    return _result(started, success=True, value=value, **metadata)
