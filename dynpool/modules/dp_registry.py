'''
dynpool | modules | dp_registry.py

Named collections of functions ("processors") that can be shipped to the pool
by name instead of by source text.
'''

import inspect
import textwrap
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..core.pool import get_pool_manager
from ..core.task import ExecutionResult, Task
from ..error import ProcessorNotFoundError
from .dp_logger import DynPoolLogger

log = DynPoolLogger()

FunctionSpec = Union[Callable, Dict[str, Any]]


class ProcessorRegistry:
    '''
    Registry of processors, each a mapping of function name to definition.

    A definition is either the function itself or a dictionary:
        {"fn": f, "dependencies": ["json"], "is_async": False, "description": "..."}

    Usage:
        registry = ProcessorRegistry()
        registry.register("stats", {"mean": mean})
        result = await registry.execute_registered("stats", "mean", [[1, 2, 3]])
    '''

    def __init__(self):
        self._processors: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def register(self, processor: str, functions: Dict[str, FunctionSpec]) -> None:
        '''
        Adds functions to a processor, creating it on first use.
        A function registered again under the same name is replaced.
        '''
        entries = {}
        for name, definition in functions.items():
            if callable(definition):
                definition = {"fn": definition}

            function = definition.get("fn") if isinstance(definition, dict) else None
            if not callable(function):
                raise TypeError(f"{processor}.{name} must be a function or a dict with 'fn'")

            entries[name] = {
                "fn": function,
                "dependencies": list(definition.get("dependencies", [])),
                "is_async": definition.get("is_async", inspect.iscoroutinefunction(function)),
                "description": definition.get("description", inspect.getdoc(function) or ""),
            }

        self._processors.setdefault(processor, {}).update(entries)
        log.debug(f"Registered {len(entries)} function(s) in processor {processor}")

    @property
    def processors(self) -> List[str]:
        ''' Registered processor names. '''
        return list(self._processors)

    def functions(self, processor: str) -> List[str]:
        ''' Function names of a processor. '''
        return list(self._processor(processor))

    def _processor(self, processor: str) -> Dict[str, Dict[str, Any]]:
        try:
            return self._processors[processor]
        except KeyError as err:
            raise ProcessorNotFoundError(f"Processor {processor} not found") from err

    def _entry(self, processor: str, function_name: str) -> Dict[str, Any]:
        functions = self._processor(processor)
        try:
            return functions[function_name]
        except KeyError as err:
            raise ProcessorNotFoundError(
                f"Function {function_name} not found in processor {processor}"
            ) from err

    def get_function_code(self, processor: str, function_name: str) -> str:
        '''
        Returns the dedented source text of a registered function.

        Raises:
            ProcessorNotFoundError: Unknown processor or function, or the
                function has no retrievable source.
        '''
        function = self._entry(processor, function_name)["fn"]
        try:
            return textwrap.dedent(inspect.getsource(function))
        except (OSError, TypeError) as err:
            raise ProcessorNotFoundError(
                f"Source of {processor}.{function_name} is not available: {err}"
            ) from err

    def get_dependencies(self, processor: str, function_name: str) -> List[str]:
        ''' Dependency names declared for a registered function. '''
        return list(self._entry(processor, function_name)["dependencies"])

    def is_async(self, processor: str, function_name: str) -> bool:
        ''' True when the function runs through the asynchronous protocol. '''
        return bool(self._entry(processor, function_name)["is_async"])

    def describe(self) -> Dict[str, Dict[str, str]]:
        ''' processor -> function -> description '''
        return {
            processor: {name: entry["description"] for name, entry in functions.items()}
            for processor, functions in self._processors.items()
        }

    def task(self, processor: str, function_name: str, args: Sequence[Any] = ()) -> Task:
        ''' Builds the injected task of a registered function. '''
        entry = self._entry(processor, function_name)
        return Task.injected(
            self.get_function_code(processor, function_name),
            entry["fn"].__name__,
            args,
            entry["dependencies"],
            is_async=entry["is_async"],
        )

    async def execute_registered(
        self,
        processor: str,
        function_name: str,
        args: Sequence[Any] = (),
        manager=None,
    ) -> ExecutionResult:
        '''
        Runs a registered function on the pool.
        The default pool manager is used when none is given.
        '''
        task = self.task(processor, function_name, args)

        if manager is None:
            manager = get_pool_manager()

        return await manager.submit(task)


_registry: Optional[ProcessorRegistry] = None


def get_registry() -> ProcessorRegistry:
    ''' Process-wide default registry. '''
    global _registry  # pylint: disable=global-statement
    if _registry is None:
        _registry = ProcessorRegistry()
    return _registry
