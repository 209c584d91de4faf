'''
dynpool | modules | dp_resolver.py

Resolves the named dependencies of injected functions.
Each outcome, success or failure, is cached for the life of the worker process.
'''

import importlib
import keyword
import re
import warnings
from types import ModuleType
from typing import Dict, List, Optional, Sequence, Tuple

from ..error import DependencyResolutionWarning
from .dp_logger import DynPoolLogger

log = DynPoolLogger()

_ALIAS_PATTERN = re.compile(r"^\s*([\w.]+)\s+as\s+(\w+)\s*$")


def split_dependency(name: str) -> Tuple[str, str]:
    '''
    Splits a dependency name into (module name, binding name).

    "numpy as np" binds numpy to np, "os.path" binds os.path to path.
    '''
    match = _ALIAS_PATTERN.match(name)
    if match:
        return match.group(1), match.group(2)

    module_name = name.strip()
    binding = re.sub(r"\W", "_", module_name.rpartition(".")[2])
    if not binding or binding[0].isdigit() or keyword.iskeyword(binding):
        binding = f"_{binding}"
    return module_name, binding


class DependencyResolver:
    '''
    Per-process cache of imported dependencies.

    A name that fails to import is cached as None so it is only attempted once.
    '''

    def __init__(self):
        self._cache: Dict[str, Optional[ModuleType]] = {}

    def __contains__(self, module_name: str) -> bool:
        return module_name in self._cache

    def _load(self, module_name: str) -> Optional[ModuleType]:
        if module_name in self._cache:
            return self._cache[module_name]

        try:
            module = importlib.import_module(module_name)
        except Exception as err:  # pylint: disable=broad-except
            message = f"Failed to load dependency: {module_name} ({err})"
            log.warn(message)
            warnings.warn(message, DependencyResolutionWarning, stacklevel=3)
            module = None

        self._cache[module_name] = module
        return module

    def resolve(self, names: Sequence[str]) -> Dict[str, Optional[ModuleType]]:
        '''
        Returns {name: module or None} for every name, in order.
        '''
        resolved = {}
        for name in names:
            module_name, _ = split_dependency(name)
            resolved[name] = self._load(module_name)
        return resolved

    def bindings(self, names: Sequence[str]) -> Tuple[List[str], List[Optional[ModuleType]]]:
        '''
        Returns the parameter names and values to bind the dependencies to.

        Each binding name appears once; when several dependencies share one,
        the last of them wins.
        '''
        resolved = self.resolve(names)
        bound: Dict[str, Optional[ModuleType]] = {}
        for name in names:
            binding = split_dependency(name)[1]
            bound.pop(binding, None)
            bound[binding] = resolved[name]
        return list(bound), list(bound.values())

