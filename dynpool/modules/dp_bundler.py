'''
dynpool | modules | dp_bundler.py

Turns an entry-point file and the modules it imports into one self-contained
source text, a bundle unit.

Layout of a bundle unit:
    entry docstring and __future__ imports
    loader prelude with the sources of every inlined module
    the entry module's own code, imports rewritten to the loader
    __all__ of the entry's public names (format "exports")
'''

import ast
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..error import BundleError, EntryPointNotFoundError
from .dp_exports import EXPORT_LIST, analyze_exports, declared_names, export_list
from .dp_graph import (
    PLATFORM_HOST, PLATFORMS,
    ModuleGraph, ModuleResolver, rewrite_imports, shake, strip_docstrings
)
from .dp_logger import DynPoolLogger

log = DynPoolLogger()

FORMAT_EXPORTS = "exports"
FORMAT_MODULE = "module"
FORMATS = (FORMAT_EXPORTS, FORMAT_MODULE)


PRELUDE = '''\
import types as __bundle_types__


def __bundle_require__(name):
    module = __bundle_modules__.get(name)
    if module is not None:
        return module
    if name not in __bundle_sources__:
        raise ModuleNotFoundError("No module named " + repr(name) + " in bundle", name=name)

    parent_name, _, child = name.rpartition(".")
    parent = __bundle_require__(parent_name) if parent_name else None
    if name in __bundle_modules__:
        return __bundle_modules__[name]

    source, is_package = __bundle_sources__[name]
    module = __bundle_types__.ModuleType(name)
    module.__file__ = "<bundle:" + name + ">"
    module.__package__ = name if is_package else parent_name
    if is_package:
        module.__path__ = []
    module.__dict__.update(__bundle_loader__)
    __bundle_modules__[name] = module

    try:
        exec(compile(source, module.__file__, "exec"), module.__dict__)
    except BaseException:
        del __bundle_modules__[name]
        raise

    if parent is not None:
        setattr(parent, child, module)
    return module


def __bundle_import__(name):
    __bundle_require__(name)
    return __bundle_require__(name.partition(".")[0])


def __bundle_import_from__(name, attribute):
    module = __bundle_require__(name)
    try:
        return getattr(module, attribute)
    except AttributeError:
        if name + "." + attribute in __bundle_sources__:
            return __bundle_require__(name + "." + attribute)
        raise ImportError(
            "cannot import name " + repr(attribute) + " from " + repr(name), name=name
        ) from None


def __bundle_star__(name, namespace):
    module = __bundle_require__(name)
    names = getattr(module, "__all__", None)
    if names is None:
        names = [key for key in vars(module) if not key.startswith("_")]
    for key in names:
        namespace[key] = getattr(module, key)


__bundle_loader__ = {
    "__bundle_require__": __bundle_require__,
    "__bundle_import__": __bundle_import__,
    "__bundle_import_from__": __bundle_import_from__,
    "__bundle_star__": __bundle_star__,
}
__bundle_modules__ = {}
'''


@dataclass
class BundleOptions:
    '''
    Options of a single bundling operation.

    format: "exports" appends an __all__ listing the entry's public names,
        "module" leaves the export set to the module's own names.
    platform: "host" inlines project modules only, "standalone" also inlines
        the pure-Python modules installed on sys.path.
    external: Module names or fnmatch patterns that are never inlined.
    minify: Strips docstrings and emits the normalised source.
    paths: Extra directories searched for project modules.
    '''
    entry_point: str
    format: str = FORMAT_EXPORTS
    platform: str = PLATFORM_HOST
    external: List[str] = field(default_factory=list)
    minify: bool = False
    paths: List[str] = field(default_factory=list)

    def validate(self) -> None:
        ''' Raises BundleError for unknown option values. '''
        if self.format not in FORMATS:
            raise BundleError(
                f"Unknown bundle format: {self.format}. Use one of {', '.join(FORMATS)}.",
                self.entry_point,
            )
        if self.platform not in PLATFORMS:
            raise BundleError(
                f"Unknown platform: {self.platform}. Use one of {', '.join(PLATFORMS)}.",
                self.entry_point,
            )


@dataclass
class BundleUnit:
    ''' A self-contained source text together with what the bundler learned about it. '''
    code: str
    exports: List[str]
    entry_point: str
    modules: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        ''' Size of the code in bytes. '''
        return len(self.code.encode("utf-8"))


def _split_header(tree: ast.Module):
    ''' Splits the entry body into (docstring, __future__ imports, rest). '''
    body = list(tree.body)
    docstring = None

    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) \
            and isinstance(body[0].value.value, str):
        docstring = body.pop(0)

    futures = []
    while body and isinstance(body[0], ast.ImportFrom) and body[0].module == "__future__":
        futures.append(body.pop(0))

    return docstring, futures, body


def _emit(tree: ast.Module, minify: bool) -> str:
    if minify:
        tree = strip_docstrings(tree)
    return ast.unparse(tree)


def _sources_literal(graph: ModuleGraph, minify: bool) -> str:
    lines = ["__bundle_sources__ = {"]
    for module in graph.dependencies:
        source = _emit(module.tree, minify)
        lines.append(f"    {module.name!r}: ({source!r}, {module.is_package!r}),")
    lines.append("}")
    return "\n".join(lines) + "\n"


def _entry_exports(tree: ast.Module) -> Optional[List[str]]:
    ''' Public names of the entry, None when it declares its own __all__. '''
    if export_list(tree) is not None:
        return None
    return list(dict.fromkeys(declared_names(tree)))


def bundle(
    entry_point: str,
    format: str = FORMAT_EXPORTS,  # pylint: disable=redefined-builtin
    platform: str = PLATFORM_HOST,
    external: Optional[Sequence[str]] = None,
    minify: bool = False,
    paths: Optional[Sequence[str]] = None,
) -> BundleUnit:
    '''
    Bundles an entry-point file and everything it imports into one source text.

    Raises:
        EntryPointNotFoundError: The entry point does not exist.
        BundleError: Parsing or import resolution failed.
    '''
    options = BundleOptions(
        entry_point=entry_point, format=format, platform=platform,
        external=list(external or []), minify=minify, paths=list(paths or []),
    )
    options.validate()

    if not entry_point or not os.path.isfile(entry_point):
        raise EntryPointNotFoundError(f"Entry point not found: {entry_point}", entry_point)

    entry_point = os.path.abspath(entry_point)
    roots = [os.path.dirname(entry_point), *options.paths]
    resolver = ModuleResolver(roots, options.platform, options.external)

    graph = ModuleGraph(entry_point, resolver).build()
    exports = _entry_exports(graph.entry.tree) if options.format == FORMAT_EXPORTS else None

    star_targets = rewrite_imports(graph)
    removed = shake(graph, keep=star_targets)

    docstring, futures, body = _split_header(graph.entry.tree)
    header = ast.Module(body=([docstring] if docstring else []) + futures, type_ignores=[])

    parts = []
    header_code = _emit(header, options.minify)
    if header_code:
        parts.append(header_code + "\n")
    parts.append(PRELUDE)
    parts.append(_sources_literal(graph, options.minify))
    parts.append(_emit(ast.Module(body=body, type_ignores=[]), options.minify) + "\n")
    if exports is not None:
        parts.append(f"{EXPORT_LIST} = {exports!r}\n")

    code = "\n\n".join(part.rstrip("\n") for part in parts if part.strip()) + "\n"

    unit = BundleUnit(
        code=code,
        exports=analyze_exports(code),
        entry_point=entry_point,
        modules=[module.name for module in graph.dependencies],
    )
    log.debug(
        f"Bundled {entry_point}: {len(unit.modules)} module(s) inlined, "
        f"{removed} statement(s) shaken, {unit.size} bytes"
    )
    return unit
