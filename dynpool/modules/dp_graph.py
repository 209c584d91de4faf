'''
dynpool | modules | dp_graph.py

Module graph of a bundle: import resolution, import rewriting and
tree-shaking.

The entry module and every module it reaches are parsed with ast. Imports of
modules that get inlined are rewritten to calls into the bundle loader
(__bundle_require__ and friends), every other import stays a runtime import.
'''
# pylint: disable=invalid-name

import ast
import importlib.util
import os
import sys
import tokenize
from collections import Counter, deque
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..error import BundleError
from .dp_logger import DynPoolLogger

log = DynPoolLogger()

ENTRY_NAME = "__entry__"

PLATFORM_HOST = "host"
PLATFORM_STANDALONE = "standalone"
PLATFORMS = (PLATFORM_HOST, PLATFORM_STANDALONE)

# Outcomes of ModuleResolver.classify
INLINE = "inline"
EXTERNAL = "external"
MISSING = "missing"

_IMPORT_ERRORS = {"ImportError", "ModuleNotFoundError", "Exception", "BaseException"}
_STDLIB = set(getattr(sys, "stdlib_module_names", ())) | set(sys.builtin_module_names)


@dataclass
class ImportRef:
    ''' One import statement, as written. '''
    module: Optional[str]
    names: Tuple[str, ...]
    level: int
    lineno: int
    guarded: bool


@dataclass
class ModuleSource:
    ''' A parsed module that is part of the bundle. '''
    name: str
    path: Optional[str]
    is_package: bool
    tree: ast.Module
    is_entry: bool = False
    imports: List[ImportRef] = field(default_factory=list)

    @property
    def package(self) -> str:
        ''' Package that relative imports of this module are resolved against. '''
        if self.is_entry:
            return ""
        if self.is_package:
            return self.name
        return self.name.rpartition(".")[0]

    @property
    def display(self) -> str:
        ''' Path for error messages. '''
        return self.path or self.name


# ---------------------------------------------------------------------------- #
#                               Import Discovery                               #
# ---------------------------------------------------------------------------- #
def _handles_import_error(handler: ast.ExceptHandler) -> bool:
    if handler.type is None:
        return True

    types = handler.type.elts if isinstance(handler.type, ast.Tuple) else [handler.type]
    for node in types:
        if isinstance(node, ast.Name) and node.id in _IMPORT_ERRORS:
            return True
        if isinstance(node, ast.Attribute) and node.attr in _IMPORT_ERRORS:
            return True
    return False


class _ImportCollector(ast.NodeVisitor):
    ''' Collects every import statement, wherever it appears. '''

    def __init__(self):
        self.imports: List[ImportRef] = []
        self._guarded = 0

    def visit_Try(self, node):
        guarded = any(_handles_import_error(handler) for handler in node.handlers)
        self._guarded += guarded
        for statement in node.body:
            self.visit(statement)
        self._guarded -= guarded

        for handler in node.handlers:
            self.visit(handler)
        for statement in node.orelse + node.finalbody:
            self.visit(statement)

    visit_TryStar = visit_Try

    def visit_Import(self, node):
        for alias in node.names:
            self.imports.append(ImportRef(alias.name, (), 0, node.lineno, self._guarded > 0))

    def visit_ImportFrom(self, node):
        names = tuple(alias.name for alias in node.names)
        self.imports.append(
            ImportRef(node.module, names, node.level, node.lineno, self._guarded > 0)
        )


def collect_imports(tree: ast.Module) -> List[ImportRef]:
    ''' Returns every import statement of the tree in source order. '''
    collector = _ImportCollector()
    collector.visit(tree)
    return collector.imports


def resolve_relative(module: Optional[str], level: int, package: str, importer: str) -> str:
    '''
    Returns the absolute module name of an import.

    The entry module acts as a top-level module whose directory is the root,
    so "from . import x" in the entry refers to the root module x and resolves
    to "" here.
    '''
    if level == 0:
        return module or ""

    if not package:
        if level > 1:
            raise BundleError(f"Attempted relative import beyond top-level package in {importer}")
        return module or ""

    parts = package.split(".")
    if level > len(parts):
        raise BundleError(f"Attempted relative import beyond top-level package in {importer}")

    base = ".".join(parts[:len(parts) - level + 1])
    return f"{base}.{module}" if module else base


def prefixes(name: str) -> List[str]:
    ''' "a.b.c" -> ["a", "a.b", "a.b.c"] '''
    parts = name.split(".")
    return [".".join(parts[:index]) for index in range(1, len(parts) + 1)]


# ---------------------------------------------------------------------------- #
#                               Module Resolution                              #
# ---------------------------------------------------------------------------- #
class ModuleResolver:
    '''
    Decides, for each imported name, whether it is inlined, left external or missing.

    Args:
        roots: Directories searched for project modules, the entry's directory first.
        platform: "host" leaves installed packages to the worker, "standalone"
            inlines every pure-Python module found on sys.path.
        external: Module names or fnmatch patterns that are never inlined.
    '''

    def __init__(self, roots: Sequence[str], platform: str = PLATFORM_HOST,
                 external: Iterable[str] = ()):
        if platform not in PLATFORMS:
            raise BundleError(f"Unknown platform: {platform}. Use one of {', '.join(PLATFORMS)}.")

        self.roots = [os.path.abspath(root) for root in roots]
        self.platform = platform
        self.external = list(external or ())
        self.site_roots = []
        if platform == PLATFORM_STANDALONE:
            self.site_roots = [
                os.path.abspath(path) for path in sys.path
                if path and os.path.isdir(path) and os.path.abspath(path) not in self.roots
            ]

    def is_external(self, name: str) -> bool:
        ''' True when name matches one of the external patterns. '''
        for pattern in self.external:
            if name == pattern or name.startswith(pattern + ".") or fnmatchcase(name, pattern):
                return True
        return False

    @staticmethod
    def is_stdlib(name: str) -> bool:
        ''' True for standard library and built-in modules. '''
        return name == "__future__" or name.partition(".")[0] in _STDLIB

    @staticmethod
    def _locate_in(name: str, roots: Sequence[str]) -> Optional[Tuple[Optional[str], bool]]:
        parts = name.split(".")
        namespace = False

        for root in roots:
            base = os.path.join(root, *parts)
            init = os.path.join(base, "__init__.py")
            if os.path.isfile(init):
                return init, True
            if os.path.isfile(base + ".py"):
                return base + ".py", False
            if os.path.isdir(base):
                namespace = True

        if namespace:
            return None, True
        return None

    def locate(self, name: str) -> Optional[Tuple[Optional[str], bool]]:
        '''
        Returns (path, is_package) of an inlinable module, path is None for a
        namespace package. None when the module is not inlinable.
        '''
        if not name or self.is_external(name) or self.is_stdlib(name):
            return None

        found = self._locate_in(name, self.roots)
        if found is None and self.site_roots:
            found = self._locate_in(name, self.site_roots)

        # A bare directory loses against an installed regular package.
        if found is not None and found[0] is None and "." not in name:
            spec = self._find_spec(name)
            if spec is not None and spec.origin is not None:
                return None
        return found

    @staticmethod
    def _find_spec(name: str):
        try:
            return importlib.util.find_spec(name)
        except (ImportError, ValueError):
            return None

    def classify(self, name: str) -> str:
        ''' Returns INLINE, EXTERNAL or MISSING. '''
        if self.is_external(name) or self.is_stdlib(name):
            return EXTERNAL

        if self.locate(name) is not None:
            return INLINE

        if self._find_spec(name.partition(".")[0]) is not None:
            return EXTERNAL
        return MISSING


# ---------------------------------------------------------------------------- #
#                                 Module Graph                                 #
# ---------------------------------------------------------------------------- #
def parse_module(path: Optional[str], name: str) -> ast.Module:
    '''
    Parses a module file, honouring its encoding declaration.

    Raises:
        BundleError: The file can not be read or does not parse.
    '''
    if path is None:
        return ast.Module(body=[], type_ignores=[])

    try:
        with tokenize.open(path) as source_file:
            source = source_file.read()
        return ast.parse(source, filename=path)
    except SyntaxError as err:
        raise BundleError(
            f"Bundle failed: {err.msg} ({err.filename}:{err.lineno})", path
        ) from err
    except (OSError, UnicodeDecodeError) as err:
        raise BundleError(f"Bundle failed: could not read {name} from {path}: {err}", path) from err


class ModuleGraph:
    '''
    The entry module plus every module it inlines, in discovery order.
    '''

    def __init__(self, entry_point: str, resolver: ModuleResolver):
        self.entry_point = entry_point
        self.resolver = resolver
        self.modules: Dict[str, ModuleSource] = {}
        self.entry: Optional[ModuleSource] = None

    @property
    def dependencies(self) -> List[ModuleSource]:
        ''' Inlined modules, without the entry. '''
        return [module for module in self.modules.values() if not module.is_entry]

    def _add(self, name: str) -> Optional[ModuleSource]:
        if name in self.modules:
            return None

        location = self.resolver.locate(name)
        if location is None:
            return None

        path, is_package = location
        module = ModuleSource(name, path, is_package, parse_module(path, name))
        self.modules[name] = module
        log.trace(f"Inlining {name} from {path or 'namespace package'}")
        return module

    def _missing(self, importer: ModuleSource, ref: ImportRef, name: str) -> None:
        if ref.guarded:
            log.debug(f"Optional import {name} in {importer.display} not found, left as is")
            return
        raise BundleError(
            f"Bundle failed: could not resolve \"{name}\" "
            f"(imported by {importer.display}:{ref.lineno})",
            self.entry_point,
        )

    def _targets(self, importer: ModuleSource, ref: ImportRef) -> List[str]:
        ''' Module names an import statement requires to be inlined. '''
        base = resolve_relative(ref.module, ref.level, importer.package, importer.display)

        if not ref.names:
            outcome = self.resolver.classify(base)
            if outcome == INLINE:
                return prefixes(base)
            if outcome == MISSING:
                self._missing(importer, ref, base)
            return []

        if not base:
            # "from . import x" in the entry, every name is a root module.
            targets = []
            for name in ref.names:
                if self.resolver.locate(name) is None:
                    self._missing(importer, ref, name)
                else:
                    targets.append(name)
            return targets

        outcome = self.resolver.classify(base)
        if outcome == MISSING:
            self._missing(importer, ref, base)
            return []
        if outcome == EXTERNAL:
            return []

        targets = prefixes(base)
        for name in ref.names:
            if name != "*" and self.resolver.locate(f"{base}.{name}") is not None:
                targets.append(f"{base}.{name}")
        return targets

    def build(self) -> "ModuleGraph":
        '''
        Parses the entry and follows its imports until every inlined module is known.
        '''
        entry_tree = parse_module(self.entry_point, ENTRY_NAME)
        self.entry = ModuleSource(ENTRY_NAME, self.entry_point, False, entry_tree, is_entry=True)
        self.modules[ENTRY_NAME] = self.entry

        queue = deque([self.entry])
        while queue:
            module = queue.popleft()
            module.imports = collect_imports(module.tree)
            for ref in module.imports:
                for name in self._targets(module, ref):
                    added = self._add(name)
                    if added is not None:
                        queue.append(added)

        return self


# ---------------------------------------------------------------------------- #
#                                Import Rewriting                              #
# ---------------------------------------------------------------------------- #
def _statement(source: str, origin: ast.AST) -> ast.stmt:
    node = ast.parse(source).body[0]
    return ast.copy_location(node, origin)


class ImportRewriter(ast.NodeTransformer):
    '''
    Replaces imports of inlined modules with calls into the bundle loader.
    '''

    def __init__(self, module: ModuleSource, inlined: Set[str]):
        self.module = module
        self.inlined = inlined
        self.star_targets: Set[str] = set()

    def visit_Import(self, node):
        kept = []
        replacements = []

        for alias in node.names:
            if alias.name not in self.inlined:
                kept.append(alias)
            elif alias.asname:
                replacements.append(_statement(
                    f"{alias.asname} = __bundle_require__({alias.name!r})", node))
            else:
                top = alias.name.partition(".")[0]
                replacements.append(_statement(
                    f"{top} = __bundle_import__({alias.name!r})", node))

        if not replacements:
            return node

        statements = [ast.copy_location(ast.Import(names=kept), node)] if kept else []
        return statements + replacements

    def visit_ImportFrom(self, node):
        base = resolve_relative(node.module, node.level, self.module.package, self.module.display)

        if not base:
            return [
                _statement(f"{alias.asname or alias.name} = __bundle_require__({alias.name!r})",
                           node)
                for alias in node.names
            ]

        if base not in self.inlined:
            if node.level:
                node.module, node.level = base, 0
            return node

        statements = []
        for alias in node.names:
            if alias.name == "*":
                self.star_targets.add(base)
                statements.append(_statement(f"__bundle_star__({base!r}, globals())", node))
            else:
                statements.append(_statement(
                    f"{alias.asname or alias.name} = __bundle_import_from__({base!r}, "
                    f"{alias.name!r})", node))
        return statements


def rewrite_imports(graph: ModuleGraph) -> Set[str]:
    '''
    Rewrites every module of the graph in place.
    Returns the modules that are star-imported somewhere.
    '''
    inlined = set(graph.modules) - {ENTRY_NAME}
    star_targets = set()

    for module in graph.modules.values():
        rewriter = ImportRewriter(module, inlined)
        module.tree = ast.fix_missing_locations(rewriter.visit(module.tree))
        star_targets |= rewriter.star_targets

    return star_targets


# ---------------------------------------------------------------------------- #
#                                 Tree Shaking                                 #
# ---------------------------------------------------------------------------- #
def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If) or not isinstance(node.test, ast.Compare):
        return False

    test = node.test
    if len(test.ops) != 1 or not isinstance(test.ops[0], ast.Eq):
        return False

    sides = [test.left, test.comparators[0]]
    has_name = any(isinstance(side, ast.Name) and side.id == "__name__" for side in sides)
    has_main = any(isinstance(side, ast.Constant) and side.value == "__main__" for side in sides)
    return has_name and has_main


def _is_removable(node: ast.stmt) -> bool:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return not node.decorator_list
    if isinstance(node, ast.ClassDef):
        return not node.decorator_list and not node.bases and not node.keywords
    return False


def referenced_names(node: ast.AST) -> Counter:
    '''
    Counts every name a subtree could refer to: loads, attributes, and string
    constants that look like identifiers (getattr, __all__, loader calls).
    '''
    names = Counter()
    for child in ast.walk(node):
        if isinstance(child, ast.Name):
            names[child.id] += 1
        elif isinstance(child, ast.Attribute):
            names[child.attr] += 1
        elif isinstance(child, ast.Constant) and isinstance(child.value, str) \
                and child.value.isidentifier():
            names[child.value] += 1
    return names


def shake(graph: ModuleGraph, keep: Iterable[str] = ()) -> int:
    '''
    Removes dead code from the inlined dependency modules.

    Drops `if __name__ == "__main__":` blocks, then undecorated functions and
    plain classes that nothing in the bundle refers to, until no more go.
    The entry module and the modules named in keep are left untouched.

    Returns the number of removed statements.
    '''
    keep = set(keep)
    removed = 0
    shakeable = [
        module for module in graph.dependencies if module.name not in keep
    ]

    for module in shakeable:
        body = [node for node in module.tree.body if not _is_main_guard(node)]
        removed += len(module.tree.body) - len(body)
        module.tree.body = body

    counts = Counter()
    for module in graph.modules.values():
        counts.update(referenced_names(module.tree))

    candidates = [
        (module, node, referenced_names(node))
        for module in shakeable for node in module.tree.body if _is_removable(node)
    ]

    changed = True
    while changed:
        changed = False
        for candidate in list(candidates):
            module, node, own = candidate
            if counts[node.name] - own[node.name] > 0:
                continue

            module.tree.body.remove(node)
            counts.subtract(own)
            candidates.remove(candidate)
            removed += 1
            changed = True
            log.trace(f"Tree shaking removed {module.name}.{node.name}")

    return removed


def strip_docstrings(tree: ast.Module) -> ast.Module:
    ''' Removes module, class and function docstrings. '''
    for node in ast.walk(tree):
        if not isinstance(node, (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        body = node.body
        if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) \
                and isinstance(body[0].value.value, str):
            body.pop(0)
            if not body and not isinstance(node, ast.Module):
                body.append(ast.Pass())
    return ast.fix_missing_locations(tree)
