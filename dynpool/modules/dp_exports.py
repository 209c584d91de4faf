'''
dynpool | modules | dp_exports.py

Static export discovery for bundle units.

Two idioms are recognised at the top level of a module:
    __all__ = ["f", "g"]            (also +=, .append() and .extend())
    def f(): ... / class G: ... / H = ...

An explicit __all__ decides when present, otherwise every public declaration
counts. Nothing is executed, so computed exports are not seen.
'''

import ast
from typing import Iterator, List, Optional

from .dp_logger import DynPoolLogger

log = DynPoolLogger()

EXPORT_LIST = "__all__"


def _top_level(body) -> Iterator[ast.stmt]:
    '''
    Top level statements, descending into if/try/with blocks that still run
    at import time.
    '''
    for node in body:
        yield node
        if isinstance(node, ast.If):
            yield from _top_level(node.body)
            yield from _top_level(node.orelse)
        elif isinstance(node, ast.Try) or type(node).__name__ == "TryStar":
            yield from _top_level(node.body)
            for handler in node.handlers:
                yield from _top_level(handler.body)
            yield from _top_level(node.orelse)
            yield from _top_level(node.finalbody)
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            yield from _top_level(node.body)


def _string_list(node: ast.AST) -> Optional[List[str]]:
    if not isinstance(node, (ast.List, ast.Tuple)):
        return None

    names = []
    for element in node.elts:
        if not isinstance(element, ast.Constant) or not isinstance(element.value, str):
            return None
        names.append(element.value)
    return names


def _target_names(target: ast.AST) -> Iterator[str]:
    if isinstance(target, ast.Name):
        yield target.id
    elif isinstance(target, (ast.Tuple, ast.List)):
        for element in target.elts:
            yield from _target_names(element)
    elif isinstance(target, ast.Starred):
        yield from _target_names(target.value)


def _is_export_list(target: ast.AST) -> bool:
    return isinstance(target, ast.Name) and target.id == EXPORT_LIST


def export_list(tree: ast.Module) -> Optional[List[str]]:
    '''
    Names listed by the module's __all__, or None when it has none.
    '''
    names = None

    for node in _top_level(tree.body):
        if isinstance(node, ast.Assign) and any(_is_export_list(t) for t in node.targets):
            names = _string_list(node.value) or []

        elif isinstance(node, ast.AnnAssign) and _is_export_list(node.target) and node.value:
            names = _string_list(node.value) or []

        elif isinstance(node, ast.AugAssign) and _is_export_list(node.target) \
                and isinstance(node.op, ast.Add):
            names = (names or []) + (_string_list(node.value) or [])

        elif isinstance(node, ast.Expr) and isinstance(node.value, ast.Call):
            func = node.value.func
            if not (isinstance(func, ast.Attribute) and _is_export_list(func.value)):
                continue
            arguments = node.value.args
            if func.attr == "append" and arguments and isinstance(arguments[0], ast.Constant) \
                    and isinstance(arguments[0].value, str):
                names = (names or []) + [arguments[0].value]
            elif func.attr == "extend" and arguments:
                names = (names or []) + (_string_list(arguments[0]) or [])

    return names


def declared_names(tree: ast.Module) -> List[str]:
    '''
    Public names declared at the top level by def, class or assignment.
    '''
    names = []

    for node in _top_level(tree.body):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.append(node.name)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                names.extend(_target_names(target))
        elif isinstance(node, (ast.AnnAssign, ast.AugAssign)) and node.value is not None:
            names.extend(_target_names(node.target))

    return [name for name in names if not name.startswith("_")]


def analyze_exports(code: str) -> List[str]:
    '''
    Returns the exported names of code, deduplicated in first-seen order.
    '''
    try:
        tree = ast.parse(code)
    except SyntaxError as err:
        log.warn(f"Export scan skipped, code does not parse: {err}")
        return []

    names = export_list(tree)
    if names is None:
        names = declared_names(tree)

    return list(dict.fromkeys(names))
