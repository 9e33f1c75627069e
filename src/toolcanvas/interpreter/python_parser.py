"""Local parse backend for the Python-compatible subset of the tool-code grammar.

Tool calls are written as Python expressions (``print(default_api.f(x=1))``),
so the standard library parser can stand in for the remote parser. The tree is
translated into the same JSON shape the remote parser emits.
"""

from __future__ import annotations

import ast
import json
import logging
from typing import Any

from ..errors import TransportFailure

LOGGER = logging.getLogger(__name__)

__all__ = ["PythonCallParser", "to_tree"]


class PythonCallParser:
    """``ParseBackend`` built on :mod:`ast`."""

    name = "python-ast"

    async def parse_code(self, source: str) -> str:
        """Return the parse tree of ``source`` as JSON text.

        Raises:
            TransportFailure: when ``source`` is not valid syntax.
        """

        try:
            tree = to_tree(source)
        except SyntaxError as exc:
            LOGGER.debug("Tool code failed to parse: %s", exc)
            raise TransportFailure(
                message=f"SyntaxError: {exc.msg} (line {exc.lineno}, column {exc.offset})",
                operation="parse_code",
                details={"line": exc.lineno, "column": exc.offset},
            ) from exc
        return json.dumps(tree, ensure_ascii=False)


def to_tree(source: str) -> dict[str, Any]:
    module = ast.parse(source.strip(), mode="exec")
    statements = [_convert(stmt, source.strip()) for stmt in module.body]
    if len(statements) == 1:
        return statements[0]
    return _node("Expressions", children=statements)


def _convert(node: ast.AST, source: str) -> dict[str, Any]:
    if isinstance(node, ast.Expr):
        return _convert(node.value, source)
    if isinstance(node, ast.Call):
        arguments = [_convert(arg, source) for arg in node.args]
        for keyword in node.keywords:
            if keyword.arg is None:
                arguments.append(_opaque(keyword.value, source))
                continue
            name = _node(
                _tagged("Variable", keyword.arg),
                token=keyword.arg,
                token_type="Identifier",
                position=getattr(keyword, "col_offset", None),
            )
            arguments.append(
                _node("Assign", children=[name, _convert(keyword.value, source)], position=getattr(keyword, "col_offset", None))
            )
        return _node(
            "LambdaCall",
            children=[_convert(node.func, source), _node("Tuple", children=arguments)],
            position=node.col_offset,
        )
    if isinstance(node, ast.Attribute):
        attribute = _node(_tagged("String", node.attr), token=node.attr, token_type="Identifier")
        return _node("GetAttr", children=[_convert(node.value, source), attribute], position=node.col_offset)
    if isinstance(node, ast.Name):
        return _node(_tagged("Variable", node.id), token=node.id, token_type="Identifier", position=node.col_offset)
    if isinstance(node, ast.Constant):
        return _constant(node, source)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub) and isinstance(node.operand, ast.Constant):
        value = node.operand.value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            text = ast.get_source_segment(source, node) or f"-{value!r}"
            return _node(_tagged("Number", text), token=text, token_type="Number", position=node.col_offset)
    if isinstance(node, ast.Tuple):
        return _node("Tuple", children=[_convert(item, source) for item in node.elts], position=node.col_offset)
    return _opaque(node, source)


def _constant(node: ast.Constant, source: str) -> dict[str, Any]:
    value = node.value
    if isinstance(value, bool):
        return _node(_tagged("Boolean", str(value)), token=str(value), token_type="Boolean", position=node.col_offset)
    if value is None:
        return _node("None", token="None", token_type="None", position=node.col_offset)
    if isinstance(value, str):
        return _node(_tagged("String", value), token=value, token_type="String", position=node.col_offset)
    if isinstance(value, (int, float)):
        text = ast.get_source_segment(source, node) or repr(value)
        return _node(_tagged("Number", text), token=text, token_type="Number", position=node.col_offset)
    return _opaque(node, source)


def _opaque(node: ast.AST, source: str) -> dict[str, Any]:
    # Lists, dicts and other composites keep their source text as the token.
    segment = ast.get_source_segment(source, node)
    return _node(type(node).__name__, token=segment, token_type="Expression", position=getattr(node, "col_offset", None))


def _tagged(tag: str, literal: str) -> str:
    return f"{tag}({json.dumps(literal, ensure_ascii=False)})"


def _node(
    node_type: str,
    *,
    children: list[dict[str, Any]] | None = None,
    token: str | None = None,
    token_type: str | None = None,
    position: int | None = None,
) -> dict[str, Any]:
    start = {"token": token, "type": token_type, "origin_token": token, "position": position}
    return {
        "node_type": node_type,
        "start_token": start,
        "end_token": start,
        "children": children or [],
    }
