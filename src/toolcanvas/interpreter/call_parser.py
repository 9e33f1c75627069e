"""Extract call descriptors from tool-code parse trees.

Two tree shapes are recognized::

    LambdaCall[GetAttr[Variable(ns), String(fn)], Tuple[Assign...]]
    LambdaCall[Variable("print"), Tuple[LambdaCall[GetAttr[...], Tuple[...]]]]

Anything else yields ``None`` so callers can fall back to displaying the raw
tree.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from .ast_nodes import ASTNode

LOGGER = logging.getLogger(__name__)

ArgumentValue = Union[str, int, float, bool, None]

_PRINT_FUNCTION = "print"
_NONE_TOKENS = frozenset({"None", "null", "none"})


@dataclass(frozen=True, slots=True)
class CallDescriptor:
    """Structured view of one ``namespace.function(name=value, ...)`` call."""

    api_name: str | None
    function_name: str | None
    arguments: dict[str, ArgumentValue] = field(default_factory=dict)
    print_call: bool = False

    @property
    def is_valid(self) -> bool:
        return bool(self.api_name) and bool(self.function_name)

    @property
    def qualified_name(self) -> str:
        return f"{self.api_name}.{self.function_name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "api_call",
            "api_name": self.api_name,
            "function_name": self.function_name,
            "arguments": dict(self.arguments),
            "print_call": self.print_call,
        }


def parse_call(node: ASTNode | Mapping[str, Any] | str | bytes | None) -> CallDescriptor | None:
    """Return the call described by ``node`` or ``None``.

    Accepts an :class:`ASTNode`, a decoded JSON mapping or JSON text. Never
    raises: malformed input is logged and reported as ``None``.
    """

    if node is None:
        return None
    try:
        root = node if isinstance(node, ASTNode) else ASTNode.from_json(node)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Tool call tree is malformed: %s", exc)
        return None
    try:
        return _interpret(root)
    except Exception:
        LOGGER.exception("Unexpected error while interpreting tool call tree")
        return None


def _interpret(root: ASTNode) -> CallDescriptor | None:
    if root.tag != "LambdaCall":
        LOGGER.warning("Root node is %s, not a call", root.node_type)
        return None

    first = root.child(0)
    print_call = first is not None and first.is_a("Variable", _PRINT_FUNCTION)
    if print_call:
        wrapped = root.child(1)
        call = wrapped.child(0) if wrapped is not None else None
        if call is None or call.tag != "LambdaCall":
            LOGGER.warning("print() wrapper does not contain a call")
            return None
    else:
        call = root

    api_name, function_name = _resolve_names(call.child(0))
    if not api_name or not function_name:
        LOGGER.warning("Call is missing its namespace or function name")
        return None

    return CallDescriptor(
        api_name=api_name,
        function_name=function_name,
        arguments=_decode_arguments(call.child(1)),
        print_call=print_call,
    )


def _resolve_names(attribute: ASTNode | None) -> tuple[str | None, str | None]:
    if attribute is None or attribute.tag != "GetAttr":
        return None, None
    namespace_node = attribute.child(0)
    function_node = attribute.child(1)
    api_name = namespace_node.literal if namespace_node is not None and namespace_node.tag == "Variable" else None
    function_name = function_node.literal if function_node is not None and function_node.tag == "String" else None
    return api_name or None, function_name or None


def _decode_arguments(arguments: ASTNode | None) -> dict[str, ArgumentValue]:
    decoded: dict[str, ArgumentValue] = {}
    if arguments is None or arguments.tag != "Tuple":
        return decoded
    for child in arguments.children:
        if child.tag != "Assign" or len(child.children) < 2:
            continue
        name_node, value_node = child.children[0], child.children[1]
        name = name_node.literal if name_node.tag == "Variable" else None
        if not name:
            LOGGER.debug("Skipping argument without a variable name: %s", name_node.node_type)
            continue
        decoded[name] = decode_value(value_node)
    return decoded


def decode_value(node: ASTNode) -> ArgumentValue:
    """Decode one argument value node by its tag.

    Unknown tags, including list and dict literals, keep the raw token text.
    """

    tag = node.tag
    token = node.token
    if tag == "String":
        return token if token is not None else (node.literal or "")
    if tag == "Number":
        raw = token if token is not None else (node.literal or "")
        return _parse_number(raw)
    if tag == "Boolean":
        raw = token if token is not None else (node.literal or "")
        return raw.strip().lower() == "true"
    if tag == "None" or (token is not None and token.strip() in _NONE_TOKENS and tag in ("Variable", "Constant")):
        return None
    LOGGER.warning("Unsupported argument value %s; keeping raw token", node.node_type)
    return token if token is not None else node.node_type


def _parse_number(raw: str) -> int | float | str:
    text = raw.strip().replace("_", "")
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return raw
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


__all__ = ["ArgumentValue", "CallDescriptor", "decode_value", "parse_call"]
