"""Parse-tree nodes produced by the tool-code parser."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

__all__ = ["Token", "ASTNode"]

# ``Variable("default_api")`` -> tag "Variable", literal '"default_api"'.
_NODE_TYPE_PATTERN = re.compile(r"^(?P<tag>[A-Za-z_][A-Za-z0-9_]*)(?:\((?P<literal>.*)\))?$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class Token:
    """Source token attached to a node boundary."""

    token: str | None = None
    type: str | None = None
    origin_token: str | None = None
    position: int | None = None

    @classmethod
    def from_json(cls, payload: Any) -> Token | None:
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise TypeError(f"token must be an object, got {type(payload).__name__}")
        position = payload.get("position")
        return cls(
            token=_optional_text(payload.get("token")),
            type=_optional_text(payload.get("type")),
            origin_token=_optional_text(payload.get("origin_token")),
            position=position if isinstance(position, int) else None,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "type": self.type,
            "origin_token": self.origin_token,
            "position": self.position,
        }


@dataclass(frozen=True, slots=True)
class ASTNode:
    """Immutable tagged tree node.

    ``node_type`` sometimes embeds a literal, e.g. ``Variable("print")`` or
    ``String("mermaid_render")``; :attr:`tag` and :attr:`literal` split it.
    """

    node_type: str
    children: tuple[ASTNode, ...] = ()
    start_token: Token | None = None
    end_token: Token | None = None

    @classmethod
    def from_json(cls, payload: str | bytes | Mapping[str, Any]) -> ASTNode:
        """Build a tree from parser output.

        Raises:
            ValueError: if ``payload`` is not valid JSON.
            TypeError: if the decoded structure is not a node object.
        """

        if isinstance(payload, (str, bytes, bytearray)):
            payload = json.loads(payload)
        if not isinstance(payload, Mapping):
            raise TypeError(f"node must be an object, got {type(payload).__name__}")
        node_type = payload.get("node_type")
        if not isinstance(node_type, str):
            raise TypeError("node is missing a string 'node_type'")
        raw_children = payload.get("children") or ()
        if not isinstance(raw_children, (list, tuple)):
            raise TypeError("'children' must be a list")
        return cls(
            node_type=node_type,
            children=tuple(cls.from_json(child) for child in raw_children),
            start_token=Token.from_json(payload.get("start_token")),
            end_token=Token.from_json(payload.get("end_token")),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "node_type": self.node_type,
            "start_token": self.start_token.to_json() if self.start_token else None,
            "end_token": self.end_token.to_json() if self.end_token else None,
            "children": [child.to_json() for child in self.children],
        }

    @property
    def tag(self) -> str:
        match = _NODE_TYPE_PATTERN.match(self.node_type.strip())
        return match.group("tag") if match else self.node_type

    @property
    def literal(self) -> str | None:
        """Literal embedded in ``node_type``, unquoted when it is a string."""

        match = _NODE_TYPE_PATTERN.match(self.node_type.strip())
        if match is None or match.group("literal") is None:
            return None
        raw = match.group("literal").strip()
        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            try:
                value = json.loads(raw)
            except ValueError:
                return raw[1:-1]
            return value if isinstance(value, str) else raw[1:-1]
        return raw

    @property
    def token(self) -> str | None:
        return self.start_token.token if self.start_token else None

    def child(self, index: int) -> ASTNode | None:
        if 0 <= index < len(self.children):
            return self.children[index]
        return None

    def is_a(self, tag: str, literal: str | None = None) -> bool:
        if self.tag != tag:
            return False
        return literal is None or self.literal == literal


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
