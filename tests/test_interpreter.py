"""Unit tests for :mod:`toolcanvas.interpreter`."""

from __future__ import annotations

import json
from typing import Any

import pytest

from toolcanvas.interpreter import ASTNode, CallDescriptor, decode_value, parse_call


def _token(text: str | None, kind: str | None = None) -> dict[str, Any]:
    return {"token": text, "type": kind, "origin_token": text, "position": 0}


def node(node_type: str, *children: dict[str, Any], token: str | None = None) -> dict[str, Any]:
    return {
        "node_type": node_type,
        "start_token": _token(token),
        "end_token": _token(token),
        "children": list(children),
    }


def call(namespace: str, function: str, *arguments: dict[str, Any]) -> dict[str, Any]:
    return node(
        "LambdaCall",
        node("GetAttr", node(f'Variable("{namespace}")', token=namespace), node(f'String("{function}")', token=function)),
        node("Tuple", *arguments),
    )


def assign(name: str, value: dict[str, Any]) -> dict[str, Any]:
    return node("Assign", node(f'Variable("{name}")', token=name), value)


def string(text: str) -> dict[str, Any]:
    return node(f"String({json.dumps(text)})", token=text)


class TestASTNode:
    """Tests for tree decoding and node helpers."""

    def test_from_json_accepts_text(self) -> None:
        """JSON text and mappings decode to the same tree."""
        payload = call("default_api", "mermaid_render")
        assert ASTNode.from_json(json.dumps(payload)) == ASTNode.from_json(payload)

    def test_tag_and_literal_split_node_type(self) -> None:
        """Embedded literals are separated from the tag and unquoted."""
        tree = ASTNode.from_json(node('Variable("default_api")', token="default_api"))
        assert tree.tag == "Variable"
        assert tree.literal == "default_api"
        assert tree.token == "default_api"

    def test_plain_tag_has_no_literal(self) -> None:
        tree = ASTNode.from_json(node("Tuple"))
        assert tree.tag == "Tuple"
        assert tree.literal is None

    def test_from_json_rejects_non_objects(self) -> None:
        """Lists and missing node types are type errors."""
        with pytest.raises(TypeError):
            ASTNode.from_json("[1, 2]")
        with pytest.raises(TypeError):
            ASTNode.from_json({"children": []})

    def test_from_json_rejects_invalid_json(self) -> None:
        with pytest.raises(ValueError):
            ASTNode.from_json("{not json")

    def test_to_json_round_trips_structure(self) -> None:
        payload = call("default_api", "f", assign("x", string("1")))
        tree = ASTNode.from_json(payload)
        assert ASTNode.from_json(tree.to_json()) == tree


class TestParseCall:
    """Tests for call extraction from parse trees."""

    def test_bare_call(self) -> None:
        """A bare namespaced call yields a descriptor with decoded arguments."""
        tree = call("default_api", "mermaid_render", assign("mermaid_code", string("graph TD; A-->B")))
        descriptor = parse_call(tree)
        assert descriptor == CallDescriptor(
            api_name="default_api",
            function_name="mermaid_render",
            arguments={"mermaid_code": "graph TD; A-->B"},
            print_call=False,
        )

    def test_print_wrapped_call(self) -> None:
        """print(...) around the call is unwrapped and remembered."""
        inner = call("default_api", "katex_render", assign("katex_code", string("x^2")))
        tree = node("LambdaCall", node('Variable("print")', token="print"), node("Tuple", inner))
        descriptor = parse_call(tree)
        assert descriptor is not None
        assert descriptor.print_call is True
        assert descriptor.function_name == "katex_render"
        assert descriptor.arguments == {"katex_code": "x^2"}

    def test_argument_types_decode_by_tag(self) -> None:
        """String, numeric and boolean nodes decode to their natural values."""
        tree = call(
            "default_api",
            "html_render",
            assign("width", string("100%")),
            assign("n", node('Number("3")', token="3")),
            assign("flag", node('Boolean("True")', token="True")),
        )
        descriptor = parse_call(tree)
        assert descriptor is not None
        assert descriptor.arguments == {"width": "100%", "n": 3, "flag": True}

    def test_missing_attribute_access_yields_none(self) -> None:
        """A call-shaped node without its GetAttr child is not a call."""
        tree = node("LambdaCall", node('Variable("mermaid_render")', token="mermaid_render"), node("Tuple"))
        assert parse_call(tree) is None

    def test_non_call_root_yields_none(self) -> None:
        assert parse_call(string("just text")) is None

    def test_print_without_inner_call_yields_none(self) -> None:
        tree = node("LambdaCall", node('Variable("print")', token="print"), node("Tuple", string("hello")))
        assert parse_call(tree) is None

    def test_malformed_input_never_raises(self) -> None:
        """Garbage input is reported as None."""
        assert parse_call("{not json") is None
        assert parse_call({"children": "oops"}) is None
        assert parse_call(None) is None

    def test_assign_without_variable_name_is_skipped(self) -> None:
        tree = call(
            "default_api",
            "f",
            node("Assign", string("oops"), string("value")),
            assign("kept", string("yes")),
        )
        descriptor = parse_call(tree)
        assert descriptor is not None
        assert descriptor.arguments == {"kept": "yes"}

    def test_descriptor_to_dict(self) -> None:
        descriptor = parse_call(call("ns", "fn", assign("a", string("b"))))
        assert descriptor is not None
        assert descriptor.to_dict() == {
            "type": "api_call",
            "api_name": "ns",
            "function_name": "fn",
            "arguments": {"a": "b"},
            "print_call": False,
        }
        assert descriptor.qualified_name == "ns.fn"


class TestDecodeValue:
    """Tests for individual argument value decoding."""

    @pytest.mark.parametrize(
        ("token", "expected"),
        [("42", 42), ("-7", -7), ("2.5", 2.5), ("3.0", 3), ("1_000", 1000)],
    )
    def test_numbers(self, token: str, expected: Any) -> None:
        value = decode_value(ASTNode.from_json(node(f'Number("{token}")', token=token)))
        assert value == expected
        assert type(value) is type(expected)

    def test_unparseable_number_keeps_raw_text(self) -> None:
        assert decode_value(ASTNode.from_json(node("Number", token="0xZZ"))) == "0xZZ"

    def test_false_boolean(self) -> None:
        assert decode_value(ASTNode.from_json(node('Boolean("False")', token="False"))) is False

    def test_none(self) -> None:
        assert decode_value(ASTNode.from_json(node("None", token="None"))) is None

    def test_composite_keeps_raw_token(self) -> None:
        """Lists and dicts are not interpreted."""
        assert decode_value(ASTNode.from_json(node("List", token="[1, 2]"))) == "[1, 2]"
