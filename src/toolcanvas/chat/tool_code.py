"""Find ``tool_code`` blocks in a rendered message and drive them through the pipeline.

Each block becomes a ``div.tool-code-container`` carrying its raw source in
``data-tool-source``. Processing a container parses the source, interprets the
tree, dispatches the call and writes one of these views into the container:

* dispatcher markup plus a collapsible technical-details block,
* a structured result view for calls no handler claims,
* a fallback view with the pretty-printed tree when no call was found,
* an error view with the raw error and the original source,
* a streaming notice while the message is still arriving.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from bs4 import Tag

from ..errors import BackendUnavailable, ParseFailure, ToolCanvasError, TransportFailure, describe_error
from ..interpreter import ASTNode, CallDescriptor, parse_call
from ..services.backends import resolve
from ..utils.encoding import decode_payload, encode_payload, escape_html

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..dispatch.dispatcher import CallDispatcher
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)

TOOL_CODE_SELECTOR = "pre > code.language-tool_code"
TOOL_CONTAINER_CLASS = "tool-code-container"
TOOL_SOURCE_ATTR = "data-tool-source"
TOOL_STATE_ATTR = "data-tool-state"
THINKING_CLASS = "thinking-details"


class ToolCodeProcessor:
    """Turns ``tool_code`` fences of a message into live tool-call output."""

    def __init__(self, session: RenderSession, dispatcher: CallDispatcher) -> None:
        self.session = session
        self.dispatcher = dispatcher

    def collect(self, container: Tag) -> list[Tag]:
        """Swap every eligible ``tool_code`` block under ``container`` for a tool container."""

        collected: list[Tag] = []
        for code in container.select(TOOL_CODE_SELECTOR):
            if code.find_parent(class_=THINKING_CLASS) is not None:
                continue
            source = code.get_text().strip()
            if not source:
                continue
            pre = code.parent
            tool_container = self.session.document.create_element(
                f'<div class="{TOOL_CONTAINER_CLASS}" {TOOL_SOURCE_ATTR}="{escape_html(encode_payload(source))}">'
                '<div class="tool-code-loading">Parsing tool code...</div></div>'
            )
            self.session.document.release(pre)
            pre.replace_with(tool_container)
            collected.append(tool_container)
        if collected:
            LOGGER.debug("Collected %d tool code block(s)", len(collected))
        return collected

    async def process_all(
        self,
        containers: Iterable[Tag],
        *,
        streaming: bool = False,
        message_id: str | None = None,
    ) -> None:
        jobs = [self.process(item, streaming=streaming, message_id=message_id) for item in containers]
        if jobs:
            await asyncio.gather(*jobs)

    async def process(
        self,
        tool_container: Tag,
        *,
        streaming: bool = False,
        message_id: str | None = None,
    ) -> None:
        try:
            source = decode_payload(tool_container.get(TOOL_SOURCE_ATTR))
        except UnicodeDecodeError:
            LOGGER.error("Tool container carries an undecodable source")
            self._write(tool_container, error_view("Stored tool code is not valid UTF-8", ""), "error")
            return

        try:
            tree = await self._parse(source)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if streaming:
                LOGGER.debug("Tool code not parseable yet while streaming: %s", describe_error(exc))
                self._write(tool_container, streaming_notice_view(source), "streaming")
            else:
                LOGGER.error("Tool code parse failed: %s", describe_error(exc))
                self._write(tool_container, error_view(describe_error(exc), source), "error")
            return

        try:
            descriptor = parse_call(tree)
            if descriptor is None:
                failure = ParseFailure(details={"node_type": tree.get("node_type")})
                LOGGER.warning("%s (root node %s)", failure.message, failure.details["node_type"])
                self._write(tool_container, fallback_view(tree, source, reason=failure.message), "fallback")
                return
            markup = await self.dispatcher.dispatch(descriptor, streaming=streaming, message_id=message_id)
            if markup is None:
                self._write(tool_container, structured_result_view(descriptor, tree, source), "unhandled")
            else:
                self._write(tool_container, with_technical_details(markup, descriptor, tree, source), "done")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Processing tool code failed")
            self._write(tool_container, error_view(describe_error(exc), source), "error")

    async def _parse(self, source: str) -> Mapping[str, Any]:
        parser = self.session.backends.parser
        if parser is None:
            raise BackendUnavailable(message="The tool code parser is not initialized", backend="parser")
        try:
            raw = await resolve(parser.parse_code(source))
        except ToolCanvasError:
            raise
        except Exception as exc:
            raise TransportFailure(message=describe_error(exc), operation="parse_code") from exc
        if isinstance(raw, (str, bytes, bytearray)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise TransportFailure(message=f"Parser returned invalid JSON: {exc}", operation="parse_code") from exc
        if not isinstance(raw, Mapping):
            raise TransportFailure(message="Parser returned a non-object tree", operation="parse_code")
        return raw

    def _write(self, tool_container: Tag, markup: str, state: str) -> None:
        self.session.document.set_inner_html(tool_container, markup)
        tool_container[TOOL_STATE_ATTR] = state


# ----------------------------------------------------------------------
# Views
# ----------------------------------------------------------------------

def _pretty_tree(tree: Mapping[str, Any] | ASTNode) -> str:
    payload = tree.to_json() if isinstance(tree, ASTNode) else tree
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def _original_source(source: str) -> str:
    return f'<pre class="tool-code-original"><code>{escape_html(source)}</code></pre>'


def _call_rows(descriptor: CallDescriptor) -> str:
    rows = [
        f'<div class="tool-api-row"><span class="tool-api-label">API:</span> '
        f'<span class="tool-api-value">{escape_html(descriptor.api_name)}</span></div>',
        f'<div class="tool-api-row"><span class="tool-api-label">Function:</span> '
        f'<span class="tool-api-value">{escape_html(descriptor.function_name)}</span></div>',
    ]
    for name, value in descriptor.arguments.items():
        rows.append(
            f'<div class="tool-api-row"><span class="tool-api-label">Argument {escape_html(name)}:</span> '
            f'<span class="tool-api-value tool-api-param">{escape_html(value)}</span></div>'
        )
    return f'<div class="tool-api-info">{"".join(rows)}</div>'


def with_technical_details(markup: str, descriptor: CallDescriptor, tree: Mapping[str, Any], source: str) -> str:
    return (
        f"{markup}"
        '<details class="tool-code-details"><summary>View technical details</summary>'
        '<div class="api-details"><h4>Call</h4>'
        f"{_call_rows(descriptor)}"
        f'<h4>Parse tree</h4><pre class="tool-code-ast"><code>{escape_html(_pretty_tree(tree))}</code></pre>'
        f"<h4>Original code</h4>{_original_source(source)}</div></details>"
    )


def structured_result_view(descriptor: CallDescriptor, tree: Mapping[str, Any], source: str) -> str:
    return (
        '<div class="tool-code-header">Tool call:</div>'
        f'<div class="tool-code-result">{_call_rows(descriptor)}</div>'
        '<details class="tool-code-details"><summary>View parse tree</summary>'
        f'<pre class="tool-code-ast"><code>{escape_html(_pretty_tree(tree))}</code></pre></details>'
        '<div class="tool-code-header original-header">Original code:</div>'
        f"{_original_source(source)}"
    )


def fallback_view(tree: Mapping[str, Any], source: str, *, reason: str | None = None) -> str:
    notice = f'<div class="tool-code-fallback-reason">{escape_html(reason)}</div>' if reason else ""
    return (
        f"{notice}"
        '<div class="tool-code-header">Parse tree:</div>'
        f'<pre class="tool-code-ast"><code>{escape_html(_pretty_tree(tree))}</code></pre>'
        '<div class="tool-code-header original-header">Original code:</div>'
        f"{_original_source(source)}"
    )


def error_view(error_text: str, source: str) -> str:
    return (
        '<div class="tool-code-error">'
        f'<div class="tool-code-error-message">Tool code could not be processed: {escape_html(error_text)}</div>'
        '<div class="tool-code-header original-header">Original code:</div>'
        f"{_original_source(source)}</div>"
    )


def streaming_notice_view(source: str) -> str:
    return (
        '<div class="tool-code-streaming">'
        '<div class="tool-code-streaming-notice">Tool code is still streaming...</div>'
        f"{_original_source(source)}</div>"
    )


__all__ = [
    "TOOL_CONTAINER_CLASS",
    "TOOL_SOURCE_ATTR",
    "TOOL_STATE_ATTR",
    "ToolCodeProcessor",
    "error_view",
    "fallback_view",
    "streaming_notice_view",
    "structured_result_view",
    "with_technical_details",
]
