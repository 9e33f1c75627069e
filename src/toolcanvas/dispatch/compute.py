"""External-compute handler that resolves out of band.

The handler returns a loading frame immediately and settles the backend call in
a session-owned task. On settlement it looks the frame's body up by id; if the
message was re-rendered in the meantime and the body is gone, the result is
only cached.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from bs4 import BeautifulSoup

from ..document import add_class
from ..errors import BackendUnavailable, ToolCanvasError, TransportFailure, describe_error
from ..services.backends import resolve
from ..utils.encoding import encode_payload, escape_html
from .handlers import argument_text, new_placeholder_id
from .interactions import QUERY_ATTR, RELATED_QUERIES_CLASS, ensure_delegated_handlers
from .registry import DispatchContext

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)

STYLE_ELEMENT_ID = "compute-query-styles"
_TRUE_STRINGS = {"true", "1", "yes"}

_QUERY_STYLES = f"""
.{RELATED_QUERIES_CLASS} ul {{ list-style: none; padding-left: 0; }}
.{RELATED_QUERIES_CLASS} li {{ cursor: pointer; padding: 4px 8px; border-radius: 4px; }}
.{RELATED_QUERIES_CLASS} li:hover {{ background-color: rgba(127, 127, 127, 0.15); text-decoration: underline; }}
"""


class ComputeHandler:
    """Answers ``wolfram_alpha_compute(query, image_only, format)`` calls."""

    function_name = "wolfram_alpha_compute"

    async def produce_markup(self, arguments: Mapping[str, Any], context: DispatchContext) -> str:
        session = context.session
        query = argument_text(arguments, "query")
        image_only = _truthy(arguments.get("image_only"))
        result_format = argument_text(arguments, "format", session.settings.compute_format)

        if not query.strip():
            return compute_error_view("Query must not be empty")

        cache_key = (query, image_only, result_format)
        cached = session.compute_cache.get(cache_key)
        if cached is not None:
            LOGGER.debug("Compute cache hit for %r", query)
            return compute_result_frame(session, cached, query, result_format)

        body_id = new_placeholder_id("compute")
        if context.streaming:
            return compute_loading_view(query, body_id, deferred=True)

        session.spawn(
            self._resolve(session, body_id, query, image_only, result_format),
            name=f"compute:{body_id}",
        )
        return compute_loading_view(query, body_id)

    async def _resolve(
        self,
        session: RenderSession,
        body_id: str,
        query: str,
        image_only: bool,
        result_format: str,
    ) -> None:
        await asyncio.sleep(session.settings.compute_start_delay)
        try:
            backend = session.backends.compute
            if backend is None:
                raise BackendUnavailable(message="The compute backend is not initialized", backend="compute")
            result = await resolve(backend.compute(query, image_only, result_format))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc if isinstance(exc, ToolCanvasError) else TransportFailure(
                message=describe_error(exc), operation="compute"
            )
            LOGGER.error("Compute request for %r failed: %s", query, error)
            target = session.document.get_element_by_id(body_id)
            if target is not None:
                session.document.set_inner_html(target, compute_error_body(error.message))
            session.notify("Compute request failed", "error")
            return

        session.compute_cache[(query, image_only, result_format)] = result
        target = session.document.get_element_by_id(body_id)
        if target is None:
            LOGGER.debug("Compute body %s left the document; result cached only", body_id)
            return
        session.document.set_inner_html(target, compute_result_body(session, result, query, result_format))
        add_class(target, "loaded")


# ----------------------------------------------------------------------
# Views
# ----------------------------------------------------------------------

def _header(title: str) -> str:
    return (
        '<div class="api-call-header">'
        f'<span class="api-call-title">{escape_html(title)}</span></div>'
    )


def compute_loading_view(query: str, body_id: str, *, deferred: bool = False) -> str:
    notice = (
        "Computation deferred until the message finishes streaming"
        if deferred
        else f"Computing: {escape_html(query)}"
    )
    return (
        '<div class="special-api-call compute-api-call">'
        f"{_header('Wolfram|Alpha computation')}"
        f'<div id="{body_id}" class="compute-loading-container">'
        '<div class="compute-loading-indicator"><div class="compute-spinner"></div>'
        f"<p>{notice}</p></div></div></div>"
    )


def compute_error_body(message: str) -> str:
    return (
        '<div class="compute-error-container">'
        f'<p class="compute-error-message">{escape_html(message)}</p></div>'
    )


def compute_error_view(message: str) -> str:
    return (
        '<div class="special-api-call compute-api-call error">'
        f"{_header('Wolfram|Alpha error')}{compute_error_body(message)}</div>"
    )


def compute_result_frame(session: RenderSession, result: Any, query: str, result_format: str) -> str:
    return (
        '<div class="special-api-call compute-api-call">'
        f"{_header('Wolfram|Alpha result')}"
        f"{compute_result_body(session, result, query, result_format)}</div>"
    )


def compute_result_body(session: RenderSession, result: Any, query: str, result_format: str) -> str:
    if not result or (isinstance(result, Mapping) and result.get("error")):
        message = result.get("error") if isinstance(result, Mapping) else "No results found"
        return compute_error_body(str(message))

    if result_format == "html" and _first_plaintext(result):
        content = _prepare_html_result(_first_plaintext(result))
    elif isinstance(result, Sequence) and not isinstance(result, (str, bytes)):
        content = _items_view(result)
    else:
        content = f"<pre>{escape_html(json.dumps(result, indent=2, ensure_ascii=False, default=str))}</pre>"

    inject_query_styles(session)
    ensure_delegated_handlers(session)
    return (
        '<div class="compute-result-container">'
        f'<div class="compute-query"><strong>Query:</strong> {escape_html(query)}</div>'
        f'<div class="compute-content">{content}</div></div>'
    )


def inject_query_styles(session: RenderSession) -> bool:
    """Add the related-query style block to the document head once per session."""

    if session.flags.compute_styles_injected:
        return False
    document = session.document
    if document.get_element_by_id(STYLE_ELEMENT_ID) is None:
        style = document.soup.new_tag("style", attrs={"id": STYLE_ELEMENT_ID})
        style.string = _QUERY_STYLES
        document.head.append(style)
    session.flags.compute_styles_injected = True
    return True


def _first_plaintext(result: Any) -> str | None:
    if isinstance(result, Sequence) and not isinstance(result, (str, bytes)) and result:
        first = result[0]
        if isinstance(first, Mapping):
            text = first.get("plaintext")
            return text if isinstance(text, str) and text else None
    return None


def _prepare_html_result(html_content: str) -> str:
    fragment = BeautifulSoup(html_content, "html.parser")
    for block in fragment.select(f".{RELATED_QUERIES_CLASS}, .wolfram-related-queries"):
        add_class(block, RELATED_QUERIES_CLASS)
        for item in block.select("li"):
            item[QUERY_ATTR] = encode_payload(item.get_text().strip())
            item["title"] = "Click to send this query"
    return str(fragment)


def _items_view(items: Sequence[Any]) -> str:
    parts: list[str] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        piece = ['<div class="compute-result-item">']
        if item.get("title"):
            piece.append(f'<h3 class="compute-item-title">{escape_html(item["title"])}</h3>')
        if item.get("plaintext"):
            piece.append(f'<p class="compute-item-text">{escape_html(item["plaintext"])}</p>')
        if item.get("img_base64"):
            content_type = item.get("img_contenttype") or "image/png"
            piece.append(
                '<div class="compute-item-image">'
                f'<img src="data:{escape_html(content_type)};base64,{escape_html(item["img_base64"])}" '
                'alt="Computation result"/></div>'
            )
        for key, label in (("minput", "Mathematica input"), ("moutput", "Mathematica output")):
            if item.get(key):
                piece.append(
                    f'<div class="compute-item-code"><strong>{label}:</strong> '
                    f"<code>{escape_html(item[key])}</code></div>"
                )
        related = item.get("related_queries") or item.get("relatedQueries")
        if isinstance(related, Sequence) and not isinstance(related, str) and related:
            entries = "".join(
                f'<li {QUERY_ATTR}="{escape_html(encode_payload(str(query)))}" '
                f'title="Click to send this query">{escape_html(query)}</li>'
                for query in related
            )
            piece.append(
                f'<div class="{RELATED_QUERIES_CLASS}"><strong>Related queries:</strong><ul>{entries}</ul></div>'
            )
        piece.append("</div>")
        parts.append("".join(piece))
    return f'<div class="compute-results">{"<hr/>".join(parts)}</div>'


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_STRINGS


__all__ = [
    "ComputeHandler",
    "compute_error_view",
    "compute_loading_view",
    "compute_result_body",
    "inject_query_styles",
]
