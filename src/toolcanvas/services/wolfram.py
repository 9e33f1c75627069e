"""Wolfram|Alpha compute backend over the full-results JSON API."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import BackendUnavailable, TransportFailure
from ..utils.encoding import escape_html

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.wolframalpha.com/v2/query"
RELATED_QUERIES_CLASS = "compute-related-queries"
NO_RESULTS_HTML = '<div class="alert alert-warning" role="alert">No results</div>'


@dataclass(slots=True)
class ComputePod:
    """One pod of a compute answer, flattened from its subpods."""

    title: str | None = None
    plaintext: str | None = None
    minput: str | None = None
    moutput: str | None = None
    img_base64: str | None = None
    img_contenttype: str | None = None
    related_queries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "plaintext": self.plaintext,
            "minput": self.minput,
            "moutput": self.moutput,
            "img_base64": self.img_base64,
            "img_contenttype": self.img_contenttype,
            "related_queries": list(self.related_queries),
        }


class WolframAlphaBackend:
    """``ComputeBackend`` that queries Wolfram|Alpha and formats the pods it returns."""

    def __init__(
        self,
        app_id: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.app_id = app_id
        self.endpoint = endpoint or DEFAULT_ENDPOINT
        self.max_attempts = max(1, int(max_attempts))
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def compute(self, query: str, image_only: bool, format: str) -> List[Dict[str, Any]]:
        if not self.app_id:
            raise BackendUnavailable(message="No Wolfram|Alpha app id is configured", backend="compute")
        payload = await self._query(query)
        items = await self._collect(payload, image_only)
        if not items:
            raise TransportFailure(message="Query failed or returned no pods", operation="compute")
        LOGGER.debug("Compute query %r returned %d item(s)", query, len(items))

        result_format = (format or "html").lower()
        if result_format == "html":
            return [{"title": "HTML result", "plaintext": format_to_html(items)}]
        if result_format == "markdown":
            return [{"title": "Markdown result", "plaintext": format_to_markdown(items)}]
        return [item.to_dict() for item in items]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self._retry_min_seconds, max=self._retry_max_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
        )

    async def _query(self, query: str) -> Mapping[str, Any]:
        params = {
            "appid": self.app_id,
            "input": query,
            "output": "json",
            "format": "image,plaintext,minput,moutput",
        }
        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.get(self.endpoint, params=params)
                    response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportFailure(
                message=f"Compute service returned HTTP {exc.response.status_code}",
                operation="compute",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(message=f"Compute service unreachable: {exc}", operation="compute") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportFailure(message="Compute service returned invalid JSON", operation="compute") from exc
        result = payload.get("queryresult") if isinstance(payload, Mapping) else None
        if not isinstance(result, Mapping):
            raise TransportFailure(message="Compute response has no query result", operation="compute")
        if result.get("error"):
            error = result["error"]
            text = error.get("msg") if isinstance(error, Mapping) else None
            raise TransportFailure(message=text or "Compute service reported an error", operation="compute")
        return result

    async def _collect(self, result: Mapping[str, Any], image_only: bool) -> List[ComputePod]:
        items: List[ComputePod] = []
        related = _string_list(result.get("relatedQueries") or result.get("relatedqueries"))
        if related:
            items.append(ComputePod(related_queries=related))

        for pod in result.get("pods") or ():
            subpods = pod.get("subpods") if isinstance(pod, Mapping) else None
            if not isinstance(subpods, Sequence):
                continue
            item = ComputePod(title=pod.get("title"))
            for subpod in subpods:
                if not isinstance(subpod, Mapping):
                    continue
                if not image_only:
                    for key in ("plaintext", "minput", "moutput"):
                        value = subpod.get(key)
                        if isinstance(value, str) and value:
                            setattr(item, key, value)
                image = subpod.get("img")
                if isinstance(image, Mapping):
                    await self._attach_image(item, image)
            items.append(item)
        return items

    async def _attach_image(self, item: ComputePod, image: Mapping[str, Any]) -> None:
        content_type = image.get("contenttype") or image.get("type")
        data = image.get("data")
        if isinstance(data, str) and data:
            item.img_base64 = data
            item.img_contenttype = content_type or "image/png"
            return
        source = image.get("src")
        if not source:
            return
        try:
            response = await self._client.get(source)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.warning("Skipping compute image %s: %s", source, exc)
            return
        item.img_base64 = base64.b64encode(response.content).decode("ascii")
        item.img_contenttype = content_type or response.headers.get("content-type", "image/png")


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------

def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, Sequence):
        return [str(entry) for entry in value if entry]
    return []


def format_to_html(items: Sequence[ComputePod]) -> str:
    if not items:
        return NO_RESULTS_HTML
    blocks: List[str] = []
    for item in items:
        parts: List[str] = []
        if item.title:
            parts.append(f"<h2>{escape_html(item.title)}</h2>")
        if item.plaintext:
            parts.append(f"<p><strong>Expr:</strong> {escape_html(item.plaintext)}</p>")
        if item.img_base64:
            content_type = escape_html(item.img_contenttype or "image/png")
            parts.append(f'<p><img src="data:{content_type};base64,{item.img_base64}" alt="Image"/></p>')
        if item.minput:
            parts.append(f"<p><strong>Mathematica Input:</strong> {escape_html(item.minput)}</p>")
        if item.moutput:
            parts.append(f"<p><strong>Mathematica Output:</strong> {escape_html(item.moutput)}</p>")
        if item.related_queries:
            entries = "".join(f"<li>{escape_html(query)}</li>" for query in item.related_queries)
            parts.append(
                f'<div class="{RELATED_QUERIES_CLASS}"><p><strong>Related Queries:</strong></p><ul>{entries}</ul></div>'
            )
        blocks.append("\n".join(parts))
    return '<div class="compute-html-result">' + "\n<hr/>\n".join(blocks) + "</div>"


def format_to_markdown(items: Sequence[ComputePod]) -> str:
    if not items:
        return NO_RESULTS_HTML
    lines: List[str] = []
    for item in items:
        if item.title:
            lines.append(item.title)
        if item.plaintext:
            lines.append(f"Expr:{item.plaintext}")
        if item.img_base64:
            lines.append(f"![Image](data:{item.img_contenttype or 'image/png'};base64,{item.img_base64})")
        if item.minput:
            lines.append(f"Mathematica Input:{item.minput}")
        if item.moutput:
            lines.append(f"Mathematica Output:{item.moutput}")
        if item.related_queries:
            lines.append("Related Queries:")
            lines.extend(item.related_queries)
    return "\n".join(lines) + "\n"


__all__ = [
    "ComputePod",
    "DEFAULT_ENDPOINT",
    "WolframAlphaBackend",
    "format_to_html",
    "format_to_markdown",
]
