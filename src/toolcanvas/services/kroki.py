"""Diagram layout over a Kroki-compatible HTTP service."""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ..errors import RenderFailure, TransportFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://kroki.io"


class KrokiDiagramBackend:
    """``DiagramBackend`` that posts diagram source to ``{base_url}/{type}/svg``.

    A 4xx answer means the service rejected the source and becomes a
    :class:`RenderFailure`; anything else that goes wrong on the wire is a
    :class:`TransportFailure`. The client is only closed when this backend
    created it.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_ENDPOINT,
        *,
        diagram_type: str = "mermaid",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or DEFAULT_ENDPOINT).rstrip("/")
        self.diagram_type = diagram_type
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.diagram_type}/svg"

    async def render(self, diagram_id: str, source: str) -> Dict[str, Any]:
        LOGGER.debug("Requesting %s layout for %s (%d chars)", self.diagram_type, diagram_id, len(source))
        try:
            response = await self._client.post(
                self.endpoint,
                content=source.encode("utf-8"),
                headers={"Content-Type": "text/plain", "Accept": "image/svg+xml"},
            )
        except httpx.HTTPError as exc:
            raise TransportFailure(
                message=f"Diagram service unreachable: {exc}",
                operation="diagram_render",
            ) from exc

        if 400 <= response.status_code < 500:
            detail = response.text.strip() or response.reason_phrase
            raise RenderFailure(message=f"Diagram syntax error: {detail}", kind=self.diagram_type)
        if response.status_code >= 500:
            raise TransportFailure(
                message=f"Diagram service returned HTTP {response.status_code}",
                operation="diagram_render",
                details={"status_code": response.status_code},
            )
        return {"svg": response.text}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DEFAULT_ENDPOINT", "KrokiDiagramBackend"]
