"""Stub backends and recorders shared across test modules.

Import from here instead of duplicating stubs in individual test files::

    from helpers import StubDiagramBackend, fast_settings
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from bs4 import BeautifulSoup

from toolcanvas.events import NotificationRequested, OpenViewerRequested, SendMessageRequested
from toolcanvas.services.settings import RenderSettings
from toolcanvas.session import RenderSession


class StubDiagramBackend:
    """Lays out anything that looks like a mermaid graph; rejects everything else."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def render(self, diagram_id: str, source: str) -> dict[str, str]:
        self.calls.append((diagram_id, source))
        if not source.lstrip().startswith(("graph", "flowchart", "sequenceDiagram")):
            raise ValueError(f"Parse error on line 1: {source[:20]}")
        return {"svg": f'<svg id="{diagram_id}" data-source-length="{len(source)}"><g></g></svg>'}


class ToggleDiagramBackend:
    """Fails until ``healthy`` is switched on."""

    def __init__(self, *, healthy: bool = False) -> None:
        self.healthy = healthy
        self.calls = 0

    def render(self, diagram_id: str, source: str) -> dict[str, str]:
        self.calls += 1
        if not self.healthy:
            raise RuntimeError("layout engine crashed")
        return {"svg": f'<svg id="{diagram_id}"><text>ok</text></svg>'}


class StubStructuredBackend:
    def __init__(self) -> None:
        self.configs: list[Mapping[str, Any]] = []

    def render_to(
        self,
        source: str,
        *,
        container: Any,
        config: Mapping[str, Any],
        on_error: Callable[[Any], None],
    ) -> None:
        self.configs.append(config)
        if "error" in source:
            on_error("Unexpected token at line 1")
            return
        container.append(BeautifulSoup('<svg class="pintora-svg"><g></g></svg>', "html.parser").svg)


class StubTypesetBackend:
    def __init__(self, label: str = "typeset") -> None:
        self.label = label
        self.sources: list[str] = []

    def to_svg(self, source: str) -> str:
        self.sources.append(source)
        if "#error" in source or "\\invalid" in source:
            raise ValueError(f"{self.label} compile error")
        return f'<svg class="{self.label}-svg"><text>{len(source)}</text></svg>'


class StubComputeBackend:
    def __init__(
        self, result: Any = None, *, error: Exception | None = None, gate: asyncio.Event | None = None
    ) -> None:
        self.result = result if result is not None else [
            {"title": "Result", "plaintext": "4", "related_queries": ["2+3", "2*2"]}
        ]
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, bool, str]] = []

    async def compute(self, query: str, image_only: bool, format: str) -> Any:
        self.calls.append((query, image_only, format))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class EventRecorder:
    """Collects the outbound events a session publishes."""

    def __init__(self, session: RenderSession) -> None:
        self.notifications: list[NotificationRequested] = []
        self.messages: list[SendMessageRequested] = []
        self.viewers: list[OpenViewerRequested] = []
        session.bus.subscribe(NotificationRequested, self.notifications.append)
        session.bus.subscribe(SendMessageRequested, self.messages.append)
        session.bus.subscribe(OpenViewerRequested, self.viewers.append)


def fast_settings(**overrides: Any) -> RenderSettings:
    values: dict[str, Any] = {
        "retry_delay": 0.0,
        "refresh_delay": 0.0,
        "confirm_sweep_delay": 0.0,
        "compute_start_delay": 0.0,
    }
    values.update(overrides)
    return RenderSettings(**values)
