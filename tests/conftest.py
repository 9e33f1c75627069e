"""Shared pytest fixtures: stub backends and zero-delay sessions."""

from __future__ import annotations

import pytest

from helpers import (
    EventRecorder,
    StubComputeBackend,
    StubDiagramBackend,
    StubStructuredBackend,
    StubTypesetBackend,
    fast_settings,
)
from toolcanvas.interpreter import PythonCallParser
from toolcanvas.pipeline import ToolCanvas
from toolcanvas.services.backends import BackendSet
from toolcanvas.session import RenderSession


@pytest.fixture
def diagram_backend() -> StubDiagramBackend:
    return StubDiagramBackend()


@pytest.fixture
def compute_backend() -> StubComputeBackend:
    return StubComputeBackend()


@pytest.fixture
def backends(diagram_backend: StubDiagramBackend, compute_backend: StubComputeBackend) -> BackendSet:
    return BackendSet(
        parser=PythonCallParser(),
        diagram=diagram_backend,
        structured_diagram=StubStructuredBackend(),
        typeset=StubTypesetBackend("typst"),
        math=StubTypesetBackend("katex"),
        compute=compute_backend,
    )


@pytest.fixture
def session(backends: BackendSet) -> RenderSession:
    return RenderSession(settings=fast_settings(), backends=backends)


@pytest.fixture
def canvas(session: RenderSession) -> ToolCanvas:
    return ToolCanvas(session)


@pytest.fixture
def recorder(session: RenderSession) -> EventRecorder:
    return EventRecorder(session)
