"""Tests for :mod:`toolcanvas.rendering.engine` sweeps, retries and refresh."""

from __future__ import annotations

import pytest
from bs4 import Tag

from helpers import EventRecorder, StubDiagramBackend, ToggleDiagramBackend, fast_settings
from toolcanvas.events import ArtifactFailed, ArtifactRendered
from toolcanvas.rendering import MERMAID, HTML, PlaceholderState, RenderEngine
from toolcanvas.rendering.binder import ZOOM_BUTTON_CLASS
from toolcanvas.rendering.markup import placeholder
from toolcanvas.rendering.state import ERROR_CLASS, LAST_RENDERED_ATTR
from toolcanvas.services.backends import BackendSet
from toolcanvas.session import RenderSession
from toolcanvas.utils.encoding import encode_payload


def add_placeholder(session: RenderSession, placeholder_id: str, source: str, kind: str = "mermaid") -> Tag:
    container = session.document.message_container("m1")
    element = session.document.create_element(placeholder(kind, placeholder_id, encode_payload(source), ""))
    container.append(element)
    return element


def make_session(diagram) -> RenderSession:
    return RenderSession(settings=fast_settings(max_retries=3), backends=BackendSet(diagram=diagram))


class TestRenderSweep:
    """Tests for a single render_all pass."""

    @pytest.mark.asyncio
    async def test_renders_pending_placeholder(self, session: RenderSession, diagram_backend: StubDiagramBackend) -> None:
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        await RenderEngine(MERMAID, session).render_all()

        assert "loaded" in element["class"]
        assert element.find("svg") is not None
        assert element.find(class_=ERROR_CLASS) is None
        assert element[LAST_RENDERED_ATTR] == encode_payload("graph TD; A-->B")
        assert diagram_backend.calls == [("p1-svg", "graph TD; A-->B")]

    @pytest.mark.asyncio
    async def test_unchanged_loaded_placeholder_is_not_rendered_again(
        self, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        add_placeholder(session, "p1", "graph TD; A-->B")
        engine = RenderEngine(MERMAID, session)
        await engine.render_all()
        await engine.render_all()
        await engine.render_all(session.document.message_container("m1"))

        assert len(diagram_backend.calls) == 1

    @pytest.mark.asyncio
    async def test_matching_last_rendered_marker_skips_backend(
        self, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        """A placeholder whose last render matches its payload is left alone even without the loaded class."""
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        element[LAST_RENDERED_ATTR] = element["data-artifact-payload"]
        await RenderEngine(MERMAID, session).render_all()

        assert diagram_backend.calls == []

    @pytest.mark.asyncio
    async def test_valid_and_invalid_placeholders_are_isolated(
        self, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        session.settings.max_retries = 0
        good = add_placeholder(session, "good", "graph TD; A-->B")
        bad = add_placeholder(session, "bad", "not a <diagram> & more")
        await RenderEngine(MERMAID, session).render_all()

        assert "loaded" in good["class"]
        assert good.find("svg") is not None
        assert "loaded" not in bad["class"]
        panel = bad.find(class_=ERROR_CLASS)
        assert panel is not None
        assert panel.find("pre", class_="code-content").get_text() == "not a <diagram> & more"

    @pytest.mark.asyncio
    async def test_other_kinds_are_ignored(self, session: RenderSession, diagram_backend: StubDiagramBackend) -> None:
        html_element = add_placeholder(session, "h1", "<b>hi</b>", kind="html")
        await RenderEngine(MERMAID, session).render_all()

        assert diagram_backend.calls == []
        assert "loaded" not in html_element["class"]

    @pytest.mark.asyncio
    async def test_events_published_per_placeholder(self, session: RenderSession) -> None:
        session.settings.max_retries = 0
        rendered: list[ArtifactRendered] = []
        failed: list[ArtifactFailed] = []
        session.bus.subscribe(ArtifactRendered, rendered.append)
        session.bus.subscribe(ArtifactFailed, failed.append)
        add_placeholder(session, "good", "graph LR; X-->Y")
        add_placeholder(session, "bad", "nonsense")
        await RenderEngine(MERMAID, session).render_all()

        assert [event.placeholder_id for event in rendered] == ["good"]
        assert [event.placeholder_id for event in failed] == ["bad"]
        assert failed[0].kind == "mermaid"

    @pytest.mark.asyncio
    async def test_sandbox_kind_needs_no_backend(self, session: RenderSession) -> None:
        element = add_placeholder(session, "h1", "plain text", kind="html")
        await RenderEngine(HTML, session).render_all()

        iframe = element.find("iframe")
        assert iframe is not None
        assert iframe.get_attribute_list("sandbox") == ["allow-scripts"]
        assert "white-space: pre-wrap" in iframe["srcdoc"]


class TestRetries:
    """Tests for bounded pass-level retries."""

    @pytest.mark.asyncio
    async def test_always_failing_backend_is_invoked_max_retries_plus_one(self) -> None:
        backend = ToggleDiagramBackend(healthy=False)
        session = make_session(backend)
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        await RenderEngine(MERMAID, session).render_all(max_retries=3)
        await session.join()

        assert backend.calls == 4
        assert element.find(class_=ERROR_CLASS) is not None
        assert "layout engine crashed" in element.get_text()
        assert session.states.get("p1").state is PlaceholderState.FAILED
        assert session.scheduler.pending() == []

        await session.join()
        assert backend.calls == 4

    @pytest.mark.asyncio
    async def test_retry_recovers_when_backend_heals(self) -> None:
        backend = ToggleDiagramBackend(healthy=False)
        session = make_session(backend)
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        engine = RenderEngine(MERMAID, session)

        original_render = backend.render

        def heal_after_first(diagram_id: str, source: str) -> dict[str, str]:
            try:
                return original_render(diagram_id, source)
            finally:
                backend.healthy = True

        backend.render = heal_after_first  # type: ignore[method-assign]
        await engine.render_all()
        await session.join()

        assert backend.calls == 2
        assert "loaded" in element["class"]
        assert element.find(class_=ZOOM_BUTTON_CLASS) is not None

    @pytest.mark.asyncio
    async def test_missing_backend_retries_then_reports_inline(self) -> None:
        session = RenderSession(settings=fast_settings(max_retries=2), backends=BackendSet())
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        await RenderEngine(MERMAID, session).render_all()
        await session.join()

        assert "loaded" not in element["class"]
        assert "backend is not initialized" in element.find(class_=ERROR_CLASS).get_text()
        assert session.scheduler.pending() == []

    @pytest.mark.asyncio
    async def test_retry_dropped_when_placeholder_leaves_document(self) -> None:
        backend = ToggleDiagramBackend(healthy=False)
        session = RenderSession(
            settings=fast_settings(max_retries=3, retry_delay=0.05),
            backends=BackendSet(diagram=backend),
        )
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        await RenderEngine(MERMAID, session).render_all()
        session.document.remove(element)
        await session.join()

        assert backend.calls == 1


class TestRefresh:
    """Tests for manual refresh."""

    @pytest.mark.asyncio
    async def test_refresh_after_recovery_gains_zoom_affordance(self) -> None:
        backend = ToggleDiagramBackend(healthy=False)
        session = make_session(backend)
        session.settings.max_retries = 0
        recorder = EventRecorder(session)
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        engine = RenderEngine(MERMAID, session)
        await engine.render_all()
        assert element.find(class_=ERROR_CLASS) is not None
        assert element.find(class_=ZOOM_BUTTON_CLASS) is None

        backend.healthy = True
        await engine.refresh(element, session.document.message_container("m1"))
        await session.join()

        assert "loaded" in element["class"]
        assert element.find(class_=ERROR_CLASS) is None
        assert element.find("svg") is not None
        assert element.find(class_=ZOOM_BUTTON_CLASS) is not None
        assert any(note.message.startswith("Refreshing") for note in recorder.notifications)

    @pytest.mark.asyncio
    async def test_refresh_rerenders_loaded_placeholder(
        self, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        engine = RenderEngine(MERMAID, session)
        await engine.render_all()
        await engine.refresh(element)

        assert len(diagram_backend.calls) == 2
        assert "loaded" in element["class"]

    @pytest.mark.asyncio
    async def test_refresh_ignored_while_loading(self, session: RenderSession, diagram_backend: StubDiagramBackend) -> None:
        recorder = EventRecorder(session)
        element = add_placeholder(session, "p1", "graph TD; A-->B")
        record = session.states.hydrate(element)
        session.states.mark_loading(element, record)
        await RenderEngine(MERMAID, session).refresh(element)

        assert diagram_backend.calls == []
        assert recorder.notifications[-1].message.endswith("already rendering")


class TestRenderInline:
    """Tests for renders that happen before a placeholder exists."""

    @pytest.mark.asyncio
    async def test_success(self, session: RenderSession) -> None:
        markup, ok = await RenderEngine(MERMAID, session).render_inline("p9", "graph TD; A-->B")
        assert ok is True
        assert markup.startswith("<svg")

    @pytest.mark.asyncio
    async def test_failure_returns_error_panel(self, session: RenderSession) -> None:
        markup, ok = await RenderEngine(MERMAID, session).render_inline("p9", "bogus")
        assert ok is False
        assert ERROR_CLASS in markup
        assert "bogus" in markup

    @pytest.mark.asyncio
    async def test_empty_source_fails(self, session: RenderSession, diagram_backend: StubDiagramBackend) -> None:
        _, ok = await RenderEngine(MERMAID, session).render_inline("p9", "   ")
        assert ok is False
        assert diagram_backend.calls == []
