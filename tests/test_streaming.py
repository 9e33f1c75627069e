"""Tests for the streaming lifecycle and the completion re-render."""

from __future__ import annotations

import pytest

from helpers import StubDiagramBackend
from toolcanvas.chat import MessageStreamState
from toolcanvas.chat.tool_code import TOOL_STATE_ATTR
from toolcanvas.pipeline import ToolCanvas
from toolcanvas.rendering.binder import REFRESH_BUTTON_CLASS, ZOOM_BUTTON_CLASS
from toolcanvas.rendering.markup import DEFERRED_NOTICE
from toolcanvas.rendering.state import ERROR_CLASS, PlaceholderState
from toolcanvas.session import RenderSession

PARTIAL = "Drawing it now:\n\n```tool_code\nprint(default_api.mermaid_render(mermaid_code=\"graph TD;"
FULL = (
    "Drawing it now:\n\n```tool_code\n"
    'print(default_api.mermaid_render(mermaid_code="graph TD; A-->B"))\n'
    "```\n\nThat is the flow."
)


class TestStreamingLifecycle:
    """Tests for :class:`toolcanvas.chat.StreamingCoordinator`."""

    @pytest.mark.asyncio
    async def test_updates_defer_artifacts(
        self, canvas: ToolCanvas, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        await canvas.streaming.update("m1", PARTIAL)
        container = await canvas.streaming.update("m1", FULL)

        assert canvas.streaming.state("m1") is MessageStreamState.STREAMING
        assert session.is_streaming is True
        placeholder = container.select_one(".artifact-placeholder")
        assert DEFERRED_NOTICE in placeholder.get_text()
        assert placeholder.find(class_=ERROR_CLASS) is None
        assert diagram_backend.calls == []

    @pytest.mark.asyncio
    async def test_unparseable_partial_shows_streaming_notice(self, canvas: ToolCanvas) -> None:
        container = await canvas.streaming.update("m1", PARTIAL)

        tool_container = container.select_one(".tool-code-container")
        assert tool_container[TOOL_STATE_ATTR] == "streaming"
        assert container.find(class_="tool-code-error") is None

    @pytest.mark.asyncio
    async def test_identical_blocks_are_reused_across_updates(
        self, canvas: ToolCanvas, session: RenderSession
    ) -> None:
        block = '```tool_code\nprint(default_api.mermaid_render(mermaid_code="graph TD; A-->B"))\n```\n'
        text = f"Twice:\n\n{block}\n{block}"
        container = await canvas.streaming.update("m1", text)
        ids = [element["id"] for element in container.select(".artifact-placeholder")]

        for chunk in range(6):
            text += f"\nmore {chunk}"
            container = await canvas.streaming.update("m1", text)

        assert [element["id"] for element in container.select(".artifact-placeholder")] == ids
        assert len(ids) == 2
        assert len(session.states) == 2

    @pytest.mark.asyncio
    async def test_completion_renders_artifacts(
        self, canvas: ToolCanvas, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        await canvas.streaming.update("m1", PARTIAL)
        await canvas.streaming.update("m1", FULL)

        assert await canvas.streaming.complete("m1") is True

        container = session.document.message_container("m1")
        placeholder = container.select_one(".artifact-placeholder")
        assert "loaded" in placeholder["class"]
        assert placeholder.find("svg") is not None
        assert container.find(class_=ERROR_CLASS) is None
        assert placeholder.find("button", class_=REFRESH_BUTTON_CLASS) is not None
        assert placeholder.find("button", class_=ZOOM_BUTTON_CLASS) is not None
        assert session.states.get(placeholder["id"]).state is PlaceholderState.LOADED
        assert len(diagram_backend.calls) == 1
        assert session.is_streaming is False

    @pytest.mark.asyncio
    async def test_completion_with_final_text(self, canvas: ToolCanvas, session: RenderSession) -> None:
        await canvas.streaming.update("m1", PARTIAL)
        await canvas.streaming.complete("m1", FULL)

        container = session.document.message_container("m1")
        assert "That is the flow." in container.get_text()
        assert container.select_one(".artifact-placeholder.loaded") is not None

    @pytest.mark.asyncio
    async def test_completion_replaces_streaming_placeholders(
        self, canvas: ToolCanvas, session: RenderSession
    ) -> None:
        container = await canvas.streaming.update("m1", FULL)
        streaming_id = container.select_one(".artifact-placeholder")["id"]

        await canvas.streaming.complete("m1")

        assert session.states.get(streaming_id) is None
        assert session.document.get_element_by_id(streaming_id) is None

    @pytest.mark.asyncio
    async def test_complete_is_idempotent(
        self, canvas: ToolCanvas, diagram_backend: StubDiagramBackend
    ) -> None:
        await canvas.streaming.update("m1", FULL)

        assert await canvas.streaming.complete("m1") is True
        assert await canvas.streaming.complete("m1") is False
        assert len(diagram_backend.calls) == 1

    @pytest.mark.asyncio
    async def test_updates_after_completion_are_ignored(
        self, canvas: ToolCanvas, session: RenderSession
    ) -> None:
        await canvas.streaming.update("m1", FULL)
        await canvas.streaming.complete("m1")

        await canvas.streaming.update("m1", "replaced text")
        canvas.streaming.begin("m1")

        assert canvas.streaming.state("m1") is MessageStreamState.COMPLETED
        assert "That is the flow." in session.document.message_container("m1").get_text()
        assert session.is_streaming is False

    @pytest.mark.asyncio
    async def test_complete_without_container(self, canvas: ToolCanvas, session: RenderSession) -> None:
        canvas.streaming.begin("ghost")
        assert await canvas.streaming.complete("ghost") is True
        assert session.document.message_container("ghost", create=False) is None

    @pytest.mark.asyncio
    async def test_failed_artifact_is_retried_on_completion(
        self, canvas: ToolCanvas, session: RenderSession, diagram_backend: StubDiagramBackend
    ) -> None:
        text = FULL.replace("graph TD; A-->B", "not a diagram")
        await canvas.streaming.update("m1", text)
        await canvas.streaming.complete("m1")
        await session.join()

        placeholder = session.document.message_container("m1").select_one(".artifact-placeholder")
        assert "loaded" not in placeholder["class"]
        assert placeholder.find(class_=ERROR_CLASS) is not None
        assert placeholder.find("button", class_=REFRESH_BUTTON_CLASS) is not None
        assert placeholder.find("button", class_=ZOOM_BUTTON_CLASS) is None


class TestRenderFinal:
    """Tests for messages that arrive in one piece."""

    @pytest.mark.asyncio
    async def test_render_final_marks_completed(self, canvas: ToolCanvas, session: RenderSession) -> None:
        container = await canvas.streaming.render_final("m1", FULL)

        assert canvas.streaming.state("m1") is MessageStreamState.COMPLETED
        assert container.select_one(".artifact-placeholder.loaded") is not None
        assert session.is_streaming is False
