"""Render chat message markdown into the document."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from bs4 import Tag
from markdown_it import MarkdownIt

from ..rendering.markup import PLACEHOLDER_CLASS
from ..rendering.state import ID_ATTR
from ..utils.encoding import escape_html
from .tool_code import TOOL_CONTAINER_CLASS, TOOL_SOURCE_ATTR, ToolCodeProcessor

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..rendering.engine import RenderEngine
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


def build_markdown() -> MarkdownIt:
    renderer = MarkdownIt("commonmark", {"html": False, "typographer": True})
    renderer.enable("table")
    renderer.enable("strikethrough")
    return renderer


class MessageRenderer:
    """Renders one message at a time, reusing tool-code output whose source is unchanged.

    While a message streams it is re-rendered on every chunk. Tool containers
    already processed for an identical ``data-tool-source`` are moved into the
    new tree instead of being parsed and dispatched again.
    """

    def __init__(
        self,
        session: RenderSession,
        processor: ToolCodeProcessor,
        engines: Iterable[RenderEngine],
        *,
        markdown: MarkdownIt | None = None,
    ) -> None:
        self.session = session
        self.processor = processor
        self.engines = list(engines)
        self._markdown = markdown or build_markdown()

    def to_html(self, text: str) -> str:
        return self._markdown.render(text or "")

    async def render_message(self, message_id: str, text: str, *, streaming: bool = False) -> Tag:
        document = self.session.document
        container = document.message_container(message_id)
        try:
            reusable = self._detach_tool_containers(container)
            document.set_inner_html(container, self.to_html(text))
            pending: list[Tag] = []
            for fresh in self.processor.collect(container):
                candidates = reusable.get(fresh.get(TOOL_SOURCE_ATTR, ""))
                if candidates:
                    fresh.replace_with(candidates.pop(0))
                else:
                    pending.append(fresh)
            for leftovers in reusable.values():
                for leftover in leftovers:
                    self._discard(leftover)
            await self.processor.process_all(pending, streaming=streaming, message_id=message_id)
            if not streaming:
                for engine in self.engines:
                    engine.bind_interactions(container)
        except Exception as exc:
            LOGGER.exception("Rendering message %s failed", message_id)
            document.set_inner_html(
                container,
                f'<div class="message-render-error">Message could not be rendered: {escape_html(exc)}</div>'
                f'<pre class="message-source">{escape_html(text)}</pre>',
            )
        return container

    def _detach_tool_containers(self, container: Tag) -> dict[str, list[Tag]]:
        # Identical blocks are matched to fresh containers in document order.
        reusable: dict[str, list[Tag]] = {}
        for tool_container in container.select(f".{TOOL_CONTAINER_CLASS}"):
            source = tool_container.get(TOOL_SOURCE_ATTR) or ""
            reusable.setdefault(source, []).append(tool_container.extract())
        return reusable

    def _discard(self, tool_container: Tag) -> None:
        for placeholder in tool_container.select(f".{PLACEHOLDER_CLASS}"):
            placeholder_id = placeholder.get(ID_ATTR)
            if placeholder_id:
                self.session.scheduler.discard(placeholder_id)
                self.session.states.forget(placeholder_id)
        self.session.document.release(tool_container)


__all__ = ["MessageRenderer", "build_markdown"]
