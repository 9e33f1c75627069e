"""Per-message streaming lifecycle and the completion re-render."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING, Iterable

from bs4 import Tag

from ..rendering.markup import PLACEHOLDER_CLASS
from ..rendering.state import ID_ATTR
from .messages import MessageRenderer
from .tool_code import TOOL_CONTAINER_CLASS, ToolCodeProcessor

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..rendering.engine import RenderEngine
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


class MessageStreamState(enum.Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"


class StreamingCoordinator:
    """Decides when artifacts render and forces a full re-render on completion.

    While a message streams, every update re-renders its markdown and new tool
    calls only get deferred placeholders. Completing the message resets every
    placeholder in it, re-dispatches each tool container from its raw source,
    runs a bounded sweep per engine, a confirmatory sweep after a short delay,
    and finally binds interactions. ``COMPLETED`` is terminal.
    """

    def __init__(
        self,
        session: RenderSession,
        renderer: MessageRenderer,
        processor: ToolCodeProcessor,
        engines: Iterable[RenderEngine],
    ) -> None:
        self.session = session
        self.renderer = renderer
        self.processor = processor
        self.engines = list(engines)
        self._states: dict[str, MessageStreamState] = {}

    def state(self, message_id: str) -> MessageStreamState | None:
        return self._states.get(message_id)

    def begin(self, message_id: str) -> MessageStreamState:
        current = self._states.get(message_id)
        if current is MessageStreamState.COMPLETED:
            LOGGER.warning("Message %s already completed; ignoring restart", message_id)
            return current
        self._states[message_id] = MessageStreamState.STREAMING
        self.session.set_streaming(message_id, True)
        return MessageStreamState.STREAMING

    async def update(self, message_id: str, text: str) -> Tag | None:
        """Re-render a streaming message with its latest text."""

        state = self._states.get(message_id)
        if state is MessageStreamState.COMPLETED:
            LOGGER.debug("Ignoring update for completed message %s", message_id)
            return self.session.document.message_container(message_id, create=False)
        if state is None:
            self.begin(message_id)
        return await self.renderer.render_message(message_id, text, streaming=True)

    async def complete(self, message_id: str, text: str | None = None) -> bool:
        """Finish ``message_id``; returns ``False`` when it was already completed."""

        if self._states.get(message_id) is MessageStreamState.COMPLETED:
            LOGGER.debug("Message %s already completed", message_id)
            return False
        self._states[message_id] = MessageStreamState.COMPLETED
        self.session.set_streaming(message_id, False)

        try:
            if text is not None:
                # Deferred render; the forced pass below dispatches for real.
                await self.renderer.render_message(message_id, text, streaming=True)
            container = self.session.document.message_container(message_id, create=False)
            if container is None:
                LOGGER.debug("Completed message %s has no container", message_id)
                return True
            await self._rerender(container, message_id)
        except Exception:
            LOGGER.exception("Completing message %s failed", message_id)
        return True

    async def render_final(self, message_id: str, text: str) -> Tag:
        """Render a message that never streamed."""

        self._states[message_id] = MessageStreamState.COMPLETED
        self.session.set_streaming(message_id, False)
        container = await self.renderer.render_message(message_id, text, streaming=False)
        await self._sweep(container, self.session.settings.max_retries)
        return container

    async def _rerender(self, container: Tag, message_id: str) -> None:
        tool_containers = container.select(f".{TOOL_CONTAINER_CLASS}")
        for tool_container in tool_containers:
            self._reset_placeholders(tool_container)
        LOGGER.debug("Re-dispatching %d tool container(s) of %s", len(tool_containers), message_id)
        await self.processor.process_all(tool_containers, streaming=False, message_id=message_id)

        budget = self.session.settings.completion_max_retries
        await self._sweep(container, budget)
        await asyncio.sleep(self.session.settings.confirm_sweep_delay)
        await self._sweep(container, budget)
        for engine in self.engines:
            engine.bind_interactions(container)

    async def _sweep(self, container: Tag, max_retries: int) -> None:
        if self.engines:
            await asyncio.gather(*(engine.render_all(container, 0, max_retries) for engine in self.engines))

    def _reset_placeholders(self, tool_container: Tag) -> None:
        for placeholder in tool_container.select(f".{PLACEHOLDER_CLASS}"):
            placeholder_id = placeholder.get(ID_ATTR)
            self.session.states.reset(placeholder)
            if placeholder_id:
                self.session.scheduler.discard(placeholder_id)
                self.session.states.forget(placeholder_id)


__all__ = ["MessageStreamState", "StreamingCoordinator"]
