"""Composition root wiring engines, handlers and the chat pipeline to one session."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from bs4 import Tag

from .chat.messages import MessageRenderer
from .chat.streaming import StreamingCoordinator
from .chat.tool_code import ToolCodeProcessor
from .dispatch.compute import ComputeHandler
from .dispatch.dispatcher import CallDispatcher
from .dispatch.handlers import InteractiveButtonHandler, RenderedArtifactHandler
from .dispatch.registry import HandlerRegistry
from .rendering.engine import RenderEngine
from .rendering.kinds import DEFAULT_KINDS, ArtifactKind
from .session import RenderSession

LOGGER = logging.getLogger(__name__)


class ToolCanvas:
    """Everything needed to turn chat messages with ``tool_code`` into rendered artifacts.

    Example::

        canvas = ToolCanvas(session)
        await canvas.streaming.update("m1", partial_text)
        await canvas.streaming.complete("m1", full_text)
        await session.join()
    """

    def __init__(self, session: RenderSession, kinds: Iterable[ArtifactKind] = DEFAULT_KINDS) -> None:
        self.session = session
        self.engines: dict[str, RenderEngine] = {kind.name: RenderEngine(kind, session) for kind in kinds}
        self.registry = HandlerRegistry()
        for engine in self.engines.values():
            self.registry.register(RenderedArtifactHandler(engine))
        self.registry.register(InteractiveButtonHandler())
        self.registry.register(ComputeHandler())
        self.dispatcher = CallDispatcher(self.registry, session)
        self.tool_code = ToolCodeProcessor(session, self.dispatcher)
        self.messages = MessageRenderer(session, self.tool_code, self.engines.values())
        self.streaming = StreamingCoordinator(session, self.messages, self.tool_code, self.engines.values())
        LOGGER.debug("Tool canvas ready with kinds: %s", ", ".join(self.engines))

    def engine(self, name: str) -> RenderEngine:
        try:
            return self.engines[name]
        except KeyError:
            raise KeyError(f"Unknown artifact kind: {name}") from None

    async def render_all(self, container: Tag | None = None, max_retries: int | None = None) -> None:
        """Sweep every kind under ``container`` (default: the whole document)."""

        await asyncio.gather(*(engine.render_all(container, 0, max_retries) for engine in self.engines.values()))

    def bind_interactions(self, container: Tag | None = None) -> None:
        for engine in self.engines.values():
            engine.bind_interactions(container)

    async def aclose(self) -> None:
        await self.session.aclose()


__all__ = ["ToolCanvas"]
