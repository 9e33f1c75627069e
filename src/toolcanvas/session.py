"""Per-application render session: the shared state every component reads."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Coroutine, Hashable

from .document import ChatDocument
from .events import EventBus, NotificationRequested, SendMessageRequested
from .rendering.scheduler import RetryScheduler
from .rendering.state import PlaceholderStateTable
from .services.backends import BackendSet
from .services.settings import RenderSettings

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionFlags:
    """One-time setup markers scoped to a session."""

    compute_styles_injected: bool = False
    delegated_clicks_registered: bool = False


class RenderSession:
    """Owns the document, bus, settings, backends and all mutable pipeline state.

    Nothing in the pipeline keeps module-level caches; two sessions never see
    each other's placeholders, retries or compute results.
    """

    def __init__(
        self,
        *,
        settings: RenderSettings | None = None,
        backends: BackendSet | None = None,
        document: ChatDocument | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or RenderSettings()
        self.backends = backends or BackendSet()
        self.document = document or ChatDocument()
        self.bus = bus or EventBus()
        self.states = PlaceholderStateTable()
        self.scheduler = RetryScheduler(is_alive=self._placeholder_alive)
        self.compute_cache: dict[Hashable, Any] = {}
        self.flags = SessionFlags()
        self._streaming: set[str] = set()
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Streaming status
    # ------------------------------------------------------------------
    @property
    def is_streaming(self) -> bool:
        """``True`` while any message of the session is still streaming."""

        return bool(self._streaming)

    def set_streaming(self, message_id: str, streaming: bool) -> None:
        if streaming:
            self._streaming.add(message_id)
        else:
            self._streaming.discard(message_id)

    def message_is_streaming(self, message_id: str) -> bool:
        return message_id in self._streaming

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------
    def notify(self, message: str, severity: str = "info") -> None:
        self.bus.publish(NotificationRequested(message=message, severity=severity))

    def send_message(self, text: str) -> None:
        self.bus.publish(SendMessageRequested(text=text))

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------
    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Run ``coro`` without awaiting it; the session keeps the task alive."""

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def join(self) -> None:
        """Wait for background tasks and retries, including work they schedule."""

        while self._background or self.scheduler.active:
            if self._background:
                await asyncio.gather(*list(self._background), return_exceptions=True)
            await self.scheduler.join()

    async def aclose(self) -> None:
        self.scheduler.cancel_all()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.backends.aclose()

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background task %s failed", task.get_name(), exc_info=exc)

    def _placeholder_alive(self, placeholder_id: str) -> bool:
        return self.document.get_element_by_id(placeholder_id) is not None


__all__ = ["RenderSession", "SessionFlags"]
