"""Outbound events and the bus that carries them.

The rendering pipeline never talks to a host UI directly. It publishes
events (open a viewer, show a notification, send a chat message) and the
embedding application subscribes to whichever it can honour.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on an :class:`EventBus`."""

    pass


# =============================================================================
# Outbound requests
# =============================================================================


@dataclass(slots=True)
class OpenViewerRequested(Event):
    """Emitted when a rendered artifact is clicked or zoomed.

    Attributes:
        rendered_markup: Markup currently displayed for the artifact.
        raw_source: The decoded source the artifact was rendered from.
        kind: Artifact kind name, e.g. ``"mermaid"``.
    """

    rendered_markup: str
    raw_source: str
    kind: str = ""


@dataclass(slots=True)
class NotificationRequested(Event):
    """Emitted when the user should see a transient notice.

    Attributes:
        message: Text of the notice.
        severity: One of ``"info"``, ``"success"``, ``"warning"`` or ``"error"``.
    """

    message: str
    severity: str = "info"


@dataclass(slots=True)
class SendMessageRequested(Event):
    """Emitted when an interactive element wants to post a chat message."""

    text: str


# =============================================================================
# Observer events
# =============================================================================


@dataclass(slots=True)
class ArtifactRendered(Event):
    kind: str
    placeholder_id: str


@dataclass(slots=True)
class ArtifactFailed(Event):
    kind: str
    placeholder_id: str
    error: str


# Sweeps publish one of these per placeholder; keep them out of debug logs.
_QUIET_EVENT_TYPES: set[type] = {ArtifactRendered}


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Handlers run synchronously in subscription order. A handler that raises is
    logged and skipped; the remaining handlers still receive the event.
    Bound methods are held weakly so subscribers can be garbage collected
    without unsubscribing first.

    Example::

        bus = EventBus()
        bus.subscribe(NotificationRequested, lambda event: print(event.message))
        bus.publish(NotificationRequested("Copied", "success"))
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of exactly ``event_type``.

        Subscribing the same handler twice results in two invocations.
        """
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                LOGGER.debug(
                    "Unsubscribed %s from %s", _handler_name(handler), event_type.__name__
                )
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        quiet = event_type in _QUIET_EVENT_TYPES
        if not handlers:
            if not quiet:
                LOGGER.debug("No handlers for %s", event_type.__name__)
            return
        if not quiet:
            LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception(
                    "Handler %s raised while handling %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        for index in reversed(dead):
            if index < len(handlers):
                handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return live handlers for ``event_type``, or across all types when omitted."""
        if event_type is not None:
            return sum(1 for ref in self._handlers.get(event_type, ()) if ref.resolve())
        return sum(
            1 for refs in self._handlers.values() for ref in refs if ref.resolve() is not None
        )


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "OpenViewerRequested",
    "NotificationRequested",
    "SendMessageRequested",
    "ArtifactRendered",
    "ArtifactFailed",
]
