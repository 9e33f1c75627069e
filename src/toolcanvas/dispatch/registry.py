"""Handler registry mapping tool function names to artifact handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..interpreter.call_parser import CallDescriptor
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchContext:
    """What a handler may know about the call it is serving.

    Attributes:
        session: The owning render session.
        streaming: Whether the enclosing message is still streaming.
        descriptor: The interpreted call.
        message_id: Message the tool code belongs to, when known.
    """

    session: RenderSession
    streaming: bool
    descriptor: CallDescriptor | None = None
    message_id: str | None = None


@runtime_checkable
class ArtifactHandler(Protocol):
    """Turns call arguments into markup for one tool function."""

    function_name: str

    async def produce_markup(self, arguments: Mapping[str, Any], context: DispatchContext) -> str:
        ...


@dataclass(slots=True)
class HandlerRegistration:
    function_name: str
    handler: ArtifactHandler
    enabled: bool = True
    description: str = ""


class HandlerRegistry:
    """String-keyed table of artifact handlers.

    Example::

        registry = HandlerRegistry()
        registry.register(InteractiveButtonHandler())
        registry.get("interactive_button")
    """

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerRegistration] = {}

    def register(
        self,
        handler: ArtifactHandler,
        *,
        function_name: str | None = None,
        description: str = "",
        enabled: bool = True,
        replace: bool = False,
    ) -> HandlerRegistration:
        """Register ``handler`` under ``function_name`` (default: ``handler.function_name``).

        Raises:
            ValueError: if the name is empty, or already taken and ``replace`` is false.
        """

        name = function_name or getattr(handler, "function_name", None)
        if not name:
            raise ValueError("handler has no function name")
        if name in self._handlers and not replace:
            raise ValueError(f"a handler for {name!r} is already registered")
        registration = HandlerRegistration(
            function_name=name,
            handler=handler,
            enabled=enabled,
            description=description or _summary(handler),
        )
        self._handlers[name] = registration
        LOGGER.debug("Registered handler for %s (%s)", name, type(handler).__name__)
        return registration

    def unregister(self, function_name: str) -> bool:
        removed = self._handlers.pop(function_name, None) is not None
        if removed:
            LOGGER.debug("Unregistered handler for %s", function_name)
        return removed

    def get(self, function_name: str | None) -> ArtifactHandler | None:
        if not function_name:
            return None
        registration = self._handlers.get(function_name)
        if registration is None or not registration.enabled:
            return None
        return registration.handler

    def set_enabled(self, function_name: str, enabled: bool) -> bool:
        registration = self._handlers.get(function_name)
        if registration is None:
            return False
        registration.enabled = enabled
        return True

    def names(self, *, enabled_only: bool = True) -> list[str]:
        return sorted(name for name, reg in self._handlers.items() if reg.enabled or not enabled_only)

    def __contains__(self, function_name: object) -> bool:
        return function_name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def _summary(handler: object) -> str:
    lines = (type(handler).__doc__ or "").strip().splitlines()
    return lines[0] if lines else ""


__all__ = ["ArtifactHandler", "DispatchContext", "HandlerRegistration", "HandlerRegistry"]
