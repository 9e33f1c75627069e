"""Routes interpreted calls to the registered artifact handlers."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from ..errors import describe_error
from ..utils.encoding import escape_html
from .registry import DispatchContext, HandlerRegistry

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..interpreter.call_parser import CallDescriptor
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


class CallDispatcher:
    """Resolve a :class:`CallDescriptor` to handler markup.

    Only calls in the configured namespace are handled. ``None`` means "not
    ours" and callers show a generic view; handler exceptions become an inline
    error fragment and never propagate.
    """

    def __init__(self, registry: HandlerRegistry, session: RenderSession) -> None:
        self.registry = registry
        self.session = session

    @property
    def namespace(self) -> str:
        return self.session.settings.namespace

    def can_handle(self, descriptor: CallDescriptor | None) -> bool:
        return (
            descriptor is not None
            and descriptor.is_valid
            and descriptor.api_name == self.namespace
            and self.registry.get(descriptor.function_name) is not None
        )

    async def dispatch(
        self,
        descriptor: CallDescriptor | None,
        *,
        streaming: bool = False,
        message_id: str | None = None,
    ) -> str | None:
        if descriptor is None or not descriptor.is_valid:
            return None
        if descriptor.api_name != self.namespace:
            LOGGER.debug("Ignoring call in namespace %s", descriptor.api_name)
            return None
        handler = self.registry.get(descriptor.function_name)
        if handler is None:
            LOGGER.debug("No handler registered for %s", descriptor.function_name)
            return None

        context = DispatchContext(
            session=self.session,
            streaming=streaming,
            descriptor=descriptor,
            message_id=message_id,
        )
        try:
            return await handler.produce_markup(descriptor.arguments, context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Handler for %s failed", descriptor.qualified_name)
            return handler_error_view(descriptor, exc)


def handler_error_view(descriptor: CallDescriptor, exc: BaseException) -> str:
    arguments = json.dumps(descriptor.arguments, indent=2, ensure_ascii=False, default=str)
    return (
        '<div class="special-api-call api-call-error">'
        f'<div class="api-call-header"><span class="api-call-title">'
        f"{escape_html(descriptor.qualified_name)} failed</span></div>"
        f'<pre class="error-message">{escape_html(describe_error(exc))}</pre>'
        '<details><summary>View call arguments</summary>'
        f'<pre class="code-content">{escape_html(arguments)}</pre></details></div>'
    )


__all__ = ["CallDispatcher", "handler_error_view"]
