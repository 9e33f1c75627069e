"""Document-level click delegation for command buttons and related-query items.

Both affordances are produced inside tool-code output that is replaced on every
re-render, so a single listener on the document body handles them instead of
per-element bindings.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..document import DomEvent, closest
from ..utils.encoding import decode_payload

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)

COMMAND_BUTTON_CLASS = "interactive-command-button"
COMMAND_ATTR = "data-command"
RELATED_QUERIES_CLASS = "compute-related-queries"
QUERY_ATTR = "data-query"
COMMAND_PREFIX = "> "
RELATED_QUERY_PREFIX = "> wolfram alpha: "
STREAMING_BLOCKED_NOTICE = "Wait for the current message to finish"

_LISTENER_KEY = "delegated-actions"


def ensure_delegated_handlers(session: RenderSession) -> bool:
    """Register the delegated click listener once per session.

    Returns ``True`` when this call performed the registration.
    """

    if session.flags.delegated_clicks_registered:
        return False

    async def _on_click(event: DomEvent) -> None:
        await handle_document_click(session, event)

    session.document.add_listener(session.document.body, "click", _on_click, key=_LISTENER_KEY)
    session.flags.delegated_clicks_registered = True
    LOGGER.debug("Delegated click handler registered")
    return True


async def handle_document_click(session: RenderSession, event: DomEvent) -> None:
    button = closest(event.target, f".{COMMAND_BUTTON_CLASS}")
    if button is not None:
        event.prevent_default()
        if session.is_streaming:
            session.notify(STREAMING_BLOCKED_NOTICE, "error")
            return
        command = _decode(button.get(COMMAND_ATTR))
        if command.strip():
            session.send_message(COMMAND_PREFIX + command)
            session.notify("Command sent", "success")
        return

    item = closest(event.target, f".{RELATED_QUERIES_CLASS} li[{QUERY_ATTR}]")
    if item is not None:
        event.prevent_default()
        if session.is_streaming:
            session.notify(STREAMING_BLOCKED_NOTICE, "error")
            return
        query = _decode(item.get(QUERY_ATTR)).strip()
        if query:
            session.send_message(RELATED_QUERY_PREFIX + query)
            session.notify("Query sent", "success")


def _decode(value: str | None) -> str:
    try:
        return decode_payload(value)
    except UnicodeDecodeError:
        LOGGER.warning("Command attribute is not valid percent-encoding: %r", value)
        return ""


__all__ = [
    "COMMAND_BUTTON_CLASS",
    "RELATED_QUERIES_CLASS",
    "STREAMING_BLOCKED_NOTICE",
    "ensure_delegated_handlers",
    "handle_document_click",
]
