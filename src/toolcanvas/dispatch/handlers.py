"""Artifact handlers for rendered kinds and interactive command buttons."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from ..rendering import markup
from ..rendering.engine import RenderEngine
from ..utils.encoding import encode_payload, escape_html
from .interactions import COMMAND_ATTR, COMMAND_BUTTON_CLASS, ensure_delegated_handlers
from .registry import DispatchContext

LOGGER = logging.getLogger(__name__)


def new_placeholder_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def argument_text(arguments: Mapping[str, Any], name: str | None, default: str = "") -> str:
    if not name:
        return default
    value = arguments.get(name)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


class RenderedArtifactHandler:
    """Produces a placeholder for one :class:`~toolcanvas.rendering.ArtifactKind`.

    Outside streaming the source renders inline, so the placeholder arrives
    either loaded or holding an error panel. While streaming it arrives
    unloaded with a deferred notice and no backend is touched; the completion
    sweep renders it later.
    """

    def __init__(self, engine: RenderEngine) -> None:
        self.engine = engine
        self.kind = engine.kind
        self.function_name = engine.kind.function_name

    async def produce_markup(self, arguments: Mapping[str, Any], context: DispatchContext) -> str:
        kind = self.kind
        source = argument_text(arguments, kind.source_argument)
        title = argument_text(arguments, kind.title_argument, kind.title)
        options = {
            name: argument_text(arguments, name, default)
            for name, default in kind.option_defaults.items()
        }
        placeholder_id = new_placeholder_id(kind.name)
        payload = encode_payload(source)
        states = context.session.states

        if context.streaming or not source.strip():
            body = markup.loading_notice(title, deferred=context.streaming)
            states.register(placeholder_id, kind.name, payload)
            loaded = False
        else:
            body, loaded = await self.engine.render_inline(placeholder_id, source, options)
            states.record_inline(
                placeholder_id,
                kind.name,
                payload,
                ok=loaded,
                error=None if loaded else "inline render failed",
            )

        LOGGER.debug(
            "%s placeholder %s produced (streaming=%s, loaded=%s)",
            kind.name,
            placeholder_id,
            context.streaming,
            loaded,
        )
        placeholder = markup.placeholder(
            kind.name,
            placeholder_id,
            payload,
            body,
            loaded=loaded,
            options=options,
        )
        return markup.artifact_frame(
            kind.name,
            title,
            placeholder,
            source,
            frame_id=f"{placeholder_id}-frame",
        )


class InteractiveButtonHandler:
    """Button that posts a predefined command to the chat when clicked."""

    function_name = "interactive_button"
    default_label = "Click to send"

    async def produce_markup(self, arguments: Mapping[str, Any], context: DispatchContext) -> str:
        label = argument_text(arguments, "message", self.default_label)
        command = argument_text(arguments, "command")
        ensure_delegated_handlers(context.session)
        button_id = new_placeholder_id("interactive-button")
        return (
            '<div class="special-api-call interactive-button-api-call">'
            '<div class="api-call-header"><span class="api-call-title">Interactive button</span></div>'
            '<div class="interactive-button-container">'
            f'<button id="{button_id}" class="markdown-button {COMMAND_BUTTON_CLASS}" '
            f'{COMMAND_ATTR}="{escape_html(encode_payload(command))}">{escape_html(label)}</button>'
            "</div>"
            '<div class="api-call-footer"><details><summary>View button configuration</summary>'
            f'<pre class="api-call-code"><code>Message: {escape_html(label)}\n'
            f"Command: {escape_html(command)}</code></pre></details></div></div>"
        )


__all__ = ["InteractiveButtonHandler", "RenderedArtifactHandler", "argument_text", "new_placeholder_id"]
