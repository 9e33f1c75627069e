"""Refresh, zoom and click-to-expand affordances for rendered artifacts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bs4 import Tag

from ..document import DomEvent, add_class, closest, has_class, remove_class, select_within
from ..events import OpenViewerRequested
from ..utils.encoding import decode_payload
from .state import ERROR_CLASS, LOADED_CLASS, PAYLOAD_ATTR

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from .engine import RenderEngine

LOGGER = logging.getLogger(__name__)

REFRESH_BUTTON_CLASS = "refresh-artifact-button"
ZOOM_BUTTON_CLASS = "zoom-artifact-button"
CLICKABLE_CLASS = "clickable-container"
CLICK_MARKER_ATTR = "data-has-click-listener"

_REFRESH_KEY = "artifact-refresh"
_ZOOM_KEY = "artifact-zoom"
_EXPAND_KEY = "artifact-expand"

_REFRESH_BUTTON = (
    f'<button class="{REFRESH_BUTTON_CLASS}" type="button" title="Re-render">'
    '<svg xmlns="http://www.w3.org/2000/svg" width="14" height="14" viewBox="0 0 24 24" fill="none" '
    'stroke="currentColor" stroke-width="2"><path d="M21 12a9 9 0 1 1-3-6.7L21 8"></path>'
    '<path d="M21 3v5h-5"></path></svg></button>'
)
_ZOOM_BUTTON = (
    f'<button class="{ZOOM_BUTTON_CLASS}" type="button" title="Open in viewer">'
    '<svg xmlns="http://www.w3.org/2000/svg" width="14" height="14" viewBox="0 0 24 24" fill="none" '
    'stroke="currentColor" stroke-width="2"><circle cx="11" cy="11" r="8"></circle>'
    '<path d="m21 21-4.3-4.3"></path><path d="M11 8v6"></path><path d="M8 11h6"></path></svg></button>'
)
_AFFORDANCE_SELECTOR = f".{REFRESH_BUTTON_CLASS}, .{ZOOM_BUTTON_CLASS}"


class InteractionBinder:
    """Keeps the affordances of one engine's placeholders in sync with their state.

    Every call converges on the same set: one refresh button per placeholder,
    plus a zoom button and an expand listener when the artifact rendered
    cleanly and its kind is expandable.
    """

    def __init__(self, engine: RenderEngine) -> None:
        self._engine = engine

    @property
    def _document(self):
        return self._engine.session.document

    def bind_interactions(self, container: Tag) -> None:
        try:
            for placeholder in select_within(container, self._engine.kind.selector):
                self._bind_one(placeholder, container)
        except Exception:
            LOGGER.exception("Binding %s interactions failed", self._engine.kind.name)

    def _bind_one(self, placeholder: Tag, container: Tag) -> None:
        self._ensure_refresh_button(placeholder, container)
        if self._engine.kind.expandable and is_rendered_cleanly(placeholder):
            self._ensure_zoom_button(placeholder)
            self._ensure_expand_listener(placeholder)
        else:
            self._strip_expand_affordances(placeholder)

    def _ensure_refresh_button(self, placeholder: Tag, container: Tag) -> None:
        buttons = placeholder.find_all("button", class_=REFRESH_BUTTON_CLASS, recursive=False)
        for extra in buttons[1:]:
            self._document.remove(extra)
        button = buttons[0] if buttons else None
        if button is None:
            button = self._document.create_element(_REFRESH_BUTTON)
            placeholder.append(button)

        async def _on_refresh(event: DomEvent) -> None:
            event.prevent_default()
            event.stop_propagation()
            target = closest(event.current_target, self._engine.kind.selector)
            if target is not None:
                await self._engine.refresh(target, container)

        self._document.add_listener(button, "click", _on_refresh, key=_REFRESH_KEY)

    def _ensure_zoom_button(self, placeholder: Tag) -> None:
        buttons = placeholder.find_all("button", class_=ZOOM_BUTTON_CLASS, recursive=False)
        for extra in buttons[1:]:
            self._document.remove(extra)
        button = buttons[0] if buttons else None
        if button is None:
            button = self._document.create_element(_ZOOM_BUTTON)
            placeholder.append(button)

        def _on_zoom(event: DomEvent) -> None:
            event.prevent_default()
            event.stop_propagation()
            self._open_viewer(placeholder)

        self._document.add_listener(button, "click", _on_zoom, key=_ZOOM_KEY)

    def _ensure_expand_listener(self, placeholder: Tag) -> None:
        add_class(placeholder, CLICKABLE_CLASS)
        if placeholder.has_attr(CLICK_MARKER_ATTR) and self._document.has_listener(placeholder, "click", _EXPAND_KEY):
            return

        def _on_click(event: DomEvent) -> None:
            if closest(event.target, _AFFORDANCE_SELECTOR) is not None:
                return
            self._open_viewer(placeholder)

        self._document.add_listener(placeholder, "click", _on_click, key=_EXPAND_KEY)
        placeholder[CLICK_MARKER_ATTR] = "true"

    def _strip_expand_affordances(self, placeholder: Tag) -> None:
        for button in placeholder.find_all("button", class_=ZOOM_BUTTON_CLASS, recursive=False):
            self._document.remove(button)
        self._document.remove_listener(placeholder, "click", _EXPAND_KEY)
        if placeholder.has_attr(CLICK_MARKER_ATTR):
            del placeholder[CLICK_MARKER_ATTR]
        remove_class(placeholder, CLICKABLE_CLASS)

    def _open_viewer(self, placeholder: Tag) -> None:
        try:
            raw_source = decode_payload(placeholder.get(PAYLOAD_ATTR))
        except UnicodeDecodeError:
            raw_source = placeholder.get(PAYLOAD_ATTR) or ""
        self._engine.session.bus.publish(
            OpenViewerRequested(
                rendered_markup=rendered_markup(placeholder),
                raw_source=raw_source,
                kind=self._engine.kind.name,
            )
        )


def is_rendered_cleanly(placeholder: Tag) -> bool:
    """Loaded, free of error panels, and holding rendered content."""

    if not has_class(placeholder, LOADED_CLASS):
        return False
    if placeholder.find(class_=ERROR_CLASS) is not None:
        return False
    return bool(rendered_markup(placeholder).strip())


def rendered_markup(placeholder: Tag) -> str:
    svg = placeholder.find("svg")
    if svg is not None and closest(svg, "button") is None:
        return str(svg)
    parts = [
        str(child)
        for child in placeholder.children
        if not (isinstance(child, Tag) and child.name == "button")
    ]
    return "".join(parts)


__all__ = [
    "CLICKABLE_CLASS",
    "CLICK_MARKER_ATTR",
    "InteractionBinder",
    "REFRESH_BUTTON_CLASS",
    "ZOOM_BUTTON_CLASS",
    "is_rendered_cleanly",
    "rendered_markup",
]
