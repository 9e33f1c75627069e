"""Markup builders for artifact frames, placeholders and inline error panels."""

from __future__ import annotations

from typing import Mapping

from ..utils.encoding import escape_html
from .state import (
    ERROR_CLASS,
    ID_ATTR,
    KIND_ATTR,
    LAST_RENDERED_ATTR,
    LOADED_CLASS,
    PAYLOAD_ATTR,
    STATE_ATTR,
)

PLACEHOLDER_CLASS = "artifact-placeholder"
LOADING_CLASS = "artifact-loading"
DEFERRED_CLASS = "artifact-deferred"
OPTION_ATTR_PREFIX = "data-option-"

DEFERRED_NOTICE = "Rendering deferred until the message finishes streaming..."

_ICON = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="16" height="16" viewBox="0 0 24 24" '
    'fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" '
    'stroke-linejoin="round"><rect x="3" y="3" width="18" height="18" rx="2"></rect>'
    '<path d="M7 15l3-3 3 3 4-4"></path></svg>'
)


def loading_notice(title: str, *, deferred: bool = False) -> str:
    if deferred:
        return f'<div class="{LOADING_CLASS} {DEFERRED_CLASS}">{escape_html(DEFERRED_NOTICE)}</div>'
    return f'<div class="{LOADING_CLASS}">Rendering {escape_html(title)}...</div>'


def error_panel(title: str, error_text: str, source: str) -> str:
    """Inline failure view; keeps the original source verbatim for copying."""

    return (
        f'<div class="{ERROR_CLASS}">'
        f"<p>{escape_html(title)} failed to render</p>"
        f'<pre class="error-message">{escape_html(error_text)}</pre>'
        '<div class="artifact-source"><details><summary>View original source</summary>'
        f'<div class="code-container"><pre class="code-content">{escape_html(source)}</pre></div>'
        "</details></div></div>"
    )


def placeholder(
    kind: str,
    placeholder_id: str,
    payload: str,
    body: str,
    *,
    loaded: bool = False,
    options: Mapping[str, str] | None = None,
) -> str:
    classes = f"{PLACEHOLDER_CLASS} {kind}-container" + (f" {LOADED_CLASS}" if loaded else "")
    attributes = [
        f'id="{escape_html(placeholder_id)}"',
        f'class="{classes}"',
        f'{KIND_ATTR}="{escape_html(kind)}"',
        f'{ID_ATTR}="{escape_html(placeholder_id)}"',
        f'{PAYLOAD_ATTR}="{escape_html(payload)}"',
        f'{STATE_ATTR}="{"loaded" if loaded else "pending"}"',
    ]
    if loaded:
        attributes.append(f'{LAST_RENDERED_ATTR}="{escape_html(payload)}"')
    for name, value in (options or {}).items():
        attributes.append(f'{OPTION_ATTR_PREFIX}{escape_html(name)}="{escape_html(value)}"')
    return f"<div {' '.join(attributes)}>{body}</div>"


def artifact_frame(
    kind: str,
    title: str,
    placeholder_markup: str,
    source: str,
    *,
    frame_id: str,
    source_language: str | None = None,
) -> str:
    """Wrap a placeholder with a header and a collapsible source footer."""

    language = source_language or kind
    return (
        f'<div class="special-api-call {kind}-api-call" id="{escape_html(frame_id)}">'
        f'<div class="api-call-header"><span class="api-call-icon">{_ICON}</span>'
        f'<span class="api-call-title">{escape_html(title)}</span></div>'
        f"{placeholder_markup}"
        '<div class="api-call-footer"><details><summary>View source</summary>'
        f'<pre class="api-call-code"><code class="language-{escape_html(language)}">'
        f"{escape_html(source)}</code></pre></details></div></div>"
    )


def options_from_element(attributes: Mapping[str, object]) -> dict[str, str]:
    options: dict[str, str] = {}
    for name, value in attributes.items():
        if name.startswith(OPTION_ATTR_PREFIX) and isinstance(value, str):
            options[name[len(OPTION_ATTR_PREFIX):]] = value
    return options


__all__ = [
    "DEFERRED_CLASS",
    "DEFERRED_NOTICE",
    "LOADING_CLASS",
    "PLACEHOLDER_CLASS",
    "artifact_frame",
    "error_panel",
    "loading_notice",
    "options_from_element",
    "placeholder",
]
