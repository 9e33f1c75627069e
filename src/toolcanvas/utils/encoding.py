"""Payload encoding helpers for values stored in document attributes."""

from __future__ import annotations

import html
from urllib.parse import quote, unquote

__all__ = ["encode_payload", "decode_payload", "escape_html"]

# Characters left untouched by ``encodeURIComponent`` besides alphanumerics and "-_.~".
_URI_COMPONENT_SAFE = "!*'()"


def encode_payload(text: str) -> str:
    """Percent-encode ``text`` so it survives as an attribute value."""

    return quote(text or "", safe=_URI_COMPONENT_SAFE)


def decode_payload(encoded: str | None) -> str:
    """Reverse :func:`encode_payload`.

    Raises:
        UnicodeDecodeError: when the escapes do not form valid UTF-8.
    """

    if not encoded:
        return ""
    return unquote(encoded, encoding="utf-8", errors="strict")


def escape_html(text: object) -> str:
    return html.escape("" if text is None else str(text), quote=True)
