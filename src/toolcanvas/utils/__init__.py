"""Utility helpers for toolcanvas."""

from .encoding import decode_payload, encode_payload, escape_html
from .logging import setup_logging

__all__ = [
    "decode_payload",
    "encode_payload",
    "escape_html",
    "setup_logging",
]
