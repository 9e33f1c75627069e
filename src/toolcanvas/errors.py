"""Error taxonomy for the tool-call rendering pipeline.

Every failure the pipeline can surface inline is one of these dataclass
exceptions, so views can show a stable ``error_code`` next to the message and
observers can serialize them with :meth:`ToolCanvasError.to_dict`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Machine-readable identifiers attached to pipeline errors."""

    PARSE_FAILURE = "parse_failure"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    RENDER_FAILURE = "render_failure"
    TRANSPORT_FAILURE = "transport_failure"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolCanvasError(Exception):
    """Base class for errors raised while interpreting or rendering tool calls.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable description shown in inline error panels.
        details: Additional structured information for logs and observers.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "severity": self.severity,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Pipeline Errors
# -----------------------------------------------------------------------------

@dataclass
class ParseFailure(ToolCanvasError):
    """The parse tree does not describe a recognizable call.

    Non-fatal: callers fall back to a generic tree display.
    """

    error_code: str = field(default=ErrorCode.PARSE_FAILURE)
    message: str = field(default="Tool call could not be interpreted")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "warning"


@dataclass
class BackendUnavailable(ToolCanvasError):
    """A rendering or compute backend has not been installed yet."""

    error_code: str = field(default=ErrorCode.BACKEND_UNAVAILABLE)
    message: str = field(default="Rendering backend is not available")
    details: dict[str, Any] = field(default_factory=dict)
    backend: str = ""

    def __post_init__(self) -> None:
        if self.backend:
            self.details.setdefault("backend", self.backend)
        super().__post_init__()


@dataclass
class RenderFailure(ToolCanvasError):
    """A single artifact could not be rendered by its backend."""

    error_code: str = field(default=ErrorCode.RENDER_FAILURE)
    message: str = field(default="Rendering failed")
    details: dict[str, Any] = field(default_factory=dict)
    kind: str = ""
    placeholder_id: str = ""

    def __post_init__(self) -> None:
        if self.kind:
            self.details.setdefault("kind", self.kind)
        if self.placeholder_id:
            self.details.setdefault("placeholder_id", self.placeholder_id)
        super().__post_init__()


@dataclass
class TransportFailure(ToolCanvasError):
    """A parse or compute request was rejected or never reached its service."""

    error_code: str = field(default=ErrorCode.TRANSPORT_FAILURE)
    message: str = field(default="Request failed")
    details: dict[str, Any] = field(default_factory=dict)
    operation: str = ""

    def __post_init__(self) -> None:
        if self.operation:
            self.details.setdefault("operation", self.operation)
        super().__post_init__()


def describe_error(exc: BaseException) -> str:
    """Return the text shown to users for ``exc``.

    Pipeline errors contribute their bare message; anything else falls back to
    ``str(exc)`` or the exception class name when the message is empty.
    """

    if isinstance(exc, ToolCanvasError):
        return exc.message
    text = str(exc).strip()
    return text or type(exc).__name__


__all__ = [
    "ErrorCode",
    "ToolCanvasError",
    "ParseFailure",
    "BackendUnavailable",
    "RenderFailure",
    "TransportFailure",
    "describe_error",
]
