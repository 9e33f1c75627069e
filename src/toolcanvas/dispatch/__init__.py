"""Call dispatch: handler registry, dispatcher and the built-in handlers."""

from .compute import ComputeHandler
from .dispatcher import CallDispatcher
from .handlers import InteractiveButtonHandler, RenderedArtifactHandler
from .interactions import ensure_delegated_handlers
from .registry import ArtifactHandler, DispatchContext, HandlerRegistration, HandlerRegistry

__all__ = [
    "ArtifactHandler",
    "CallDispatcher",
    "ComputeHandler",
    "DispatchContext",
    "HandlerRegistration",
    "HandlerRegistry",
    "InteractiveButtonHandler",
    "RenderedArtifactHandler",
    "ensure_delegated_handlers",
]
