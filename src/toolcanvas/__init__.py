"""Render tool calls embedded in chat messages into live, interactive artifacts."""

from .pipeline import ToolCanvas
from .session import RenderSession

__version__ = "0.1.0"

__all__ = ["RenderSession", "ToolCanvas", "__version__"]
