"""Chat-message level pipeline: markdown, tool code and streaming."""

from .messages import MessageRenderer, build_markdown
from .streaming import MessageStreamState, StreamingCoordinator
from .tool_code import ToolCodeProcessor

__all__ = [
    "MessageRenderer",
    "MessageStreamState",
    "StreamingCoordinator",
    "ToolCodeProcessor",
    "build_markdown",
]
