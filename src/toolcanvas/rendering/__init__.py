"""Artifact rendering: kinds, placeholder state, sweeps, retries and affordances."""

from .binder import InteractionBinder
from .engine import RenderEngine
from .kinds import DEFAULT_KINDS, HTML, KATEX, MERMAID, PINTORA, TYPST, ArtifactKind, ArtifactRenderer
from .scheduler import PendingRetry, RetryScheduler
from .state import PlaceholderRecord, PlaceholderState, PlaceholderStateTable

__all__ = [
    "ArtifactKind",
    "ArtifactRenderer",
    "DEFAULT_KINDS",
    "HTML",
    "InteractionBinder",
    "KATEX",
    "MERMAID",
    "PINTORA",
    "PendingRetry",
    "PlaceholderRecord",
    "PlaceholderState",
    "PlaceholderStateTable",
    "RenderEngine",
    "RetryScheduler",
    "TYPST",
]
