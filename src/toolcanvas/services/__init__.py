"""Settings, backend protocols and the bundled HTTP backends."""

from .backends import (
    BackendSet,
    ComputeBackend,
    DiagramBackend,
    ParseBackend,
    StructuredDiagramBackend,
    TypesetBackend,
    resolve,
)
from .kroki import KrokiDiagramBackend
from .settings import RenderSettings, SettingsStore, load_settings
from .wolfram import WolframAlphaBackend

__all__ = [
    "BackendSet",
    "ComputeBackend",
    "DiagramBackend",
    "KrokiDiagramBackend",
    "ParseBackend",
    "RenderSettings",
    "SettingsStore",
    "StructuredDiagramBackend",
    "TypesetBackend",
    "WolframAlphaBackend",
    "load_settings",
    "resolve",
]
