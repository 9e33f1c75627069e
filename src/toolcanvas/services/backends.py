"""Boundary protocols for the external collaborators of a render session.

Every method may be synchronous or return an awaitable; callers go through
:func:`resolve` so simple in-process stubs and network clients both fit.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")

ComputeItem = Mapping[str, Any]
ComputeResult = Sequence[ComputeItem]


@runtime_checkable
class ParseBackend(Protocol):
    """Turns tool-code source into a JSON parse tree."""

    def parse_code(self, source: str) -> Awaitable[str | Mapping[str, Any]] | str | Mapping[str, Any]:
        ...


@runtime_checkable
class DiagramBackend(Protocol):
    """Lays out a diagram and returns ``{"svg": markup}``; raises on invalid source."""

    def render(self, diagram_id: str, source: str) -> Any:
        ...


@runtime_checkable
class StructuredDiagramBackend(Protocol):
    """Renders into ``container`` and reports problems through ``on_error``."""

    def render_to(
        self,
        source: str,
        *,
        container: Any,
        config: Mapping[str, Any],
        on_error: Callable[[Any], None],
    ) -> Any:
        ...


@runtime_checkable
class TypesetBackend(Protocol):
    """Compiles markup into an SVG string; raises on invalid markup."""

    def to_svg(self, source: str) -> Any:
        ...


@runtime_checkable
class ComputeBackend(Protocol):
    """Answers a natural-language computation query."""

    def compute(self, query: str, image_only: bool, format: str) -> Any:
        ...


@dataclass(slots=True)
class BackendSet:
    """Backends available to a session. Missing entries surface as ``BackendUnavailable``."""

    parser: ParseBackend | None = None
    diagram: DiagramBackend | None = None
    structured_diagram: StructuredDiagramBackend | None = None
    typeset: TypesetBackend | None = None
    math: TypesetBackend | None = None
    compute: ComputeBackend | None = None

    async def aclose(self) -> None:
        """Close every backend that owns network resources."""

        seen: set[int] = set()
        for backend in (self.parser, self.diagram, self.structured_diagram, self.typeset, self.math, self.compute):
            if backend is None or id(backend) in seen:
                continue
            seen.add(id(backend))
            closer = getattr(backend, "aclose", None)
            if callable(closer):
                await resolve(closer())


async def resolve(value: Awaitable[T] | T) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


__all__ = [
    "BackendSet",
    "ComputeBackend",
    "ComputeItem",
    "ComputeResult",
    "DiagramBackend",
    "ParseBackend",
    "StructuredDiagramBackend",
    "TypesetBackend",
    "resolve",
]
