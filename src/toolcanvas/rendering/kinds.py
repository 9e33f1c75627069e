"""Artifact kinds and the adapters that drive their rendering backends."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, Protocol

from bs4 import BeautifulSoup

from ..errors import BackendUnavailable, RenderFailure, describe_error
from ..services.backends import resolve
from ..utils.encoding import escape_html
from .markup import PLACEHOLDER_CLASS

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


class ArtifactRenderer(Protocol):
    """Adapter between a render engine and one backend of the session."""

    def ensure_ready(self) -> None:
        """Raise :class:`BackendUnavailable` when the backend is not installed."""

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        """Return markup for ``source``; raise on failure."""


RendererFactory = Callable[["RenderSession"], ArtifactRenderer]


@dataclass(frozen=True, slots=True)
class ArtifactKind:
    """Static description of one renderable artifact type.

    Attributes:
        name: Short kind tag stored in ``data-artifact-kind``.
        function_name: Tool function that produces this kind.
        source_argument: Call argument holding the source text.
        title: Default header title.
        renderer_factory: Builds the backend adapter for a session.
        expandable: Whether rendered artifacts get zoom and click-to-expand.
        title_argument: Optional call argument overriding ``title``.
        option_defaults: Extra call arguments persisted on the placeholder.
    """

    name: str
    function_name: str
    source_argument: str
    title: str
    renderer_factory: RendererFactory
    expandable: bool = True
    title_argument: str | None = None
    option_defaults: Mapping[str, str] = field(default_factory=dict)

    @property
    def selector(self) -> str:
        return f'.{PLACEHOLDER_CLASS}[data-artifact-kind="{self.name}"]'

    @property
    def pending_selector(self) -> str:
        return f"{self.selector}:not(.loaded)"

    def build_renderer(self, session: RenderSession) -> ArtifactRenderer:
        return self.renderer_factory(session)


# ----------------------------------------------------------------------
# Renderers
# ----------------------------------------------------------------------

class _BackendRenderer:
    backend_attr = ""

    def __init__(self, session: RenderSession) -> None:
        self._session = session

    @property
    def backend(self) -> Any:
        return getattr(self._session.backends, self.backend_attr, None)

    def ensure_ready(self) -> None:
        if self.backend is None:
            raise BackendUnavailable(
                message=f"The {self.backend_attr.replace('_', ' ')} backend is not initialized",
                backend=self.backend_attr,
            )


class DiagramLayoutRenderer(_BackendRenderer):
    """Mermaid-style backends: ``render(id, source) -> {"svg": ...}``."""

    backend_attr = "diagram"

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        self.ensure_ready()
        result = await resolve(self.backend.render(f"{placeholder_id}-svg", source))
        svg = result.get("svg") if isinstance(result, Mapping) else getattr(result, "svg", result)
        if not isinstance(svg, str) or not svg.strip():
            raise RenderFailure(message="Diagram backend returned no SVG", kind="mermaid", placeholder_id=placeholder_id)
        return svg


class StructuredDiagramRenderer(_BackendRenderer):
    """Pintora-style backends that draw into a container and report errors by callback."""

    backend_attr = "structured_diagram"

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        self.ensure_ready()
        scratch = BeautifulSoup('<div class="pintora"></div>', "html.parser").div
        errors: list[Any] = []
        config = {"themeConfig": {"theme": "dark" if self._session.settings.dark_mode else "default"}}
        await resolve(self.backend.render_to(source, container=scratch, config=config, on_error=errors.append))
        if errors:
            first = errors[0]
            message = first if isinstance(first, str) else getattr(first, "message", None) or describe_error(first)
            raise RenderFailure(message=str(message), kind="pintora", placeholder_id=placeholder_id)
        if not scratch.contents:
            raise RenderFailure(message="Diagram backend produced no output", kind="pintora", placeholder_id=placeholder_id)
        return f'<div class="pintora-rendered-content">{scratch}</div>'


class TypesetRenderer(_BackendRenderer):
    """Typst documents compiled to SVG with a page preamble matching the theme."""

    backend_attr = "typeset"

    def preamble(self) -> str:
        dark = self._session.settings.dark_mode
        background = "#1a1a1a" if dark else "#ffffff"
        text = "#ffffff" if dark else "#000000"
        return (
            f'#set page(width: auto, height: auto, fill: rgb("{background}"))\n'
            f'#set text(size: 16pt, fill: rgb("{text}"))\n\n'
        )

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        self.ensure_ready()
        svg = await resolve(self.backend.to_svg(self.preamble() + source))
        if not isinstance(svg, str) or not svg.strip():
            raise RenderFailure(message="Typesetter returned no SVG", kind="typst", placeholder_id=placeholder_id)
        return f'<div class="typst-rendered-content">{svg}</div>'


class MathRenderer(_BackendRenderer):
    backend_attr = "math"

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        self.ensure_ready()
        rendered = await resolve(self.backend.to_svg(source))
        if not isinstance(rendered, str) or not rendered.strip():
            raise RenderFailure(message="Math backend returned nothing", kind="katex", placeholder_id=placeholder_id)
        return f'<div class="katex-rendered-content"><div class="katex-wrapper">{rendered}</div></div>'


_HTML_TAG_PATTERN = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)

_SANDBOX_STYLE = (
    "html, body { margin: 0; padding: 10px; font-family: system-ui, -apple-system, sans-serif; "
    "color: #333; background-color: white; width: 100%; height: auto; overflow: visible; } "
    "* { box-sizing: border-box; } img, video { max-width: 100%; height: auto; } "
    "pre { overflow-x: auto; background-color: #f5f5f5; padding: 10px; border-radius: 5px; } "
    "table { border-collapse: collapse; min-width: 100%; }"
)


class SandboxRenderer:
    """Builds an isolated ``iframe`` document; needs no external backend."""

    def __init__(self, session: RenderSession) -> None:
        self._session = session

    def ensure_ready(self) -> None:
        return None

    async def render(self, placeholder_id: str, source: str, options: Mapping[str, str]) -> str:
        return sandbox_iframe(source, width=options.get("width", "100%"), height=options.get("height", "auto"))


def sandbox_iframe(content: str, *, width: str = "100%", height: str = "auto") -> str:
    body = content
    if not _HTML_TAG_PATTERN.search(body):
        body = (
            '<div style="white-space: pre-wrap; font-family: system-ui, -apple-system, sans-serif;">'
            f"{escape_html(body)}</div>"
        )
    document = (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f'<base target="_blank"><style>{_SANDBOX_STYLE}</style></head>'
        f"<body>{body}</body></html>"
    )
    style = f"width: {width}; border: none; overflow: auto;"
    if height and height != "auto":
        style += f" height: {height};"
    return (
        f'<iframe class="html-iframe" sandbox="allow-scripts" style="{escape_html(style)}" '
        f'title="Isolated HTML content" srcdoc="{escape_html(document)}"></iframe>'
    )


# ----------------------------------------------------------------------
# Built-in kinds
# ----------------------------------------------------------------------

MERMAID = ArtifactKind(
    name="mermaid",
    function_name="mermaid_render",
    source_argument="mermaid_code",
    title="Mermaid diagram",
    renderer_factory=DiagramLayoutRenderer,
)
PINTORA = ArtifactKind(
    name="pintora",
    function_name="pintora_render",
    source_argument="diagram",
    title="Pintora diagram",
    renderer_factory=StructuredDiagramRenderer,
)
TYPST = ArtifactKind(
    name="typst",
    function_name="typst_render",
    source_argument="typst_code",
    title="Typst document",
    renderer_factory=TypesetRenderer,
)
KATEX = ArtifactKind(
    name="katex",
    function_name="katex_render",
    source_argument="katex_code",
    title="KaTeX formula",
    renderer_factory=MathRenderer,
)
HTML = ArtifactKind(
    name="html",
    function_name="html_render",
    source_argument="html",
    title="HTML content",
    renderer_factory=SandboxRenderer,
    expandable=False,
    title_argument="title",
    option_defaults={"width": "100%", "height": "auto"},
)

DEFAULT_KINDS: tuple[ArtifactKind, ...] = (MERMAID, PINTORA, TYPST, KATEX, HTML)


__all__ = [
    "ArtifactKind",
    "ArtifactRenderer",
    "DEFAULT_KINDS",
    "DiagramLayoutRenderer",
    "HTML",
    "KATEX",
    "MERMAID",
    "MathRenderer",
    "PINTORA",
    "SandboxRenderer",
    "StructuredDiagramRenderer",
    "TYPST",
    "TypesetRenderer",
    "sandbox_iframe",
]
