"""Per-kind render engine: sweeps, bounded retries, inline renders and refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Mapping

from bs4 import Tag

from ..document import select_within
from ..errors import RenderFailure, describe_error
from ..events import ArtifactFailed, ArtifactRendered
from ..utils.encoding import decode_payload
from .binder import InteractionBinder
from .kinds import ArtifactKind, ArtifactRenderer
from .markup import error_panel, loading_notice, options_from_element
from .state import ID_ATTR, PlaceholderRecord, PlaceholderState

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..session import RenderSession

LOGGER = logging.getLogger(__name__)


class RenderEngine:
    """Renders every placeholder of one :class:`ArtifactKind` inside a container.

    A sweep selects placeholders that are not loaded, skips those whose payload
    matches their last render or that another sweep is already rendering, and
    renders the rest concurrently. Failures are retried at pass granularity
    through the session's :class:`~toolcanvas.rendering.scheduler.RetryScheduler`;
    once a sweep succeeds or runs out of retries the interaction binder runs.
    """

    def __init__(
        self,
        kind: ArtifactKind,
        session: RenderSession,
        *,
        renderer: ArtifactRenderer | None = None,
    ) -> None:
        self.kind = kind
        self.session = session
        self.renderer = renderer or kind.build_renderer(session)
        self.binder = InteractionBinder(self)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    async def render_all(
        self,
        container: Tag | None = None,
        retry_count: int = 0,
        max_retries: int | None = None,
    ) -> None:
        scope = container if container is not None else self.session.document.body
        limit = self.session.settings.max_retries if max_retries is None else max_retries
        try:
            self.renderer.ensure_ready()
            jobs = []
            for element in select_within(scope, self.kind.pending_selector):
                record = self.session.states.hydrate(element)
                if record is None:
                    LOGGER.warning("Skipping %s placeholder without id or kind attributes", self.kind.name)
                    continue
                if record.state is PlaceholderState.LOADING:
                    LOGGER.debug("Placeholder %s is already rendering", record.placeholder_id)
                    continue
                if record.last_rendered is not None and record.last_rendered == record.payload:
                    LOGGER.debug("Placeholder %s unchanged since last render", record.placeholder_id)
                    continue
                self.session.states.mark_loading(element, record)
                self.session.document.set_inner_html(element, loading_notice(self.kind.title))
                jobs.append(self._render_one(element, record))

            if not jobs:
                self.bind_interactions(scope)
                return

            LOGGER.debug(
                "Rendering %d %s placeholder(s), attempt %d/%d",
                len(jobs),
                self.kind.name,
                retry_count,
                limit,
            )
            results = await asyncio.gather(*jobs)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error(
                "%s sweep failed before rendering (attempt %d/%d): %s",
                self.kind.name,
                retry_count,
                limit,
                describe_error(exc),
            )
            if retry_count < limit:
                self._schedule_retry(scope, retry_count + 1, limit, ())
            else:
                self._surface_failure(scope, describe_error(exc))
                self.bind_interactions(scope)
            return

        failed = [placeholder_id for placeholder_id, ok in results if not ok]
        if failed and retry_count < limit:
            LOGGER.info(
                "%d %s placeholder(s) failed; retrying (%d/%d)",
                len(failed),
                self.kind.name,
                retry_count + 1,
                limit,
            )
            self._schedule_retry(scope, retry_count + 1, limit, failed)
            return
        if failed:
            LOGGER.warning("%d %s placeholder(s) still failing after %d retries", len(failed), self.kind.name, limit)
        self.bind_interactions(scope)

    async def render_inline(
        self,
        placeholder_id: str,
        source: str,
        options: Mapping[str, str] | None = None,
    ) -> tuple[str, bool]:
        """Render ``source`` once, outside any sweep.

        Returns the markup to place inside the placeholder and whether it
        succeeded. Failures come back as an error panel, never as exceptions.
        """

        try:
            self.renderer.ensure_ready()
            if not source.strip():
                raise RenderFailure(message="Source is empty", kind=self.kind.name, placeholder_id=placeholder_id)
            markup = await self.renderer.render(placeholder_id, source, dict(options or {}))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Inline %s render of %s failed: %s", self.kind.name, placeholder_id, describe_error(exc))
            return error_panel(self.kind.title, describe_error(exc), source), False
        return markup, True

    async def refresh(self, placeholder: Tag, container: Tag | None = None) -> None:
        """Force one placeholder to render again, then sweep ``container``."""

        placeholder_id = placeholder.get(ID_ATTR)
        record = self.session.states.get(placeholder_id) if placeholder_id else None
        if record is not None and record.state is PlaceholderState.LOADING:
            self.session.notify(f"{self.kind.title} is already rendering", "info")
            return
        if placeholder_id:
            self.session.scheduler.discard(placeholder_id)
        self.session.states.reset(placeholder)
        self.session.notify(f"Refreshing {self.kind.title}...", "info")
        await asyncio.sleep(self.session.settings.refresh_delay)
        await self.render_all(container, 0, self.session.settings.max_retries)

    def bind_interactions(self, container: Tag | None = None) -> None:
        self.binder.bind_interactions(container if container is not None else self.session.document.body)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _render_one(self, element: Tag, record: PlaceholderRecord) -> tuple[str, bool]:
        placeholder_id = record.placeholder_id
        source = record.payload
        try:
            source = decode_payload(record.payload)
            if not source.strip():
                raise RenderFailure(
                    message="Decoded content is empty",
                    kind=self.kind.name,
                    placeholder_id=placeholder_id,
                )
            markup = await self.renderer.render(placeholder_id, source, options_from_element(element.attrs))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error_text = describe_error(exc)
            LOGGER.warning("Rendering %s %s failed: %s", self.kind.name, placeholder_id, error_text)
            self.session.document.set_inner_html(element, error_panel(self.kind.title, error_text, source))
            self.session.states.mark_failed(element, record, error_text)
            self.session.bus.publish(ArtifactFailed(kind=self.kind.name, placeholder_id=placeholder_id, error=error_text))
            return placeholder_id, False

        self.session.document.set_inner_html(element, markup)
        self.session.states.mark_loaded(element, record)
        self.session.bus.publish(ArtifactRendered(kind=self.kind.name, placeholder_id=placeholder_id))
        return placeholder_id, True

    def _surface_failure(self, scope: Tag, error_text: str) -> None:
        """Show a sweep-level failure inside every placeholder the sweep could not reach."""

        for element in select_within(scope, self.kind.pending_selector):
            record = self.session.states.hydrate(element)
            if record is None or record.state is PlaceholderState.LOADING:
                continue
            try:
                source = decode_payload(record.payload)
            except UnicodeDecodeError:
                source = record.payload
            self.session.document.set_inner_html(element, error_panel(self.kind.title, error_text, source))
            self.session.states.mark_failed(element, record, error_text)
            self.session.bus.publish(
                ArtifactFailed(kind=self.kind.name, placeholder_id=record.placeholder_id, error=error_text)
            )

    def _schedule_retry(self, container: Tag, retry_count: int, limit: int, placeholder_ids) -> None:
        async def _retry() -> None:
            await self.render_all(container, retry_count, limit)

        self.session.scheduler.schedule(
            f"{self.kind.name}:{id(container)}",
            self.session.settings.retry_delay,
            _retry,
            placeholder_ids=placeholder_ids,
            attempt=retry_count,
        )


__all__ = ["RenderEngine"]
