"""Cancelable, delayed re-invocation of render sweeps."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

LOGGER = logging.getLogger(__name__)

RetryCallback = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class PendingRetry:
    """One scheduled sweep, tagged with the placeholder ids it is retrying."""

    key: str
    attempt: int
    placeholder_ids: set[str] = field(default_factory=set)
    task: asyncio.Task[None] | None = None


class RetryScheduler:
    """Owns every retry task of a session.

    One retry may be pending per key (``"<kind>:<container>"``); scheduling the
    same key again supersedes the older one. Discarding a placeholder id removes
    it from every pending retry, and a retry left without ids is canceled.
    Retries that were scheduled without ids (container-level failures) only end
    by firing or by :meth:`cancel`.
    """

    def __init__(self, *, is_alive: Callable[[str], bool] | None = None) -> None:
        self._is_alive = is_alive
        self._pending: dict[str, PendingRetry] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(
        self,
        key: str,
        delay: float,
        callback: RetryCallback,
        *,
        placeholder_ids: Iterable[str] = (),
        attempt: int = 1,
    ) -> PendingRetry:
        previous = self._pending.pop(key, None)
        if previous is not None and previous.task is not None:
            LOGGER.debug("Retry %s superseded by attempt %d", key, attempt)
            previous.task.cancel()

        entry = PendingRetry(key=key, attempt=attempt, placeholder_ids=set(placeholder_ids))
        task = asyncio.get_running_loop().create_task(self._run(entry, max(delay, 0.0), callback))
        entry.task = task
        self._pending[key] = entry
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        LOGGER.debug(
            "Scheduled retry %s (attempt %d) in %.2fs for %d placeholder(s)",
            key,
            attempt,
            delay,
            len(entry.placeholder_ids),
        )
        return entry

    def discard(self, placeholder_id: str) -> None:
        """Stop retrying ``placeholder_id``; cancel retries that have nothing left to do."""

        for key, entry in list(self._pending.items()):
            if placeholder_id not in entry.placeholder_ids:
                continue
            entry.placeholder_ids.discard(placeholder_id)
            if not entry.placeholder_ids:
                self._cancel_entry(key, entry)

    def cancel(self, key: str) -> bool:
        entry = self._pending.get(key)
        if entry is None:
            return False
        self._cancel_entry(key, entry)
        return True

    def cancel_all(self) -> None:
        for key, entry in list(self._pending.items()):
            self._cancel_entry(key, entry)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending(self) -> list[PendingRetry]:
        return list(self._pending.values())

    @property
    def active(self) -> bool:
        return bool(self._tasks)

    async def join(self) -> None:
        """Wait until no retry is pending or running, including retries of retries."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_entry(self, key: str, entry: PendingRetry) -> None:
        if self._pending.get(key) is entry:
            del self._pending[key]
        if entry.task is not None and not entry.task.done():
            entry.task.cancel()
        LOGGER.debug("Canceled retry %s", key)

    async def _run(self, entry: PendingRetry, delay: float, callback: RetryCallback) -> None:
        await asyncio.sleep(delay)
        if self._pending.get(entry.key) is not entry:
            return
        del self._pending[entry.key]

        if entry.placeholder_ids and self._is_alive is not None:
            alive = {pid for pid in entry.placeholder_ids if self._is_alive(pid)}
            if not alive:
                LOGGER.debug("Dropping retry %s; its placeholders left the document", entry.key)
                return
            entry.placeholder_ids = alive
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Retry %s failed", entry.key)


__all__ = ["PendingRetry", "RetryCallback", "RetryScheduler"]
