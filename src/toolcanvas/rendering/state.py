"""Placeholder lifecycle records.

The table is the source of truth while a session runs. Document attributes
(``loaded`` class, ``data-last-rendered``) are its serialization, written on
every transition so a freshly constructed table, or one that meets a
replaced element, can hydrate the record back from the tree.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterator

from bs4 import Tag

from ..document import add_class, has_class, remove_class

LOGGER = logging.getLogger(__name__)

LOADED_CLASS = "loaded"
KIND_ATTR = "data-artifact-kind"
ID_ATTR = "data-artifact-id"
PAYLOAD_ATTR = "data-artifact-payload"
LAST_RENDERED_ATTR = "data-last-rendered"
STATE_ATTR = "data-artifact-state"
ERROR_CLASS = "artifact-error"


class PlaceholderState(enum.Enum):
    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(slots=True)
class PlaceholderRecord:
    """Process-local lifecycle record of one artifact placeholder."""

    placeholder_id: str
    kind: str
    payload: str
    state: PlaceholderState = PlaceholderState.PENDING
    last_rendered: str | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def is_current(self) -> bool:
        """``True`` when the visible content reflects the payload."""

        return self.state is PlaceholderState.LOADED and self.last_rendered == self.payload

    @classmethod
    def from_element(cls, element: Tag) -> PlaceholderRecord | None:
        placeholder_id = element.get(ID_ATTR)
        kind = element.get(KIND_ATTR)
        if not placeholder_id or not kind:
            return None
        if has_class(element, LOADED_CLASS):
            state = PlaceholderState.LOADED
        elif element.find(class_=ERROR_CLASS) is not None:
            state = PlaceholderState.FAILED
        else:
            state = PlaceholderState.PENDING
        return cls(
            placeholder_id=placeholder_id,
            kind=kind,
            payload=element.get(PAYLOAD_ATTR) or "",
            state=state,
            last_rendered=element.get(LAST_RENDERED_ATTR),
        )


class PlaceholderStateTable:
    """Records keyed by placeholder id, shared by every engine of a session."""

    def __init__(self) -> None:
        self._records: dict[str, PlaceholderRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, placeholder_id: object) -> bool:
        return placeholder_id in self._records

    def __iter__(self) -> Iterator[PlaceholderRecord]:
        return iter(list(self._records.values()))

    def get(self, placeholder_id: str) -> PlaceholderRecord | None:
        return self._records.get(placeholder_id)

    def register(self, placeholder_id: str, kind: str, payload: str) -> PlaceholderRecord:
        record = PlaceholderRecord(placeholder_id=placeholder_id, kind=kind, payload=payload)
        self._records[placeholder_id] = record
        return record

    def record_inline(
        self,
        placeholder_id: str,
        kind: str,
        payload: str,
        *,
        ok: bool,
        error: str | None = None,
    ) -> PlaceholderRecord:
        """Store the outcome of a render that happened before the element existed."""

        record = self.register(placeholder_id, kind, payload)
        record.attempts = 1
        if ok:
            record.state = PlaceholderState.LOADED
            record.last_rendered = payload
        else:
            record.state = PlaceholderState.FAILED
            record.error = error
        return record

    def hydrate(self, element: Tag) -> PlaceholderRecord | None:
        """Return the record for ``element``, rebuilding it from attributes when stale.

        A record is stale when it is missing, when its payload differs from the
        element's, or when it claims ``LOADED`` for an element that lost its
        ``loaded`` class (the element was replaced by a fresh render).
        """

        fresh = PlaceholderRecord.from_element(element)
        if fresh is None:
            return None
        record = self._records.get(fresh.placeholder_id)
        if record is not None and record.state is PlaceholderState.LOADING:
            return record
        stale = (
            record is None
            or record.payload != fresh.payload
            or (record.state is PlaceholderState.LOADED and fresh.state is not PlaceholderState.LOADED)
        )
        if stale:
            if record is not None:
                fresh.attempts = record.attempts
            self._records[fresh.placeholder_id] = fresh
            return fresh
        return record

    def mark_loading(self, element: Tag, record: PlaceholderRecord) -> None:
        record.state = PlaceholderState.LOADING
        record.attempts += 1
        self._write(element, record)

    def mark_loaded(self, element: Tag, record: PlaceholderRecord) -> None:
        record.state = PlaceholderState.LOADED
        record.last_rendered = record.payload
        record.error = None
        self._write(element, record)

    def mark_failed(self, element: Tag, record: PlaceholderRecord, error: str) -> None:
        record.state = PlaceholderState.FAILED
        record.error = error
        self._write(element, record)

    def reset(self, element: Tag) -> PlaceholderRecord | None:
        """Force ``element`` back to not-loaded and drop its last-rendered marker."""

        placeholder_id = element.get(ID_ATTR)
        record = self._records.get(placeholder_id) if placeholder_id else None
        if record is None:
            record = PlaceholderRecord.from_element(element)
            if record is None:
                return None
            self._records[record.placeholder_id] = record
        record.state = PlaceholderState.PENDING
        record.last_rendered = None
        record.error = None
        self._write(element, record)
        return record

    def forget(self, placeholder_id: str) -> None:
        self._records.pop(placeholder_id, None)

    def clear(self) -> None:
        self._records.clear()

    def _write(self, element: Tag, record: PlaceholderRecord) -> None:
        if record.state is PlaceholderState.LOADED:
            add_class(element, LOADED_CLASS)
        else:
            remove_class(element, LOADED_CLASS)
        if record.last_rendered is not None:
            element[LAST_RENDERED_ATTR] = record.last_rendered
        elif element.has_attr(LAST_RENDERED_ATTR):
            del element[LAST_RENDERED_ATTR]
        element[STATE_ATTR] = record.state.value


__all__ = [
    "ERROR_CLASS",
    "ID_ATTR",
    "KIND_ATTR",
    "LAST_RENDERED_ATTR",
    "LOADED_CLASS",
    "PAYLOAD_ATTR",
    "STATE_ATTR",
    "PlaceholderRecord",
    "PlaceholderState",
    "PlaceholderStateTable",
]
