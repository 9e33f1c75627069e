"""In-memory chat document with DOM-style event listeners.

The document is a BeautifulSoup tree. Tags carry no behaviour of their own,
so listeners live in a side registry keyed by tag identity. Listeners are
pruned when their tag is removed through :meth:`ChatDocument.set_inner_html`,
:meth:`ChatDocument.replace_with_markup` or :meth:`ChatDocument.remove`.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from bs4 import BeautifulSoup, Tag

LOGGER = logging.getLogger(__name__)

Listener = Callable[["DomEvent"], "Awaitable[None] | None"]

_EMPTY_DOCUMENT = (
    "<html><head><meta charset=\"utf-8\"/></head>"
    "<body><div id=\"chat-log\" class=\"chat-log\"></div></body></html>"
)
MESSAGE_CLASS = "chat-message"


@dataclass(slots=True)
class DomEvent:
    """Event object passed to listeners while a dispatch bubbles up the tree."""

    type: str
    target: Tag
    current_target: Tag | None = None
    propagation_stopped: bool = False
    default_prevented: bool = False
    detail: dict[str, Any] = field(default_factory=dict)

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass(slots=True)
class _ListenerSlot:
    element: Tag
    listeners: dict[tuple[str, str], Listener] = field(default_factory=dict)


class ChatDocument:
    """Mutable HTML document shared by every component of a render session."""

    def __init__(self, markup: str | None = None) -> None:
        self._soup = BeautifulSoup(markup or _EMPTY_DOCUMENT, "html.parser")
        if self._soup.body is None:
            body = self._soup.new_tag("body")
            for node in list(self._soup.contents):
                body.append(node.extract())
            self._soup.append(body)
        self._slots: dict[int, _ListenerSlot] = {}
        self._anonymous_keys = 0

    # ------------------------------------------------------------------
    # Tree access
    # ------------------------------------------------------------------
    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    @property
    def body(self) -> Tag:
        return self._soup.body

    @property
    def head(self) -> Tag:
        head = self._soup.head
        if head is None:
            head = self._soup.new_tag("head")
            html_tag = self._soup.html
            if html_tag is not None:
                html_tag.insert(0, head)
            else:
                self._soup.insert(0, head)
        return head

    @property
    def chat_log(self) -> Tag:
        log = self._soup.find(id="chat-log")
        if log is None:
            log = self._soup.new_tag("div", attrs={"id": "chat-log", "class": ["chat-log"]})
            self.body.append(log)
        return log

    def get_element_by_id(self, element_id: str | None) -> Tag | None:
        if not element_id:
            return None
        return self._soup.find(id=element_id)

    def contains(self, element: Tag | None) -> bool:
        """Return ``True`` when ``element`` is still attached to this document."""

        node = element
        while node is not None:
            if node is self._soup:
                return True
            node = node.parent
        return False

    def message_container(self, message_id: str, *, create: bool = True) -> Tag | None:
        for candidate in self.chat_log.find_all("div", class_=MESSAGE_CLASS, recursive=False):
            if candidate.get("data-message-id") == message_id:
                return candidate
        if not create:
            return None
        container = self._soup.new_tag(
            "div", attrs={"class": [MESSAGE_CLASS], "data-message-id": message_id}
        )
        self.chat_log.append(container)
        return container

    def to_html(self) -> str:
        return str(self._soup)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def parse_fragment(self, markup: str) -> list[Any]:
        """Parse ``markup`` and return its detached top-level nodes."""

        fragment = BeautifulSoup(markup or "", "html.parser")
        return [node.extract() for node in list(fragment.contents)]

    def set_inner_html(self, element: Tag, markup: str) -> None:
        """Replace the children of ``element`` with ``markup``."""

        self._prune_descendants(element)
        element.clear()
        for node in self.parse_fragment(markup):
            element.append(node)

    def replace_with_markup(self, element: Tag, markup: str) -> Tag | None:
        """Swap ``element`` for the first tag in ``markup`` and return that tag."""

        nodes = self.parse_fragment(markup)
        replacement = next((node for node in nodes if isinstance(node, Tag)), None)
        if replacement is None:
            LOGGER.debug("Replacement markup contained no element; keeping original")
            return None
        self._prune(element)
        element.replace_with(replacement)
        return replacement

    def create_element(self, markup: str) -> Tag:
        """Build a detached tag from ``markup`` (first element wins)."""

        for node in self.parse_fragment(markup):
            if isinstance(node, Tag):
                return node
        raise ValueError("markup does not contain an element")

    def remove(self, element: Tag) -> None:
        self._prune(element)
        element.extract()

    def release(self, element: Tag) -> None:
        """Forget listeners of a detached subtree without touching the tree."""

        self._prune(element)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(
        self,
        element: Tag,
        event_type: str,
        listener: Listener,
        *,
        key: str | None = None,
    ) -> str:
        """Attach ``listener`` to ``element``.

        Listeners sharing ``key`` replace each other, which makes repeated
        binding idempotent. Without a key every call adds a new listener.
        Returns the key the listener is stored under.
        """

        if key is None:
            self._anonymous_keys += 1
            key = f"anonymous-{self._anonymous_keys}"
        slot = self._slots.get(id(element))
        if slot is None or slot.element is not element:
            slot = _ListenerSlot(element=element)
            self._slots[id(element)] = slot
        slot.listeners[(event_type, key)] = listener
        return key

    def remove_listener(self, element: Tag, event_type: str, key: str) -> bool:
        slot = self._slot_for(element)
        if slot is None:
            return False
        removed = slot.listeners.pop((event_type, key), None) is not None
        if not slot.listeners:
            self._slots.pop(id(element), None)
        return removed

    def has_listener(self, element: Tag, event_type: str, key: str | None = None) -> bool:
        slot = self._slot_for(element)
        if slot is None:
            return False
        if key is not None:
            return (event_type, key) in slot.listeners
        return any(kind == event_type for kind, _ in slot.listeners)

    def listener_count(self, element: Tag, event_type: str | None = None) -> int:
        slot = self._slot_for(element)
        if slot is None:
            return 0
        return sum(1 for kind, _ in slot.listeners if event_type is None or kind == event_type)

    async def dispatch(self, event_type: str, target: Tag) -> DomEvent:
        """Deliver an event to ``target`` and bubble it towards the root.

        Listener errors are logged and do not stop delivery to other listeners.
        """

        event = DomEvent(type=event_type, target=target)
        for node in self._bubble_path(target):
            slot = self._slot_for(node)
            if slot is None:
                continue
            event.current_target = node
            for (kind, key), listener in list(slot.listeners.items()):
                if kind != event_type:
                    continue
                try:
                    result = listener(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    LOGGER.exception("Listener %s for %s failed", key, event_type)
            if event.propagation_stopped:
                break
        return event

    async def click(self, target: Tag) -> DomEvent:
        return await self.dispatch("click", target)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _slot_for(self, element: Tag) -> _ListenerSlot | None:
        slot = self._slots.get(id(element))
        if slot is None or slot.element is not element:
            return None
        return slot

    def _bubble_path(self, target: Tag) -> Iterable[Tag]:
        node: Any = target
        while node is not None and node is not self._soup:
            if isinstance(node, Tag):
                yield node
            node = node.parent

    def _prune_descendants(self, element: Tag) -> None:
        for descendant in element.find_all(True):
            self._slots.pop(id(descendant), None)

    def _prune(self, element: Tag) -> None:
        self._slots.pop(id(element), None)
        self._prune_descendants(element)


# ----------------------------------------------------------------------
# Class helpers
# ----------------------------------------------------------------------

def class_list(element: Tag) -> list[str]:
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes.split()
    return list(classes)


def has_class(element: Tag, name: str) -> bool:
    return name in class_list(element)


def add_class(element: Tag, name: str) -> None:
    classes = class_list(element)
    if name not in classes:
        classes.append(name)
        element["class"] = classes


def remove_class(element: Tag, name: str) -> None:
    classes = [value for value in class_list(element) if value != name]
    if classes:
        element["class"] = classes
    elif element.has_attr("class"):
        del element["class"]


def closest(element: Tag | None, selector: str) -> Tag | None:
    """Return ``element`` or its nearest ancestor matching ``selector``."""

    if element is None or not isinstance(element, Tag):
        return None
    return element.css.closest(selector)


def select_within(scope: Tag, selector: str) -> list[Tag]:
    """Like ``scope.select(selector)`` but ``scope`` itself is included when it matches."""

    found = scope.select(selector)
    if scope.css.match(selector):
        found.insert(0, scope)
    return found


__all__ = [
    "ChatDocument",
    "DomEvent",
    "Listener",
    "MESSAGE_CLASS",
    "add_class",
    "class_list",
    "closest",
    "has_class",
    "remove_class",
    "select_within",
]
