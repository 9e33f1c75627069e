"""Tests for :mod:`toolcanvas.document`."""

from __future__ import annotations

import pytest

from toolcanvas.document import (
    ChatDocument,
    DomEvent,
    add_class,
    class_list,
    closest,
    has_class,
    remove_class,
    select_within,
)


@pytest.fixture
def document() -> ChatDocument:
    doc = ChatDocument()
    container = doc.message_container("m1")
    doc.set_inner_html(container, '<div class="outer"><p class="inner"><span>hi</span></p></div>')
    return doc


class TestTree:
    """Tests for tree access and mutation."""

    def test_empty_document_has_chat_log(self) -> None:
        doc = ChatDocument()
        assert doc.chat_log["id"] == "chat-log"
        assert doc.head is not None
        assert doc.chat_log.parent is doc.body

    def test_message_container_is_reused(self) -> None:
        doc = ChatDocument()
        first = doc.message_container("m1")
        assert doc.message_container("m1") is first
        assert doc.message_container("m2") is not first
        assert doc.message_container("m3", create=False) is None

    def test_fragment_without_body_is_wrapped(self) -> None:
        doc = ChatDocument("<p>loose</p>")
        assert doc.body.find("p").get_text() == "loose"
        assert doc.chat_log.parent is doc.body

    def test_contains_tracks_attachment(self, document: ChatDocument) -> None:
        span = document.body.find("span")
        assert document.contains(span) is True
        document.remove(span)
        assert document.contains(span) is False
        assert document.contains(None) is False

    def test_replace_with_markup(self, document: ChatDocument) -> None:
        inner = document.body.find("p")
        replacement = document.replace_with_markup(inner, "text <b id='new'>bold</b>")

        assert replacement is not None
        assert replacement.name == "b"
        assert document.get_element_by_id("new") is replacement
        assert document.replace_with_markup(replacement, "only text") is None

    def test_create_element_requires_a_tag(self) -> None:
        doc = ChatDocument()
        assert doc.create_element("<i>x</i>").name == "i"
        with pytest.raises(ValueError):
            doc.create_element("just text")


class TestListeners:
    """Tests for the listener registry and event bubbling."""

    def test_keyed_listeners_replace_each_other(self, document: ChatDocument) -> None:
        target = document.body.find("p")
        document.add_listener(target, "click", lambda event: None, key="expand")
        document.add_listener(target, "click", lambda event: None, key="expand")
        document.add_listener(target, "click", lambda event: None)

        assert document.listener_count(target, "click") == 2
        assert document.has_listener(target, "click", "expand")
        assert document.remove_listener(target, "click", "expand") is True
        assert document.remove_listener(target, "click", "expand") is False
        assert document.listener_count(target) == 1

    @pytest.mark.asyncio
    async def test_dispatch_bubbles_to_ancestors(self, document: ChatDocument) -> None:
        seen: list[str] = []
        document.add_listener(document.body.find("p"), "click", lambda event: seen.append("inner"))
        document.add_listener(document.body.find("div", class_="outer"), "click", lambda event: seen.append("outer"))

        event = await document.click(document.body.find("span"))

        assert seen == ["inner", "outer"]
        assert event.target.name == "span"

    @pytest.mark.asyncio
    async def test_stop_propagation(self, document: ChatDocument) -> None:
        seen: list[str] = []

        def stop(event: DomEvent) -> None:
            seen.append("inner")
            event.stop_propagation()

        document.add_listener(document.body.find("p"), "click", stop)
        document.add_listener(document.body.find("div", class_="outer"), "click", lambda event: seen.append("outer"))
        await document.click(document.body.find("span"))

        assert seen == ["inner"]

    @pytest.mark.asyncio
    async def test_async_listener_and_failing_listener(self, document: ChatDocument) -> None:
        seen: list[str] = []

        async def slow(event: DomEvent) -> None:
            event.prevent_default()
            seen.append("async")

        def broken(event: DomEvent) -> None:
            raise RuntimeError("listener failed")

        target = document.body.find("p")
        document.add_listener(target, "click", broken)
        document.add_listener(target, "click", slow)
        event = await document.click(target)

        assert seen == ["async"]
        assert event.default_prevented is True

    @pytest.mark.asyncio
    async def test_other_event_types_are_not_delivered(self, document: ChatDocument) -> None:
        seen: list[str] = []
        target = document.body.find("p")
        document.add_listener(target, "mouseover", lambda event: seen.append("hover"))

        await document.click(target)

        assert seen == []

    def test_set_inner_html_prunes_descendant_listeners(self, document: ChatDocument) -> None:
        container = document.message_container("m1")
        paragraph = container.find("p")
        document.add_listener(paragraph, "click", lambda event: None)
        document.add_listener(container, "click", lambda event: None)

        document.set_inner_html(container, "<p>fresh</p>")

        assert document.listener_count(paragraph) == 0
        assert document.listener_count(container) == 1

    def test_release_prunes_detached_subtree(self, document: ChatDocument) -> None:
        outer = document.body.find("div", class_="outer")
        span = outer.find("span")
        document.add_listener(span, "click", lambda event: None)
        outer.extract()

        document.release(outer)

        assert document.listener_count(span) == 0


class TestClassHelpers:
    """Tests for class list manipulation on parsed and fresh tags."""

    def test_add_and_remove(self, document: ChatDocument) -> None:
        paragraph = document.body.find("p")
        add_class(paragraph, "loaded")
        add_class(paragraph, "loaded")

        assert class_list(paragraph) == ["inner", "loaded"]
        assert has_class(paragraph, "loaded")

        remove_class(paragraph, "inner")
        remove_class(paragraph, "loaded")
        assert not paragraph.has_attr("class")

    def test_string_class_attribute(self) -> None:
        doc = ChatDocument()
        tag = doc.soup.new_tag("div")
        tag["class"] = "a b"
        assert class_list(tag) == ["a", "b"]

    def test_closest(self, document: ChatDocument) -> None:
        span = document.body.find("span")
        assert closest(span, ".outer").name == "div"
        assert closest(span, "span") is span
        assert closest(span, ".missing") is None
        assert closest(None, ".outer") is None

    def test_select_within_includes_matching_scope(self, document: ChatDocument) -> None:
        outer = document.body.select_one(".outer")
        assert select_within(outer, ".outer") == [outer]
        assert select_within(outer, "span") == outer.select("span")
        assert select_within(document.body, ".outer") == [outer]
