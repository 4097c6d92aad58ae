"""Tests for HistoryStoreDB — dedupe, ordering, cap and artifact updates."""

from __future__ import annotations

import pytest

from errors import InvalidInput
from models import HistoryItem


@pytest.fixture
def store(app):
    from db_stores import HistoryStoreDB
    return HistoryStoreDB("42", limit=5)


def _item(word, ts, **kw):
    return HistoryItem(word=word, timestamp=ts, **kw)


class TestHistoryStore:
    def test_empty(self, store):
        assert store.list() == []

    def test_newest_first(self, store):
        store.append(_item("alpha", 1000))
        store.append(_item("beta", 2000))
        assert [i.word for i in store.list()] == ["beta", "alpha"]

    def test_same_word_different_case_dedupes(self, store):
        store.append(_item("Cat", 1000, data={"word": "Cat", "definition": "old"}))
        store.append(_item("dog", 1500))
        store.append(_item("cat", 2000, data={"word": "cat", "definition": "new"}))

        items = store.list()
        assert [i.word for i in items] == ["cat", "dog"]
        assert items[0].data["definition"] == "new"
        assert items[0].timestamp == 2000

    def test_reappend_keeps_existing_artifacts(self, store):
        store.append(_item("cat", 1000, summary="A story.", image="aW1n"))
        store.append(_item("cat", 2000, data={"word": "cat"}))
        item = store.get("CAT")
        assert item.summary == "A story."
        assert item.image == "aW1n"
        assert item.data == {"word": "cat"}

    def test_cap_drops_oldest(self, store):
        for i in range(7):
            store.append(_item(f"w{i}", 1000 + i))
        words = [i.word for i in store.list()]
        assert words == ["w6", "w5", "w4", "w3", "w2"]

    def test_cap_applied_on_append_not_read(self, app):
        from db_stores import HistoryStoreDB
        wide = HistoryStoreDB("42", limit=10)
        for i in range(8):
            wide.append(_item(f"w{i}", 1000 + i))
        assert len(HistoryStoreDB("42", limit=3).list()) == 8

    def test_empty_word_rejected(self, store):
        with pytest.raises(InvalidInput):
            store.append(_item("   ", 1000))

    def test_attach_summary_and_image(self, store):
        store.append(_item("cat", 1000))
        assert store.attach("Cat", summary="Once upon a time.") is True
        assert store.attach("cat", image="aW1n") is True
        item = store.get("cat")
        assert (item.summary, item.image) == ("Once upon a time.", "aW1n")

    def test_attach_missing_word(self, store):
        assert store.attach("ghost", summary="x") is False
        assert store.attach("ghost") is False

    def test_delete_by_timestamp(self, store):
        store.append(_item("alpha", 1000))
        store.append(_item("beta", 2000))
        assert store.delete(1000) is True
        assert store.delete(1000) is False
        assert [i.word for i in store.list()] == ["beta"]

    def test_clear(self, store):
        store.append(_item("alpha", 1000))
        store.append(_item("beta", 2000))
        assert store.clear() == 2
        assert store.list() == []

    def test_users_are_isolated(self, app, store):
        from db_stores import HistoryStoreDB
        store.append(_item("alpha", 1000))
        assert HistoryStoreDB("other").list() == []

    def test_count_since(self, store):
        store.append(_item("old", 1000))
        store.append(_item("new1", 5000))
        store.append(_item("new2", 6000))
        assert store.count_since(5000) == 2

    def test_to_dict_omits_empty_fields(self):
        assert _item("cat", 1).to_dict() == {"word": "cat", "timestamp": 1}
