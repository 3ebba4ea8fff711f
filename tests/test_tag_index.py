"""Tests for tagshelf.storage.tag_index.

Runs TagIndex directly against an in-memory database with the schema.
"""

import sqlite3

import pytest

from tagshelf.storage.schema import init_db
from tagshelf.storage.tag_index import TagIndex, chunked, composite_key_clause
from tagshelf.types import Comparison, SearchableTag, TagPredicate, ValueKind


@pytest.fixture
def conn():
    c = sqlite3.connect(":memory:")
    c.row_factory = sqlite3.Row
    init_db(c)
    yield c
    c.close()


@pytest.fixture
def index(conn):
    idx = TagIndex()
    idx.replace_tags(
        conn, "widget", "w1", [SearchableTag("color", "red"), SearchableTag("size", "3")]
    )
    idx.replace_tags(
        conn, "widget", "w2", [SearchableTag("color", "red"), SearchableTag("size", "4")]
    )
    idx.replace_tags(
        conn, "widget", "w3", [SearchableTag("color", "blue"), SearchableTag("size", "3")]
    )
    idx.replace_tags(conn, "gadget", "w1", [SearchableTag("color", "green")])
    return idx


def eq(tag, value, kind=ValueKind.TEXT):
    return TagPredicate(tag, Comparison.EQ, value, kind)


class TestHelpers:
    def test_composite_key_clause(self):
        assert composite_key_clause(2) == "(type = ? AND id = ?) OR (type = ? AND id = ?)"

    def test_chunked(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_invalid_table_rejected(self):
        with pytest.raises(ValueError, match="Invalid table name"):
            TagIndex(table="tags; DROP TABLE objects")


class TestFindIds:
    def test_single_predicate(self, conn, index):
        assert index.find_ids(conn, "widget", [eq("color", "red")]) == {"w1", "w2"}

    def test_intersection(self, conn, index):
        predicates = [eq("color", "red"), eq("size", 3, ValueKind.INTEGER)]

        assert index.find_ids(conn, "widget", predicates) == {"w1"}

    def test_scoped_to_type(self, conn, index):
        assert index.find_ids(conn, "gadget", [eq("color", "red")]) == set()
        assert index.find_ids(conn, "gadget", [eq("color", "green")]) == {"w1"}

    def test_no_predicates(self, conn, index):
        assert index.find_ids(conn, "widget", []) == set()

    def test_short_circuits_on_empty(self, conn, index, monkeypatch):
        calls = []
        original = index.ids_matching

        def counting(c, type_name, predicate):
            calls.append(predicate.tag)
            return original(c, type_name, predicate)

        monkeypatch.setattr(index, "ids_matching", counting)

        result = index.find_ids(
            conn, "widget", [eq("color", "purple"), eq("size", "3"), eq("color", "red")]
        )

        assert result == set()
        assert calls == ["color"]

    def test_stops_once_intersection_empties(self, conn, index, monkeypatch):
        calls = []
        original = index.ids_matching

        def counting(c, type_name, predicate):
            calls.append(predicate.value)
            return original(c, type_name, predicate)

        monkeypatch.setattr(index, "ids_matching", counting)

        result = index.find_ids(
            conn, "widget", [eq("color", "blue"), eq("size", "4"), eq("color", "red")]
        )

        assert result == set()
        assert calls == ["blue", "4"]

    def test_failed_scan_counts_as_no_match(self):
        bare = sqlite3.connect(":memory:")
        try:
            assert TagIndex().find_ids(bare, "widget", [eq("color", "red")]) == set()
        finally:
            bare.close()

    def test_unbindable_literal_counts_as_no_match(self, conn, index):
        huge = TagPredicate("size", Comparison.EQ, 2**70, ValueKind.INTEGER)

        assert index.ids_matching(conn, "widget", huge) == set()
        assert index.find_ids(conn, "widget", [eq("color", "red"), huge]) == set()

    def test_numeric_cast(self, conn, index):
        index.replace_tags(conn, "widget", "w4", [SearchableTag("size", "10")])
        gt = TagPredicate("size", Comparison.GT, 3, ValueKind.INTEGER)
        text_gt = TagPredicate("size", Comparison.GT, "3", ValueKind.TEXT)

        assert index.find_ids(conn, "widget", [gt]) == {"w2", "w4"}
        assert index.find_ids(conn, "widget", [text_gt]) == {"w2"}


class TestMaintenance:
    def test_replace_tags_drops_old_rows(self, conn, index):
        inserted = index.replace_tags(conn, "widget", "w1", [SearchableTag("shape", "round")])

        assert inserted == 1
        assert index.tags_for(conn, "widget", "w1") == [SearchableTag("shape", "round")]
        assert index.tags_for(conn, "gadget", "w1") == [SearchableTag("color", "green")]

    def test_valueless_tag_is_stored_once(self, conn, index):
        index.replace_tags(
            conn, "widget", "w3", [SearchableTag("flag", None), SearchableTag("flag", None)]
        )

        assert index.tags_for(conn, "widget", "w3") == [SearchableTag("flag", "")]

    def test_replace_with_no_tags(self, conn, index):
        assert index.replace_tags(conn, "widget", "w1", None) == 0
        assert index.tags_for(conn, "widget", "w1") == []

    def test_delete_for_keys(self, conn, index):
        removed = index.delete_for_keys(conn, [("widget", "w1"), ("gadget", "w1")])

        assert removed == 3
        assert index.find_ids(conn, "widget", [eq("color", "red")]) == {"w2"}

    def test_clear_type(self, conn, index):
        assert index.clear_type(conn, "widget") == 6
        assert index.tags_for(conn, "gadget", "w1") == [SearchableTag("color", "green")]
