"""Tests for tagshelf.storage.query.QueryBuilder construction.

These never touch a database: the store is a mock, and every usage error
must surface before run_query is reached.
"""

from unittest.mock import MagicMock

import pytest
from sample_objects import PERSON, WIDGET

from tagshelf.storage.query import QueryBuilder
from tagshelf.types import Comparison, LoadResult, SortOrder, TagPredicate, UsageError, ValueKind


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.run_query.return_value = LoadResult(objects=["first", "second"])
    return store


@pytest.fixture
def query(mock_store):
    return QueryBuilder(mock_store, WIDGET)


class TestMutualExclusion:
    def test_ids_then_tags(self, query, mock_store):
        query.add_id("w1")

        with pytest.raises(UsageError, match="both tags and ids"):
            query.tag_equals("color", "red")
        mock_store.run_query.assert_not_called()

    def test_tags_then_ids(self, query, mock_store):
        query.tag_equals("color", "red")

        with pytest.raises(UsageError, match="both tags and ids"):
            query.add_ids(["w1"])
        mock_store.run_query.assert_not_called()

    def test_usage_error_is_value_error(self, query):
        query.add_id("w1")
        with pytest.raises(ValueError):
            query.tag_gt("size", "3")


class TestBuilding:
    def test_fluent_chain_returns_self(self, query):
        assert query.tag_equals("a", "b").order_by_ts(SortOrder.ASC).limit(3) is query
        assert query.ts_gte(1).ts_lte(2).truncate_rest() is query

    def test_add_ids_ignores_empty(self, query):
        query.add_ids(None).add_ids([])

        assert query.ids == []
        assert query.strategy == "type"

    def test_empty_id_rejected(self, query):
        with pytest.raises(UsageError):
            query.add_id("")

    def test_missing_type_rejected(self, mock_store):
        with pytest.raises(UsageError):
            QueryBuilder(mock_store, None)

    def test_predicates_are_typed_at_build_time(self, query):
        query.tag_equals("color", "red")
        query.tag_gt("size", "3", ValueKind.INTEGER)
        query.tag_lt("weight", 2, "real")
        query.tag_with_operator("name", "like", "w%")

        assert query.tag_predicates == [
            TagPredicate("color", Comparison.EQ, "red", ValueKind.TEXT),
            TagPredicate("size", Comparison.GT, 3, ValueKind.INTEGER),
            TagPredicate("weight", Comparison.LT, 2.0, ValueKind.REAL),
            TagPredicate("name", Comparison.LIKE, "w%", ValueKind.TEXT),
        ]

    def test_text_kind_stringifies_literal(self, query):
        query.tag_equals("size", 3)

        assert query.tag_predicates[0].value == "3"

    def test_bad_integer_literal(self, query):
        with pytest.raises(UsageError, match="not INTEGER"):
            query.tag_equals("size", "three", ValueKind.INTEGER)

    def test_fractional_integer_literal(self, query):
        with pytest.raises(UsageError):
            query.tag_equals("size", 3.5, ValueKind.INTEGER)

    def test_unknown_operator(self, query):
        with pytest.raises(UsageError, match="Unsupported tag operator"):
            query.tag_with_operator("size", "; DROP TABLE tags", "1")

    def test_unknown_kind(self, query):
        with pytest.raises(UsageError, match="Unsupported value kind"):
            query.tag_equals("size", "1", "BLOB")

    def test_none_value_rejected(self, query):
        with pytest.raises(UsageError):
            query.tag_equals("size", None)

    def test_integer_literal_outside_64_bits(self, query):
        with pytest.raises(UsageError, match="not INTEGER"):
            query.tag_equals("size", 2**70, ValueKind.INTEGER)
        with pytest.raises(UsageError):
            query.tag_gt("size", -(2**63) - 1, ValueKind.INTEGER)

        query.tag_equals("size", 2**63 - 1, ValueKind.INTEGER)
        assert query.tag_predicates[0].value == 2**63 - 1

    def test_negative_limit(self, query):
        with pytest.raises(UsageError):
            query.limit(-1)

    def test_bounds_and_limit_outside_64_bits(self, query):
        with pytest.raises(UsageError, match="Timestamp"):
            query.ts_lte(2**64)
        with pytest.raises(UsageError, match="Timestamp"):
            query.ts_gte(-(2**63) - 1)
        with pytest.raises(UsageError, match="Limit"):
            query.limit(2**63)

        assert query.before is None
        assert query.after is None
        assert query.max_rows == 0

    def test_sort_order_from_string(self, query):
        assert query.order_by_ts("desc").ts_order is SortOrder.DESC
        with pytest.raises(UsageError):
            query.order_by_ts("sideways")


class TestStrategy:
    def test_precedence(self, mock_store):
        assert QueryBuilder(mock_store, PERSON).add_id("x").ts_gte(5).strategy == "ids"
        assert QueryBuilder(mock_store, PERSON).tag_equals("a", "b").strategy == "tags"
        assert QueryBuilder(mock_store, PERSON).ts_gte(5).strategy == "type"


class TestExecution:
    def test_execute_delegates_to_store(self, query, mock_store):
        assert query.execute() == ["first", "second"]
        mock_store.run_query.assert_called_once_with(query)

    def test_get_first(self, query):
        assert query.get_first() == "first"

    def test_get_first_empty_is_none(self, query, mock_store):
        mock_store.run_query.return_value = LoadResult()

        assert query.get_first() is None

    def test_repr_lists_state(self, query):
        query.tag_equals("color", "red").limit(2).truncate_rest()

        text = repr(query)
        assert "type='widget'" in text
        assert "color" in text
        assert "limit=2" in text
        assert "truncate=True" in text
