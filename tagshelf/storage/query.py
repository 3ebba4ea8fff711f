"""Fluent load requests for ObjectStore.

A QueryBuilder is created per load via ``store.load(object_type)``. Filter
methods mutate the request and return it so calls can be chained; invalid
combinations raise UsageError immediately, before any storage access.
"""

import logging
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Union

from tagshelf.types import (
    Comparison,
    LoadResult,
    ObjectType,
    SortOrder,
    TagPredicate,
    UsageError,
    ValueKind,
    check_int64,
)

if TYPE_CHECKING:
    from .sqlite import ObjectStore

logger = logging.getLogger(__name__)


class QueryBuilder:
    """Accumulates filters for one object type and runs them as a single load.

    Strategy is chosen at execution time in fixed precedence:
    explicit ids, then tag predicates, then the whole type with optional
    timestamp bounds. Ids and tag predicates cannot be combined.
    """

    def __init__(self, store: "ObjectStore", object_type: ObjectType):
        if object_type is None:
            raise UsageError("A query needs an object type")
        self._store = store
        self.object_type = object_type
        self.ids: List[str] = []
        self.tag_predicates: List[TagPredicate] = []
        self.ts_order: Optional[SortOrder] = None
        self.max_rows = 0
        self.truncate = False
        self.before: Optional[int] = None
        self.after: Optional[int] = None

    # === Id filter ===

    def add_id(self, object_id: str) -> "QueryBuilder":
        if not object_id:
            raise UsageError("Object id cannot be empty")
        if self.tag_predicates:
            raise UsageError("Can't have both tags and ids")
        self.ids.append(object_id)
        return self

    def add_ids(self, ids: Optional[Iterable[str]]) -> "QueryBuilder":
        for object_id in list(ids or ()):
            self.add_id(object_id)
        return self

    # === Tag predicates ===

    def tag_equals(
        self, tag: str, value: Any, kind: Union[ValueKind, str] = ValueKind.TEXT
    ) -> "QueryBuilder":
        return self.tag_with_operator(tag, Comparison.EQ, value, kind)

    def tag_gt(
        self, tag: str, value: Any, kind: Union[ValueKind, str] = ValueKind.TEXT
    ) -> "QueryBuilder":
        return self.tag_with_operator(tag, Comparison.GT, value, kind)

    def tag_lt(
        self, tag: str, value: Any, kind: Union[ValueKind, str] = ValueKind.TEXT
    ) -> "QueryBuilder":
        return self.tag_with_operator(tag, Comparison.LT, value, kind)

    def tag_with_operator(
        self,
        tag: str,
        op: Union[Comparison, str],
        value: Any,
        kind: Union[ValueKind, str] = ValueKind.TEXT,
    ) -> "QueryBuilder":
        """Require CAST(tag value AS kind) <op> value.

        Args:
            tag: Tag name
            op: A Comparison or its SQL spelling ("=", "<=", "LIKE", ...)
            value: Literal, converted to kind's Python type here
            kind: How both sides are compared: TEXT, INTEGER or REAL
        """
        if self.ids:
            raise UsageError("Can't have both tags and ids")
        if not tag:
            raise UsageError("Tag name cannot be empty")
        comparison = _to_comparison(op)
        value_kind = _to_kind(kind)
        if value is None:
            raise UsageError(f"Tag {tag!r} needs a comparison value")
        try:
            literal = value_kind.coerce(value)
        except (TypeError, ValueError) as e:
            raise UsageError(f"Value {value!r} for tag {tag!r} is not {value_kind.value}: {e}")
        self.tag_predicates.append(TagPredicate(tag, comparison, literal, value_kind))
        return self

    # === Timestamp filters ===

    def ts_gte(self, timestamp_ms: int) -> "QueryBuilder":
        """Only objects with ts >= timestamp_ms (plain type loads only)."""
        self.after = _to_int64(timestamp_ms, "Timestamp")
        return self

    def ts_lte(self, timestamp_ms: int) -> "QueryBuilder":
        """Only objects with ts <= timestamp_ms (plain type loads only)."""
        self.before = _to_int64(timestamp_ms, "Timestamp")
        return self

    def order_by_ts(self, order: Union[SortOrder, str]) -> "QueryBuilder":
        if isinstance(order, str):
            try:
                order = SortOrder(order.upper())
            except ValueError:
                raise UsageError(f"Unknown sort order: {order!r}")
        self.ts_order = order
        return self

    # === Result shaping ===

    def limit(self, count: int) -> "QueryBuilder":
        """Cap the number of objects returned; 0 means no cap."""
        count = _to_int64(count, "Limit")
        if count < 0:
            raise UsageError("Limit cannot be negative")
        self.max_rows = count
        return self

    def truncate_rest(self) -> "QueryBuilder":
        """Delete everything else of this type, keeping only what this request loads."""
        self.truncate = True
        return self

    @property
    def strategy(self) -> str:
        if self.ids:
            return "ids"
        if self.tag_predicates:
            return "tags"
        return "type"

    # === Execution ===

    def run(self) -> LoadResult:
        """Execute and return the objects along with any dropped rows or errors."""
        return self._store.run_query(self)

    def execute(self) -> List[Any]:
        return self.run().objects

    def get_first(self) -> Optional[Any]:
        """First object of the result, or None when nothing matches."""
        first = self.run().first()
        if first is None:
            logger.debug(f"No object of type: {self.object_type} found")
        return first

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(type={self.object_type.name!r}, ids={self.ids!r}, "
            f"tags={self.tag_predicates!r}, ts_order={self.ts_order}, "
            f"limit={self.max_rows}, truncate={self.truncate}, "
            f"before={self.before}, after={self.after})"
        )


def _to_int64(value: Any, what: str) -> int:
    try:
        return check_int64(int(value))
    except (TypeError, ValueError, OverflowError) as e:
        raise UsageError(f"{what} {value!r} is not a 64-bit integer: {e}")


def _to_comparison(op: Union[Comparison, str]) -> Comparison:
    if isinstance(op, Comparison):
        return op
    try:
        return Comparison(str(op).strip().upper())
    except ValueError:
        raise UsageError(f"Unsupported tag operator: {op!r}")


def _to_kind(kind: Union[ValueKind, str]) -> ValueKind:
    if isinstance(kind, ValueKind):
        return kind
    try:
        return ValueKind(str(kind).strip().upper())
    except ValueError:
        raise UsageError(f"Unsupported value kind: {kind!r}")
