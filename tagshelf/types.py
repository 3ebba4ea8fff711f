"""Core types for tagshelf.

Contains:
- Type descriptors and the StoredObject protocol callers implement
- Closed enums for ordering and tag comparisons
- Result dataclasses returned by store operations
- The error hierarchy
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable


class SortOrder(Enum):
    """Timestamp ordering for loads."""

    ASC = "ASC"
    DESC = "DESC"


# SQLite stores integers as signed 64-bit values
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def check_int64(value: int) -> int:
    """Return `value` unchanged, or raise ValueError if SQLite cannot bind it."""
    if not INT64_MIN <= value <= INT64_MAX:
        raise ValueError(f"{value} is outside the 64-bit integer range")
    return value


class ValueKind(Enum):
    """SQLite type a tag value is cast to before comparison.

    Tag values are stored as text, so every predicate declares how the
    stored value and the literal should be compared.
    """

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"

    def coerce(self, value: Any) -> Any:
        """Convert a literal to the Python type matching this kind."""
        if self is ValueKind.INTEGER:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{value!r} is not an integer")
            return check_int64(int(value))
        if self is ValueKind.REAL:
            return float(value)
        return str(value)


class Comparison(Enum):
    """Operators allowed in a tag predicate."""

    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    LIKE = "LIKE"


@dataclass(frozen=True)
class ObjectType:
    """Type descriptor for stored objects.

    ``name`` partitions both tables; ``model`` is the class the codec
    decodes rows into (a dataclass or a pydantic model).
    """

    name: str
    model: type

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Object type name cannot be empty")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SearchableTag:
    """A (tag, value) pair indexed for an object."""

    key: str
    value: str


@runtime_checkable
class StoredObject(Protocol):
    """Protocol for objects persisted in the store."""

    def stored_object_type(self) -> ObjectType: ...

    def stored_object_id(self) -> str: ...

    def stored_object_tags(self) -> Optional[Sequence[SearchableTag]]: ...

    def stored_object_timestamp_millis(self) -> Optional[int]: ...


@dataclass(frozen=True)
class TagPredicate:
    """One conjunct of a tag query: CAST(value AS kind) <comparison> value."""

    tag: str
    comparison: Comparison
    value: Any
    kind: ValueKind = ValueKind.TEXT


# === Results ===


@dataclass
class WriteResult:
    """Result of a write operation."""

    operation: str
    written: int = 0  # Object rows upserted
    deleted: int = 0  # Object rows removed
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


@dataclass
class LoadResult:
    """Result of a load: decoded objects plus what had to be dropped."""

    objects: List[Any] = field(default_factory=list)
    skipped: int = 0  # Rows the codec could not decode
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0 and self.skipped == 0

    def first(self) -> Optional[Any]:
        return self.objects[0] if self.objects else None


# === Errors ===


class TagshelfError(Exception):
    """Base class for tagshelf errors."""


class StoreUnavailable(TagshelfError):
    """Raised when a database handle cannot be opened for reading or writing."""

    def __init__(self, db_path: Any, mode: str, cause: Optional[BaseException] = None):
        self.db_path = db_path
        self.mode = mode
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Database {db_path} can't be opened for {mode}{detail}")


class SerializationFailure(TagshelfError):
    """Raised when the codec cannot encode or decode an object."""

    def __init__(self, type_name: str, object_id: Optional[str], cause: BaseException):
        self.type_name = type_name
        self.object_id = object_id
        self.cause = cause
        where = f"{type_name}/{object_id}" if object_id else type_name
        super().__init__(f"Could not serialize {where}: {cause}")


class UsageError(TagshelfError, ValueError):
    """Raised when a request is built in an unsupported way."""
