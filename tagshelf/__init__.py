"""
tagshelf - Embedded JSON object store with a secondary tag index.
"""

from .storage import ObjectStore, QueryBuilder, StoreDispatcher
from .types import (
    Comparison,
    LoadResult,
    ObjectType,
    SearchableTag,
    SerializationFailure,
    SortOrder,
    StoredObject,
    StoreUnavailable,
    TagPredicate,
    TagshelfError,
    UsageError,
    ValueKind,
    WriteResult,
)

try:
    from importlib.metadata import version

    __version__ = version("tagshelf")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "ObjectStore",
    "QueryBuilder",
    "StoreDispatcher",
    # Types
    "ObjectType",
    "StoredObject",
    "SearchableTag",
    "SortOrder",
    "ValueKind",
    "Comparison",
    "TagPredicate",
    "WriteResult",
    "LoadResult",
    # Errors
    "TagshelfError",
    "StoreUnavailable",
    "SerializationFailure",
    "UsageError",
]
