"""tagshelf storage backend.

Local-first object storage using SQLite: an objects table holding JSON
bodies and a tags table indexing searchable key/value pairs.
"""

from .access import AccessCoordinator, ReadWriteLock
from .codec import JsonCodec
from .dispatch import StoreDispatcher
from .query import QueryBuilder
from .schema import SCHEMA_VERSION, init_db, recreate_db, validate_table_name
from .sqlite import ObjectStore
from .tag_index import TagIndex

__all__ = [
    # Implementations
    "ObjectStore",
    "QueryBuilder",
    "StoreDispatcher",
    # Building blocks
    "AccessCoordinator",
    "ReadWriteLock",
    "JsonCodec",
    "TagIndex",
    # Schema
    "SCHEMA_VERSION",
    "init_db",
    "recreate_db",
    "validate_table_name",
]
