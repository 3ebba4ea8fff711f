"""SQLite object store for tagshelf.

Local-first storage with:
- one JSON row per (type, id) in the objects table
- a tags table indexing searchable (tag, value) pairs
- single-writer / multi-reader coordination around every operation

Writes return a WriteResult instead of raising, except when the database
cannot be opened at all (StoreUnavailable). Loads go through QueryBuilder.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple

from tagshelf.config import Settings, get_settings
from tagshelf.types import (
    LoadResult,
    ObjectType,
    SearchableTag,
    SerializationFailure,
    StoredObject,
    StoreUnavailable,
    UsageError,
    WriteResult,
)
from tagshelf.utils import now_millis

from . import objects_crud
from .access import AccessCoordinator
from .codec import JsonCodec
from .query import QueryBuilder
from .schema import OBJECTS_TABLE
from .tag_index import TagIndex

logger = logging.getLogger(__name__)

# Failures a write reports in its WriteResult rather than raising
_WRITE_ERRORS = (
    sqlite3.Error,
    SerializationFailure,
    ValueError,
    TypeError,
    AttributeError,
    OverflowError,
)


class ObjectStore:
    """JSON object store with a secondary tag index.

    Args:
        db_path: Database file. Defaults to the configured path.
        settings: Settings to use instead of the environment-loaded ones.
        codec: Codec for object bodies. Defaults to JsonCodec.
        now_fn: Clock returning epoch millis, for objects saved without a timestamp.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        settings: Optional[Settings] = None,
        codec: Optional[JsonCodec] = None,
        now_fn: Optional[Callable[[], int]] = None,
    ):
        self.settings = settings or get_settings()
        self.db_path = Path(db_path) if db_path is not None else self.settings.resolved_db_path()
        self.codec = codec or JsonCodec()
        self.tag_index = TagIndex()
        self._now = now_fn or now_millis
        self._access = AccessCoordinator(
            self.db_path,
            journal_mode=self.settings.journal_mode,
            busy_timeout_ms=self.settings.busy_timeout_ms,
        )
        self._access.ensure_schema()

    @property
    def access(self) -> AccessCoordinator:
        return self._access

    def close(self):
        """Close any resources.

        Connections are opened per operation, so there is nothing held open;
        this exists for symmetry with other storage backends.
        """
        pass

    # === Writes ===

    def _write(
        self, operation: str, body: Callable[[sqlite3.Connection, WriteResult], None]
    ) -> WriteResult:
        """Run `body` in one write transaction and report how it went."""
        result = WriteResult(operation=operation)
        try:
            with self._access.write() as conn:
                body(conn, result)
        except (StoreUnavailable, UsageError):
            raise
        except _WRITE_ERRORS as e:
            logger.error(f"Error during {operation}, rolled back: {e}")
            result.written = 0
            result.deleted = 0
            result.errors.append(str(e))
        return result

    def save(self, objects: Iterable[StoredObject]) -> WriteResult:
        """Upsert objects and their tags in a single transaction.

        Either every object in the batch is stored or none is.
        """
        batch = list(objects or ())
        if not batch:
            return WriteResult(operation="save")

        def body(conn, result):
            result.written = objects_crud.save_objects(
                conn, batch, self.codec, self.tag_index, self._now
            )

        return self._write("save", body)

    def save_object(self, obj: StoredObject) -> WriteResult:
        return self.save([obj])

    def delete_keys(self, keys: Iterable[Tuple[Any, str]]) -> WriteResult:
        """Delete objects by (type, id) pairs; type may be an ObjectType or its name."""
        normalized: List[Tuple[str, str]] = []
        for object_type, object_id in keys or ():
            if object_type is None or object_id is None:
                continue
            if isinstance(object_type, ObjectType):
                object_type = object_type.name
            normalized.append((str(object_type), object_id))
        if not normalized:
            return WriteResult(operation="delete")

        def body(conn, result):
            result.deleted = objects_crud.delete_objects(conn, normalized, self.tag_index)

        return self._write("delete", body)

    def delete(self, objects: Iterable[StoredObject]) -> WriteResult:
        """Delete objects and all their tag rows in one transaction."""
        keys = [key for key in map(objects_crud.object_key, objects or ()) if key is not None]
        return self.delete_keys(keys)

    def delete_object(self, obj: Optional[StoredObject]) -> WriteResult:
        return self.delete([obj] if obj is not None else [])

    def clear_type(self, object_type: ObjectType) -> WriteResult:
        """Delete every object and tag of one type."""

        def body(conn, result):
            result.deleted = objects_crud.clear_type(conn, object_type.name, self.tag_index)

        return self._write("clear_type", body)

    def replace_type(
        self, object_type: ObjectType, objects: Iterable[StoredObject]
    ) -> WriteResult:
        """Make `objects` the complete content of `object_type`, atomically."""
        batch = list(objects or ())

        def body(conn, result):
            result.deleted = objects_crud.clear_type(conn, object_type.name, self.tag_index)
            result.written = objects_crud.save_objects(
                conn, batch, self.codec, self.tag_index, self._now
            )

        return self._write("replace_type", body)

    def recreate_tables(self) -> WriteResult:
        """Drop both tables and create them empty."""
        result = WriteResult(operation="recreate_tables")
        try:
            self._access.recreate()
        except StoreUnavailable:
            raise
        except sqlite3.Error as e:
            logger.error(f"Error recreating tables: {e}")
            result.errors.append(str(e))
        return result

    # === Reads ===

    def load(self, object_type: ObjectType) -> QueryBuilder:
        """Start a load request for one type."""
        return QueryBuilder(self, object_type)

    def run_query(self, query: QueryBuilder) -> LoadResult:
        """Execute a QueryBuilder.

        Plain loads take the read lock. Loads with truncate_rest take the
        write lock once and clear and re-save the type inside the same
        transaction, so no other operation observes the gap.
        """
        if query.truncate:
            return self._load_and_truncate(query)

        result = LoadResult()
        try:
            with self._access.read() as conn:
                entries, skipped = self._select(conn, query)
        except StoreUnavailable as e:
            logger.error(f"Error when fetching stored objects: {e}")
            result.errors.append(str(e))
            return result
        except sqlite3.Error as e:
            logger.error(f"Error when fetching {query.object_type} objects: {e}")
            result.errors.append(str(e))
            return result

        result.objects = [obj for obj, _ in entries]
        result.skipped = skipped
        return result

    def _load_and_truncate(self, query: QueryBuilder) -> LoadResult:
        result = LoadResult()
        type_name = query.object_type.name
        try:
            with self._access.write() as conn:
                entries, skipped = self._select(conn, query)
                objects_crud.clear_type(conn, type_name, self.tag_index)
                objects_crud.restore_entries(conn, entries, self.codec, self.tag_index)
        except StoreUnavailable as e:
            logger.error(f"Error when truncating {type_name}: {e}")
            result.errors.append(str(e))
            return result
        except _WRITE_ERRORS as e:
            logger.error(f"Error when truncating {type_name}, rolled back: {e}")
            result.errors.append(str(e))
            return result

        result.objects = [obj for obj, _ in entries]
        result.skipped = skipped
        return result

    def _select(
        self, conn: sqlite3.Connection, query: QueryBuilder
    ) -> Tuple[List[objects_crud.Entry], int]:
        type_name = query.object_type.name
        strategy = query.strategy
        if strategy == "ids":
            rows = objects_crud.select_by_ids(
                conn, type_name, query.ids, query.ts_order, query.max_rows
            )
        elif strategy == "tags":
            ids = self.tag_index.find_ids(conn, type_name, query.tag_predicates)
            if not ids:
                return [], 0
            rows = objects_crud.select_by_ids(conn, type_name, ids, query.ts_order, query.max_rows)
        else:
            rows = objects_crud.select_by_type(
                conn,
                type_name,
                order=query.ts_order,
                limit=query.max_rows,
                before=query.before,
                after=query.after,
            )
        return objects_crud.decode_rows(rows, query.object_type, self.codec)

    def indexed_tags(self, object_type: ObjectType, object_id: str) -> List[SearchableTag]:
        """Tags currently indexed for one object (empty if unknown or unreadable)."""
        try:
            with self._access.read() as conn:
                return self.tag_index.tags_for(conn, object_type.name, object_id)
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.error(f"Error when fetching tags of {object_type}:{object_id}: {e}")
            return []

    def count(self, object_type: ObjectType) -> int:
        """Number of stored objects of one type (0 if the store is unreadable)."""
        try:
            with self._access.read() as conn:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {OBJECTS_TABLE} WHERE type = ?", (object_type.name,)
                ).fetchone()
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.error(f"Error when counting {object_type} objects: {e}")
            return 0
        return row[0]
