"""Object row operations for tagshelf storage.

Module-level functions that run inside a connection scope opened by
AccessCoordinator. They never open connections, take locks, or commit;
ObjectStore decides the transaction boundaries and delegates here.

All functions receive their collaborators (codec, tag index, clock)
explicitly.
"""

import logging
import sqlite3
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from tagshelf.types import (
    ObjectType,
    SerializationFailure,
    SortOrder,
    StoredObject,
    check_int64,
)

from .codec import JsonCodec
from .schema import OBJECTS_TABLE
from .tag_index import TagIndex, chunked, composite_key_clause

logger = logging.getLogger(__name__)

# rowid is the tie-breaker so equal timestamps keep insertion order
_ORDER_BY = {
    None: "rowid ASC",
    SortOrder.ASC: "ts ASC, rowid ASC",
    SortOrder.DESC: "ts DESC, rowid DESC",
}

MAX_IDS_PER_STATEMENT = 900

# (object, effective ts) as loaded from a row
Entry = Tuple[Any, int]


def object_key(obj: StoredObject) -> Optional[Tuple[str, str]]:
    """(type name, id) for an object, or None if either part is missing."""
    if obj is None:
        return None
    object_type = obj.stored_object_type()
    object_id = obj.stored_object_id()
    if object_type is None or object_id is None:
        return None
    return object_type.name, object_id


def effective_timestamp(obj: StoredObject, now_fn: Callable[[], int]) -> int:
    """The object's own timestamp, or now when it has none."""
    ts = obj.stored_object_timestamp_millis()
    if ts is None or ts == 0:
        return now_fn()
    return check_int64(int(ts))


def upsert_object(
    conn: sqlite3.Connection,
    obj: StoredObject,
    ts: int,
    codec: JsonCodec,
    tag_index: TagIndex,
) -> None:
    """Write one object row and replace its tag rows."""
    key = object_key(obj)
    if key is None:
        raise ValueError(f"Object {obj!r} has no type or id")
    type_name, object_id = key
    body = codec.encode(obj)
    conn.execute(
        f"INSERT OR REPLACE INTO {OBJECTS_TABLE} (type, id, json, ts) VALUES (?, ?, ?, ?)",
        (type_name, object_id, body, ts),
    )
    tag_index.replace_tags(conn, type_name, object_id, obj.stored_object_tags())


def save_objects(
    conn: sqlite3.Connection,
    objects: Iterable[StoredObject],
    codec: JsonCodec,
    tag_index: TagIndex,
    now_fn: Callable[[], int],
) -> int:
    """Upsert objects with their tags. Returns the number written."""
    written = 0
    for obj in objects:
        upsert_object(conn, obj, effective_timestamp(obj, now_fn), codec, tag_index)
        written += 1
    return written


def restore_entries(
    conn: sqlite3.Connection,
    entries: Iterable[Entry],
    codec: JsonCodec,
    tag_index: TagIndex,
) -> int:
    """Re-save previously loaded objects with the timestamps they were stored under."""
    written = 0
    for obj, ts in entries:
        upsert_object(conn, obj, ts, codec, tag_index)
        written += 1
    return written


def delete_objects(
    conn: sqlite3.Connection,
    keys: Sequence[Tuple[str, str]],
    tag_index: TagIndex,
) -> int:
    """Delete object rows and their tag rows. Returns object rows removed."""
    removed = 0
    for chunk in chunked(keys):
        params = [value for key in chunk for value in key]
        cur = conn.execute(
            f"DELETE FROM {OBJECTS_TABLE} WHERE {composite_key_clause(len(chunk))}",
            params,
        )
        removed += cur.rowcount
    tag_index.delete_for_keys(conn, keys)
    return removed


def clear_type(conn: sqlite3.Connection, type_name: str, tag_index: TagIndex) -> int:
    """Delete every object row and tag row of one type. Returns object rows removed."""
    cur = conn.execute(f"DELETE FROM {OBJECTS_TABLE} WHERE type = ?", (type_name,))
    tag_index.clear_type(conn, type_name)
    return cur.rowcount


def select_by_type(
    conn: sqlite3.Connection,
    type_name: str,
    order: Optional[SortOrder] = None,
    limit: int = 0,
    before: Optional[int] = None,
    after: Optional[int] = None,
) -> List[sqlite3.Row]:
    """Rows of one type, optionally bounded by inclusive ts limits."""
    where = ["type = ?"]
    params: List[Any] = [type_name]
    if before is not None:
        where.append("ts <= ?")
        params.append(before)
    if after is not None:
        where.append("ts >= ?")
        params.append(after)

    sql = (
        f"SELECT rowid, id, json, ts FROM {OBJECTS_TABLE} "
        f"WHERE {' AND '.join(where)} ORDER BY {_ORDER_BY[order]}"
    )
    if limit > 0:
        sql += " LIMIT ?"
        params.append(limit)
    return conn.execute(sql, params).fetchall()


def select_by_ids(
    conn: sqlite3.Connection,
    type_name: str,
    ids: Iterable[str],
    order: Optional[SortOrder] = None,
    limit: int = 0,
) -> List[sqlite3.Row]:
    """Rows of one type whose id is in `ids`.

    Large id sets are fetched in chunks and ordered here, so the result
    order matches select_by_type's.
    """
    unique_ids = list(dict.fromkeys(ids))
    rows: List[sqlite3.Row] = []
    for chunk in chunked(unique_ids, size=MAX_IDS_PER_STATEMENT):
        placeholders = ", ".join("?" * len(chunk))
        rows.extend(
            conn.execute(
                f"SELECT rowid, id, json, ts FROM {OBJECTS_TABLE} "
                f"WHERE type = ? AND id IN ({placeholders})",
                [type_name, *chunk],
            ).fetchall()
        )

    if order is SortOrder.ASC:
        rows.sort(key=lambda r: (r["ts"], r["rowid"]))
    elif order is SortOrder.DESC:
        rows.sort(key=lambda r: (r["ts"], r["rowid"]), reverse=True)
    else:
        rows.sort(key=lambda r: r["rowid"])

    if limit > 0:
        rows = rows[:limit]
    return rows


def decode_rows(
    rows: Iterable[sqlite3.Row], object_type: ObjectType, codec: JsonCodec
) -> Tuple[List[Entry], int]:
    """Decode rows into (object, ts) entries.

    Rows the codec rejects are logged and dropped. Returns the entries and
    the number dropped.
    """
    entries: List[Entry] = []
    skipped = 0
    for row in rows:
        try:
            entries.append((codec.decode(row["json"], object_type), row["ts"]))
        except SerializationFailure as e:
            skipped += 1
            logger.warning(f"Dropping unreadable {object_type.name}/{row['id']}: {e.cause}")
    return entries, skipped
