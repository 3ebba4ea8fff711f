"""Secondary tag index for tagshelf storage.

TagIndex keeps the tags table in step with the objects table and answers
conjunctive tag queries. Every method takes the connection of the caller's
scope, so index maintenance always shares the object rows' transaction and
lookups share the read snapshot of the load that follows them.
"""

import logging
import sqlite3
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from tagshelf.types import SearchableTag, TagPredicate

from .schema import TAGS_TABLE, validate_table_name

logger = logging.getLogger(__name__)

# Two bound parameters per (type, id) key; SQLite's historical limit is 999
MAX_KEYS_PER_STATEMENT = 400


def composite_key_clause(count: int) -> str:
    """WHERE clause matching `count` (type, id) pairs as OR-ed conjunctions."""
    return " OR ".join(["(type = ? AND id = ?)"] * count)


def chunked(items: Sequence, size: int = MAX_KEYS_PER_STATEMENT) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class TagIndex:
    """Maintains and queries the (type, id, tag, value) relation."""

    def __init__(self, table: str = TAGS_TABLE):
        self.table = validate_table_name(table)

    # === Maintenance ===

    def replace_tags(
        self,
        conn: sqlite3.Connection,
        type_name: str,
        object_id: str,
        tags: Optional[Iterable[SearchableTag]],
    ) -> int:
        """Drop the tag rows of one object and insert its current tags.

        Returns the number of tag rows inserted.
        """
        conn.execute(
            f"DELETE FROM {self.table} WHERE type = ? AND id = ?",
            (type_name, object_id),
        )
        rows = [
            (type_name, object_id, tag.key, "" if tag.value is None else str(tag.value))
            for tag in (tags or ())
        ]
        if not rows:
            return 0
        conn.executemany(
            f"INSERT OR REPLACE INTO {self.table} (type, id, tag, value) VALUES (?, ?, ?, ?)",
            rows,
        )
        return len(rows)

    def delete_for_keys(self, conn: sqlite3.Connection, keys: Sequence[Tuple[str, str]]) -> int:
        """Delete tag rows for (type, id) pairs. Returns rows removed."""
        removed = 0
        for chunk in chunked(keys):
            params = [value for key in chunk for value in key]
            cur = conn.execute(
                f"DELETE FROM {self.table} WHERE {composite_key_clause(len(chunk))}",
                params,
            )
            removed += cur.rowcount
        return removed

    def clear_type(self, conn: sqlite3.Connection, type_name: str) -> int:
        cur = conn.execute(f"DELETE FROM {self.table} WHERE type = ?", (type_name,))
        return cur.rowcount

    # === Queries ===

    def ids_matching(
        self, conn: sqlite3.Connection, type_name: str, predicate: TagPredicate
    ) -> Set[str]:
        """Distinct ids of `type_name` whose tag satisfies one predicate.

        A failed scan is logged and counts as no match.
        """
        sql = (
            f"SELECT DISTINCT id FROM {self.table} "
            f"WHERE type = ? AND tag = ? "
            f"AND CAST(value AS {predicate.kind.value}) {predicate.comparison.value} ?"
        )
        try:
            rows = conn.execute(sql, (type_name, predicate.tag, predicate.value)).fetchall()
        except (sqlite3.Error, OverflowError) as e:
            logger.warning(f"Tag scan failed for {type_name}.{predicate.tag}: {e}")
            return set()
        return {row[0] for row in rows}

    def find_ids(
        self,
        conn: sqlite3.Connection,
        type_name: str,
        predicates: List[TagPredicate],
    ) -> Set[str]:
        """Ids satisfying every predicate (AND), evaluated left to right.

        Stops scanning as soon as the running intersection is empty.
        """
        result: Optional[Set[str]] = None
        for predicate in predicates:
            candidates = self.ids_matching(conn, type_name, predicate)
            result = candidates if result is None else result & candidates
            if not result:
                return set()
        return result or set()

    def tags_for(
        self, conn: sqlite3.Connection, type_name: str, object_id: str
    ) -> List[SearchableTag]:
        """Tag rows currently indexed for one object."""
        rows = conn.execute(
            f"SELECT tag, value FROM {self.table} WHERE type = ? AND id = ? ORDER BY rowid",
            (type_name, object_id),
        ).fetchall()
        return [SearchableTag(row["tag"], row["value"]) for row in rows]
