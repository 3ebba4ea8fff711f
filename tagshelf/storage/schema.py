"""Database schema for tagshelf SQLite storage.

Contains:
- Schema DDL (SCHEMA, DROP_SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Database initialization (init_db) and recreation (recreate_db)
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

# Schema version for the two-table layout
SCHEMA_VERSION = 1

OBJECTS_TABLE = "objects"
TAGS_TABLE = "tags"

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        OBJECTS_TABLE,
        TAGS_TABLE,
        "schema_version",
    }
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Args:
        table: Table name to validate

    Returns:
        The validated table name

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- One row per stored object
CREATE TABLE IF NOT EXISTS objects (
    type TEXT NOT NULL,
    id TEXT NOT NULL,
    json TEXT NOT NULL,    -- codec output
    ts INTEGER NOT NULL,   -- epoch millis, used for ordering and range filters
    PRIMARY KEY (type, id)
);
CREATE INDEX IF NOT EXISTS idx_objects_type_ts ON objects(type, ts);

-- Secondary index: one row per (object, tag, value).
-- (type, id) references objects but is not enforced; writers keep it in step.
CREATE TABLE IF NOT EXISTS tags (
    type TEXT NOT NULL,
    id TEXT NOT NULL,
    tag TEXT NOT NULL,
    value TEXT NOT NULL,
    UNIQUE (type, id, tag, value)
);
CREATE INDEX IF NOT EXISTS idx_tags_type_tag ON tags(type, tag);
CREATE INDEX IF NOT EXISTS idx_tags_type_id ON tags(type, id);
"""

DROP_SCHEMA = """
DROP TABLE IF EXISTS tags;
DROP TABLE IF EXISTS objects;
DROP TABLE IF EXISTS schema_version;
"""


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and record the schema version.

    Safe to call on an existing database (CREATE ... IF NOT EXISTS).
    The caller owns the transaction.
    """
    tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    table_names = {t[0] for t in tables}

    for statement in _statements(SCHEMA):
        conn.execute(statement)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    elif row[0] != SCHEMA_VERSION:
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))

    if not {OBJECTS_TABLE, TAGS_TABLE}.issubset(table_names):
        logger.info(f"Created tagshelf schema v{SCHEMA_VERSION}")


def recreate_db(conn: sqlite3.Connection) -> None:
    """Drop both tables and create them again, discarding all rows."""
    for statement in _statements(DROP_SCHEMA):
        conn.execute(statement)
    init_db(conn)
    logger.info("Recreated tagshelf tables")


def _statements(script: str):
    # executescript() would COMMIT the caller's transaction, so run one at a time
    body = "\n".join(
        line for line in script.splitlines() if not line.lstrip().startswith("--")
    )
    for statement in body.split(";"):
        statement = statement.strip()
        if statement:
            yield statement
