"""
Pytest fixtures and test configuration for tagshelf tests.
"""

import sqlite3
from contextlib import closing

import pytest

from tagshelf.config import Settings
from tagshelf.storage import ObjectStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "objects.db"


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path, io_workers=2)


@pytest.fixture
def clock():
    """Mutable fake clock; set clock[0] to move time."""
    return [1_000_000]


@pytest.fixture
def store(settings, clock):
    s = ObjectStore(settings=settings, now_fn=lambda: clock[0])
    yield s
    s.close()


@pytest.fixture
def raw_rows(db_path):
    """Run a query straight against the database file."""

    def _query(sql, params=()):
        with closing(sqlite3.connect(str(db_path))) as conn:
            return conn.execute(sql, params).fetchall()

    return _query
