"""Database handle lifecycle and read/write coordination.

AccessCoordinator hands out one SQLite connection per scoped operation:
- write(): exclusive lock, transaction committed on success, rolled back on error
- read(): shared lock, no transaction management
The connection is closed and the lock released on every exit path.
"""

import contextlib
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterator, Optional

from tagshelf.config import JOURNAL_MODES
from tagshelf.types import StoreUnavailable, UsageError

from .schema import init_db, recreate_db

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many readers or one writer, not reentrant.

    Writer-preferring: once a writer is waiting, new readers queue behind it.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: Optional[int] = None
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            if self._writer == threading.get_ident():
                raise UsageError("Cannot acquire read lock while holding the write lock")
            while self._writer is not None or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() without matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            if self._writer == threading.get_ident():
                raise UsageError("Write lock is not reentrant")
            self._writers_waiting += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = threading.get_ident()

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError("release_write() by a thread that does not hold the lock")
            self._writer = None
            self._cond.notify_all()

    @contextlib.contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextlib.contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class AccessCoordinator:
    """Owns the database path and serializes access to it.

    Args:
        db_path: SQLite database file.
        journal_mode: Value for PRAGMA journal_mode.
        busy_timeout_ms: Value for PRAGMA busy_timeout.
    """

    def __init__(
        self,
        db_path: Path,
        journal_mode: str = "WAL",
        busy_timeout_ms: int = 5000,
    ):
        if journal_mode.upper() not in JOURNAL_MODES:
            raise ValueError(f"Unsupported journal mode: {journal_mode}")
        self.db_path = Path(db_path)
        self.journal_mode = journal_mode.upper()
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = ReadWriteLock()

    def _open(self, mode: str) -> sqlite3.Connection:
        """Open a connection; any failure becomes StoreUnavailable."""
        conn = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Transactions are issued explicitly in write()
            conn = sqlite3.connect(
                str(self.db_path), isolation_level=None, check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
            return conn
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            raise StoreUnavailable(self.db_path, mode, e) from e

    @contextlib.contextmanager
    def write(self) -> Iterator[sqlite3.Connection]:
        """Exclusive scope with a transaction around the body.

        Commits when the body returns, rolls back and re-raises when it raises.
        """
        with self._lock.write_locked():
            conn = self._open("writing")
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except BaseException as e:
                logger.debug(f"Transaction failed, rolling back: {e}")
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                conn.close()

    @contextlib.contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Shared scope; the handle is closed even when the body raises."""
        with self._lock.read_locked():
            conn = self._open("reading")
            try:
                yield conn
            finally:
                conn.close()

    def ensure_schema(self) -> None:
        with self.write() as conn:
            init_db(conn)

    def recreate(self) -> None:
        with self.write() as conn:
            recreate_db(conn)
