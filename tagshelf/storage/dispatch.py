"""Run store operations on a dedicated I/O worker pool.

StoreDispatcher keeps callers off blocking disk access: each method submits
the matching ObjectStore call to a ThreadPoolExecutor and returns a Future.
Ordering and isolation still come from the store's AccessCoordinator;
timeouts are the caller's business (``future.result(timeout=...)``).
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Iterable, List, Optional

from tagshelf.types import LoadResult, ObjectType, StoredObject, WriteResult

from .query import QueryBuilder
from .sqlite import ObjectStore

logger = logging.getLogger(__name__)


class StoreDispatcher:
    """Asynchronous front for an ObjectStore.

    Args:
        store: The store every submitted call runs against.
        max_workers: Pool size; defaults to the store's io_workers setting.
    """

    def __init__(self, store: ObjectStore, max_workers: Optional[int] = None):
        self.store = store
        workers = max_workers or store.settings.io_workers or 1
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tagshelf-io")
        logger.debug(f"Started storage worker pool with {workers} workers")

    def __enter__(self) -> "StoreDispatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # === Writes ===

    def save(self, objects: Iterable[StoredObject]) -> "Future[WriteResult]":
        return self._executor.submit(self.store.save, list(objects))

    def save_object(self, obj: StoredObject) -> "Future[WriteResult]":
        return self._executor.submit(self.store.save_object, obj)

    def delete(self, objects: Iterable[StoredObject]) -> "Future[WriteResult]":
        return self._executor.submit(self.store.delete, list(objects))

    def delete_object(self, obj: StoredObject) -> "Future[WriteResult]":
        return self._executor.submit(self.store.delete_object, obj)

    def clear_type(self, object_type: ObjectType) -> "Future[WriteResult]":
        return self._executor.submit(self.store.clear_type, object_type)

    def recreate_tables(self) -> "Future[WriteResult]":
        return self._executor.submit(self.store.recreate_tables)

    # === Reads ===

    def run(self, query: QueryBuilder) -> "Future[LoadResult]":
        return self._executor.submit(query.run)

    def execute(self, query: QueryBuilder) -> "Future[List[Any]]":
        return self._executor.submit(query.execute)

    def get_first(self, query: QueryBuilder) -> "Future[Optional[Any]]":
        return self._executor.submit(query.get_first)
