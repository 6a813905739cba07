"""
ArticleLockRegistry -- in-process mutual exclusion per article.

Responsibility:
    Serializes mutating operations on the same article within one process
    so that two threads never read the same counters and both write back.

Architecture position:
    Kernel > Services -- used by ProductionFloorService and
    BulkProgressService around each unit of work.

Invariants enforced:
    - At most one holder per article id at a time.
    - Operations on different articles never wait for each other.
    - The lock of a deleted article is dropped from the registry.

Failure modes:
    - ArticleLockTimeoutError when the lock is not acquired within the
      requested timeout.

Cross-process writers are serialized by the database row lock instead
(``SELECT ... FOR UPDATE`` or SQLite ``BEGIN IMMEDIATE``).
"""

import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from production_kernel.exceptions import ArticleLockTimeoutError
from production_kernel.logging_config import get_logger

logger = get_logger("services.article_lock")


class ArticleLockRegistry:
    """One ``threading.Lock`` per article id, created on first use."""

    def __init__(self, default_timeout: float = 30.0):
        self._default_timeout = default_timeout
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, article_id: UUID | str) -> threading.Lock:
        key = str(article_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, article_id: UUID | str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the article's lock for the duration of the block.

        Raises:
            ArticleLockTimeoutError: not acquired within ``timeout`` seconds.
        """
        wait = self._default_timeout if timeout is None else timeout
        lock = self._lock_for(article_id)
        if not lock.acquire(timeout=wait):
            logger.warning(
                "article_lock_timeout",
                extra={"article_id": str(article_id), "timeout": wait},
            )
            raise ArticleLockTimeoutError(str(article_id), wait)
        try:
            yield
        finally:
            lock.release()

    def discard(self, article_id: UUID | str) -> None:
        """Forget the lock of an article that no longer exists."""
        with self._guard:
            self._locks.pop(str(article_id), None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
