"""
Concurrent updates to the same article.

Uses a file-backed SQLite database so every worker thread gets its own
connection.  Writers are serialized twice: by the in-process article lock
and by ``BEGIN IMMEDIATE`` at the database.  No update may be lost and the
article log sequence must stay gap-free.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import select

from production_kernel.domain.audit import ArticleAction, OperationMetadata
from production_kernel.domain.floors import Floor
from production_kernel.exceptions import ArticleLockTimeoutError
from production_kernel.models.article import Article
from production_kernel.models.article_log import ArticleLog
from production_kernel.services.article_lock import ArticleLockRegistry
from production_kernel.services.article_log_service import ArticleLogService
from production_services.floor_service import ProductionFloorService

pytestmark = pytest.mark.slow_locks

SEQUENCE = [Floor.KNITTING, Floor.LINKING]
THREADS = 6
UPDATES_PER_THREAD = 5
DELTA = 10


def _new_article(service, planned=1000):
    order_id = service.create_order("PO-CONC-1")
    return service.add_article(
        order_id, "ART-CONC", planned, floor_sequence=SEQUENCE
    ).article.article_id


def _hammer(service, article_id, barrier, worker):
    barrier.wait()
    for _ in range(UPDATES_PER_THREAD):
        service.update_progress(
            article_id,
            Floor.KNITTING,
            DELTA,
            OperationMetadata(actor=f"worker-{worker}"),
        )


class TestArticleLockRegistry:

    def test_one_lock_per_article(self):
        registry = ArticleLockRegistry(default_timeout=0.05)

        with registry.hold("a-1"):
            with registry.hold("a-2"):
                pass
            with pytest.raises(ArticleLockTimeoutError):
                with registry.hold("a-1"):
                    pass

        assert len(registry) == 2

    def test_discard_forgets_article(self):
        registry = ArticleLockRegistry(default_timeout=0.05)
        with registry.hold("a-1"):
            pass
        with registry.hold("a-2"):
            pass

        registry.discard("a-1")
        registry.discard("never-seen")

        assert len(registry) == 1
        with registry.hold("a-1"):
            pass

    def test_lock_released_on_exception(self):
        registry = ArticleLockRegistry(default_timeout=0.05)

        with pytest.raises(RuntimeError):
            with registry.hold("a-1"):
                raise RuntimeError("operation failed")

        with registry.hold("a-1"):
            pass

    def test_waiter_proceeds_after_release(self):
        registry = ArticleLockRegistry(default_timeout=5.0)
        order: list[str] = []
        holding = threading.Event()

        def first():
            with registry.hold("a-1"):
                holding.set()
                order.append("first")

        def second():
            holding.wait()
            with registry.hold("a-1"):
                order.append("second")

        threads = [threading.Thread(target=second), threading.Thread(target=first)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert order == ["first", "second"]


class TestSameArticleWriters:
    """Parallel progress updates never lose a delta."""

    def _assert_no_lost_updates(self, session_factory, article_id):
        session = session_factory()
        try:
            article = session.get(Article, article_id)
            knitting = article.floor_quantities[0]
            expected = THREADS * UPDATES_PER_THREAD * DELTA
            assert knitting.completed == expected
            assert article.version == 1 + THREADS * UPDATES_PER_THREAD

            log = ArticleLogService(session)
            trace = log.trace(article_id)
            assert trace.total_quantity(ArticleAction.QUANTITY_UPDATED) == expected
            assert log.validate_chain() is True

            seqs = session.execute(select(ArticleLog.seq).order_by(ArticleLog.seq)).scalars().all()
            assert seqs == list(range(1, len(seqs) + 1))
        finally:
            session.close()

    def test_shared_service(self, file_session_factory):
        service = ProductionFloorService(file_session_factory, lock_timeout=60.0)
        article_id = _new_article(service)
        barrier = Barrier(THREADS)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            futures = [
                pool.submit(_hammer, service, article_id, barrier, worker)
                for worker in range(THREADS)
            ]
            for future in futures:
                future.result()

        self._assert_no_lost_updates(file_session_factory, article_id)

    def test_independent_services_rely_on_database_lock(self, file_session_factory):
        """Each worker has its own lock registry, as separate processes would."""
        article_id = _new_article(ProductionFloorService(file_session_factory))
        barrier = Barrier(THREADS)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            futures = [
                pool.submit(
                    _hammer,
                    ProductionFloorService(file_session_factory, lock_timeout=60.0),
                    article_id,
                    barrier,
                    worker,
                )
                for worker in range(THREADS)
            ]
            for future in futures:
                future.result()

        self._assert_no_lost_updates(file_session_factory, article_id)
