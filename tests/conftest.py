"""
Pytest fixtures for the production kernel test suite.

Provides:
- In-memory SQLite database per test (fresh schema, no cleanup needed)
- File-backed SQLite database for multi-threaded tests
- Deterministic clock, in-memory audit sink, controller and order service
- Article builders for DB-backed and pure engine tests
- Captured structured logs

Environment Variables:
- None.  PostgreSQL is the production target; the suite runs on SQLite so
  it needs no external services.
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from production_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from production_kernel.domain.article_state import ArticleState, FloorQuantityRecord
from production_kernel.domain.audit import InMemoryAuditSink, OperationMetadata
from production_kernel.domain.clock import DeterministicClock
from production_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from production_services.article_lifecycle import ArticleLifecycleController
from production_services.order_service import OrderService

TEST_ACTOR = "test-operator"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture production_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, controller):
            controller.update_progress(...)
            logs = captured_logs()
            assert any(r["message"] == "article_operation_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("production_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A session whose transaction is rolled back after the test."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite for tests that write from several threads."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'production.db'}", sqlite_timeout=60.0)
    create_tables()
    yield get_session_factory()
    reset_engine()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def metadata():
    return OperationMetadata(actor=TEST_ACTOR, remarks="shift A")


@pytest.fixture
def controller(session, audit_sink, deterministic_clock):
    return ArticleLifecycleController(
        session, audit_sink=audit_sink, clock=deterministic_clock
    )


@pytest.fixture
def order_service(session, audit_sink, deterministic_clock):
    return OrderService(session, audit_sink=audit_sink, clock=deterministic_clock)


@pytest.fixture
def make_article(order_service, session):
    """
    Create an order with one article and return the article id.

    Usage::

        article_id = make_article(planned=1000, sequence=["Knitting", "Linking"])
    """

    def _make(planned: int = 1000, sequence=None, linking_type=None, article_number=None):
        order = order_service.create_order(f"PO-{uuid4().hex[:8]}")
        result = order_service.add_article(
            order.id,
            article_number or f"ART-{uuid4().hex[:6]}",
            planned,
            linking_type=linking_type,
            floor_sequence=sequence,
        )
        session.flush()
        return result.article.article_id

    return _make


# =============================================================================
# Pure engine fixtures
# =============================================================================


def build_state(
    sequence,
    planned: int = 1000,
    current_floor: str | None = None,
    floors: dict[str, dict] | None = None,
) -> ArticleState:
    """
    Detached ArticleState for engine tests.

    The first floor receives ``planned``.  ``floors`` maps a floor name to
    counter overrides, e.g. ``{"Checking": {"received": 1000}}``.
    """
    state = ArticleState(
        article_id=uuid4(),
        order_id=uuid4(),
        article_number="ART-TEST",
        planned_quantity=planned,
        floor_sequence=tuple(sequence),
        current_floor=current_floor or sequence[0],
    )
    state.floors[sequence[0]].received = planned
    for floor, counters in (floors or {}).items():
        record: FloorQuantityRecord = state.floors[floor]
        for name, value in counters.items():
            setattr(record, name, value)
    return state


@pytest.fixture
def state_factory():
    return build_state
