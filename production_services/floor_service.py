"""
ProductionFloorService -- transactional, serialized entry points.

Responsibility:
    Runs each article operation in its own transaction while holding the
    article's in-process lock, so callers never manage sessions or locks.

Architecture position:
    Services -- outermost layer of this package.  Wires configuration
    (policy, sequence provider, propagation mode) into the controller.

Invariants enforced:
    - Same-article operations are serialized: registry lock in-process,
      row lock / BEGIN IMMEDIATE across processes.
    - One operation == one transaction: committed on success, rolled back
      on any exception.

Failure modes:
    - ArticleLockTimeoutError when the article stays busy past the timeout.
    - Everything the controller raises, after rollback.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from production_config.bridges import (
    build_floor_lifecycle,
    build_floor_policy,
    build_sequence_provider,
)
from production_config.schema import ProductionConfig
from production_engines.floor_lifecycle import FloorLifecycle
from production_engines.quality_inspection import InspectionRequest
from production_engines.quantity_update import QualityFields
from production_kernel.db.engine import session_scope
from production_kernel.domain.article_state import ArticleState
from production_kernel.domain.audit import AuditSink, OperationMetadata
from production_kernel.domain.clock import Clock, SystemClock
from production_kernel.domain.floors import (
    DEFAULT_FLOOR_POLICY,
    FloorPolicy,
    FloorSequenceProvider,
    LinkingTypeSequenceProvider,
)
from production_kernel.logging_config import get_logger
from production_kernel.selectors.article_selector import ArticleSelector, FloorStatus
from production_kernel.services.article_lock import ArticleLockRegistry
from production_kernel.services.article_log_service import ArticleLogService
from production_services.article_lifecycle import (
    ArticleLifecycleController,
    ArticleOperationResult,
    RepairTransferSummary,
    TransferSummary,
)
from production_services.order_service import OrderService

logger = get_logger("services.floor")

T = TypeVar("T")

AuditSinkFactory = Callable[[Session], AuditSink]


class ProductionFloorService:
    """
    Facade over the lifecycle controller with transaction and lock handling.

    Contract:
        Every mutating method opens a session from ``session_factory``,
        runs exactly one controller operation under the article lock and
        commits.  Read methods open a session without taking the lock.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        policy: FloorPolicy = DEFAULT_FLOOR_POLICY,
        sequence_provider: FloorSequenceProvider | None = None,
        lifecycle: FloorLifecycle | None = None,
        aliases: dict[str, str] | None = None,
        clock: Clock | None = None,
        locks: ArticleLockRegistry | None = None,
        audit_sink_factory: AuditSinkFactory | None = None,
        lock_timeout: float = 30.0,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._sequence_provider = sequence_provider or LinkingTypeSequenceProvider()
        self._lifecycle = lifecycle or FloorLifecycle(policy)
        self._aliases = dict(aliases or {})
        self._clock = clock or SystemClock()
        self._locks = locks or ArticleLockRegistry(lock_timeout)
        self._audit_sink_factory = audit_sink_factory or ArticleLogService
        self._lock_timeout = lock_timeout

    @classmethod
    def from_config(
        cls,
        session_factory: sessionmaker[Session],
        config: ProductionConfig,
        **kwargs,
    ) -> ProductionFloorService:
        policy = build_floor_policy(config)
        kwargs.setdefault("lock_timeout", config.bulk.lock_timeout_seconds)
        logger.info(
            "floor_service_configured",
            extra={
                "config_id": config.config_id,
                "config_version": config.version,
                "propagation_mode": config.propagation.mode.value,
            },
        )
        return cls(
            session_factory,
            policy=policy,
            sequence_provider=build_sequence_provider(config),
            lifecycle=build_floor_lifecycle(config, policy),
            aliases=config.alias_map,
            **kwargs,
        )

    @property
    def locks(self) -> ArticleLockRegistry:
        return self._locks

    def controller(self, session: Session) -> ArticleLifecycleController:
        return ArticleLifecycleController(
            session,
            audit_sink=self._audit_sink_factory(session),
            clock=self._clock,
            policy=self._policy,
            lifecycle=self._lifecycle,
            aliases=self._aliases,
        )

    def orders(self, session: Session) -> OrderService:
        return OrderService(
            session,
            sequence_provider=self._sequence_provider,
            audit_sink=self._audit_sink_factory(session),
            clock=self._clock,
            aliases=self._aliases,
        )

    def _run(
        self,
        article_id: UUID,
        operation: Callable[[ArticleLifecycleController], T],
    ) -> T:
        with self._locks.hold(article_id, self._lock_timeout):
            with session_scope(self._session_factory) as session:
                return operation(self.controller(session))

    # -- mutating operations ---------------------------------------------------

    def update_progress(
        self,
        article_id: UUID,
        floor: str,
        completed_delta: int,
        metadata: OperationMetadata | None = None,
        quality: QualityFields | None = None,
    ) -> ArticleOperationResult:
        return self._run(
            article_id,
            lambda c: c.update_progress(article_id, floor, completed_delta, metadata, quality),
        )

    def transfer_floor(
        self,
        article_id: UUID,
        floor: str,
        metadata: OperationMetadata | None = None,
    ) -> TransferSummary:
        return self._run(article_id, lambda c: c.transfer_floor(article_id, floor, metadata))

    def quality_inspect(
        self,
        article_id: UUID,
        inspection: InspectionRequest,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        return self._run(
            article_id, lambda c: c.quality_inspect(article_id, inspection, metadata)
        )

    def repair_transfer(
        self,
        floor: str,
        article_id: UUID,
        quantity: int | None = None,
        target_floor: str | None = None,
        metadata: OperationMetadata | None = None,
    ) -> RepairTransferSummary:
        return self._run(
            article_id,
            lambda c: c.repair_transfer(floor, article_id, quantity, target_floor, metadata),
        )

    def shift_m2_items(
        self,
        article_id: UUID,
        floor: str,
        from_m2: int,
        to_m1: int = 0,
        to_m3: int = 0,
        to_m4: int = 0,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        return self._run(
            article_id,
            lambda c: c.shift_m2_items(
                article_id, floor, from_m2, to_m1, to_m3, to_m4, metadata
            ),
        )

    def update_knitting_defects(
        self,
        article_id: UUID,
        m4_quantity: int,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        return self._run(
            article_id, lambda c: c.update_knitting_defects(article_id, m4_quantity, metadata)
        )

    def confirm_final_quality(
        self,
        article_id: UUID,
        confirmed: bool = True,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        return self._run(
            article_id, lambda c: c.confirm_final_quality(article_id, confirmed, metadata)
        )

    # -- orders ------------------------------------------------------------------

    def create_order(self, order_number: str, metadata: OperationMetadata | None = None) -> UUID:
        with session_scope(self._session_factory) as session:
            return self.orders(session).create_order(order_number, metadata).id

    def add_article(
        self,
        order_id: UUID,
        article_number: str,
        planned_quantity: int,
        linking_type: str | None = None,
        floor_sequence: list[str] | None = None,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        with session_scope(self._session_factory) as session:
            return self.orders(session).add_article(
                order_id,
                article_number,
                planned_quantity,
                linking_type=linking_type,
                floor_sequence=floor_sequence,
                metadata=metadata,
            )

    def delete_article(
        self,
        article_id: UUID,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        with self._locks.hold(article_id, self._lock_timeout):
            with session_scope(self._session_factory) as session:
                result = self.orders(session).delete_article(article_id, metadata)
        self._locks.discard(article_id)
        return result

    # -- reads -------------------------------------------------------------------

    def get_article(self, article_id: UUID) -> ArticleState:
        with session_scope(self._session_factory) as session:
            return ArticleSelector(session, self._policy).get_state(article_id)

    def floor_statuses(self, article_id: UUID) -> list[FloorStatus]:
        with session_scope(self._session_factory) as session:
            return ArticleSelector(session, self._policy).all_floor_statuses(article_id)
