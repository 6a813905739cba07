"""
OrderService -- production orders and article creation/deletion.

Responsibility:
    Creates production orders, adds articles to them with a floor sequence
    from the injected provider, and removes articles administratively.

Architecture position:
    Services -- stateful orchestration over kernel models.

Invariants enforced:
    - planned_quantity > 0.
    - A new article has one floor row per floor in its sequence, its first
      floor's ``received`` pre-set to the planned quantity, and version 1.
    - The floor sequence is captured at creation and never re-derived.

Failure modes:
    - OrderNotFoundError, ArticleNotFoundError.
    - InvalidQuantityError for a non-positive planned quantity.
    - InvalidFloorSequenceError / UnknownFloorError for a bad sequence.

Audit relevance:
    Emits ARTICLE_CREATED and ARTICLE_DELETED entries; the article log rows
    outlive a deleted article.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from production_kernel.domain.article_state import ArticleState, ArticleStatus
from production_kernel.domain.audit import (
    ArticleAction,
    AuditSink,
    FloorEvent,
    OperationMetadata,
)
from production_kernel.domain.clock import Clock, SystemClock
from production_kernel.domain.floors import (
    FloorSequenceProvider,
    LinkingTypeSequenceProvider,
    validate_sequence,
)
from production_kernel.exceptions import (
    ArticleNotFoundError,
    InvalidQuantityError,
    OrderNotFoundError,
)
from production_kernel.logging_config import LogContext, get_logger
from production_kernel.models.article import Article, ArticleFloorQuantity
from production_kernel.models.production_order import ProductionOrder
from production_kernel.selectors.article_selector import article_to_state
from production_kernel.services.article_log_service import ArticleLogService
from production_services.article_lifecycle import (
    ArticleOperationResult,
    emit_audit_entries,
)

logger = get_logger("services.order")


@dataclass(frozen=True)
class _NewArticle:
    """What a sequence provider sees for an article not yet persisted."""

    article_number: str
    linking_type: str | None
    floor_sequence: list[str] | None


class OrderService:
    """
    Order and article administration.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        sequence_provider: FloorSequenceProvider | None = None,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
        aliases: Mapping[str, str] | None = None,
    ):
        self._session = session
        self._provider = sequence_provider or LinkingTypeSequenceProvider()
        self._audit_sink = audit_sink if audit_sink is not None else ArticleLogService(session)
        self._clock = clock or SystemClock()
        self._aliases = dict(aliases or {})

    def create_order(
        self,
        order_number: str,
        metadata: OperationMetadata | None = None,
    ) -> ProductionOrder:
        metadata = metadata or OperationMetadata()
        order = ProductionOrder(order_number=order_number, created_by=metadata.actor)
        self._session.add(order)
        self._session.flush()
        logger.info(
            "order_created",
            extra={"order_id": str(order.id), "order_number": order_number},
        )
        return order

    def get_order(self, order_id: UUID) -> ProductionOrder:
        order = self._session.get(ProductionOrder, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def add_article(
        self,
        order_id: UUID,
        article_number: str,
        planned_quantity: int,
        linking_type: str | None = None,
        floor_sequence: Sequence[str] | None = None,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        """
        Create an article on an order.

        Preconditions:
            ``planned_quantity`` > 0.

        Postconditions:
            The article is Pending on the first floor of its sequence with
            that floor's received equal to ``planned_quantity``.
        """
        metadata = metadata or OperationMetadata()
        if (
            isinstance(planned_quantity, bool)
            or not isinstance(planned_quantity, int)
            or planned_quantity <= 0
        ):
            raise InvalidQuantityError("planned_quantity", planned_quantity)
        order = self.get_order(order_id)

        if floor_sequence:
            sequence = validate_sequence(floor_sequence, self._aliases)
        else:
            pending = _NewArticle(article_number, linking_type, None)
            sequence = validate_sequence(self._provider.sequence_for(pending), self._aliases)

        article = Article(
            order_id=order.id,
            article_number=article_number,
            linking_type=linking_type,
            planned_quantity=planned_quantity,
            floor_sequence=list(sequence),
            current_floor=sequence[0],
            status=ArticleStatus.PENDING.value,
            progress=0,
            version=1,
            created_by=metadata.actor,
            remarks=metadata.remarks,
        )
        article.floor_quantities = [
            ArticleFloorQuantity(
                floor=floor,
                position=position,
                received=planned_quantity if position == 0 else 0,
            )
            for position, floor in enumerate(sequence)
        ]
        self._session.add(article)
        if order.current_floor is None:
            order.current_floor = sequence[0]
        self._session.flush()

        state = article_to_state(article)
        with LogContext.bind(article_id=str(article.id), order_id=str(order.id)):
            entries, warnings = emit_audit_entries(
                self._audit_sink,
                article_id=article.id,
                order_id=order.id,
                events=[
                    FloorEvent(
                        action=ArticleAction.ARTICLE_CREATED,
                        to_floor=sequence[0],
                        quantity=planned_quantity,
                        new_value={
                            "article_number": article_number,
                            "floor_sequence": list(sequence),
                        },
                    )
                ],
                metadata=metadata,
                now=self._clock.now(),
            )
            logger.info(
                "article_created",
                extra={
                    "article_number": article_number,
                    "planned_quantity": planned_quantity,
                    "floor_count": len(sequence),
                },
            )
        return ArticleOperationResult(article=state, entries=entries, audit_warnings=warnings)

    def delete_article(
        self,
        article_id: UUID,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        """Delete an article and its floor rows; its log rows remain."""
        metadata = metadata or OperationMetadata()
        article = self._session.execute(
            select(Article).where(Article.id == article_id).with_for_update()
        ).scalar_one_or_none()
        if article is None:
            raise ArticleNotFoundError(str(article_id))

        state: ArticleState = article_to_state(article)
        self._session.delete(article)
        self._session.flush()

        entries, warnings = emit_audit_entries(
            self._audit_sink,
            article_id=state.article_id,
            order_id=state.order_id,
            events=[
                FloorEvent(
                    action=ArticleAction.ARTICLE_DELETED,
                    from_floor=state.current_floor,
                    previous_value={
                        "status": state.status.value,
                        "progress": state.progress,
                    },
                )
            ],
            metadata=metadata,
            now=self._clock.now(),
        )
        logger.info("article_deleted", extra={"article_id": str(article_id)})
        return ArticleOperationResult(article=state, entries=entries, audit_warnings=warnings)
