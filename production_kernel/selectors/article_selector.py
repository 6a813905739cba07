"""
Module: production_kernel.selectors.article_selector
Responsibility: Read-only article queries: the engine working copy
    (``ArticleState``) and per-floor status rows with completion rates.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: no add, delete, flush or commit.
    - DTO return convention: callers receive ``ArticleState`` or frozen
      ``FloorStatus`` rows, never ORM instances.
    - remaining and completion rate are derived at query time, never stored.

Failure modes:
    - ArticleNotFoundError for an unknown article id.
    - FloorNotInSequenceError for a floor outside the article's sequence.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from production_kernel.domain.article_state import (
    ArticleState,
    ArticleStatus,
    FloorQuantityRecord,
    RepairStatus,
)
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, FloorPolicy
from production_kernel.exceptions import ArticleNotFoundError
from production_kernel.models.article import Article


def article_to_state(article: Article) -> ArticleState:
    """Copy an ORM article and its floor rows into a detached working copy."""
    floors = {
        row.floor: FloorQuantityRecord(
            floor=row.floor,
            received=row.received,
            completed=row.completed,
            transferred=row.transferred,
            m1_quantity=row.m1_quantity,
            m2_quantity=row.m2_quantity,
            m3_quantity=row.m3_quantity,
            m4_quantity=row.m4_quantity,
            m1_transferred=row.m1_transferred,
            m2_transferred=row.m2_transferred,
            repair_received=row.repair_received,
            repair_status=RepairStatus(row.repair_status),
            repair_remarks=row.repair_remarks or "",
        )
        for row in article.floor_quantities
    }
    return ArticleState(
        article_id=article.id,
        order_id=article.order_id,
        article_number=article.article_number,
        planned_quantity=article.planned_quantity,
        floor_sequence=tuple(article.floor_sequence),
        current_floor=article.current_floor,
        status=ArticleStatus(article.status),
        progress=article.progress,
        floors=floors,
        started_at=article.started_at,
        completed_at=article.completed_at,
        final_quality_confirmed=article.final_quality_confirmed,
        quantity_from_previous_floor=article.quantity_from_previous_floor,
        remarks=article.remarks,
    )


@dataclass(frozen=True)
class FloorStatus:
    """Snapshot of one floor of one article."""

    floor: str
    position: int
    is_current: bool
    received: int
    completed: int
    transferred: int
    remaining: int
    m1_quantity: int
    m2_quantity: int
    m3_quantity: int
    m4_quantity: int
    m1_transferred: int
    m2_transferred: int
    repair_received: int
    repair_status: RepairStatus
    good_quantity: int

    @property
    def completion_rate(self) -> int:
        """Completed as a percentage of received, 0 when nothing arrived."""
        if self.received <= 0:
            return 0
        return int(round(self.completed / self.received * 100))


class ArticleSelector:
    """
    Read-only access to articles.

    Contract:
        The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session, policy: FloorPolicy = DEFAULT_FLOOR_POLICY):
        self.session = session
        self._policy = policy

    def _article(self, article_id: UUID) -> Article:
        article = self.session.execute(
            select(Article)
            .where(Article.id == article_id)
            .options(selectinload(Article.floor_quantities))
        ).scalar_one_or_none()
        if article is None:
            raise ArticleNotFoundError(str(article_id))
        return article

    def get_state(self, article_id: UUID) -> ArticleState:
        return article_to_state(self._article(article_id))

    def _status(self, state: ArticleState, floor: str) -> FloorStatus:
        record = state.record(floor)
        good = record.completed
        if self._policy.allows_overproduction(floor):
            good = record.completed - record.m4_quantity
        return FloorStatus(
            floor=floor,
            position=state.index_of(floor),
            is_current=floor == state.current_floor,
            received=record.received,
            completed=record.completed,
            transferred=record.transferred,
            remaining=record.remaining,
            m1_quantity=record.m1_quantity,
            m2_quantity=record.m2_quantity,
            m3_quantity=record.m3_quantity,
            m4_quantity=record.m4_quantity,
            m1_transferred=record.m1_transferred,
            m2_transferred=record.m2_transferred,
            repair_received=record.repair_received,
            repair_status=record.repair_status,
            good_quantity=good,
        )

    def floor_status(self, article_id: UUID, floor: str) -> FloorStatus:
        state = self.get_state(article_id)
        return self._status(state, floor)

    def all_floor_statuses(self, article_id: UUID) -> list[FloorStatus]:
        """One row per floor, in sequence order."""
        state = self.get_state(article_id)
        return [self._status(state, floor) for floor in state.floor_sequence]

    def articles_for_order(self, order_id: UUID) -> list[ArticleState]:
        articles = self.session.execute(
            select(Article)
            .where(Article.order_id == order_id)
            .options(selectinload(Article.floor_quantities))
            .order_by(Article.article_number, Article.created_at)
        ).scalars().all()
        return [article_to_state(a) for a in articles]
