"""
Module: production_kernel.models.article
Responsibility: ORM persistence for articles and their per-floor counters.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One ArticleFloorQuantity row per (article, floor); unique constraint.
    - ``version`` is the optimistic concurrency token.  Writers bump it
      explicitly on every mutation, and SQLAlchemy adds ``WHERE version = :old``
      to the UPDATE, so a lost update surfaces as StaleDataError.
    - Counter columns are never negative (CHECK constraints).

Failure modes:
    - StaleDataError on a concurrent write, translated to OptimisticLockError
      by the lifecycle controller.
    - IntegrityError on a duplicate floor row or a negative counter.

Audit relevance:
    These rows are the current state only.  History lives in ArticleLog.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from production_kernel.db.base import Base, TrackedBase, UUIDString
from production_kernel.models.production_order import ProductionOrder


class Article(TrackedBase):
    """
    One article of a production order moving through its floor sequence.

    Contract:
        ``floor_sequence`` is captured at creation from the injected
        sequence provider.  ``floor_quantities`` holds one row per floor in
        that sequence.
    """

    __tablename__ = "articles"

    __table_args__ = (
        Index("idx_article_order", "order_id"),
        Index("idx_article_number", "article_number"),
        CheckConstraint("planned_quantity > 0", name="ck_article_planned_positive"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_article_progress_range"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("production_orders.id"),
        nullable=False,
    )

    article_number: Mapped[str] = mapped_column(String(100), nullable=False)

    linking_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    planned_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    floor_sequence: Mapped[list] = mapped_column(JSON, nullable=False)

    current_floor: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    final_quality_confirmed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    quantity_from_previous_floor: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    order: Mapped[ProductionOrder] = relationship(back_populates="articles")

    floor_quantities: Mapped[list["ArticleFloorQuantity"]] = relationship(
        back_populates="article",
        cascade="all, delete-orphan",
        order_by="ArticleFloorQuantity.position",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return f"<Article {self.article_number} at {self.current_floor} ({self.status})>"


class ArticleFloorQuantity(Base):
    """Counter bucket for one floor of one article."""

    __tablename__ = "article_floor_quantities"

    __table_args__ = (
        UniqueConstraint("article_id", "floor", name="uq_article_floor"),
        CheckConstraint(
            "received >= 0 AND completed >= 0 AND transferred >= 0 "
            "AND m1_quantity >= 0 AND m2_quantity >= 0 AND m3_quantity >= 0 "
            "AND m4_quantity >= 0 AND m1_transferred >= 0 AND m2_transferred >= 0 "
            "AND repair_received >= 0",
            name="ck_floor_counters_non_negative",
        ),
        CheckConstraint("transferred <= completed", name="ck_floor_transferred_le_completed"),
        CheckConstraint("m1_transferred <= m1_quantity", name="ck_floor_m1_transferred"),
    )

    article_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("articles.id", ondelete="CASCADE"),
        nullable=False,
    )

    floor: Mapped[str] = mapped_column(String(50), nullable=False)

    # Index of the floor in the article's sequence
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    received: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    completed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    m1_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    m2_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    m3_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    m4_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    m1_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    m2_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    repair_received: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    repair_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Not Required"
    )
    repair_remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")

    article: Mapped[Article] = relationship(back_populates="floor_quantities")

    def __repr__(self) -> str:
        return (
            f"<ArticleFloorQuantity {self.floor} "
            f"r={self.received} c={self.completed} t={self.transferred}>"
        )
