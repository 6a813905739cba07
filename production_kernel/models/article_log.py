"""
Module: production_kernel.models.article_log
Responsibility: ORM persistence for the tamper-evident article history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Article logs are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - Hash chain integrity: hash = H(article_id | action | payload_hash |
      prev_hash).  Validated by ArticleLogService.
    - seq is monotonically increasing, allocated by SequenceService.
    - No foreign key to articles: history survives administrative deletion.

Audit relevance:
    ArticleLog IS the production history.  Every completed-quantity change,
    transfer, quality split and repair loopback produces one row.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from production_kernel.db.base import Base, UUIDString


class ArticleLog(Base):
    """
    One immutable article history row with hash chain linkage.

    Non-goals:
        This model does NOT compute hashes; ArticleLogService does.
    """

    __tablename__ = "article_logs"

    __table_args__ = (
        Index("idx_article_log_article", "article_id"),
        Index("idx_article_log_action", "action"),
        Index("idx_article_log_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    article_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    from_floor: Mapped[str | None] = mapped_column(String(50), nullable=True)

    to_floor: Mapped[str | None] = mapped_column(String(50), nullable=True)

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    previous_value: Mapped[Any] = mapped_column(JSON, nullable=True)

    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)

    actor: Mapped[str] = mapped_column(String(100), nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the first row in the store
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ArticleLog #{self.seq} {self.action} on {self.article_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
