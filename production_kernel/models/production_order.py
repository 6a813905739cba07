"""
Module: production_kernel.models.production_order
Responsibility: ORM persistence for production orders.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - order_number is unique.
    - current_floor mirrors the most advanced floor reached by any of the
      order's articles; it is maintained by the lifecycle controller and is
      informational only.
"""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from production_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from production_kernel.models.article import Article


class ProductionOrder(TrackedBase):
    """
    A customer order aggregating one or more articles.

    Non-goals:
        Holds no quantities of its own; all counters live on articles.
    """

    __tablename__ = "production_orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_floor: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    articles: Mapped[list["Article"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ProductionOrder {self.order_number} at {self.current_floor}>"
