"""
Module: production_kernel.db.base
Responsibility: Declarative base for orders, articles, floor rows and the
    article log.  Fixes the column conventions every table shares: UUID keys
    stored as 36-char strings, timezone-aware datetimes, 64-bit counters, and
    actor stamps on rows that operators create and edit.
Architecture position: Kernel > DB.  Imports nothing from the rest of the
    kernel.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

ACTOR_LENGTH = 100


class UUIDString(TypeDecorator):
    """UUID values in a String(36) column, so SQLite and PostgreSQL agree."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Every model gets a uuid4 ``id``; annotations map to the shared column types."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows edited by operators.

    Guarantees:
        - ``created_by`` is mandatory; ``updated_by`` names the last actor
          that changed the row.
        - ``created_at`` comes from the database clock; ``updated_at``
          refreshes on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[str] = mapped_column(String(ACTOR_LENGTH))
    updated_by: Mapped[str | None] = mapped_column(String(ACTOR_LENGTH))
