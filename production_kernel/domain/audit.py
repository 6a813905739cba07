"""
Audit vocabulary -- actions, engine events, audit entries, and the sink port.

Responsibility:
    Engines describe what they changed as ``FloorEvent`` values.  The
    lifecycle controller stamps each event with article, actor and time to
    form an immutable ``AuditEntry`` and hands it to an ``AuditSink``.

Architecture position:
    Kernel > Domain -- pure functional core.  The SQL-backed sink lives in
    ``production_kernel.services.article_log_service``.

Failure modes:
    - Sinks raise ``AuditSinkError``.  Callers treat it as a soft failure.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


class ArticleAction(str, Enum):
    """Kinds of article mutation recorded in the audit trail."""

    ARTICLE_CREATED = "article_created"
    ARTICLE_DELETED = "article_deleted"
    QUANTITY_UPDATED = "quantity_updated"
    PROGRESS_UPDATED = "progress_updated"
    STATUS_CHANGED = "status_changed"
    TRANSFERRED = "transferred"
    M1_TRANSFERRED = "m1_transferred"
    FLOOR_ADVANCED = "floor_advanced"
    ARTICLE_COMPLETED = "article_completed"
    QUALITY_INSPECTED = "quality_inspected"
    M2_SHIFTED = "m2_shifted"
    REPAIR_TRANSFERRED = "repair_transferred"
    DEFECTS_UPDATED = "defects_updated"
    FINAL_QUALITY_CONFIRMED = "final_quality_confirmed"
    FINAL_QUALITY_REJECTED = "final_quality_rejected"


@dataclass(frozen=True)
class FloorEvent:
    """A single change produced by an engine, before actor/time stamping."""

    action: ArticleAction
    from_floor: str | None = None
    to_floor: str | None = None
    quantity: int = 0
    previous_value: Any = None
    new_value: Any = None
    remarks: str | None = None


@dataclass(frozen=True)
class OperationMetadata:
    """Caller-supplied context for a mutating operation."""

    actor: str = "system"
    remarks: str | None = None
    correlation_id: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one article mutation."""

    article_id: UUID
    order_id: UUID
    action: ArticleAction
    from_floor: str | None
    to_floor: str | None
    quantity: int
    previous_value: Any
    new_value: Any
    actor: str
    remarks: str | None
    timestamp: datetime

    @classmethod
    def from_event(
        cls,
        event: FloorEvent,
        *,
        article_id: UUID,
        order_id: UUID,
        metadata: OperationMetadata,
        timestamp: datetime,
    ) -> AuditEntry:
        return cls(
            article_id=article_id,
            order_id=order_id,
            action=event.action,
            from_floor=event.from_floor,
            to_floor=event.to_floor,
            quantity=event.quantity,
            previous_value=event.previous_value,
            new_value=event.new_value,
            actor=metadata.actor,
            remarks=metadata.remarks or event.remarks,
            timestamp=timestamp,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "article_id": str(self.article_id),
            "order_id": str(self.order_id),
            "action": self.action.value,
            "from_floor": self.from_floor,
            "to_floor": self.to_floor,
            "quantity": self.quantity,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "actor": self.actor,
            "remarks": self.remarks,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(Protocol):
    """Append-only destination for audit entries."""

    def append(self, entry: AuditEntry) -> None:
        ...


class InMemoryAuditSink:
    """Collects entries in a list; used by tests and dry runs."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def for_action(self, action: ArticleAction) -> list[AuditEntry]:
        return [e for e in self.entries if e.action == action]
