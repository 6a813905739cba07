"""
ArticleLogService -- tamper-evident article history and hash chain maintenance.

Responsibility:
    Persists every ``AuditEntry`` emitted by the lifecycle controller as an
    append-only, hash-chained ``ArticleLog`` row.  Provides chain validation
    for tamper detection and per-article trace queries.

Architecture position:
    Kernel > Services -- the SQL implementation of the ``AuditSink`` port
    declared in ``production_kernel.domain.audit``.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: ``hash = H(article_id | action | payload_hash | prev_hash)``.
    - Append-only: ORM listeners reject UPDATE and DELETE of ArticleLog.

Failure modes:
    - AuditSinkError: the row could not be written.  The write happens in a
      savepoint, so the caller's article changes survive the failure.
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.

Audit relevance:
    This IS the production history.  Every quantity update, transfer,
    quality split and repair loopback flows through ``append()``.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from production_kernel.domain.audit import ArticleAction, AuditEntry
from production_kernel.exceptions import AuditChainBrokenError, AuditSinkError
from production_kernel.logging_config import get_logger
from production_kernel.models.article_log import ArticleLog
from production_kernel.services.sequence_service import SequenceService
from production_kernel.utils.hashing import (
    canonicalize_json,
    hash_article_log,
    hash_payload,
)

logger = get_logger("services.article_log")


def _plain(value: Any) -> Any:
    """Reduce a value to what a JSON column stores and returns unchanged."""
    if value is None:
        return None
    return json.loads(canonicalize_json(value))


def _row_payload(
    article_id: UUID,
    order_id: UUID,
    action: str,
    from_floor: str | None,
    to_floor: str | None,
    quantity: int,
    previous_value: Any,
    new_value: Any,
    actor: str,
    remarks: str | None,
) -> dict[str, Any]:
    return {
        "article_id": str(article_id),
        "order_id": str(order_id),
        "action": action,
        "from_floor": from_floor,
        "to_floor": to_floor,
        "quantity": quantity,
        "previous_value": previous_value,
        "new_value": new_value,
        "actor": actor,
        "remarks": remarks,
    }


@dataclass(frozen=True)
class ArticleTraceEntry:
    """A single row in an article trace."""

    seq: int
    action: ArticleAction
    from_floor: str | None
    to_floor: str | None
    quantity: int
    actor: str
    remarks: str | None
    occurred_at: datetime
    hash: str


@dataclass(frozen=True)
class ArticleTrace:
    """Complete history of one article in chronological order."""

    article_id: UUID
    entries: tuple[ArticleTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[ArticleAction, ...]:
        return tuple(e.action for e in self.entries)

    def total_quantity(self, action: ArticleAction) -> int:
        return sum(e.quantity for e in self.entries if e.action == action)


class ArticleLogService:
    """
    SQL-backed audit sink with hash chain linkage.

    Contract:
        ``append(entry)`` writes one ``ArticleLog`` row inside a savepoint of
        the caller's session.  It either succeeds completely or raises
        ``AuditSinkError`` and leaves the session usable.

    Guarantees:
        - Every row's ``hash`` is a deterministic function of its content
          and its predecessor's hash; ``validate_chain()`` detects edits.
        - Sequence numbers come from ``SequenceService``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT retry failed writes.
    """

    def __init__(self, session: Session):
        self._session = session
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent article log row."""
        last_row = self._session.execute(
            select(ArticleLog).order_by(ArticleLog.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_row.hash if last_row else None

    def append(self, entry: AuditEntry) -> ArticleLog:
        """
        Record one audit entry.

        Preconditions:
            The caller is within an active database transaction.

        Postconditions:
            A new ``ArticleLog`` row is flushed with the next ``seq`` and a
            valid chain link.  On failure the savepoint is rolled back and
            nothing from this call remains in the session.

        Raises:
            AuditSinkError: the database rejected the write.
        """
        savepoint = self._session.begin_nested()
        try:
            row = self._build_row(entry)
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise AuditSinkError(
                action=entry.action.value,
                article_id=str(entry.article_id),
                reason=str(exc),
            ) from exc

        logger.info(
            "article_log_created",
            extra={
                "article_id": str(entry.article_id),
                "action": entry.action.value,
                "seq": row.seq,
            },
        )
        return row

    def _build_row(self, entry: AuditEntry) -> ArticleLog:
        seq = self._sequence_service.next_value(SequenceService.ARTICLE_LOG)
        prev_hash = self._get_last_hash()

        previous_value = _plain(entry.previous_value)
        new_value = _plain(entry.new_value)
        payload_hash = hash_payload(
            _row_payload(
                entry.article_id,
                entry.order_id,
                entry.action.value,
                entry.from_floor,
                entry.to_floor,
                entry.quantity,
                previous_value,
                new_value,
                entry.actor,
                entry.remarks,
            )
        )
        row_hash = hash_article_log(
            article_id=str(entry.article_id),
            action=entry.action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        return ArticleLog(
            seq=seq,
            article_id=entry.article_id,
            order_id=entry.order_id,
            action=entry.action.value,
            from_floor=entry.from_floor,
            to_floor=entry.to_floor,
            quantity=entry.quantity,
            previous_value=previous_value,
            new_value=new_value,
            actor=entry.actor,
            remarks=entry.remarks,
            occurred_at=entry.timestamp,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=row_hash,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire article log chain.

        Postconditions:
            Returns ``True`` only if every row's payload hash and hash match
            the values recomputed from its columns and every ``prev_hash``
            matches its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: at the first row that fails.
        """
        rows = self._session.execute(
            select(ArticleLog).order_by(ArticleLog.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for row in rows:
            if row.prev_hash != expected_prev:
                logger.critical("article_log_chain_broken", extra={"seq": row.seq})
                raise AuditChainBrokenError(
                    row.seq, expected_prev or "None", row.prev_hash or "None"
                )

            payload_hash = hash_payload(
                _row_payload(
                    row.article_id,
                    row.order_id,
                    row.action,
                    row.from_floor,
                    row.to_floor,
                    row.quantity,
                    row.previous_value,
                    row.new_value,
                    row.actor,
                    row.remarks,
                )
            )
            expected_hash = hash_article_log(
                article_id=str(row.article_id),
                action=row.action,
                payload_hash=payload_hash,
                prev_hash=row.prev_hash,
            )
            if row.hash != expected_hash:
                logger.critical("article_log_chain_broken", extra={"seq": row.seq})
                raise AuditChainBrokenError(row.seq, expected_hash, row.hash)

            expected_prev = row.hash

        logger.info("article_log_chain_valid", extra={"row_count": len(rows)})
        return True

    # Trace and query methods

    def trace(self, article_id: UUID) -> ArticleTrace:
        """All log rows for one article, oldest first."""
        rows = self._session.execute(
            select(ArticleLog)
            .where(ArticleLog.article_id == article_id)
            .order_by(ArticleLog.seq)
        ).scalars().all()

        return ArticleTrace(
            article_id=article_id,
            entries=tuple(
                ArticleTraceEntry(
                    seq=row.seq,
                    action=ArticleAction(row.action),
                    from_floor=row.from_floor,
                    to_floor=row.to_floor,
                    quantity=row.quantity,
                    actor=row.actor,
                    remarks=row.remarks,
                    occurred_at=row.occurred_at,
                    hash=row.hash,
                )
                for row in rows
            ),
        )

    def recent(self, limit: int = 100) -> list[ArticleLog]:
        """Most recent rows across all articles, newest first."""
        result = self._session.execute(
            select(ArticleLog).order_by(ArticleLog.seq.desc()).limit(limit)
        )
        return list(result.scalars().all())
