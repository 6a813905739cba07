"""
ArticleLifecycleController -- the article mutation orchestrator.

Responsibility:
    Executes every mutating article operation as one read-modify-write
    unit: lock and load the article, copy it into an ``ArticleState``, run
    the engines on the copy, write the copy back, bump the article version,
    flush, then hand the resulting audit entries to the audit sink.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Holds the
    session, the clock and the audit sink; engines stay pure.

Invariants enforced:
    - All-or-nothing: engines run on a detached copy, so a validation error
      leaves the persisted article untouched.
    - Serialization: the article row is read ``FOR UPDATE``, and the
      ``version`` column turns a lost update into OptimisticLockError.
    - Floor counter invariants are re-checked on the copy before write-back.
    - Floor names are normalized to canonical spelling before any engine
      sees them.
    - The order's ``current_floor`` mirrors its most advanced article.

Failure modes:
    - ArticleNotFoundError, and the typed validation errors raised by the
      engines.  All are raised before any persisted change.
    - OptimisticLockError when the article changed underneath the flush.
    - Audit sink failures never raise; they are returned in
      ``audit_warnings`` and logged as ``audit_sink_failed``.

Audit relevance:
    Every state change produces one AuditEntry per engine event, stamped
    with the actor from ``OperationMetadata`` and the injected clock.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from production_engines.floor_lifecycle import FloorLifecycle
from production_engines.quality_inspection import InspectionRequest, QualityInspectionEngine
from production_engines.quantity_update import QualityFields, QuantityUpdateEngine
from production_engines.repair_loopback import RepairLoopbackEngine
from production_kernel.domain.article_state import ArticleState, RepairStatus
from production_kernel.domain.audit import (
    ArticleAction,
    AuditEntry,
    AuditSink,
    FloorEvent,
    OperationMetadata,
)
from production_kernel.domain.clock import Clock, SystemClock
from production_kernel.domain.floors import (
    ALL_FLOORS,
    DEFAULT_FLOOR_POLICY,
    Floor,
    FloorPolicy,
    normalize_floor,
)
from production_kernel.exceptions import (
    ArticleNotFoundError,
    ArticleNotOnFloorError,
    AuditSinkError,
    InvalidRepairSourceError,
    InvalidTargetFloorError,
    NoCompletedWorkError,
    NoNextFloorError,
    OptimisticLockError,
    QualityNotCategorizedError,
    RepairReviewPendingError,
    UnknownFloorError,
)
from production_kernel.logging_config import LogContext, get_logger
from production_kernel.models.article import Article
from production_kernel.selectors.article_selector import article_to_state
from production_kernel.services.article_log_service import ArticleLogService

logger = get_logger("services.article_lifecycle")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ArticleOperationResult:
    """Outcome of a mutating operation."""

    article: ArticleState
    entries: tuple[AuditEntry, ...]
    audit_warnings: tuple[AuditSinkError, ...] = ()

    def actions(self) -> tuple[ArticleAction, ...]:
        return tuple(e.action for e in self.entries)


@dataclass(frozen=True)
class TransferSummary:
    """Result of a manual floor transfer."""

    from_floor: str
    to_floor: str
    quantity: int
    article: ArticleState
    audit_warnings: tuple[AuditSinkError, ...] = ()


@dataclass(frozen=True)
class RepairTransferSummary:
    """Result of a repair loopback."""

    from_floor: str
    to_floor: str
    quantity: int
    m2_remaining: int
    article: ArticleState
    audit_warnings: tuple[AuditSinkError, ...] = ()


# Engine step: mutates the working copy and returns its events plus an
# operation-specific payload.
_Step = Callable[[ArticleState, datetime], tuple[list[FloorEvent], object]]


def _floor_rank(floor: str | None) -> int:
    return ALL_FLOORS.index(floor) if floor in ALL_FLOORS else -1


def emit_audit_entries(
    sink: AuditSink,
    *,
    article_id: UUID,
    order_id: UUID,
    events: list[FloorEvent],
    metadata: OperationMetadata,
    now: datetime,
) -> tuple[tuple[AuditEntry, ...], tuple[AuditSinkError, ...]]:
    """
    Stamp engine events and append them to the sink.

    Postconditions:
        Every event was offered to the sink exactly once.  Sink failures
        are returned as AuditSinkError warnings, never raised.
    """
    entries: list[AuditEntry] = []
    warnings: list[AuditSinkError] = []
    for event in events:
        entry = AuditEntry.from_event(
            event,
            article_id=article_id,
            order_id=order_id,
            metadata=metadata,
            timestamp=now,
        )
        entries.append(entry)
        try:
            sink.append(entry)
        except Exception as exc:
            warning = (
                exc
                if isinstance(exc, AuditSinkError)
                else AuditSinkError(event.action.value, str(article_id), str(exc))
            )
            warnings.append(warning)
            logger.warning(
                "audit_sink_failed",
                extra={
                    "article_id": str(article_id),
                    "action": event.action.value,
                    "reason": warning.reason,
                },
            )
    return tuple(entries), tuple(warnings)


class ArticleLifecycleController:
    """
    Orchestrates article operations within the caller's transaction.

    Contract:
        Each public method performs one complete operation.  The caller owns
        the session and commits it; ``ProductionFloorService`` does so under
        the per-article lock.

    Guarantees:
        - A raised exception means nothing was written for that operation
          (the caller's rollback discards the flushed rows).
        - Returned results carry a snapshot of the article after the
          operation.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT retry on OptimisticLockError.
    """

    def __init__(
        self,
        session: Session,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
        policy: FloorPolicy = DEFAULT_FLOOR_POLICY,
        lifecycle: FloorLifecycle | None = None,
        aliases: Mapping[str, str] | None = None,
    ):
        self._session = session
        self._audit_sink = audit_sink if audit_sink is not None else ArticleLogService(session)
        self._clock = clock or SystemClock()
        self._policy = policy
        self._lifecycle = lifecycle or FloorLifecycle(policy)
        self._aliases = dict(aliases or {})
        self._quantity = QuantityUpdateEngine(policy)
        self._inspection = QualityInspectionEngine(policy)
        self._repair = RepairLoopbackEngine(policy)

    # -- boundary normalization ------------------------------------------------

    def _floor(self, name: str) -> str:
        return normalize_floor(name, self._aliases)

    # -- load / write back -----------------------------------------------------

    def _load(self, article_id: UUID) -> Article:
        article = self._session.execute(
            select(Article)
            .where(Article.id == article_id)
            .options(selectinload(Article.floor_quantities))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if article is None:
            raise ArticleNotFoundError(str(article_id))
        return article

    def _check_invariants(self, state: ArticleState) -> None:
        for record in state.ordered_records():
            problems = record.violations(
                self._policy.allows_overproduction(record.floor),
                inspection=self._policy.is_inspection(record.floor),
            )
            assert not problems, (
                f"floor counter invariant violated on {record.floor}: {problems}"
            )

    def _write_back(self, article: Article, state: ArticleState, actor: str) -> None:
        article.current_floor = state.current_floor
        article.status = state.status.value
        article.progress = state.progress
        article.started_at = state.started_at
        article.completed_at = state.completed_at
        article.final_quality_confirmed = state.final_quality_confirmed
        article.quantity_from_previous_floor = state.quantity_from_previous_floor
        article.remarks = state.remarks
        article.updated_by = actor

        rows = {row.floor: row for row in article.floor_quantities}
        for record in state.ordered_records():
            row = rows[record.floor]
            for name, value in record.counters().items():
                setattr(row, name, value)
            row.repair_status = record.repair_status.value
            row.repair_remarks = record.repair_remarks

        order = article.order
        if _floor_rank(state.current_floor) > _floor_rank(order.current_floor):
            order.current_floor = state.current_floor
            order.updated_by = actor

    def _emit(
        self,
        state: ArticleState,
        events: list[FloorEvent],
        metadata: OperationMetadata,
        now: datetime,
    ) -> tuple[tuple[AuditEntry, ...], tuple[AuditSinkError, ...]]:
        return emit_audit_entries(
            self._audit_sink,
            article_id=state.article_id,
            order_id=state.order_id,
            events=events,
            metadata=metadata,
            now=now,
        )

    def _operate(
        self,
        operation: str,
        article_id: UUID,
        metadata: OperationMetadata | None,
        step: _Step,
        floor: str | None = None,
    ) -> tuple[ArticleOperationResult, object]:
        metadata = metadata or OperationMetadata()
        with LogContext.bind(
            article_id=str(article_id),
            actor_id=metadata.actor,
            correlation_id=metadata.correlation_id,
            floor=floor,
        ):
            article = self._load(article_id)
            expected_version = article.version
            state = article_to_state(article)
            now = self._clock.now()

            events, payload = step(state, now)

            self._check_invariants(state)
            self._write_back(article, state, metadata.actor)
            article.version = expected_version + 1
            try:
                self._session.flush()
            except StaleDataError as exc:
                logger.warning(
                    "optimistic_lock_failed",
                    extra={"article_id": str(article_id), "expected_version": expected_version},
                )
                raise OptimisticLockError(str(article_id), expected_version) from exc

            entries, warnings = self._emit(state, events, metadata, now)
            logger.info(
                "article_operation_applied",
                extra={
                    "operation": operation,
                    "article_id": str(article_id),
                    "current_floor": state.current_floor,
                    "status": state.status.value,
                    "event_count": len(entries),
                    "audit_warning_count": len(warnings),
                },
            )
            result = ArticleOperationResult(
                article=state.copy(), entries=entries, audit_warnings=warnings
            )
            return result, payload

    def _finish(self, state: ArticleState, floor: str, now: datetime) -> list[FloorEvent]:
        events = self._lifecycle.mark_started(state, now=now)
        events += self._lifecycle.refresh_progress(state)
        events += self._lifecycle.settle(state, floor=floor, now=now)
        return events

    # -- operations ------------------------------------------------------------

    def get_article(self, article_id: UUID) -> ArticleState:
        """Read-only snapshot of an article."""
        article = self._session.get(Article, article_id)
        if article is None:
            raise ArticleNotFoundError(str(article_id))
        return article_to_state(article)

    def update_progress(
        self,
        article_id: UUID,
        floor: str,
        completed_delta: int,
        metadata: OperationMetadata | None = None,
        quality: QualityFields | None = None,
    ) -> ArticleOperationResult:
        """
        Add completed work to a floor and carry it downstream.

        Preconditions:
            ``completed_delta`` > 0.

        Postconditions:
            The floor's completed grew by exactly ``completed_delta``;
            propagation and floor advancement ran according to the
            configured propagation mode.

        Raises:
            ArticleNotFoundError, InvalidQuantityError, ExceedsReceivedError,
            GradedExceedsReceivedError, FloorNotReachableError,
            UnknownFloorError, FloorNotInSequenceError.
        """
        canonical = self._floor(floor)

        def step(state: ArticleState, now: datetime):
            events = self._quantity.apply(
                state, floor=canonical, completed_delta=completed_delta, quality=quality
            )
            events += self._finish(state, canonical, now)
            return events, None

        result, _ = self._operate("update_progress", article_id, metadata, step, canonical)
        return result

    def transfer_floor(
        self,
        article_id: UUID,
        floor: str,
        metadata: OperationMetadata | None = None,
    ) -> TransferSummary:
        """
        Manually forward a floor's completed backlog.

        A floor whose completed work was already forwarded returns a
        summary with quantity 0.

        Raises:
            ArticleNotFoundError, FloorNotInSequenceError,
            NoCompletedWorkError, NoNextFloorError.
        """
        canonical = self._floor(floor)

        def step(state: ArticleState, now: datetime):
            record = state.record(canonical)
            if record.completed <= 0:
                raise NoCompletedWorkError(canonical)
            next_floor = state.next_floor(canonical)
            if next_floor is None:
                raise NoNextFloorError(canonical)

            events: list[FloorEvent] = []
            push = self._lifecycle.propagator.push(state, canonical)
            if push is not None:
                events.append(push.to_event())
            events += self._finish(state, canonical, now)
            return events, (next_floor, push.quantity if push is not None else 0)

        result, (to_floor, quantity) = self._operate(
            "transfer_floor", article_id, metadata, step, canonical
        )
        return TransferSummary(
            from_floor=canonical,
            to_floor=to_floor,
            quantity=quantity,
            article=result.article,
            audit_warnings=result.audit_warnings,
        )

    def quality_inspect(
        self,
        article_id: UUID,
        inspection: InspectionRequest,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        """
        Record inspection grades and forward new M1 output.

        Raises:
            ArticleNotFoundError, NoInspectionWorkAvailableError,
            InvalidTargetFloorError, InvalidQuantityError, ExceedsReceivedError,
            GradedExceedsReceivedError.
        """
        if inspection.floor is not None:
            try:
                floor = self._floor(inspection.floor)
            except UnknownFloorError as exc:
                raise InvalidTargetFloorError(inspection.floor, "unknown floor") from exc
            inspection = replace(inspection, floor=floor)

        def step(state: ArticleState, now: datetime):
            outcome = self._inspection.inspect(state, request=inspection)
            events = list(outcome.events)
            events += self._finish(state, outcome.floor, now)
            return events, None

        result, _ = self._operate(
            "quality_inspect", article_id, metadata, step, inspection.floor
        )
        return result

    def repair_transfer(
        self,
        floor: str,
        article_id: UUID,
        quantity: int | None = None,
        target_floor: str | None = None,
        metadata: OperationMetadata | None = None,
    ) -> RepairTransferSummary:
        """
        Send M2 stock from an inspection floor back to an earlier floor.

        Raises:
            ArticleNotFoundError, InvalidRepairSourceError,
            InvalidRepairQuantityError, InvalidTargetFloorError.
        """
        try:
            source = self._floor(floor)
        except UnknownFloorError as exc:
            raise InvalidRepairSourceError(floor, "unknown floor") from exc
        target = self._floor(target_floor) if target_floor is not None else None
        remarks = metadata.remarks if metadata is not None else None

        def step(state: ArticleState, now: datetime):
            outcome = self._repair.transfer(
                state,
                floor=source,
                quantity=quantity,
                target_floor=target,
                remarks=remarks,
            )
            events = [outcome.event]
            events += self._lifecycle.refresh_progress(state)
            return events, outcome

        result, outcome = self._operate("repair_transfer", article_id, metadata, step, source)
        return RepairTransferSummary(
            from_floor=outcome.from_floor,
            to_floor=outcome.to_floor,
            quantity=outcome.quantity,
            m2_remaining=result.article.floors[outcome.from_floor].m2_quantity,
            article=result.article,
            audit_warnings=result.audit_warnings,
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
        """Regrade M2 stock on an inspection floor; shifted M1 moves on."""
        canonical = self._floor(floor)

        def step(state: ArticleState, now: datetime):
            events = [
                self._inspection.shift_m2(
                    state,
                    floor=canonical,
                    from_m2=from_m2,
                    to_m1=to_m1,
                    to_m3=to_m3,
                    to_m4=to_m4,
                )
            ]
            events += self._finish(state, canonical, now)
            return events, None

        result, _ = self._operate("shift_m2_items", article_id, metadata, step, canonical)
        return result

    def update_knitting_defects(
        self,
        article_id: UUID,
        m4_quantity: int,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        """Set the defect count on the article's overproduction floor."""

        def step(state: ArticleState, now: datetime):
            floor = next(
                (f for f in state.floor_sequence if self._policy.allows_overproduction(f)),
                Floor.KNITTING,
            )
            events = [self._quantity.set_defects(state, m4_quantity=m4_quantity, floor=floor)]
            events += self._lifecycle.refresh_progress(state)
            return events, None

        result, _ = self._operate("update_knitting_defects", article_id, metadata, step)
        return result

    def confirm_final_quality(
        self,
        article_id: UUID,
        confirmed: bool = True,
        metadata: OperationMetadata | None = None,
    ) -> ArticleOperationResult:
        """
        Confirm or reject the final inspection outcome.

        Raises:
            ArticleNotOnFloorError: the article is not on the final
                inspection floor.
            QualityNotCategorizedError: no grades recorded there yet.
            RepairReviewPendingError: confirming while M2 stock is in review.
        """
        final_floor = self._policy.final_inspection_floor

        def step(state: ArticleState, now: datetime):
            if state.current_floor != final_floor:
                raise ArticleNotOnFloorError(final_floor, state.current_floor)
            record = state.record(final_floor)
            if record.graded_total <= 0:
                raise QualityNotCategorizedError(final_floor)
            if (
                confirmed
                and record.m2_quantity > 0
                and record.repair_status == RepairStatus.IN_REVIEW
            ):
                raise RepairReviewPendingError(final_floor, record.m2_quantity)

            previous = state.final_quality_confirmed
            state.final_quality_confirmed = bool(confirmed)
            action = (
                ArticleAction.FINAL_QUALITY_CONFIRMED
                if confirmed
                else ArticleAction.FINAL_QUALITY_REJECTED
            )
            event = FloorEvent(
                action=action,
                from_floor=final_floor,
                quantity=record.m1_quantity,
                previous_value={"final_quality_confirmed": previous},
                new_value={"final_quality_confirmed": bool(confirmed)},
            )
            return [event], None

        result, _ = self._operate(
            "confirm_final_quality", article_id, metadata, step, final_floor
        )
        return result
