"""
production_engines.quantity_update -- additive completed-quantity updates.

Responsibility:
    Validates and applies a positive ``completed`` delta to one floor of an
    article, together with the optional quality fields the generic update
    path accepts on inspection floors.  Also owns the Knitting defect
    count, which is set rather than accumulated.

Architecture position:
    Engines -- operates on ``ArticleState`` only, zero I/O.
    Called by ``ArticleLifecycleController.update_progress`` and
    ``update_knitting_defects``.

Invariants enforced:
    - ``completed`` only ever grows through this engine, by exactly the
      requested delta.
    - completed <= received on every floor except overproduction floors.
    - On an inspection floor, generic-path M1 never exceeds the delta and
      m1 + m2 + m3 + m4 never exceeds received.
    - A floor ahead of the article's current floor is only writable once
      work has reached it.
    - All validation happens before the first mutation.

Failure modes:
    - InvalidQuantityError: delta <= 0, a negative quality field, or M1
      larger than the delta.
    - GradedExceedsReceivedError: quality fields would grade more than
      received.
    - ExceedsReceivedError: the update would complete more than received.
    - FloorNotReachableError: the floor is ahead and empty.
    - FloorNotInSequenceError: the floor is not in the article's sequence.
    - InvalidDefectQuantityError: defect count outside [0, completed].

Audit relevance:
    Returns QUANTITY_UPDATED / DEFECTS_UPDATED events with before and after
    counters.  Overproduction is logged as ``knitting_overproduction``.
"""

from __future__ import annotations

from dataclasses import dataclass

from production_engines.tracer import traced_engine
from production_kernel.domain.article_state import ArticleState, RepairStatus
from production_kernel.domain.audit import ArticleAction, FloorEvent
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, Floor, FloorPolicy
from production_kernel.exceptions import (
    ExceedsReceivedError,
    FloorNotReachableError,
    GradedExceedsReceivedError,
    InvalidDefectQuantityError,
    InvalidQuantityError,
)
from production_kernel.logging_config import get_logger

logger = get_logger("engines.quantity_update")


@dataclass(frozen=True)
class QualityFields:
    """Optional grade counts accepted by the generic update path.

    Grades are additive here, unlike ``InspectionRequest`` where M2-M4
    replace the stored values.  M1 is not folded into ``completed`` on this
    path; the caller's ``completed_delta`` already carries the good output.
    A positive M2 without an explicit repair status puts the floor In Review.
    """

    m1: int = 0
    m2: int = 0
    m3: int = 0
    m4: int = 0
    repair_status: RepairStatus | None = None
    repair_remarks: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            not (self.m1 or self.m2 or self.m3 or self.m4)
            and self.repair_status is None
            and self.repair_remarks is None
        )

    def validate(self) -> None:
        for name in ("m1", "m2", "m3", "m4"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise InvalidQuantityError(name, value, "must be a non-negative integer")


def _check_delta(field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidQuantityError(field, value)
    return value


class QuantityUpdateEngine:
    """
    Applies additive progress to a single floor.

    Contract:
        ``apply`` either mutates the state completely or raises before
        touching it.  It never propagates work; the lifecycle engine does.

    Non-goals:
        - Does NOT recompute progress or article status.
    """

    def __init__(self, policy: FloorPolicy = DEFAULT_FLOOR_POLICY):
        self._policy = policy

    def check_reachable(self, state: ArticleState, floor: str) -> None:
        """Reject a floor ahead of ``current_floor`` that has no work yet."""
        record = state.record(floor)
        if state.index_of(floor) > state.current_index and not record.has_work:
            raise FloorNotReachableError(floor, state.current_floor)

    @traced_engine("quantity_update", "1.0", fingerprint_fields=("floor", "completed_delta"))
    def apply(
        self,
        state: ArticleState,
        *,
        floor: str,
        completed_delta: int,
        quality: QualityFields | None = None,
    ) -> list[FloorEvent]:
        """
        Add ``completed_delta`` to the floor's completed counter.

        Preconditions:
            ``floor`` is a canonical floor name.

        Postconditions:
            ``completed`` grew by exactly ``completed_delta``.  On an
            inspection floor the additive grade fields grew by the given
            amounts.  Returns one QUANTITY_UPDATED event.
        """
        record = state.record(floor)
        delta = _check_delta("completed_delta", completed_delta)
        self.check_reachable(state, floor)

        new_completed = record.completed + delta
        overproduction_allowed = self._policy.allows_overproduction(floor)
        if new_completed > record.received and not overproduction_allowed:
            raise ExceedsReceivedError(floor, record.received, new_completed)

        apply_quality = quality is not None and not quality.is_empty
        if apply_quality:
            quality.validate()
            if not self._policy.is_inspection(floor):
                logger.warning(
                    "quality_fields_ignored",
                    extra={"floor": floor, "article_id": str(state.article_id)},
                )
                apply_quality = False
        if apply_quality:
            if quality.m1 > delta:
                raise InvalidQuantityError(
                    "m1", quality.m1, f"cannot exceed completed_delta {delta}"
                )
            graded_total = (
                record.graded_total + quality.m1 + quality.m2 + quality.m3 + quality.m4
            )
            if graded_total > record.received:
                raise GradedExceedsReceivedError(floor, record.received, graded_total)

        previous = {"completed": record.completed, "remaining": record.remaining}
        record.completed = new_completed

        if apply_quality:
            previous.update(
                m1_quantity=record.m1_quantity,
                m2_quantity=record.m2_quantity,
                m3_quantity=record.m3_quantity,
                m4_quantity=record.m4_quantity,
            )
            record.m1_quantity += quality.m1
            record.m2_quantity += quality.m2
            record.m3_quantity += quality.m3
            record.m4_quantity += quality.m4
            if quality.repair_status is not None:
                record.repair_status = quality.repair_status
            elif quality.m2 > 0:
                record.repair_status = RepairStatus.IN_REVIEW
            if quality.repair_remarks is not None:
                record.repair_remarks = quality.repair_remarks

        if overproduction_allowed and record.completed > record.received:
            logger.info(
                "knitting_overproduction",
                extra={
                    "article_id": str(state.article_id),
                    "floor": floor,
                    "received": record.received,
                    "completed": record.completed,
                    "excess": record.completed - record.received,
                },
            )

        new_value = {"completed": record.completed, "remaining": record.remaining}
        if apply_quality:
            new_value.update(
                m1_quantity=record.m1_quantity,
                m2_quantity=record.m2_quantity,
                m3_quantity=record.m3_quantity,
                m4_quantity=record.m4_quantity,
            )

        return [
            FloorEvent(
                action=ArticleAction.QUANTITY_UPDATED,
                from_floor=floor,
                quantity=delta,
                previous_value=previous,
                new_value=new_value,
            )
        ]

    @traced_engine("knitting_defects", "1.0", fingerprint_fields=("floor", "m4_quantity"))
    def set_defects(
        self,
        state: ArticleState,
        *,
        m4_quantity: int,
        floor: str = Floor.KNITTING,
    ) -> FloorEvent:
        """Replace the defect count on a production floor.

        The value must lie in ``[0, completed]``; good output on the floor
        is ``completed - m4_quantity``.
        """
        record = state.record(floor)
        if (
            isinstance(m4_quantity, bool)
            or not isinstance(m4_quantity, int)
            or m4_quantity < 0
            or m4_quantity > record.completed
        ):
            raise InvalidDefectQuantityError(floor, m4_quantity, record.completed)

        previous = record.m4_quantity
        record.m4_quantity = m4_quantity
        return FloorEvent(
            action=ArticleAction.DEFECTS_UPDATED,
            from_floor=floor,
            quantity=m4_quantity,
            previous_value={"m4_quantity": previous},
            new_value={
                "m4_quantity": m4_quantity,
                "good_quantity": record.completed - m4_quantity,
            },
        )
