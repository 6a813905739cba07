"""
production_engines.quality_inspection -- M1-M4 grading on inspection floors.

Responsibility:
    Records inspection results on Checking, Secondary Checking or Final
    Checking.  Graded-good M1 output is additive and folded into the
    floor's ``completed`` counter; M2-M4 are replaced by the inspected
    values.  Also regrades outstanding M2 stock into M1, M3 and M4.

Architecture position:
    Engines -- operates on ``ArticleState`` only, zero I/O.  Forwarding of
    new M1 output is left to ``FloorLifecycle.settle``, which pushes
    inspection floors using their M1 counters.

Invariants enforced:
    - completed + m1 <= received on the inspected floor.
    - m1 + m2 + m3 + m4 <= received on the inspected floor.
    - M2-M4 never contribute to ``completed``.
    - An M2 regrade is balanced: to_m1 + to_m3 + to_m4 == from_m2.

Failure modes:
    - NoInspectionWorkAvailableError: automatic selection found no floor.
    - InvalidTargetFloorError: explicit floor is not an inspection floor of
      this article.
    - InvalidQuantityError: negative grade, or an empty request.
    - ExceedsReceivedError: M1 would complete more than received.
    - GradedExceedsReceivedError: M1-M4 would add up to more than received.
    - InvalidM2ShiftError: unbalanced or oversized regrade.
"""

from __future__ import annotations

from dataclasses import dataclass

from production_engines.tracer import traced_engine
from production_kernel.domain.article_state import (
    ArticleState,
    FloorQuantityRecord,
    RepairStatus,
)
from production_kernel.domain.audit import ArticleAction, FloorEvent
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, FloorPolicy
from production_kernel.exceptions import (
    ExceedsReceivedError,
    GradedExceedsReceivedError,
    InvalidM2ShiftError,
    InvalidQuantityError,
    InvalidTargetFloorError,
    NoInspectionWorkAvailableError,
)
from production_kernel.logging_config import get_logger

logger = get_logger("engines.quality_inspection")


@dataclass(frozen=True)
class InspectionRequest:
    """Inspection results for one floor.

    ``floor`` is optional; when omitted the engine picks the inspection
    floor with the most outstanding work.  ``m2``-``m4`` left as None keep
    their stored values.
    """

    floor: str | None = None
    m1: int = 0
    m2: int | None = None
    m3: int | None = None
    m4: int | None = None
    repair_status: RepairStatus | None = None
    repair_remarks: str | None = None

    def validate(self) -> None:
        for name in ("m1", "m2", "m3", "m4"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidQuantityError(name, value, "must be a non-negative integer")
        if (
            self.m1 == 0
            and self.m2 is None
            and self.m3 is None
            and self.m4 is None
            and self.repair_status is None
            and self.repair_remarks is None
        ):
            raise InvalidQuantityError("inspection", None, "no inspection data supplied")


@dataclass(frozen=True)
class InspectionOutcome:
    floor: str
    events: tuple[FloorEvent, ...]


def _grades(record: FloorQuantityRecord) -> dict[str, object]:
    return {
        "completed": record.completed,
        "m1_quantity": record.m1_quantity,
        "m2_quantity": record.m2_quantity,
        "m3_quantity": record.m3_quantity,
        "m4_quantity": record.m4_quantity,
        "repair_status": record.repair_status.value,
    }


class QualityInspectionEngine:
    """
    Quality grading on inspection floors.

    Contract:
        ``inspect`` and ``shift_m2`` validate fully before mutating.

    Non-goals:
        - Does NOT forward M1 output or advance the article.
    """

    def __init__(self, policy: FloorPolicy = DEFAULT_FLOOR_POLICY):
        self._policy = policy

    def _inspection_floors(self, state: ArticleState) -> list[str]:
        return [f for f in state.floor_sequence if self._policy.is_inspection(f)]

    def select_floor(self, state: ArticleState, requested: str | None = None) -> str:
        """
        Resolve the floor an inspection applies to.

        An explicit floor must be an inspection floor in the article's
        sequence.  Otherwise: the inspection floor with the largest
        ``remaining``; failing that the largest ``received``; ties go to the
        earliest floor in the sequence.
        """
        candidates = self._inspection_floors(state)
        if requested is not None:
            if requested not in candidates:
                raise InvalidTargetFloorError(
                    requested, "not an inspection floor in this article's sequence"
                )
            return requested

        for metric in ("remaining", "received"):
            best: str | None = None
            best_value = 0
            for floor in candidates:
                value = getattr(state.floors[floor], metric)
                if value > best_value:
                    best, best_value = floor, value
            if best is not None:
                return best

        raise NoInspectionWorkAvailableError(str(state.article_id))

    @traced_engine("quality_inspection", "1.0", fingerprint_fields=("request",))
    def inspect(self, state: ArticleState, *, request: InspectionRequest) -> InspectionOutcome:
        """
        Record one inspection.

        Postconditions:
            m1_quantity and completed both grew by ``request.m1``; supplied
            M2-M4 values replaced the stored ones.  When M2 is supplied
            without a repair status, the status becomes In Review for a
            positive balance and Not Required otherwise.
        """
        request.validate()
        floor = self.select_floor(state, request.floor)
        record = state.record(floor)

        new_completed = record.completed + request.m1
        if new_completed > record.received:
            raise ExceedsReceivedError(floor, record.received, new_completed)
        graded_total = (
            record.m1_quantity
            + request.m1
            + (record.m2_quantity if request.m2 is None else request.m2)
            + (record.m3_quantity if request.m3 is None else request.m3)
            + (record.m4_quantity if request.m4 is None else request.m4)
        )
        if graded_total > record.received:
            raise GradedExceedsReceivedError(floor, record.received, graded_total)

        previous = _grades(record)
        record.m1_quantity += request.m1
        record.completed = new_completed
        if request.m2 is not None:
            record.m2_quantity = request.m2
        if request.m3 is not None:
            record.m3_quantity = request.m3
        if request.m4 is not None:
            record.m4_quantity = request.m4

        if request.repair_status is not None:
            record.repair_status = request.repair_status
        elif request.m2 is not None:
            record.repair_status = (
                RepairStatus.IN_REVIEW if request.m2 > 0 else RepairStatus.NOT_REQUIRED
            )
        if request.repair_remarks is not None:
            record.repair_remarks = request.repair_remarks

        logger.info(
            "quality_inspected",
            extra={
                "article_id": str(state.article_id),
                "floor": floor,
                "m1_added": request.m1,
                "graded_total": record.graded_total,
            },
        )
        event = FloorEvent(
            action=ArticleAction.QUALITY_INSPECTED,
            from_floor=floor,
            quantity=request.m1,
            previous_value=previous,
            new_value=_grades(record),
        )
        return InspectionOutcome(floor=floor, events=(event,))

    @traced_engine(
        "m2_shift", "1.0", fingerprint_fields=("floor", "from_m2", "to_m1", "to_m3", "to_m4")
    )
    def shift_m2(
        self,
        state: ArticleState,
        *,
        floor: str,
        from_m2: int,
        to_m1: int = 0,
        to_m3: int = 0,
        to_m4: int = 0,
    ) -> FloorEvent:
        """
        Regrade outstanding M2 stock.

        Postconditions:
            m2 shrank by ``from_m2``; M1 (and ``completed``), M3 and M4 grew
            by their shares.
        """
        if not self._policy.is_inspection(floor):
            raise InvalidM2ShiftError(floor, "not an inspection floor")
        record = state.record(floor)

        if isinstance(from_m2, bool) or not isinstance(from_m2, int) or from_m2 <= 0:
            raise InvalidM2ShiftError(floor, f"from_m2 must be positive, got {from_m2!r}")
        for name, value in (("to_m1", to_m1), ("to_m3", to_m3), ("to_m4", to_m4)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidM2ShiftError(floor, f"{name} must be non-negative, got {value!r}")
        if to_m1 + to_m3 + to_m4 != from_m2:
            raise InvalidM2ShiftError(
                floor,
                f"shifted total {to_m1 + to_m3 + to_m4} does not equal from_m2 {from_m2}",
            )
        if from_m2 > record.m2_quantity:
            raise InvalidM2ShiftError(
                floor, f"only {record.m2_quantity} M2 items available, requested {from_m2}"
            )
        new_completed = record.completed + to_m1
        if new_completed > record.received:
            raise ExceedsReceivedError(floor, record.received, new_completed)

        previous = _grades(record)
        record.m2_quantity -= from_m2
        record.m1_quantity += to_m1
        record.completed = new_completed
        record.m3_quantity += to_m3
        record.m4_quantity += to_m4
        if record.m2_quantity == 0 and record.repair_status == RepairStatus.IN_REVIEW:
            record.repair_status = RepairStatus.NOT_REQUIRED

        return FloorEvent(
            action=ArticleAction.M2_SHIFTED,
            from_floor=floor,
            quantity=from_m2,
            previous_value=previous,
            new_value=_grades(record),
        )
