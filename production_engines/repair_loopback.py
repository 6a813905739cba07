"""
production_engines.repair_loopback -- send repairable M2 stock back upstream.

Responsibility:
    Moves a bounded quantity of an inspection floor's outstanding M2
    balance back to an earlier floor for rework.

Architecture position:
    Engines -- operates on ``ArticleState`` only, zero I/O.

Invariants enforced:
    - 0 < quantity <= m2_quantity on the source floor.
    - The target precedes the source in the article's sequence.
    - The source floor's ``completed`` and ``transferred`` are untouched;
      repair stock was never counted as completed output.
    - ``m2_transferred`` is cumulative and never decremented.

Failure modes:
    - InvalidRepairSourceError: source is not an inspection floor of this
      article, or has no floor before it.
    - InvalidRepairQuantityError: quantity outside (0, m2_quantity].
    - InvalidTargetFloorError: explicit target is not an earlier floor.

Audit relevance:
    Emits REPAIR_TRANSFERRED, distinct from a forward TRANSFERRED event.
"""

from __future__ import annotations

from dataclasses import dataclass

from production_engines.tracer import traced_engine
from production_kernel.domain.article_state import ArticleState, RepairStatus
from production_kernel.domain.audit import ArticleAction, FloorEvent
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, FloorPolicy
from production_kernel.exceptions import (
    InvalidRepairQuantityError,
    InvalidRepairSourceError,
    InvalidTargetFloorError,
)
from production_kernel.logging_config import get_logger

logger = get_logger("engines.repair_loopback")


@dataclass(frozen=True)
class RepairOutcome:
    from_floor: str
    to_floor: str
    quantity: int
    event: FloorEvent


class RepairLoopbackEngine:
    """Repair loopback from an inspection floor to an earlier floor."""

    def __init__(self, policy: FloorPolicy = DEFAULT_FLOOR_POLICY):
        self._policy = policy

    def _validate_source(self, state: ArticleState, floor: str) -> None:
        if not self._policy.is_inspection(floor):
            raise InvalidRepairSourceError(floor, "not an inspection floor")
        if floor not in state.floor_sequence:
            raise InvalidRepairSourceError(floor, "not in this article's floor sequence")
        if state.index_of(floor) == 0:
            raise InvalidRepairSourceError(floor, "no earlier floor to send repairs to")

    def _resolve_target(self, state: ArticleState, floor: str, target: str | None) -> str:
        if target is None:
            return state.previous_floor(floor)
        if target not in state.floor_sequence:
            raise InvalidTargetFloorError(target, "not in this article's floor sequence")
        if state.index_of(target) >= state.index_of(floor):
            raise InvalidTargetFloorError(target, f"must come before {floor}")
        return target

    @traced_engine(
        "repair_loopback", "1.0", fingerprint_fields=("floor", "quantity", "target_floor")
    )
    def transfer(
        self,
        state: ArticleState,
        *,
        floor: str,
        quantity: int | None = None,
        target_floor: str | None = None,
        remarks: str | None = None,
    ) -> RepairOutcome:
        """
        Send M2 stock from ``floor`` back to ``target_floor``.

        Preconditions:
            ``floor`` and ``target_floor`` are canonical floor names.

        Postconditions:
            Source m2_quantity shrank and m2_transferred grew by the
            quantity; the target's received and repair_received grew by
            the same amount.
        """
        self._validate_source(state, floor)
        source = state.record(floor)

        amount = source.m2_quantity if quantity is None else quantity
        if (
            isinstance(amount, bool)
            or not isinstance(amount, int)
            or amount <= 0
            or amount > source.m2_quantity
        ):
            raise InvalidRepairQuantityError(floor, amount, source.m2_quantity)

        target = self._resolve_target(state, floor, target_floor)
        destination = state.record(target)

        previous = {
            "m2_quantity": source.m2_quantity,
            "m2_transferred": source.m2_transferred,
            "target_received": destination.received,
        }
        source.m2_quantity -= amount
        source.m2_transferred += amount
        source.repair_status = (
            RepairStatus.IN_REVIEW if source.m2_quantity > 0 else RepairStatus.NOT_REQUIRED
        )
        if remarks is not None:
            source.repair_remarks = remarks
        destination.received += amount
        destination.repair_received += amount

        logger.info(
            "repair_transferred",
            extra={
                "article_id": str(state.article_id),
                "from_floor": floor,
                "to_floor": target,
                "quantity": amount,
            },
        )
        event = FloorEvent(
            action=ArticleAction.REPAIR_TRANSFERRED,
            from_floor=floor,
            to_floor=target,
            quantity=amount,
            previous_value=previous,
            new_value={
                "m2_quantity": source.m2_quantity,
                "m2_transferred": source.m2_transferred,
                "target_received": destination.received,
                "target_repair_received": destination.repair_received,
            },
            remarks=remarks,
        )
        return RepairOutcome(from_floor=floor, to_floor=target, quantity=amount, event=event)
