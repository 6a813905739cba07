"""
production_engines.propagation -- forward transfer of completed work.

Responsibility:
    Moves each floor's untransferred completed work into the next floor's
    ``received`` counter, and sweeps upstream floors for backlog left
    behind after the article moved on.

Architecture position:
    Engines -- operates on ``ArticleState`` only, zero I/O.
    Driven by ``FloorLifecycle.settle`` and by the manual transfer
    operation.

Invariants enforced:
    - Conservation: a push of ``q`` raises the source's ``transferred`` by
      ``q`` and the destination's ``received`` by exactly ``q``.
    - transferred <= completed after every push.
    - Inspection floors forward graded M1 only: a push is capped at
      ``m1_quantity - m1_transferred`` and raises ``m1_transferred`` too.
    - Overproduction on the Knitting floor flows downstream undiminished.
    - The last floor in the sequence never forwards.

Failure modes:
    None.  A floor with nothing to forward is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from production_engines.tracer import traced_engine
from production_kernel.domain.article_state import ArticleState
from production_kernel.domain.audit import ArticleAction, FloorEvent
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, FloorPolicy
from production_kernel.logging_config import get_logger

logger = get_logger("engines.propagation")


class PropagationMode(str, Enum):
    """How far a single operation carries work downstream."""

    # Repeat sweep and advancement until nothing changes.
    FIXED_POINT = "fixed_point"
    # Push the updated floor, sweep the floors before current once.
    SINGLE_PASS = "single_pass"


@dataclass(frozen=True)
class TransferPush:
    """One forward movement of units between adjacent floors."""

    from_floor: str
    to_floor: str
    quantity: int
    m1_only: bool
    transferred_before: int
    destination_received_after: int

    def to_event(self) -> FloorEvent:
        return FloorEvent(
            action=ArticleAction.M1_TRANSFERRED if self.m1_only else ArticleAction.TRANSFERRED,
            from_floor=self.from_floor,
            to_floor=self.to_floor,
            quantity=self.quantity,
            previous_value={"transferred": self.transferred_before},
            new_value={
                "transferred": self.transferred_before + self.quantity,
                "destination_received": self.destination_received_after,
            },
        )


class TransferPropagator:
    """
    Forward transfer primitive plus upstream backlog sweeps.

    Contract:
        ``push`` moves everything currently forwardable from one floor.
        ``sweep`` pushes every floor in ascending sequence order, so work
        pushed into a floor early in the pass is carried further by the
        same pass.

    Non-goals:
        - Does NOT advance ``current_floor``; see FloorLifecycle.
    """

    def __init__(self, policy: FloorPolicy = DEFAULT_FLOOR_POLICY):
        self._policy = policy

    def pushable(self, state: ArticleState, floor: str) -> int:
        """Units the floor would forward right now."""
        if state.next_floor(floor) is None:
            return 0
        record = state.record(floor)
        backlog = record.untransferred
        if self._policy.is_inspection(floor):
            backlog = min(backlog, record.m1_remaining)
        return max(0, backlog)

    def push(self, state: ArticleState, floor: str) -> TransferPush | None:
        """
        Forward the floor's backlog to the next floor.

        Postconditions:
            Returns None when there was nothing to forward; otherwise the
            source and destination counters changed by the push quantity.
        """
        quantity = self.pushable(state, floor)
        if quantity <= 0:
            return None

        record = state.record(floor)
        destination_floor = state.next_floor(floor)
        destination = state.record(destination_floor)
        m1_only = self._policy.is_inspection(floor)

        transferred_before = record.transferred
        record.transferred += quantity
        if m1_only:
            record.m1_transferred += quantity
        destination.received += quantity

        logger.debug(
            "transfer_pushed",
            extra={
                "article_id": str(state.article_id),
                "from_floor": floor,
                "to_floor": destination_floor,
                "quantity": quantity,
                "m1_only": m1_only,
            },
        )
        return TransferPush(
            from_floor=floor,
            to_floor=destination_floor,
            quantity=quantity,
            m1_only=m1_only,
            transferred_before=transferred_before,
            destination_received_after=destination.received,
        )

    @traced_engine("propagation_sweep", "1.0", fingerprint_fields=("before_index", "skip"))
    def sweep(
        self,
        state: ArticleState,
        *,
        before_index: int | None = None,
        skip: str | None = None,
    ) -> list[TransferPush]:
        """Push every floor below ``before_index`` (all floors when None)."""
        limit = len(state.floor_sequence) if before_index is None else before_index
        pushes: list[TransferPush] = []
        for floor in state.floor_sequence[:limit]:
            if floor == skip:
                continue
            pushed = self.push(state, floor)
            if pushed is not None:
                pushes.append(pushed)
        return pushes

    @traced_engine("propagation_single_pass", "1.0", fingerprint_fields=("floor",))
    def single_pass(self, state: ArticleState, *, floor: str) -> list[TransferPush]:
        """
        Push the updated floor, then sweep the floors before current once.

        A floor that becomes complete from backlog received during this
        pass does not forward its own output until the next operation.
        """
        pushes: list[TransferPush] = []
        pushed = self.push(state, floor)
        if pushed is not None:
            pushes.append(pushed)
        if state.index_of(floor) <= state.current_index:
            pushes.extend(
                self.sweep(state, before_index=state.current_index, skip=floor)
            )
        return pushes
