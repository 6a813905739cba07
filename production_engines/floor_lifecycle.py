"""
production_engines.floor_lifecycle -- floor completion, advancement, progress.

Responsibility:
    Decides when the article's current floor is complete, advances the
    article along its sequence, marks the article Completed at the
    terminal floor, and derives the article's progress percentage.
    ``settle`` combines propagation and advancement into the single step
    every mutating operation ends with.

Architecture position:
    Engines -- operates on ``ArticleState`` only, zero I/O.  Timestamps
    are passed in by the caller.

Invariants enforced:
    - Non-inspection floor complete: received > 0, completed == received
      and remaining == 0 (overproduction floors: completed >= received).
    - Inspection floor complete: m1_quantity > 0 and every M1 unit has
      been forwarded.  On the last floor nothing can be forwarded, so
      M1 > 0 with remaining == 0 is enough.
    - The article advances one floor at a time and never moves backwards.
    - Completed is terminal: no further advancement is attempted.

Failure modes:
    None.  Fixed-point settlement is bounded by ``max_iterations``; hitting
    the bound logs ``propagation_iteration_limit`` and stops.

Audit relevance:
    Emits FLOOR_ADVANCED (quantity = the floor's full completed count),
    ARTICLE_COMPLETED, STATUS_CHANGED and PROGRESS_UPDATED events.
"""

from __future__ import annotations

from datetime import datetime

from production_engines.propagation import PropagationMode, TransferPropagator
from production_engines.tracer import traced_engine
from production_kernel.domain.article_state import ArticleState, ArticleStatus
from production_kernel.domain.audit import ArticleAction, FloorEvent
from production_kernel.domain.floors import DEFAULT_FLOOR_POLICY, FloorPolicy
from production_kernel.logging_config import get_logger

logger = get_logger("engines.floor_lifecycle")

DEFAULT_MAX_ITERATIONS = 64


class FloorLifecycle:
    """
    Article floor state machine.

    Contract:
        ``settle`` leaves the article in a state where, in fixed-point mode,
        no floor has forwardable backlog and the current floor is not
        complete (unless it is terminal and the article is Completed).

    Guarantees:
        - Completion at the terminal floor happens at most once.
        - ``final_quality_confirmed`` only survives an advance onto the
          final inspection floor.
    """

    def __init__(
        self,
        policy: FloorPolicy = DEFAULT_FLOOR_POLICY,
        propagator: TransferPropagator | None = None,
        mode: PropagationMode = PropagationMode.FIXED_POINT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self._policy = policy
        self._propagator = propagator or TransferPropagator(policy)
        self._mode = PropagationMode(mode)
        self._max_iterations = max_iterations

    @property
    def mode(self) -> PropagationMode:
        return self._mode

    @property
    def propagator(self) -> TransferPropagator:
        return self._propagator

    # -- completion ------------------------------------------------------------

    def is_floor_complete(self, state: ArticleState, floor: str) -> bool:
        record = state.record(floor)
        if self._policy.is_inspection(floor):
            if record.m1_quantity <= 0:
                return False
            if state.next_floor(floor) is None:
                return record.remaining == 0
            return record.m1_transferred >= record.m1_quantity

        if record.received <= 0 or record.remaining != 0:
            return False
        if self._policy.allows_overproduction(floor):
            return record.completed >= record.received
        return record.completed == record.received

    def _has_backlog(self, state: ArticleState) -> bool:
        return any(
            self._propagator.pushable(state, floor) > 0 for floor in state.floor_sequence
        )

    def advance_if_complete(self, state: ArticleState, *, now: datetime) -> list[FloorEvent]:
        """
        Move the article off a complete current floor.

        Postconditions:
            Either the article moved exactly one floor forward, or it was
            marked Completed at its last floor, or nothing changed.
        """
        if state.status == ArticleStatus.COMPLETED:
            return []

        floor = state.current_floor
        if not self.is_floor_complete(state, floor):
            return []

        record = state.record(floor)
        next_floor = state.next_floor(floor)

        if next_floor is None:
            if self._has_backlog(state):
                return []
            previous_status = state.status
            state.status = ArticleStatus.COMPLETED
            state.completed_at = now
            if state.started_at is None:
                state.started_at = now
            logger.info(
                "article_completed",
                extra={
                    "article_id": str(state.article_id),
                    "floor": floor,
                    "completed": record.completed,
                },
            )
            return [
                FloorEvent(
                    action=ArticleAction.ARTICLE_COMPLETED,
                    from_floor=floor,
                    quantity=record.completed,
                    previous_value={"status": previous_status.value},
                    new_value={"status": ArticleStatus.COMPLETED.value},
                )
            ]

        state.current_floor = next_floor
        state.quantity_from_previous_floor = record.completed
        if next_floor != self._policy.final_inspection_floor:
            state.final_quality_confirmed = False

        logger.info(
            "floor_advanced",
            extra={
                "article_id": str(state.article_id),
                "from_floor": floor,
                "to_floor": next_floor,
                "quantity": record.completed,
            },
        )
        return [
            FloorEvent(
                action=ArticleAction.FLOOR_ADVANCED,
                from_floor=floor,
                to_floor=next_floor,
                quantity=record.completed,
                previous_value={"current_floor": floor},
                new_value={"current_floor": next_floor},
            )
        ]

    # -- settlement ------------------------------------------------------------

    @traced_engine("floor_settle", "1.0", fingerprint_fields=("floor",))
    def settle(
        self,
        state: ArticleState,
        *,
        floor: str,
        now: datetime,
    ) -> list[FloorEvent]:
        """
        Propagate work and advance the article after a mutation of ``floor``.

        In single-pass mode this pushes ``floor``, sweeps the floors before
        the current one once and checks completion once.  In fixed-point
        mode it repeats sweep and advancement until neither changes
        anything.
        """
        events: list[FloorEvent] = []

        if self._mode == PropagationMode.SINGLE_PASS:
            for push in self._propagator.single_pass(state, floor=floor):
                events.append(push.to_event())
            events.extend(self.advance_if_complete(state, now=now))
            return events

        for _ in range(self._max_iterations):
            pushes = self._propagator.sweep(state)
            advanced = self.advance_if_complete(state, now=now)
            events.extend(push.to_event() for push in pushes)
            events.extend(advanced)
            if not pushes and not advanced:
                break
        else:
            logger.warning(
                "propagation_iteration_limit",
                extra={
                    "article_id": str(state.article_id),
                    "max_iterations": self._max_iterations,
                },
            )
        return events

    # -- status and progress ---------------------------------------------------

    def mark_started(self, state: ArticleState, *, now: datetime) -> list[FloorEvent]:
        """Pending -> In Progress on the first completed unit anywhere."""
        if state.status != ArticleStatus.PENDING:
            return []
        if not any(r.completed > 0 for r in state.ordered_records()):
            return []
        state.status = ArticleStatus.IN_PROGRESS
        state.started_at = state.started_at or now
        return [
            FloorEvent(
                action=ArticleAction.STATUS_CHANGED,
                from_floor=state.current_floor,
                previous_value={"status": ArticleStatus.PENDING.value},
                new_value={"status": ArticleStatus.IN_PROGRESS.value},
            )
        ]

    def good_quantity(self, state: ArticleState, floor: str) -> int:
        """Output on ``floor`` that counts towards progress."""
        record = state.record(floor)
        if self._policy.is_inspection(floor):
            return record.m1_quantity
        return max(0, record.completed - record.m4_quantity)

    def compute_progress(self, state: ArticleState) -> int:
        """Mean per-floor completion against plan, as a 0-100 integer."""
        if state.planned_quantity <= 0 or not state.floor_sequence:
            return 0
        ratios = [
            min(1.0, self.good_quantity(state, floor) / state.planned_quantity)
            for floor in state.floor_sequence
        ]
        return int(round(100 * sum(ratios) / len(ratios)))

    def refresh_progress(self, state: ArticleState) -> list[FloorEvent]:
        """Recompute progress; emits an event only when the value changed."""
        new_progress = self.compute_progress(state)
        if new_progress == state.progress:
            return []
        previous = state.progress
        state.progress = new_progress
        return [
            FloorEvent(
                action=ArticleAction.PROGRESS_UPDATED,
                from_floor=state.current_floor,
                previous_value={"progress": previous},
                new_value={"progress": new_progress},
            )
        ]
