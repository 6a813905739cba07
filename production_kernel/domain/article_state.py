"""
Article state -- the in-memory working copy the engines operate on.

Responsibility:
    Holds one article's floor counters and lifecycle fields as plain
    dataclasses so engines can validate and mutate them without touching
    the ORM.  Services load an ``ArticleState`` from the database, run the
    engines against it, and write it back only when every step succeeded.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced (checked by ``FloorQuantityRecord.violations``):
    - transferred <= completed
    - completed <= received, except on overproduction floors
    - m1_transferred <= m1_quantity
    - every counter >= 0
    - remaining is derived, never stored

Failure modes:
    - FloorNotInSequenceError when a floor outside the article's sequence
      is looked up.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from production_kernel.exceptions import FloorNotInSequenceError


class ArticleStatus(str, Enum):
    """Article-level lifecycle status."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class RepairStatus(str, Enum):
    """Review state of M2 (repairable) stock on an inspection floor."""

    NOT_REQUIRED = "Not Required"
    IN_REVIEW = "In Review"
    REPAIRED = "Repaired"
    REJECTED = "Rejected"


_COUNTER_FIELDS = (
    "received",
    "completed",
    "transferred",
    "m1_quantity",
    "m2_quantity",
    "m3_quantity",
    "m4_quantity",
    "m1_transferred",
    "m2_transferred",
    "repair_received",
)


@dataclass
class FloorQuantityRecord:
    """Counter bucket for one floor of one article."""

    floor: str
    received: int = 0
    completed: int = 0
    transferred: int = 0
    m1_quantity: int = 0
    m2_quantity: int = 0
    m3_quantity: int = 0
    m4_quantity: int = 0
    m1_transferred: int = 0
    m2_transferred: int = 0
    repair_received: int = 0
    repair_status: RepairStatus = RepairStatus.NOT_REQUIRED
    repair_remarks: str = ""

    @property
    def remaining(self) -> int:
        return max(0, self.received - self.completed)

    @property
    def m1_remaining(self) -> int:
        return max(0, self.m1_quantity - self.m1_transferred)

    @property
    def untransferred(self) -> int:
        """Completed work not yet pushed to the next floor."""
        return self.completed - self.transferred

    @property
    def has_work(self) -> bool:
        return self.received > 0 or self.completed > 0 or self.remaining > 0

    @property
    def graded_total(self) -> int:
        return self.m1_quantity + self.m2_quantity + self.m3_quantity + self.m4_quantity

    def counters(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in _COUNTER_FIELDS}

    def violations(
        self, allow_overproduction: bool = False, inspection: bool = False
    ) -> list[str]:
        """Describe every broken counter invariant; empty when consistent.

        ``inspection`` adds the grading bound of inspection floors: M1-M4
        together never exceed ``received``.
        """
        problems = [
            f"{name} is negative ({value})"
            for name, value in self.counters().items()
            if value < 0
        ]
        if self.transferred > self.completed:
            problems.append(
                f"transferred {self.transferred} exceeds completed {self.completed}"
            )
        if not allow_overproduction and self.completed > self.received:
            problems.append(
                f"completed {self.completed} exceeds received {self.received}"
            )
        if self.m1_transferred > self.m1_quantity:
            problems.append(
                f"m1_transferred {self.m1_transferred} exceeds m1_quantity {self.m1_quantity}"
            )
        if inspection and self.graded_total > self.received:
            problems.append(
                f"graded total {self.graded_total} exceeds received {self.received}"
            )
        return problems


@dataclass
class ArticleState:
    """
    Mutable working copy of one article.

    Contract:
        ``floors`` holds exactly one record per floor in ``floor_sequence``.
        ``current_floor`` is always a member of ``floor_sequence``.

    Non-goals:
        Knows nothing about persistence or time; callers stamp timestamps.
    """

    article_id: UUID
    order_id: UUID
    article_number: str
    planned_quantity: int
    floor_sequence: tuple[str, ...]
    current_floor: str
    status: ArticleStatus = ArticleStatus.PENDING
    progress: int = 0
    floors: dict[str, FloorQuantityRecord] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    final_quality_confirmed: bool = False
    quantity_from_previous_floor: int = 0
    remarks: str | None = None

    def __post_init__(self) -> None:
        for floor in self.floor_sequence:
            self.floors.setdefault(floor, FloorQuantityRecord(floor=floor))

    # -- sequence navigation -------------------------------------------------

    def record(self, floor: str) -> FloorQuantityRecord:
        if floor not in self.floors or floor not in self.floor_sequence:
            raise FloorNotInSequenceError(floor, self.floor_sequence)
        return self.floors[floor]

    def index_of(self, floor: str) -> int:
        try:
            return self.floor_sequence.index(floor)
        except ValueError:
            raise FloorNotInSequenceError(floor, self.floor_sequence) from None

    def next_floor(self, floor: str) -> str | None:
        idx = self.index_of(floor)
        if idx + 1 < len(self.floor_sequence):
            return self.floor_sequence[idx + 1]
        return None

    def previous_floor(self, floor: str) -> str | None:
        idx = self.index_of(floor)
        return self.floor_sequence[idx - 1] if idx > 0 else None

    @property
    def current_index(self) -> int:
        return self.index_of(self.current_floor)

    @property
    def last_floor(self) -> str:
        return self.floor_sequence[-1]

    def ordered_records(self) -> list[FloorQuantityRecord]:
        return [self.floors[f] for f in self.floor_sequence]

    def copy(self) -> ArticleState:
        return copy.deepcopy(self)
