"""
Clock -- injectable time source.

Responsibility:
    Services stamp ``started_at``, ``completed_at`` and audit timestamps
    from a Clock handed to them, never from ``datetime.now()``.  Engines
    take ``now`` as an argument and read no clock at all.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that reads the
    wall clock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

SHIFT_START = datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests and replays.

    Guarantees:
        ``now()`` keeps returning the same instant until ``advance()`` moves
        it forward.
    """

    def __init__(self, start: datetime = SHIFT_START):
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
