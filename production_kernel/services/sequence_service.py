"""
SequenceService -- transactional monotonic counters.

Responsibility:
    Allocates strictly increasing sequence numbers for article log rows
    using a locked counter row, never ``SELECT max(seq) + 1``.

Architecture position:
    Kernel > Services -- called by ArticleLogService.

Invariants enforced:
    - Strict monotonicity per sequence name.
    - ``SELECT ... FOR UPDATE`` serializes concurrent allocations on
      PostgreSQL; SQLite writers are already serialized by BEGIN IMMEDIATE.

Failure modes:
    - IntegrityError when two transactions create the same counter row at
      once; handled by retrying inside a savepoint.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from production_kernel.db.base import Base
from production_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Values are only consumed when the caller's transaction commits.
        - Under normal operation, no values are skipped.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    ARTICLE_LOG = "article_log"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Preconditions:
            The caller is within an active database transaction.

        Postconditions:
            Returns an integer > 0 strictly greater than any value previously
            returned for this name.  The counter row stays locked until the
            transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this sequence; another thread may race us.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
