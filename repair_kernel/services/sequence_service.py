"""
SequenceService -- strictly increasing numbers for audit entries.

Responsibility:
    Hands out the next value of a named counter.  The counter row is locked
    (SELECT ... FOR UPDATE) and bumped inside the caller's transaction, so
    two writers never draw the same value and the order of ``seq`` is the
    order in which audit entries committed their locks.

Invariants enforced:
    - Values come from the counter row only, never from MAX(seq) + 1.
    - A rolled-back transaction gives its value back.

Failure modes:
    - IntegrityError is absorbed when two transactions create the same
      counter on first use; the loser locks the winner's row and continues.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from repair_kernel.logging_config import get_logger
from repair_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates values.  Flushes, never commits."""

    AUDIT_ENTRY = "repair_quote_audit"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        counter = self._lock(sequence_name)
        if counter is None:
            if self._create(sequence_name):
                value = 1
                logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
                return value
            counter = self._lock(sequence_name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {sequence_name!r} vanished after a create race")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str) -> bool:
        """Insert the counter at 1.  False when another transaction got there first."""
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            return False
        return True
