"""
SequenceService -- monotonic sequence allocation.

Responsibility:
    Provides strictly increasing sequence numbers for vouchers.  The value
    orders vouchers (and, copied onto each line, postings) that share a date.

Architecture position:
    Kernel > Services.  Called by VoucherService.

Invariants enforced:
    - Values are unique and increase in allocation order; aggregate
      max-plus-one is never used.
    - On PostgreSQL the voucher sequence is a database sequence, so
      allocating a value holds no lock until commit.  Values taken by a
      transaction that rolls back are skipped, never reused.
    - Elsewhere a locked counter row is the source of truth and its
      increment is only visible after the caller's transaction commits.

Failure modes:
    - IntegrityError on a concurrent first use of a counter row
      (PostgreSQL): handled by a savepoint rollback and re-read.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.sequence import VOUCHER_SEQUENCE, SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    VOUCHER = "voucher"

    _DATABASE_SEQUENCES = {VOUCHER: VOUCHER_SEQUENCE}

    def __init__(self, session: Session):
        self._session = session

    def _database_sequence(self, sequence_name: str):
        if self._session.get_bind().dialect.name != "postgresql":
            return None
        return self._DATABASE_SEQUENCES.get(sequence_name)

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_counter(self, sequence_name: str) -> SequenceCounter | None:
        """
        Insert the counter row at value 1.

        Returns None if another transaction created it first.  SQLite
        serializes writers, so the savepoint is only needed on PostgreSQL.
        """
        if self._session.get_bind().dialect.name != "postgresql":
            counter = SequenceCounter(name=sequence_name, current_value=1)
            self._session.add(counter)
            self._session.flush()
            return counter

        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=1)
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"sequence_name": sequence_name},
            )
            savepoint.rollback()
            return None

    def next_value(self, sequence_name: str) -> int:
        """
        Return the next value for ``sequence_name``.  Always > 0 and strictly
        greater than any value previously returned for the same name.
        """
        sequence = self._database_sequence(sequence_name)
        if sequence is not None:
            value = self._session.execute(select(sequence.next_value())).scalar_one()
            logger.debug(
                "sequence_allocated",
                extra={"sequence_name": sequence_name, "value": value},
            )
            return value

        counter = self._locked_counter(sequence_name)

        if counter is None:
            created = self._create_counter(sequence_name)
            if created is not None:
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            counter = self._locked_counter(sequence_name)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value
