"""
SequenceService -- gap-free named counters via locked counter rows.

Responsibility:
    Hands out strictly increasing integers for named sequences:
    ``audit_log`` (audit chain order), ``tax_table`` (publication order)
    and one ``estimation:<case_id>`` sequence per import case, which is
    the source of ``TaxEstimation.calculation_version``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by EstimationStore, AuditorService and TaxTableService.

Invariants enforced:
    - The counter row is the only source of truth for the next value.
      It is read with ``SELECT ... FOR UPDATE`` (PostgreSQL) inside a
      transaction that, on SQLite, began with BEGIN IMMEDIATE.  Concurrent
      allocations for the same name are serialized; different names never
      block each other on PostgreSQL.
    - The increment is transactional: a rollback returns the value, so a
      failed estimation write leaves no gap.

Failure modes:
    - IntegrityError on a concurrent first-use race for the same name
      (handled via savepoint rollback and re-read).
    - OperationalError when the lock wait exceeds the configured timeout.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from vehicle_tax_kernel.db.base import Base
from vehicle_tax_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "audit_log", "tax_table", "estimation:<uuid>"
    name: Mapped[str] = mapped_column(
        String(60),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Transactional sequence numbers.

    Does NOT call ``session.commit()`` -- the caller controls boundaries.

    Usage:
        with session_scope(factory) as session:
            version = SequenceService(session).next_value(
                SequenceService.for_case(case_id)
            )
    """

    AUDIT_LOG = "audit_log"
    TAX_TABLE = "tax_table"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def for_case(case_id: UUID) -> str:
        """Name of the calculation-version sequence of one case."""
        return f"estimation:{case_id}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str, floor: int = 0) -> int:
        """
        Get the next value for a named sequence.

        1. Lock the counter row (or create it if it does not exist)
        2. Increment it
        3. Return the new value

        Args:
            sequence_name: Name of the sequence.
            floor: Value already in use when the counter is first created.
                The first value handed out is ``floor + 1``.  Ignored once
                the counter exists.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use. Another transaction may be creating the same row;
            # the savepoint keeps the caller's other work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=floor + 1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": floor + 1},
                )
                return floor + 1
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
        """Current value of a sequence without incrementing (None if unused)."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
