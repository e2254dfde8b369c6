"""
AuditorService -- tamper-evident audit trail for the tax engine.

Responsibility:
    Appends hash-chained ``AuditLog`` rows for every calculation, approval
    and tax table publication.  Provides chain validation for tamper
    detection and per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell.  Reached by the service layer
    through the ``AuditSink`` protocol (``DatabaseAuditSink``) and called
    directly by TaxTableService.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.  Every row links to its predecessor.
    - Append-only: audit rows are never modified or deleted (ORM listener
      on the AuditLog model).

Failure modes:
    - AuditChainBrokenError: a recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.
    - IntegrityError: concurrent insert race on the sequence counter.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from vehicle_tax_kernel.db.engine import session_scope
from vehicle_tax_kernel.domain.clock import Clock, SystemClock
from vehicle_tax_kernel.exceptions import AuditChainBrokenError
from vehicle_tax_kernel.logging_config import get_logger
from vehicle_tax_kernel.models.audit_log import AuditAction, AuditLog
from vehicle_tax_kernel.services.sequence_service import SequenceService
from vehicle_tax_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID | None
    new_values: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit rows of one entity, in chain order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)


class AuditorService:
    """
    Creates and validates hash-chained audit rows.

    Does NOT call ``session.commit()`` -- the caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(AuditLog).order_by(AuditLog.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    def record(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: UUID,
        new_values: dict[str, Any] | None = None,
        *,
        tenant_id: UUID | None = None,
        case_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> AuditLog:
        """
        Append one audit row with hash chain linkage.

        The sequence counter is locked first, so reading the last hash
        afterwards sees the true predecessor.

        Args:
            action: What happened.
            entity_type: e.g. "TaxEstimation".
            entity_id: ID of the affected entity.
            new_values: The entity state after the action.  Decimals, dates
                and UUIDs are stored as strings.
            tenant_id: Owning tenant, when known.
            case_id: Import case, when the entity belongs to one.
            actor_id: Who performed the action (None for the system).

        Returns:
            The flushed AuditLog row.
        """
        action_value = action.value if isinstance(action, AuditAction) else str(action)

        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_hash = self._get_last_hash()

        values = to_json_safe(new_values or {})
        payload_hash = hash_payload(values)
        entry_hash = hash_audit_entry(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action_value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = AuditLog(
            seq=seq,
            tenant_id=tenant_id,
            case_id=case_id,
            actor_id=actor_id,
            action=action_value,
            entity_type=entity_type,
            entity_id=entity_id,
            new_values=values,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action_value,
                "seq": seq,
            },
        )
        return entry

    # Domain-specific recording methods

    def record_table_published(
        self,
        table_id: UUID,
        kind: str,
        version: str,
        effective_date: date,
        bracket_count: int,
        actor_id: UUID | None = None,
    ) -> AuditLog:
        """Record that a tax table version was published."""
        return self.record(
            AuditAction.TABLE_PUBLISHED,
            "TaxTable",
            table_id,
            {
                "kind": kind,
                "version": version,
                "effective_date": effective_date,
                "bracket_count": bracket_count,
            },
            actor_id=actor_id,
        )

    def record_table_retired(
        self,
        table_id: UUID,
        end_date: date | None,
        actor_id: UUID | None = None,
    ) -> AuditLog:
        """Record that a tax table was retired."""
        return self.record(
            AuditAction.TABLE_RETIRED,
            "TaxTable",
            table_id,
            {"end_date": end_date},
            actor_id=actor_id,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Returns:
            True when every stored hash matches its recomputed value and
            every prev_hash matches the predecessor's hash.

        Raises:
            AuditChainBrokenError: At the first row that fails.
        """
        entries = self._session.execute(
            select(AuditLog).order_by(AuditLog.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for entry in entries:
            if entry.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(
                    entry.seq,
                    expected_prev or "GENESIS",
                    entry.prev_hash or "GENESIS",
                )

            expected_hash = hash_audit_entry(
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                action=entry.action,
                payload_hash=hash_payload(entry.new_values or {}),
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(entry.seq, expected_hash, entry.hash)

            expected_prev = entry.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True

    # Trace queries

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit rows of one entity in chain order."""
        rows = self._session.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == entity_id,
            )
            .order_by(AuditLog.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=row.seq,
                    action=row.action,
                    occurred_at=row.occurred_at,
                    actor_id=row.actor_id,
                    new_values=row.new_values or {},
                    hash=row.hash,
                )
                for row in rows
            ),
        )

    def get_recent_entries(self, limit: int = 100) -> list[AuditLog]:
        """Most recent audit rows, newest first."""
        return list(
            self._session.execute(
                select(AuditLog).order_by(AuditLog.seq.desc()).limit(limit)
            ).scalars().all()
        )


class AuditSink(Protocol):
    """Append-only audit destination consumed by the calculation service."""

    def emit(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: UUID,
        new_values: dict[str, Any] | None = None,
        *,
        tenant_id: UUID | None = None,
        case_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> None: ...


class DatabaseAuditSink:
    """
    AuditSink that writes to the audit log in its own transaction.

    The caller's transaction has already committed when emit() runs, so
    a failure here never affects the audited record.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def emit(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: UUID,
        new_values: dict[str, Any] | None = None,
        *,
        tenant_id: UUID | None = None,
        case_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        with session_scope(self._session_factory) as session:
            AuditorService(session, self._clock).record(
                action,
                entity_type,
                entity_id,
                new_values,
                tenant_id=tenant_id,
                case_id=case_id,
                actor_id=actor_id,
            )
