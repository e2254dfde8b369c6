"""
Module: vehicle_tax_kernel.models.audit_log
Responsibility: ORM persistence for the append-only, hash-chained audit log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE (ORM listener).
    - seq is unique and monotonically increasing, allocated by
      SequenceService.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      computed and validated by AuditorService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a mismatch.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_tax_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions emitted by the tax engine."""

    CALCULATE = "CALCULATE"
    APPROVE = "APPROVE"
    TABLE_PUBLISHED = "TABLE_PUBLISHED"
    TABLE_RETIRED = "TABLE_RETIRED"


class AuditLog(Base):
    """Append-only audit record with hash chain linkage."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_case", "case_id"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    case_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. "TaxEstimation", "TaxTable"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the first row of the chain
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
