"""
Module: vehicle_tax_kernel.models.import_case
Responsibility: Minimal ORM view of an import case.  Case CRUD lives in the
    case-management application; the tax engine only needs to resolve a
    case id to its owning tenant.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_tax_kernel.db.base import TimestampedBase, UUIDString


class ImportCase(TimestampedBase):
    """An import case owned by one tenant."""

    __tablename__ = "import_cases"

    __table_args__ = (
        Index("idx_import_case_tenant", "tenant_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Human-facing reference, e.g. "IMP-2024-0042"
    case_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        unique=True,
    )

    def __repr__(self) -> str:
        return f"<ImportCase {self.case_number or self.id} tenant={self.tenant_id}>"
