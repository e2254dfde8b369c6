"""
Module: vehicle_tax_kernel.models.tax_table
Responsibility: ORM persistence for date-effective, versioned rate schedules.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rate-defining fields (kind, version, effective_date, brackets) are
      never modified after insert (ORM listener in db/immutability.py).
      A schedule is superseded by inserting a newer effective_date row.
    - insertion_seq is unique and monotonically increasing; it breaks ties
      between tables of the same kind and effective_date.
    - Inactive tables are never selected by TaxTableSelector.

Failure modes:
    - ImmutabilityViolationError on UPDATE of a rate field or on DELETE.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, BigInteger, Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_tax_kernel.db.base import TimestampedBase


# Column widths shared with the provenance fields of TaxEstimation
KIND_LENGTH = 30
VERSION_LENGTH = 50


class TaxTableKind(str, Enum):
    """Which rate schedule a table holds."""

    CYLINDER_CAPACITY = "CYLINDER_CAPACITY"  # ISV, per cc
    CO2_EMISSIONS = "CO2_EMISSIONS"  # ISV, per g/km
    VAT_RATES = "VAT_RATES"
    CIRCULATION_FEE = "CIRCULATION_FEE"  # IUC, fixed fee per tier


class TaxTable(TimestampedBase):
    """
    One effective-dated version of a rate schedule.

    ``brackets`` is a JSON list of ``{"min": str, "max": str | None,
    "rate": str}`` sorted ascending by min.  Decimal values are stored as
    strings so they survive JSON exactly; a null max is unbounded.
    """

    __tablename__ = "tax_tables"

    __table_args__ = (
        Index("idx_tax_table_lookup", "kind", "is_active", "effective_date"),
    )

    # TaxTableKind value
    kind: Mapped[str] = mapped_column(
        String(KIND_LENGTH),
        nullable=False,
    )

    # Opaque label, e.g. "2024" or "OE2025-rev2"
    version: Mapped[str] = mapped_column(
        String(VERSION_LENGTH),
        nullable=False,
    )

    effective_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Exclusive: the table stops applying ON this date
    end_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    brackets: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    insertion_seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<TaxTable {self.kind} v{self.version} from {self.effective_date}>"

    def is_effective(self, as_of: date) -> bool:
        """Active, started on or before as_of, and not yet ended."""
        if not self.is_active or self.effective_date > as_of:
            return False
        return self.end_date is None or self.end_date > as_of

    def bracket_tuples(self) -> list[tuple[Decimal, Decimal | None, Decimal]]:
        """Brackets as (min, max, rate) Decimals."""
        return [
            (
                Decimal(str(b["min"])),
                Decimal(str(b["max"])) if b.get("max") is not None else None,
                Decimal(str(b["rate"])),
            )
            for b in self.brackets
        ]
