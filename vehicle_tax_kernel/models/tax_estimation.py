"""
Module: vehicle_tax_kernel.models.tax_estimation
Responsibility: ORM persistence for one tax calculation attempt of one case.
Architecture position: Kernel > Models.  May import from db/ and sibling models.

Invariants enforced:
    - (case_id, calculation_version) is unique; versions start at 1 and are
      allocated by EstimationStore through a locked per-case counter.
    - total_estimated_cost == depreciated_value + isv_final + iva_amount
      + iuc_estimated, exactly, on the stored (storage precision) values.
    - DRAFT -> FINAL is one-way.  Once is_final is True no input, derived or
      approval field may change (ORM listener in db/immutability.py).
    - Rows are never deleted; later versions supersede earlier ones.

Audit relevance:
    Stored values are authoritative.  Reports and dashboards round them for
    display with vehicle_tax_engines.aggregator.format_payload().
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vehicle_tax_kernel.db.base import TimestampedBase, UUIDString
from vehicle_tax_kernel.models.tax_table import KIND_LENGTH, VERSION_LENGTH

# "settings" or "<table kind>:<table version>"
IUC_SOURCE_LENGTH = KIND_LENGTH + 1 + VERSION_LENGTH


class EstimationStatus(str, Enum):
    """Lifecycle state derived from is_final."""

    DRAFT = "DRAFT"
    FINAL = "FINAL"


class TaxEstimation(TimestampedBase):
    """A numbered, eventually-immutable tax estimation for an import case."""

    __tablename__ = "tax_estimations"

    __table_args__ = (
        UniqueConstraint(
            "case_id", "calculation_version", name="uq_estimation_case_version"
        ),
        Index("idx_estimation_case", "case_id"),
        Index("idx_estimation_tenant", "tenant_id"),
    )

    # Identity
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    calculation_version: Mapped[int] = mapped_column(Integer, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    calculated_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Inputs, captured verbatim
    vehicle_value: Mapped[Decimal] = mapped_column(nullable=False)
    vehicle_age_months: Mapped[int] = mapped_column(Integer, nullable=False)
    engine_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    co2_emissions: Mapped[int] = mapped_column(Integer, nullable=False)
    fuel_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Depreciation
    depreciation_rate: Mapped[Decimal] = mapped_column(nullable=False)
    depreciated_value: Mapped[Decimal] = mapped_column(nullable=False)

    # ISV
    isv_cylinder: Mapped[Decimal] = mapped_column(nullable=False)
    isv_co2: Mapped[Decimal] = mapped_column(nullable=False)
    isv_total: Mapped[Decimal] = mapped_column(nullable=False)
    isv_reduction_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    isv_final: Mapped[Decimal] = mapped_column(nullable=False)

    # IVA
    iva_rate: Mapped[Decimal] = mapped_column(nullable=False)
    iva_base: Mapped[Decimal] = mapped_column(nullable=False)
    iva_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # IUC
    iuc_estimated: Mapped[Decimal] = mapped_column(nullable=False)

    total_estimated_cost: Mapped[Decimal] = mapped_column(nullable=False)

    # Provenance
    cylinder_table_version: Mapped[str | None] = mapped_column(
        String(VERSION_LENGTH), nullable=True
    )
    co2_table_version: Mapped[str | None] = mapped_column(
        String(VERSION_LENGTH), nullable=True
    )
    iuc_source: Mapped[str] = mapped_column(String(IUC_SOURCE_LENGTH), nullable=False)
    calculation_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Approval
    is_final: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<TaxEstimation case={self.case_id} v{self.calculation_version} "
            f"{self.status.value}>"
        )

    @property
    def status(self) -> EstimationStatus:
        return EstimationStatus.FINAL if self.is_final else EstimationStatus.DRAFT

    @property
    def component_sum(self) -> Decimal:
        """depreciated_value + isv_final + iva_amount + iuc_estimated."""
        return (
            self.depreciated_value
            + self.isv_final
            + self.iva_amount
            + self.iuc_estimated
        )
