"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable values that flow through a calculation:
    VehicleInputs (validated request fields), Bracket and BracketTable
    (resolved rate schedules), TaxBreakdown (engine output, persistence
    input) and EstimationRecord (persisted estimation as seen by
    formatting and reporting code).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ``EstimationRecord.from_model()`` is the
    boundary converter, invoked from services and selectors only.

Invariants enforced:
    - All amounts are Decimal, never float.
    - TaxBreakdown.total_estimated_cost equals the sum of its four
      components exactly (checked in __post_init__).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from vehicle_tax_kernel.models.tax_estimation import TaxEstimation


class FuelType(str, Enum):
    """Known fuel types.  Requests may carry other labels; only ELECTRIC
    changes the calculation."""

    GASOLINE = "GASOLINE"
    DIESEL = "DIESEL"
    ELECTRIC = "ELECTRIC"
    HYBRID = "HYBRID"
    PLUGIN_HYBRID = "PLUGIN_HYBRID"
    LPG = "LPG"
    CNG = "CNG"
    HYDROGEN = "HYDROGEN"
    OTHER = "OTHER"


@dataclass(frozen=True)
class VehicleInputs:
    """Calculation inputs, captured verbatim on the estimation."""

    vehicle_value: Decimal
    vehicle_age_months: int
    engine_capacity: int
    co2_emissions: int
    fuel_type: str

    @property
    def is_electric(self) -> bool:
        return self.fuel_type == FuelType.ELECTRIC.value


@dataclass(frozen=True)
class TaxBreakdown:
    """
    Every derived field of one calculation, at storage precision.

    Built by EstimationAggregator, persisted by EstimationStore.
    """

    depreciation_rate: Decimal
    depreciated_value: Decimal
    isv_cylinder: Decimal
    isv_co2: Decimal
    isv_total: Decimal
    isv_reduction_percentage: Decimal
    isv_final: Decimal
    iva_rate: Decimal
    iva_base: Decimal
    iva_amount: Decimal
    iuc_estimated: Decimal
    total_estimated_cost: Decimal
    cylinder_table_version: str | None = None
    co2_table_version: str | None = None
    iuc_source: str = "settings"
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        expected = (
            self.depreciated_value
            + self.isv_final
            + self.iva_amount
            + self.iuc_estimated
        )
        if self.total_estimated_cost != expected:
            raise ValueError(
                f"Total {self.total_estimated_cost} does not equal "
                f"component sum {expected}"
            )


@dataclass(frozen=True)
class EstimationRecord:
    """Read model of a persisted estimation."""

    id: UUID
    tenant_id: UUID
    case_id: UUID
    calculation_version: int
    calculated_at: datetime
    calculated_by: UUID | None
    inputs: VehicleInputs
    breakdown: TaxBreakdown
    is_final: bool
    approved_by: UUID | None = None
    approved_at: datetime | None = None

    @property
    def status(self) -> str:
        return "FINAL" if self.is_final else "DRAFT"

    @classmethod
    def from_model(cls, model: TaxEstimation) -> EstimationRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            case_id=model.case_id,
            calculation_version=model.calculation_version,
            calculated_at=model.calculated_at,
            calculated_by=model.calculated_by,
            inputs=VehicleInputs(
                vehicle_value=model.vehicle_value,
                vehicle_age_months=model.vehicle_age_months,
                engine_capacity=model.engine_capacity,
                co2_emissions=model.co2_emissions,
                fuel_type=model.fuel_type,
            ),
            breakdown=TaxBreakdown(
                depreciation_rate=model.depreciation_rate,
                depreciated_value=model.depreciated_value,
                isv_cylinder=model.isv_cylinder,
                isv_co2=model.isv_co2,
                isv_total=model.isv_total,
                isv_reduction_percentage=model.isv_reduction_percentage,
                isv_final=model.isv_final,
                iva_rate=model.iva_rate,
                iva_base=model.iva_base,
                iva_amount=model.iva_amount,
                iuc_estimated=model.iuc_estimated,
                total_estimated_cost=model.total_estimated_cost,
                cylinder_table_version=model.cylinder_table_version,
                co2_table_version=model.co2_table_version,
                iuc_source=model.iuc_source,
                details=dict(model.calculation_details or {}),
            ),
            is_final=model.is_final,
            approved_by=model.approved_by,
            approved_at=model.approved_at,
        )


@dataclass(frozen=True)
class Bracket:
    """
    One ``[minimum, maximum]`` range of a bracket table.

    Both bounds are inclusive; ``maximum=None`` is unbounded above.
    """

    minimum: Decimal
    maximum: Decimal | None
    rate: Decimal

    def contains(self, value: Decimal) -> bool:
        if value < self.minimum:
            return False
        return self.maximum is None or value <= self.maximum

    def to_dict(self) -> dict[str, str | None]:
        return {
            "min": str(self.minimum),
            "max": str(self.maximum) if self.maximum is not None else None,
            "rate": str(self.rate),
        }


@dataclass(frozen=True)
class BracketTable:
    """Engine-facing view of a stored tax table."""

    table_id: UUID
    kind: str
    version: str
    effective_date: date
    end_date: date | None
    insertion_seq: int
    brackets: tuple[Bracket, ...]
