"""
Estimation Aggregator - combine every tax component into one breakdown.

Responsibility:
    Runs the ISV, depreciation, IVA and IUC calculators in order, sums the
    total, and shapes the rounded response payload.

Rounding discipline:
    - Every component leaves its calculator already quantized to storage
      precision (9 places, half-up).  The total is their plain sum, so
      ``total_estimated_cost == depreciated_value + isv_final + iva_amount
      + iuc_estimated`` holds exactly on the stored record.
    - format_payload() is the only display formatter.  It rounds each
      field independently to 2 places, half away from zero; the total is
      rounded from the stored sum, not re-added from rounded parts, so the
      rounded total may differ from the sum of rounded parts by a cent.
    - format_payload() reads only stored values and is therefore
      deterministic and idempotent.

Usage:
    aggregator = EstimationAggregator(vat_rate=Decimal("23"))
    breakdown = aggregator.aggregate(
        inputs=inputs,
        cylinder_table=cylinder,
        co2_table=co2,
        fee_table=None,
        as_of_date=date(2024, 6, 1),
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from vehicle_tax_engines.depreciation import (
    DEFAULT_CAP_PERCENTAGE,
    DEFAULT_RATE_PER_MONTH,
    DepreciationCalculator,
)
from vehicle_tax_engines.isv import ISVCalculator
from vehicle_tax_engines.iuc import DEFAULT_FEE_STEPS, FeeStep, IUCCalculator
from vehicle_tax_engines.iva import DEFAULT_VAT_RATE, IVACalculator
from vehicle_tax_kernel.db.types import round_money
from vehicle_tax_kernel.domain.dtos import (
    BracketTable,
    EstimationRecord,
    TaxBreakdown,
    VehicleInputs,
)
from vehicle_tax_kernel.logging_config import get_logger

logger = get_logger("engines.aggregator")

IUC_SOURCE_SETTINGS = "settings"

# Response key -> TaxBreakdown attribute
PAYLOAD_FIELDS: tuple[tuple[str, str], ...] = (
    ("isvCilindrada", "isv_cylinder"),
    ("isvCo2", "isv_co2"),
    ("isvTotal", "isv_total"),
    ("reductionPercentage", "isv_reduction_percentage"),
    ("isvFinal", "isv_final"),
    ("ivaAmount", "iva_amount"),
    ("iucEstimated", "iuc_estimated"),
    ("totalEstimatedCost", "total_estimated_cost"),
)


def _rate_str(rate: Decimal | None) -> str | None:
    return str(rate) if rate is not None else None


class EstimationAggregator:
    """
    Orchestrates the pure calculators for one vehicle.

    Calculator parameters (VAT rate, depreciation curve, fee steps) are
    fixed at construction; aggregate() takes only per-calculation data.
    """

    def __init__(
        self,
        vat_rate: Decimal = DEFAULT_VAT_RATE,
        depreciation_rate_per_month: Decimal = DEFAULT_RATE_PER_MONTH,
        depreciation_cap: Decimal = DEFAULT_CAP_PERCENTAGE,
        fee_steps: Sequence[FeeStep] = DEFAULT_FEE_STEPS,
    ):
        self.isv = ISVCalculator()
        self.depreciation = DepreciationCalculator(
            rate_per_month=depreciation_rate_per_month,
            cap_percentage=depreciation_cap,
        )
        self.iva = IVACalculator(vat_rate=vat_rate)
        self.iuc = IUCCalculator(steps=fee_steps)

    def aggregate(
        self,
        *,
        inputs: VehicleInputs,
        cylinder_table: BracketTable,
        co2_table: BracketTable,
        fee_table: BracketTable | None = None,
        as_of_date: date | None = None,
    ) -> TaxBreakdown:
        isv = self.isv.compute(
            engine_capacity=inputs.engine_capacity,
            co2_emissions=inputs.co2_emissions,
            fuel_type=inputs.fuel_type,
            cylinder_table=cylinder_table.brackets,
            co2_table=co2_table.brackets,
        )
        depreciation = self.depreciation.compute(
            age_months=inputs.vehicle_age_months,
            vehicle_value=inputs.vehicle_value,
            isv_total=isv.isv_total,
        )
        iva = self.iva.compute(
            depreciated_value=depreciation.depreciated_value,
            isv_final=depreciation.isv_final,
        )
        iuc = self.iuc.compute(
            co2_emissions=inputs.co2_emissions,
            fee_table=fee_table.brackets if fee_table is not None else None,
        )

        total = (
            depreciation.depreciated_value
            + depreciation.isv_final
            + iva.iva_amount
            + iuc.iuc_estimated
        )

        iuc_source = (
            f"{fee_table.kind}:{fee_table.version}"
            if iuc.from_table and fee_table is not None
            else IUC_SOURCE_SETTINGS
        )

        details: dict[str, Any] = {
            "as_of_date": as_of_date.isoformat() if as_of_date else None,
            "cylinder_rate": _rate_str(isv.cylinder_rate),
            "co2_rate": _rate_str(isv.co2_rate),
            "co2_exempt": isv.co2_exempt,
            "cylinder_table_id": str(cylinder_table.table_id),
            "co2_table_id": str(co2_table.table_id),
            "fee_table_id": str(fee_table.table_id) if fee_table is not None else None,
            "depreciation_rate_per_month": str(self.depreciation.rate_per_month),
            "depreciation_cap": str(self.depreciation.cap_percentage),
        }

        breakdown = TaxBreakdown(
            depreciation_rate=depreciation.reduction_percentage,
            depreciated_value=depreciation.depreciated_value,
            isv_cylinder=isv.isv_cylinder,
            isv_co2=isv.isv_co2,
            isv_total=isv.isv_total,
            isv_reduction_percentage=depreciation.reduction_percentage,
            isv_final=depreciation.isv_final,
            iva_rate=iva.iva_rate,
            iva_base=iva.iva_base,
            iva_amount=iva.iva_amount,
            iuc_estimated=iuc.iuc_estimated,
            total_estimated_cost=total,
            cylinder_table_version=cylinder_table.version,
            co2_table_version=co2_table.version,
            iuc_source=iuc_source,
            details=details,
        )

        logger.debug(
            "estimation_aggregated",
            extra={
                "total_estimated_cost": total,
                "isv_final": breakdown.isv_final,
                "iuc_source": iuc_source,
            },
        )
        return breakdown


def format_breakdown(breakdown: TaxBreakdown) -> dict[str, Decimal]:
    """Display values of a breakdown, each rounded to 2 places half-up."""
    return {key: round_money(getattr(breakdown, attr)) for key, attr in PAYLOAD_FIELDS}


def format_payload(record: EstimationRecord) -> dict[str, Any]:
    """
    Response ``data`` object for a stored estimation.

    Keys: estimationId, calculationVersion, then the rounded monetary
    fields in PAYLOAD_FIELDS order.
    """
    payload: dict[str, Any] = {
        "estimationId": str(record.id),
        "calculationVersion": record.calculation_version,
    }
    payload.update(format_breakdown(record.breakdown))
    return payload
