"""
Depreciation Engine - age-based reduction of registration tax and value.

One linear, capped curve serves two purposes: the percentage by which
the registration tax is relieved, and the percentage by which the
vehicle value is depreciated.

    reduction = min(age_months * rate_per_month, cap)
    isv_final = isv_total * (1 - reduction / 100)
    depreciated_value = vehicle_value * (1 - reduction / 100)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from vehicle_tax_engines.tracer import traced_engine
from vehicle_tax_kernel.db.types import to_storage
from vehicle_tax_kernel.exceptions import ValidationError

DEFAULT_RATE_PER_MONTH = Decimal("1.0")
DEFAULT_CAP_PERCENTAGE = Decimal("50.0")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DepreciationResult:
    reduction_percentage: Decimal
    isv_final: Decimal
    depreciated_value: Decimal


class DepreciationCalculator:
    """Apply the capped linear reduction curve."""

    def __init__(
        self,
        rate_per_month: Decimal = DEFAULT_RATE_PER_MONTH,
        cap_percentage: Decimal = DEFAULT_CAP_PERCENTAGE,
    ):
        if rate_per_month < 0:
            raise ValueError("rate_per_month cannot be negative")
        if not (0 <= cap_percentage <= _HUNDRED):
            raise ValueError("cap_percentage must be between 0 and 100")
        self.rate_per_month = rate_per_month
        self.cap_percentage = cap_percentage

    def reduction_for(self, age_months: int) -> Decimal:
        """
        Reduction percentage for a vehicle age.

        Raises:
            ValidationError: If age_months is negative.
        """
        if age_months < 0:
            raise ValidationError("vehicleAgeMonths", "must be zero or greater")
        return min(Decimal(age_months) * self.rate_per_month, self.cap_percentage)

    @traced_engine(
        "depreciation", "1.0",
        fingerprint_fields=("age_months", "vehicle_value", "isv_total"),
    )
    def compute(
        self,
        *,
        age_months: int,
        vehicle_value: Decimal,
        isv_total: Decimal,
    ) -> DepreciationResult:
        reduction = self.reduction_for(age_months)
        factor = 1 - reduction / _HUNDRED
        return DepreciationResult(
            reduction_percentage=to_storage(reduction),
            isv_final=to_storage(isv_total * factor),
            depreciated_value=to_storage(vehicle_value * factor),
        )
