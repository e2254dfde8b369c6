"""
ISV Engine - vehicle registration tax from displacement and CO2 emissions.

Two independent bracket tables drive the tax: one keyed by engine
capacity (cc), one by CO2 emissions (g/km).  Each component is the input
multiplied by the rate of the bracket containing it, or zero when no
bracket does.  Electric vehicles are exempt from the CO2 component.

Values are carried at storage precision; nothing is rounded for display.

Usage:
    from vehicle_tax_engines.isv import ISVCalculator

    result = ISVCalculator().compute(
        engine_capacity=1600,
        co2_emissions=125,
        fuel_type="GASOLINE",
        cylinder_table=cylinder.brackets,
        co2_table=co2.brackets,
    )
    result.isv_total
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from vehicle_tax_engines.brackets import Bracket, resolve_rate
from vehicle_tax_engines.tracer import traced_engine
from vehicle_tax_kernel.db.types import to_storage
from vehicle_tax_kernel.domain.dtos import FuelType
from vehicle_tax_kernel.logging_config import get_logger

logger = get_logger("engines.isv")

ZERO = Decimal("0")


@dataclass(frozen=True)
class ISVResult:
    """Registration tax components and the rates that produced them."""

    isv_cylinder: Decimal
    isv_co2: Decimal
    isv_total: Decimal
    cylinder_rate: Decimal | None  # None: no bracket matched
    co2_rate: Decimal | None
    co2_exempt: bool


class ISVCalculator:
    """
    Calculate the vehicle registration tax (ISV).

    Pure - no I/O.  Bracket tables are provided as parameters.
    """

    @traced_engine(
        "isv", "1.0",
        fingerprint_fields=("engine_capacity", "co2_emissions", "fuel_type"),
    )
    def compute(
        self,
        *,
        engine_capacity: int,
        co2_emissions: int,
        fuel_type: str,
        cylinder_table: Sequence[Bracket],
        co2_table: Sequence[Bracket],
    ) -> ISVResult:
        cylinder_rate = resolve_rate(cylinder_table, engine_capacity)
        isv_cylinder = (
            to_storage(Decimal(engine_capacity) * cylinder_rate)
            if cylinder_rate is not None
            else ZERO
        )

        co2_exempt = fuel_type == FuelType.ELECTRIC.value
        if co2_exempt:
            co2_rate = None
            isv_co2 = ZERO
        else:
            co2_rate = resolve_rate(co2_table, co2_emissions)
            isv_co2 = (
                to_storage(Decimal(co2_emissions) * co2_rate)
                if co2_rate is not None
                else ZERO
            )

        if cylinder_rate is None:
            logger.warning("isv_cylinder_bracket_miss", extra={"engine_capacity": engine_capacity})
        if not co2_exempt and co2_rate is None:
            logger.warning("isv_co2_bracket_miss", extra={"co2_emissions": co2_emissions})

        return ISVResult(
            isv_cylinder=isv_cylinder,
            isv_co2=isv_co2,
            isv_total=isv_cylinder + isv_co2,
            cylinder_rate=cylinder_rate,
            co2_rate=co2_rate,
            co2_exempt=co2_exempt,
        )
