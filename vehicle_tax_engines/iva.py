"""
IVA Engine - value-added tax on the depreciated value plus relieved ISV.

The rate is a settings parameter (``vat_rate``), defaulting to the 23%
standard rate for a corporate importer.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from vehicle_tax_engines.tracer import traced_engine
from vehicle_tax_kernel.db.types import to_storage

DEFAULT_VAT_RATE = Decimal("23")


@dataclass(frozen=True)
class IVAResult:
    iva_rate: Decimal
    iva_base: Decimal
    iva_amount: Decimal


class IVACalculator:
    """iva_amount = (depreciated_value + isv_final) * vat_rate / 100."""

    def __init__(self, vat_rate: Decimal = DEFAULT_VAT_RATE):
        if vat_rate < 0:
            raise ValueError("vat_rate cannot be negative")
        self.vat_rate = vat_rate

    @traced_engine(
        "iva", "1.0",
        fingerprint_fields=("depreciated_value", "isv_final"),
    )
    def compute(self, *, depreciated_value: Decimal, isv_final: Decimal) -> IVAResult:
        base = depreciated_value + isv_final
        return IVAResult(
            iva_rate=to_storage(self.vat_rate),
            iva_base=to_storage(base),
            iva_amount=to_storage(base * self.vat_rate / Decimal("100")),
        )
