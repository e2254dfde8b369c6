"""
IUC Engine - annual circulation fee as a step function of CO2 emissions.

Each step is an inclusive upper bound and a fixed fee:

    co2 <= 120  ->  20.78
    co2 <= 180  ->  69.72
    co2 <= 250  -> 181.01
    otherwise   -> 450.00

The steps are configurable.  When a CIRCULATION_FEE tax table is in
effect its brackets replace them; there the bracket ``rate`` is the fee
itself, not a per-gram multiplier, and a value outside every bracket
costs nothing.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from vehicle_tax_engines.brackets import Bracket, resolve_rate
from vehicle_tax_engines.tracer import traced_engine
from vehicle_tax_kernel.db.types import to_storage


@dataclass(frozen=True)
class FeeStep:
    """Fee for emissions up to and including ``max_co2`` (None: no limit)."""

    max_co2: int | None
    fee: Decimal


DEFAULT_FEE_STEPS: tuple[FeeStep, ...] = (
    FeeStep(120, Decimal("20.78")),
    FeeStep(180, Decimal("69.72")),
    FeeStep(250, Decimal("181.01")),
    FeeStep(None, Decimal("450.00")),
)


@dataclass(frozen=True)
class IUCResult:
    iuc_estimated: Decimal
    from_table: bool


class IUCCalculator:
    """Look up the circulation fee for an emissions value."""

    def __init__(self, steps: Sequence[FeeStep] = DEFAULT_FEE_STEPS):
        if not steps:
            raise ValueError("At least one fee step is required")
        bounds = [s.max_co2 for s in steps]
        if None in bounds[:-1]:
            raise ValueError("Only the last fee step may be unbounded")
        finite = [b for b in bounds if b is not None]
        if finite != sorted(set(finite)):
            raise ValueError("Fee step bounds must be strictly ascending")
        self.steps = tuple(steps)

    def fee_from_steps(self, co2_emissions: int) -> Decimal:
        for step in self.steps:
            if step.max_co2 is None or co2_emissions <= step.max_co2:
                return step.fee
        return Decimal("0")

    @traced_engine("iuc", "1.0", fingerprint_fields=("co2_emissions",))
    def compute(
        self,
        *,
        co2_emissions: int,
        fee_table: Sequence[Bracket] | None = None,
    ) -> IUCResult:
        if fee_table is not None:
            fee = resolve_rate(fee_table, co2_emissions)
            return IUCResult(
                iuc_estimated=to_storage(fee if fee is not None else Decimal("0")),
                from_table=True,
            )
        return IUCResult(
            iuc_estimated=to_storage(self.fee_from_steps(co2_emissions)),
            from_table=False,
        )
