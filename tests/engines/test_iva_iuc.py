"""
Tests for IVACalculator and IUCCalculator.
"""

from decimal import Decimal

import pytest

from vehicle_tax_engines.brackets import Bracket
from vehicle_tax_engines.iuc import DEFAULT_FEE_STEPS, FeeStep, IUCCalculator
from vehicle_tax_engines.iva import IVACalculator


class TestIVA:
    """IVA on the depreciated value plus relieved ISV."""

    def test_standard_rate(self):
        result = IVACalculator().compute(
            depreciated_value=Decimal("15200"),
            isv_final=Decimal("7319.56"),
        )

        assert result.iva_rate == Decimal("23")
        assert result.iva_base == Decimal("22519.56")
        assert result.iva_amount == Decimal("5179.4988")

    def test_custom_rate(self):
        result = IVACalculator(vat_rate=Decimal("6")).compute(
            depreciated_value=Decimal("100"),
            isv_final=Decimal("0"),
        )

        assert result.iva_amount == Decimal("6")

    def test_zero_rate(self):
        result = IVACalculator(vat_rate=Decimal("0")).compute(
            depreciated_value=Decimal("100"),
            isv_final=Decimal("50"),
        )

        assert result.iva_amount == Decimal("0")
        assert result.iva_base == Decimal("150")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            IVACalculator(vat_rate=Decimal("-1"))


class TestIUCSteps:
    """IUC step function boundaries."""

    @pytest.mark.parametrize(
        "co2, expected",
        [
            (0, Decimal("20.78")),
            (120, Decimal("20.78")),
            (121, Decimal("69.72")),
            (125, Decimal("69.72")),
            (180, Decimal("69.72")),
            (181, Decimal("181.01")),
            (250, Decimal("181.01")),
            (251, Decimal("450.00")),
            (10_000, Decimal("450.00")),
        ],
    )
    def test_boundaries(self, co2, expected):
        result = IUCCalculator().compute(co2_emissions=co2)

        assert result.iuc_estimated == expected
        assert result.from_table is False

    def test_bounded_last_step_leaves_zero_above(self):
        calculator = IUCCalculator(steps=(FeeStep(100, Decimal("10")),))
        assert calculator.fee_from_steps(101) == Decimal("0")

    def test_unbounded_middle_step_rejected(self):
        with pytest.raises(ValueError, match="unbounded"):
            IUCCalculator(steps=(FeeStep(None, Decimal("1")), FeeStep(100, Decimal("2"))))

    def test_descending_steps_rejected(self):
        with pytest.raises(ValueError, match="ascending"):
            IUCCalculator(steps=(FeeStep(200, Decimal("1")), FeeStep(100, Decimal("2"))))

    def test_empty_steps_rejected(self):
        with pytest.raises(ValueError):
            IUCCalculator(steps=())

    def test_default_steps(self):
        assert [s.max_co2 for s in DEFAULT_FEE_STEPS] == [120, 180, 250, None]


class TestIUCFeeTable:
    """A CIRCULATION_FEE table replaces the configured steps."""

    TABLE = (
        Bracket(Decimal("0"), Decimal("99"), Decimal("10")),
        Bracket(Decimal("100"), Decimal("199"), Decimal("50")),
    )

    def test_table_rate_is_the_fee(self):
        result = IUCCalculator().compute(co2_emissions=150, fee_table=self.TABLE)

        assert result.iuc_estimated == Decimal("50")
        assert result.from_table is True

    def test_table_miss_costs_nothing(self):
        result = IUCCalculator().compute(co2_emissions=500, fee_table=self.TABLE)

        assert result.iuc_estimated == Decimal("0")
        assert result.from_table is True
