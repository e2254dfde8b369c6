"""
Tests for ISVCalculator.

Covers:
- Cylinder and CO2 components
- Electric exemption from the CO2 component
- Zero contribution on a bracket miss
- Trace emission
"""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from vehicle_tax_engines.brackets import Bracket
from vehicle_tax_engines.isv import ISVCalculator


def _b(lo, hi, rate) -> Bracket:
    return Bracket(
        minimum=Decimal(lo),
        maximum=Decimal(hi) if hi is not None else None,
        rate=Decimal(rate),
    )


CYLINDER = (_b(0, 1000, "1.09"), _b(1001, 1250, "1.18"), _b(1251, None, "5.61"))
CO2 = (_b(0, 110, "0.44"), _b(111, 120, "1.10"), _b(121, 130, "5.24"), _b(131, None, "6.99"))


class TestISVComponents:
    """Tests for the two ISV components."""

    def setup_method(self):
        self.calculator = ISVCalculator()

    def test_gasoline_vehicle(self):
        result = self.calculator.compute(
            engine_capacity=1600,
            co2_emissions=125,
            fuel_type="GASOLINE",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert result.isv_cylinder == Decimal("8976")
        assert result.isv_co2 == Decimal("655")
        assert result.isv_total == Decimal("9631")
        assert result.cylinder_rate == Decimal("5.61")
        assert result.co2_rate == Decimal("5.24")
        assert result.co2_exempt is False

    def test_bracket_boundaries(self):
        result = self.calculator.compute(
            engine_capacity=1000,
            co2_emissions=110,
            fuel_type="DIESEL",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert result.isv_cylinder == Decimal("1090")
        assert result.isv_co2 == Decimal("48.4")

    def test_cylinder_miss_contributes_zero(self, captured_logs):
        result = self.calculator.compute(
            engine_capacity=800,
            co2_emissions=100,
            fuel_type="GASOLINE",
            cylinder_table=(_b(1000, None, "2"),),
            co2_table=CO2,
        )

        assert result.isv_cylinder == Decimal("0")
        assert result.cylinder_rate is None
        assert result.isv_total == result.isv_co2
        messages = [r["message"] for r in captured_logs()]
        assert "isv_cylinder_bracket_miss" in messages

    def test_co2_miss_contributes_zero(self):
        result = self.calculator.compute(
            engine_capacity=900,
            co2_emissions=50,
            fuel_type="GASOLINE",
            cylinder_table=CYLINDER,
            co2_table=(_b(100, None, "1"),),
        )

        assert result.isv_co2 == Decimal("0")
        assert result.co2_rate is None


class TestElectricExemption:
    """Electric vehicles never pay the CO2 component."""

    def test_electric_zero_co2(self):
        result = ISVCalculator().compute(
            engine_capacity=1,
            co2_emissions=0,
            fuel_type="ELECTRIC",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert result.isv_co2 == Decimal("0")
        assert result.co2_exempt is True
        assert result.co2_rate is None
        assert result.isv_cylinder == Decimal("1.09")

    @given(co2=st.integers(min_value=0, max_value=100_000))
    def test_electric_exempt_for_any_emissions(self, co2):
        result = ISVCalculator().compute(
            engine_capacity=1500,
            co2_emissions=co2,
            fuel_type="ELECTRIC",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert result.isv_co2 == Decimal("0")
        assert result.isv_total == result.isv_cylinder

    def test_hybrid_is_not_exempt(self):
        result = ISVCalculator().compute(
            engine_capacity=1500,
            co2_emissions=125,
            fuel_type="HYBRID",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert result.isv_co2 == Decimal("655")


class TestISVTrace:
    """Every computation emits an ENGINE_TRACE record."""

    def test_engine_trace_emitted(self, captured_logs):
        ISVCalculator().compute(
            engine_capacity=1600,
            co2_emissions=125,
            fuel_type="GASOLINE",
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        traces = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "isv"
        assert traces[0]["engine_version"] == "1.0"
        assert len(traces[0]["input_fingerprint"]) > 0
