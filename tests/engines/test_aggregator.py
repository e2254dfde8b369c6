"""
Tests for EstimationAggregator and payload formatting.

Covers:
- End-to-end component chaining
- Exact total identity on stored precision
- Rounding half away from zero, per field
- Idempotent formatting
- IUC source attribution
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from vehicle_tax_engines.aggregator import (
    EstimationAggregator,
    format_breakdown,
    format_payload,
)
from vehicle_tax_engines.brackets import Bracket
from vehicle_tax_kernel.domain.dtos import (
    BracketTable,
    EstimationRecord,
    TaxBreakdown,
    VehicleInputs,
)


def _table(kind: str, brackets, version: str = "2024") -> BracketTable:
    return BracketTable(
        table_id=uuid4(),
        kind=kind,
        version=version,
        effective_date=date(2024, 1, 1),
        end_date=None,
        insertion_seq=1,
        brackets=tuple(
            Bracket(Decimal(lo), Decimal(hi) if hi is not None else None, Decimal(rate))
            for lo, hi, rate in brackets
        ),
    )


CYLINDER = _table(
    "CYLINDER_CAPACITY",
    [("0", "1000", "1.09"), ("1001", "1250", "1.18"), ("1251", None, "5.61")],
)
CO2 = _table(
    "CO2_EMISSIONS",
    [("0", "110", "0.44"), ("111", "120", "1.10"), ("121", "130", "5.24"), ("131", None, "6.99")],
)


def _inputs(**overrides) -> VehicleInputs:
    values = dict(
        vehicle_value=Decimal("20000"),
        vehicle_age_months=24,
        engine_capacity=1600,
        co2_emissions=125,
        fuel_type="GASOLINE",
    )
    values.update(overrides)
    return VehicleInputs(**values)


def _record(breakdown: TaxBreakdown) -> EstimationRecord:
    return EstimationRecord(
        id=uuid4(),
        tenant_id=uuid4(),
        case_id=uuid4(),
        calculation_version=1,
        calculated_at=datetime(2024, 6, 15, tzinfo=UTC),
        calculated_by=None,
        inputs=_inputs(),
        breakdown=breakdown,
        is_final=False,
    )


class TestAggregate:
    """Tests for aggregate."""

    def setup_method(self):
        self.aggregator = EstimationAggregator()

    def test_reference_vehicle(self):
        breakdown = self.aggregator.aggregate(
            inputs=_inputs(),
            cylinder_table=CYLINDER,
            co2_table=CO2,
            as_of_date=date(2024, 6, 15),
        )

        assert breakdown.isv_cylinder == Decimal("8976")
        assert breakdown.isv_co2 == Decimal("655")
        assert breakdown.isv_total == Decimal("9631")
        assert breakdown.isv_reduction_percentage == Decimal("24")
        assert breakdown.depreciation_rate == Decimal("24")
        assert breakdown.isv_final == Decimal("7319.56")
        assert breakdown.depreciated_value == Decimal("15200")
        assert breakdown.iva_amount == Decimal("5179.4988")
        assert breakdown.iuc_estimated == Decimal("69.72")
        assert breakdown.total_estimated_cost == Decimal("27768.7788")

    def test_total_identity_holds_exactly(self):
        breakdown = self.aggregator.aggregate(
            inputs=_inputs(vehicle_value=Decimal("12345.67"), vehicle_age_months=7),
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert breakdown.total_estimated_cost == (
            breakdown.depreciated_value
            + breakdown.isv_final
            + breakdown.iva_amount
            + breakdown.iuc_estimated
        )

    def test_provenance_recorded(self):
        breakdown = self.aggregator.aggregate(
            inputs=_inputs(),
            cylinder_table=CYLINDER,
            co2_table=CO2,
            as_of_date=date(2024, 6, 15),
        )

        assert breakdown.cylinder_table_version == "2024"
        assert breakdown.co2_table_version == "2024"
        assert breakdown.iuc_source == "settings"
        assert breakdown.details["as_of_date"] == "2024-06-15"
        assert breakdown.details["cylinder_rate"] == "5.61"
        assert breakdown.details["co2_table_id"] == str(CO2.table_id)
        assert breakdown.details["fee_table_id"] is None

    def test_fee_table_overrides_settings(self):
        fee = _table("CIRCULATION_FEE", [("0", None, "99.5")], version="FEE-1")
        breakdown = self.aggregator.aggregate(
            inputs=_inputs(),
            cylinder_table=CYLINDER,
            co2_table=CO2,
            fee_table=fee,
        )

        assert breakdown.iuc_estimated == Decimal("99.5")
        assert breakdown.iuc_source == "CIRCULATION_FEE:FEE-1"

    def test_electric_vehicle(self):
        breakdown = self.aggregator.aggregate(
            inputs=_inputs(fuel_type="ELECTRIC", co2_emissions=0, engine_capacity=1),
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert breakdown.isv_co2 == Decimal("0")
        assert breakdown.iuc_estimated == Decimal("20.78")

    def test_custom_vat_rate(self):
        aggregator = EstimationAggregator(vat_rate=Decimal("13"))
        breakdown = aggregator.aggregate(
            inputs=_inputs(), cylinder_table=CYLINDER, co2_table=CO2
        )

        assert breakdown.iva_rate == Decimal("13")
        assert breakdown.iva_amount == Decimal("2927.5428")

    def test_breakdown_rejects_inconsistent_total(self):
        with pytest.raises(ValueError, match="component sum"):
            TaxBreakdown(
                depreciation_rate=Decimal("0"),
                depreciated_value=Decimal("1"),
                isv_cylinder=Decimal("0"),
                isv_co2=Decimal("0"),
                isv_total=Decimal("0"),
                isv_reduction_percentage=Decimal("0"),
                isv_final=Decimal("0"),
                iva_rate=Decimal("23"),
                iva_base=Decimal("1"),
                iva_amount=Decimal("0.23"),
                iuc_estimated=Decimal("0"),
                total_estimated_cost=Decimal("1.24"),
            )

    @settings(max_examples=200)
    @given(
        value=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000000"), places=2),
        age=st.integers(min_value=0, max_value=400),
        capacity=st.integers(min_value=1, max_value=8000),
        co2=st.integers(min_value=0, max_value=600),
        fuel=st.sampled_from(["GASOLINE", "DIESEL", "ELECTRIC", "HYBRID"]),
    )
    def test_total_identity_property(self, value, age, capacity, co2, fuel):
        breakdown = EstimationAggregator().aggregate(
            inputs=_inputs(
                vehicle_value=value,
                vehicle_age_months=age,
                engine_capacity=capacity,
                co2_emissions=co2,
                fuel_type=fuel,
            ),
            cylinder_table=CYLINDER,
            co2_table=CO2,
        )

        assert breakdown.total_estimated_cost == (
            breakdown.depreciated_value
            + breakdown.isv_final
            + breakdown.iva_amount
            + breakdown.iuc_estimated
        )
        assert breakdown.isv_final <= breakdown.isv_total
        assert breakdown.isv_reduction_percentage <= Decimal("50")


class TestFormatting:
    """Tests for format_breakdown / format_payload."""

    def _breakdown(self) -> TaxBreakdown:
        return EstimationAggregator().aggregate(
            inputs=_inputs(), cylinder_table=CYLINDER, co2_table=CO2
        )

    def test_payload_keys_and_rounding(self):
        record = _record(self._breakdown())
        payload = format_payload(record)

        assert list(payload) == [
            "estimationId",
            "calculationVersion",
            "isvCilindrada",
            "isvCo2",
            "isvTotal",
            "reductionPercentage",
            "isvFinal",
            "ivaAmount",
            "iucEstimated",
            "totalEstimatedCost",
        ]
        assert payload["estimationId"] == str(record.id)
        assert payload["calculationVersion"] == 1
        assert payload["ivaAmount"] == Decimal("5179.50")
        assert payload["totalEstimatedCost"] == Decimal("27768.78")
        assert payload["isvFinal"] == Decimal("7319.56")
        assert payload["reductionPercentage"] == Decimal("24.00")

    def test_half_rounds_away_from_zero(self):
        breakdown = TaxBreakdown(
            depreciation_rate=Decimal("0"),
            depreciated_value=Decimal("0"),
            isv_cylinder=Decimal("0.125"),
            isv_co2=Decimal("0"),
            isv_total=Decimal("0.125"),
            isv_reduction_percentage=Decimal("0"),
            isv_final=Decimal("0.125"),
            iva_rate=Decimal("0"),
            iva_base=Decimal("0.125"),
            iva_amount=Decimal("0.005"),
            iuc_estimated=Decimal("0"),
            total_estimated_cost=Decimal("0.13"),
        )
        display = format_breakdown(breakdown)

        assert display["isvCilindrada"] == Decimal("0.13")
        assert display["ivaAmount"] == Decimal("0.01")

    def test_total_rounded_from_unrounded_sum(self):
        """Parts that each round to 0.00 can still sum to a total of 0.01."""
        breakdown = TaxBreakdown(
            depreciation_rate=Decimal("0"),
            depreciated_value=Decimal("0"),
            isv_cylinder=Decimal("0"),
            isv_co2=Decimal("0"),
            isv_total=Decimal("0.004"),
            isv_reduction_percentage=Decimal("0"),
            isv_final=Decimal("0.004"),
            iva_rate=Decimal("0"),
            iva_base=Decimal("0.004"),
            iva_amount=Decimal("0.004"),
            iuc_estimated=Decimal("0.004"),
            total_estimated_cost=Decimal("0.012"),
        )
        display = format_breakdown(breakdown)

        assert display["totalEstimatedCost"] == Decimal("0.01")
        assert display["isvFinal"] + display["ivaAmount"] + display["iucEstimated"] == Decimal("0")

    def test_formatting_is_idempotent(self):
        record = _record(self._breakdown())

        assert format_payload(record) == format_payload(record)
        assert format_breakdown(record.breakdown) == format_breakdown(record.breakdown)
