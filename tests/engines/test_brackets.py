"""
Tests for bracket resolution and bracket table integrity.

Covers:
- Inclusive bounds on both ends
- Unbounded top bracket
- No-match behaviour (None, never an error)
- Structural validation
- Coverage gap detection
- Property: a contiguous integer table resolves every value exactly once
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vehicle_tax_engines.brackets import (
    Bracket,
    find_coverage_gaps,
    parse_brackets,
    resolve_rate,
    validate_brackets,
)
from vehicle_tax_kernel.exceptions import TableIntegrityError


def _b(lo, hi, rate) -> Bracket:
    return Bracket(
        minimum=Decimal(str(lo)),
        maximum=Decimal(str(hi)) if hi is not None else None,
        rate=Decimal(str(rate)),
    )


CYLINDER = (
    _b(0, 1000, "1.09"),
    _b(1001, 1250, "1.18"),
    _b(1251, None, "5.61"),
)


class TestResolveRate:
    """Tests for resolve_rate."""

    def test_value_inside_bracket(self):
        assert resolve_rate(CYLINDER, 1100) == Decimal("1.18")

    def test_lower_bound_is_inclusive(self):
        assert resolve_rate(CYLINDER, 1001) == Decimal("1.18")

    def test_upper_bound_is_inclusive(self):
        assert resolve_rate(CYLINDER, 1000) == Decimal("1.09")
        assert resolve_rate(CYLINDER, 1250) == Decimal("1.18")

    def test_unbounded_top_bracket_matches_large_values(self):
        assert resolve_rate(CYLINDER, 10**12) == Decimal("5.61")

    def test_negative_value_is_no_match(self):
        assert resolve_rate(CYLINDER, -1) is None

    def test_value_in_gap_is_no_match(self):
        table = (_b(0, 100, 1), _b(200, 300, 2))
        assert resolve_rate(table, 150) is None

    def test_empty_table_is_no_match(self):
        assert resolve_rate((), 10) is None

    def test_fractional_value_between_integer_brackets(self):
        """1000.5 lies after [0, 1000] and before [1001, 1250]."""
        assert resolve_rate(CYLINDER, Decimal("1000.5")) is None

    def test_float_input_goes_through_str(self):
        assert resolve_rate(CYLINDER, 1000.0) == Decimal("1.09")


class TestParseBrackets:
    """Tests for parse_brackets."""

    def test_parses_strings_and_null_max(self):
        parsed = parse_brackets(
            [{"min": "0", "max": "110", "rate": "0.44"}, {"min": 111, "max": None, "rate": 1.1}]
        )
        assert parsed == (_b(0, 110, "0.44"), _b(111, None, "1.1"))

    def test_missing_rate_raises_value_error(self):
        with pytest.raises(ValueError, match="missing 'rate'"):
            parse_brackets([{"min": 0, "max": 10}])

    def test_non_numeric_value_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_brackets([{"min": "zero", "max": 10, "rate": 1}])


class TestValidateBrackets:
    """Tests for validate_brackets."""

    def test_valid_table_passes(self):
        validate_brackets("CYLINDER_CAPACITY", CYLINDER)

    def test_empty_table_rejected(self):
        with pytest.raises(TableIntegrityError, match="no brackets"):
            validate_brackets("CO2_EMISSIONS", ())

    def test_inverted_bracket_rejected(self):
        with pytest.raises(TableIntegrityError, match="max 5 < min 10"):
            validate_brackets("CO2_EMISSIONS", (_b(10, 5, 1),))

    def test_overlap_rejected(self):
        with pytest.raises(TableIntegrityError, match="overlaps"):
            validate_brackets("CO2_EMISSIONS", (_b(0, 100, 1), _b(100, 200, 2)))

    def test_out_of_order_rejected(self):
        with pytest.raises(TableIntegrityError, match="out of order"):
            validate_brackets("CO2_EMISSIONS", (_b(200, 300, 1), _b(0, 100, 2)))

    def test_bracket_after_unbounded_rejected(self):
        with pytest.raises(TableIntegrityError, match="unbounded"):
            validate_brackets("CO2_EMISSIONS", (_b(0, None, 1), _b(10, 20, 2)))

    def test_negative_rate_rejected(self):
        with pytest.raises(TableIntegrityError, match="negative rate"):
            validate_brackets("CO2_EMISSIONS", (_b(0, 10, -1),))

    def test_error_carries_kind_and_code(self):
        with pytest.raises(TableIntegrityError) as exc_info:
            validate_brackets("CIRCULATION_FEE", ())
        assert exc_info.value.kind == "CIRCULATION_FEE"
        assert exc_info.value.code == "TABLE_INTEGRITY"


class TestCoverageGaps:
    """Tests for find_coverage_gaps."""

    def test_adjacent_integer_brackets_are_complete(self):
        report = find_coverage_gaps(CYLINDER)
        assert report.is_complete
        assert report.describe() == []

    def test_gap_between_brackets_reported(self):
        report = find_coverage_gaps((_b(0, 100, 1), _b(150, None, 2)))
        assert not report.is_complete
        assert len(report.gaps) == 1
        assert report.gaps[0].after == Decimal("100")
        assert report.gaps[0].before == Decimal("150")

    def test_gap_before_first_bracket_reported(self):
        report = find_coverage_gaps((_b(10, None, 1),))
        assert report.gaps[0].after is None
        assert "lower bound" in report.describe()[0]

    def test_bounded_top_reported(self):
        report = find_coverage_gaps((_b(0, 100, 1),))
        assert report.gaps == ()
        assert not report.unbounded
        assert not report.is_complete


@st.composite
def contiguous_tables(draw):
    """Integer bracket tables covering [0, inf) with no gaps."""
    widths = draw(st.lists(st.integers(min_value=1, max_value=500), min_size=0, max_size=8))
    brackets = []
    lower = 0
    for position, width in enumerate(widths):
        brackets.append(_b(lower, lower + width - 1, position + 1))
        lower += width
    brackets.append(_b(lower, None, len(widths) + 1))
    return tuple(brackets)


class TestContiguousTableProperty:
    """A validated, gap-free table resolves every non-negative integer once."""

    @given(table=contiguous_tables(), value=st.integers(min_value=0, max_value=10_000))
    def test_exactly_one_bracket_contains_each_value(self, table, value):
        validate_brackets("CYLINDER_CAPACITY", table)
        assert find_coverage_gaps(table).is_complete

        matches = [b for b in table if b.contains(Decimal(value))]
        assert len(matches) == 1
        assert resolve_rate(table, value) == matches[0].rate

    @given(table=contiguous_tables(), value=st.integers(max_value=-1))
    def test_negative_values_never_match(self, table, value):
        assert resolve_rate(table, value) is None
