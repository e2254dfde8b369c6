"""
Bracket resolution -- pure lookup of a rate in an ordered bracket table.

A bracket table is a sequence of inclusive ``[min, max]`` ranges sorted
ascending by min, each carrying a rate.  ``resolve_rate`` returns the rate
of the first bracket containing the value, or None when no bracket does.
None is NOT an error: callers treat it as a zero contribution.  Because
tables are not guaranteed to cover every value, publication runs
``find_coverage_gaps`` so a hole is reported when the table is loaded,
not discovered as a silent zero at calculation time.

Usage:
    from vehicle_tax_engines.brackets import Bracket, resolve_rate

    brackets = parse_brackets([
        {"min": "0", "max": "1000", "rate": "1.00"},
        {"min": "1001", "max": None, "rate": "4.50"},
    ])
    resolve_rate(brackets, Decimal("1600"))  # Decimal("4.50")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from vehicle_tax_kernel.db.types import to_decimal
from vehicle_tax_kernel.domain.dtos import Bracket
from vehicle_tax_kernel.exceptions import TableIntegrityError

__all__ = [
    "Bracket",
    "CoverageGap",
    "CoverageReport",
    "find_coverage_gaps",
    "parse_brackets",
    "resolve_rate",
    "validate_brackets",
]


@dataclass(frozen=True)
class CoverageGap:
    """An uncovered interval between two brackets (or before the first)."""

    after: Decimal | None  # None: gap starts at the lower bound
    before: Decimal


@dataclass(frozen=True)
class CoverageReport:
    """Result of a coverage check over ``[lower, infinity)``."""

    gaps: tuple[CoverageGap, ...]
    unbounded: bool  # last bracket has no max

    @property
    def is_complete(self) -> bool:
        return not self.gaps and self.unbounded

    def describe(self) -> list[str]:
        lines = [
            f"no bracket between {g.after if g.after is not None else 'lower bound'} "
            f"and {g.before}"
            for g in self.gaps
        ]
        if not self.unbounded:
            lines.append("last bracket has a maximum; larger values are uncovered")
        return lines


def resolve_rate(brackets: Iterable[Bracket], value: Decimal | int | float) -> Decimal | None:
    """
    Rate of the first bracket with ``min <= value <= max``.

    Total over every numeric input, including negative and very large
    values; anything outside all brackets returns None.
    """
    value = to_decimal(value)
    for bracket in brackets:
        if bracket.contains(value):
            return bracket.rate
    return None


def parse_brackets(raw: Iterable[Mapping[str, Any]]) -> tuple[Bracket, ...]:
    """
    Build Brackets from ``{"min", "max", "rate"}`` mappings.

    Raises:
        ValueError: On a missing key or a non-numeric value.
    """
    result = []
    for position, item in enumerate(raw):
        try:
            minimum = to_decimal(item["min"])
            maximum = to_decimal(item["max"]) if item.get("max") is not None else None
            rate = to_decimal(item["rate"])
        except KeyError as exc:
            raise ValueError(f"Bracket {position} is missing {exc.args[0]!r}") from exc
        result.append(Bracket(minimum=minimum, maximum=maximum, rate=rate))
    return tuple(result)


def validate_brackets(kind: str, brackets: Sequence[Bracket]) -> None:
    """
    Check structural integrity of a bracket table.

    Raises:
        TableIntegrityError: Empty table, inverted range, unsorted or
            overlapping brackets, a bounded bracket after an unbounded one,
            or a negative rate.
    """
    if not brackets:
        raise TableIntegrityError(kind, "table has no brackets")

    previous: Bracket | None = None
    for position, bracket in enumerate(brackets):
        if bracket.maximum is not None and bracket.maximum < bracket.minimum:
            raise TableIntegrityError(
                kind, f"bracket {position} has max {bracket.maximum} < min {bracket.minimum}"
            )
        if bracket.rate < 0:
            raise TableIntegrityError(kind, f"bracket {position} has a negative rate")
        if previous is not None:
            if previous.maximum is None:
                raise TableIntegrityError(
                    kind, f"bracket {position} follows an unbounded bracket"
                )
            if bracket.minimum < previous.minimum:
                raise TableIntegrityError(kind, f"bracket {position} is out of order")
            if bracket.minimum <= previous.maximum:
                raise TableIntegrityError(
                    kind,
                    f"bracket {position} starting at {bracket.minimum} overlaps "
                    f"bracket {position - 1} ending at {previous.maximum}",
                )
        previous = bracket


def find_coverage_gaps(
    brackets: Sequence[Bracket],
    lower: Decimal | int = 0,
    step: Decimal | int = 1,
) -> CoverageReport:
    """
    Report the parts of ``[lower, infinity)`` no bracket covers.

    Inputs (cc, g/km) are integers, so adjacent brackets ``[0, 100]`` and
    ``[101, 200]`` leave no gap when ``step`` is 1.  Assumes the brackets
    already passed validate_brackets().
    """
    lower = Decimal(lower)
    step = Decimal(step)
    gaps: list[CoverageGap] = []

    covered_to: Decimal | None = None  # highest value covered so far
    for bracket in brackets:
        start = lower if covered_to is None else covered_to + step
        if bracket.minimum > start:
            gaps.append(CoverageGap(after=covered_to, before=bracket.minimum))
        if bracket.maximum is None:
            return CoverageReport(gaps=tuple(gaps), unbounded=True)
        covered_to = bracket.maximum if covered_to is None else max(covered_to, bracket.maximum)

    return CoverageReport(gaps=tuple(gaps), unbounded=False)
