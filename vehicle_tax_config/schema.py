"""
Engine settings schema.

Human-authored YAML (``sets/default.yaml``) is parsed by the loader into
these frozen dataclasses.  Services receive an ``EngineSettings`` by
constructor injection and never read files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class DepreciationSettings:
    """Linear, capped age reduction."""

    rate_per_month: Decimal = Decimal("1.0")
    cap_percentage: Decimal = Decimal("50.0")


@dataclass(frozen=True)
class CirculationFeeStep:
    """IUC fee for CO2 emissions up to and including ``max_co2``."""

    max_co2: int | None  # None: every larger value
    fee: Decimal


DEFAULT_CIRCULATION_FEE_STEPS: tuple[CirculationFeeStep, ...] = (
    CirculationFeeStep(120, Decimal("20.78")),
    CirculationFeeStep(180, Decimal("69.72")),
    CirculationFeeStep(250, Decimal("181.01")),
    CirculationFeeStep(None, Decimal("450.00")),
)


@dataclass(frozen=True)
class PersistenceSettings:
    """Database connection and write-retry behaviour."""

    database_url: str = "sqlite:///vehicle_tax.db"
    # Whole-transaction attempts on a version allocation conflict
    max_attempts: int = 3
    # SQLite busy timeout / PostgreSQL lock_timeout
    lock_timeout_seconds: float = 10.0
    # PostgreSQL statement_timeout (None = server default)
    statement_timeout_ms: int | None = 5000
    echo_sql: bool = False


@dataclass(frozen=True)
class EngineSettings:
    """Everything the tax engine is parameterised by."""

    name: str = "default"
    version: str = "1"
    currency: str = "EUR"
    vat_rate: Decimal = Decimal("23")
    depreciation: DepreciationSettings = field(default_factory=DepreciationSettings)
    circulation_fee_steps: tuple[CirculationFeeStep, ...] = DEFAULT_CIRCULATION_FEE_STEPS
    # Reject tables whose brackets leave part of [0, inf) uncovered
    require_full_coverage: bool = False
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    checksum: str = ""


@dataclass(frozen=True)
class TaxTableSeed:
    """One tax table to publish, as written in a seed file."""

    kind: str
    version: str
    effective_date: date
    brackets: tuple[dict[str, Any], ...]
    end_date: date | None = None
    notes: str | None = None
