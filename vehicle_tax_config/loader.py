"""
Configuration Loader (``vehicle_tax_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into ``vehicle_tax_config.schema``
dataclasses.  Runtime callers go through
``vehicle_tax_config.get_active_settings()``; the seeding CLI and tests
use ``load_tax_tables`` directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Amounts are parsed as ``Decimal`` from their string form, never float.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from vehicle_tax_config.schema import (
    DEFAULT_CIRCULATION_FEE_STEPS,
    CirculationFeeStep,
    DepreciationSettings,
    EngineSettings,
    PersistenceSettings,
    TaxTableSeed,
)

_TABLE_KINDS = frozenset({"CYLINDER_CAPACITY", "CO2_EMISSIONS", "VAT_RATES", "CIRCULATION_FEE"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML scalar into a Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return result


def parse_depreciation(data: dict[str, Any]) -> DepreciationSettings:
    rate = parse_decimal(data.get("rate_per_month", "1.0"), "depreciation.rate_per_month")
    cap = parse_decimal(data.get("cap_percentage", "50.0"), "depreciation.cap_percentage")
    if rate < 0:
        raise ValueError("depreciation.rate_per_month cannot be negative")
    if not (0 <= cap <= 100):
        raise ValueError("depreciation.cap_percentage must be between 0 and 100")
    return DepreciationSettings(rate_per_month=rate, cap_percentage=cap)


def parse_fee_steps(items: list[dict[str, Any]]) -> tuple[CirculationFeeStep, ...]:
    """
    Parse IUC steps.  Bounds must ascend and only the last may be open.
    """
    if not items:
        raise ValueError("circulation_fee_steps must not be empty")
    steps = []
    for position, item in enumerate(items):
        max_co2 = item.get("max_co2")
        if max_co2 is not None and (isinstance(max_co2, bool) or not isinstance(max_co2, int)):
            raise ValueError(f"circulation_fee_steps[{position}].max_co2 must be an integer")
        fee = parse_decimal(item["fee"], f"circulation_fee_steps[{position}].fee")
        if fee < 0:
            raise ValueError(f"circulation_fee_steps[{position}].fee cannot be negative")
        steps.append(CirculationFeeStep(max_co2=max_co2, fee=fee))

    for position, step in enumerate(steps[:-1]):
        if step.max_co2 is None:
            raise ValueError("Only the last circulation fee step may omit max_co2")
        following = steps[position + 1].max_co2
        if following is not None and following <= step.max_co2:
            raise ValueError("circulation_fee_steps bounds must be strictly ascending")
    if steps[-1].max_co2 is not None:
        raise ValueError("The last circulation fee step must omit max_co2")
    return tuple(steps)


def parse_persistence(data: dict[str, Any]) -> PersistenceSettings:
    defaults = PersistenceSettings()
    max_attempts = int(data.get("max_attempts", defaults.max_attempts))
    if max_attempts < 1:
        raise ValueError("persistence.max_attempts must be at least 1")
    lock_timeout = float(data.get("lock_timeout_seconds", defaults.lock_timeout_seconds))
    if lock_timeout <= 0:
        raise ValueError("persistence.lock_timeout_seconds must be positive")
    statement_timeout = data.get("statement_timeout_ms", defaults.statement_timeout_ms)
    return PersistenceSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        max_attempts=max_attempts,
        lock_timeout_seconds=lock_timeout,
        statement_timeout_ms=int(statement_timeout) if statement_timeout is not None else None,
        echo_sql=bool(data.get("echo_sql", defaults.echo_sql)),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse an ``EngineSettings`` from a dict.

    Every key is optional; omitted keys take the documented defaults.

    Raises:
        ValueError: On an invalid value.
    """
    vat_rate = parse_decimal(data.get("vat_rate", "23"), "vat_rate")
    if vat_rate < 0:
        raise ValueError("vat_rate cannot be negative")

    steps_data = data.get("circulation_fee_steps")
    steps = (
        parse_fee_steps(steps_data)
        if steps_data is not None
        else DEFAULT_CIRCULATION_FEE_STEPS
    )

    return EngineSettings(
        name=str(data.get("name", "default")),
        version=str(data.get("version", "1")),
        currency=str(data.get("currency", "EUR")),
        vat_rate=vat_rate,
        depreciation=parse_depreciation(data.get("depreciation") or {}),
        circulation_fee_steps=steps,
        require_full_coverage=bool(data.get("require_full_coverage", False)),
        persistence=parse_persistence(data.get("persistence") or {}),
        checksum=compute_checksum(data),
    )


def parse_table_seed(data: dict[str, Any]) -> TaxTableSeed:
    kind = str(data["kind"]).upper()
    if kind not in _TABLE_KINDS:
        raise ValueError(f"Unknown tax table kind: {data['kind']!r}")
    brackets = data["brackets"]
    if not isinstance(brackets, list):
        raise ValueError(f"{kind} brackets must be a list")
    return TaxTableSeed(
        kind=kind,
        version=str(data["version"]),
        effective_date=parse_date(data["effective_date"]),
        brackets=tuple(
            {
                "min": str(b["min"]),
                "max": str(b["max"]) if b.get("max") is not None else None,
                "rate": str(b["rate"]),
            }
            for b in brackets
        ),
        end_date=parse_date(data["end_date"]) if data.get("end_date") else None,
        notes=data.get("notes"),
    )


def load_tax_tables(path: Path) -> list[TaxTableSeed]:
    """Load the ``tables:`` list of a seed file."""
    data = load_yaml_file(path)
    return [parse_table_seed(item) for item in data.get("tables", [])]


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
