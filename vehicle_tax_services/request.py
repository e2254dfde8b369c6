"""
Calculation request parsing.

``CalculationRequest.from_payload`` turns the JSON request object into a
validated, typed request.  Every check happens here, before any database
read, so a malformed request never leaves partial state.

Request shape::

    {
      "caseId": uuid,
      "engineCapacity": 0 < int <= 100000,
      "co2Emissions": 0 <= int <= 10000,
      "vehicleAgeMonths": 0 <= int <= 1200,
      "vehicleValue": number > 0,
      "fuelType": string,
      "asOfDate": "YYYY-MM-DD",     (optional, defaults to today)
      "calculatedBy": uuid          (optional)
    }
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from vehicle_tax_kernel.db.types import to_decimal
from vehicle_tax_kernel.domain.dtos import VehicleInputs
from vehicle_tax_kernel.exceptions import ValidationError

# Largest accepted vehicle value; keeps every derived amount well inside
# the stored Numeric(38, 9) range.
MAX_VEHICLE_VALUE = Decimal("1000000000000")

# Physical upper bounds.  A per-unit ISV component must stay inside the
# 28-digit decimal context used for storage quantization.
MAX_ENGINE_CAPACITY = 100_000  # cc
MAX_CO2_EMISSIONS = 10_000  # g/km
MAX_VEHICLE_AGE_MONTHS = 1_200

MAX_FUEL_TYPE_LENGTH = 30


def _parse_uuid(payload: Mapping[str, Any], key: str, required: bool = True) -> UUID | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(key, "is required")
        return None
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        raise ValidationError(key, "must be a UUID string")
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValidationError(key, f"{value!r} is not a valid UUID") from exc


def _parse_int(payload: Mapping[str, Any], key: str, minimum: int, maximum: int) -> int:
    value = payload.get(key)
    if value is None:
        raise ValidationError(key, "is required")
    # JSON has one number type; 1600.0 is accepted as 1600
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(key, f"must be an integer, got {value!r}")
    if value < minimum:
        bound = "greater than 0" if minimum == 1 else f"at least {minimum}"
        raise ValidationError(key, f"must be {bound}, got {value}")
    if value > maximum:
        raise ValidationError(key, f"must not exceed {maximum}, got {value}")
    return value


def _parse_amount(payload: Mapping[str, Any], key: str) -> Decimal:
    value = payload.get(key)
    if value is None:
        raise ValidationError(key, "is required")
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValidationError(key, str(exc)) from exc
    if amount <= 0:
        raise ValidationError(key, f"must be greater than 0, got {value}")
    if amount > MAX_VEHICLE_VALUE:
        raise ValidationError(key, f"must not exceed {MAX_VEHICLE_VALUE}")
    return amount


def _parse_fuel_type(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        raise ValidationError(key, "is required")
    if not isinstance(value, str):
        raise ValidationError(key, "must be a string")
    normalized = value.strip().upper()
    if not normalized:
        raise ValidationError(key, "must not be empty")
    if len(normalized) > MAX_FUEL_TYPE_LENGTH:
        raise ValidationError(key, f"must be at most {MAX_FUEL_TYPE_LENGTH} characters")
    return normalized


def _parse_date(payload: Mapping[str, Any], key: str) -> date | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(key, "must be an ISO date string")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(key, f"{value!r} is not an ISO date") from exc


@dataclass(frozen=True)
class CalculationRequest:
    """A validated tax calculation request."""

    case_id: UUID
    inputs: VehicleInputs
    as_of_date: date | None = None
    calculated_by: UUID | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> CalculationRequest:
        """
        Validate a request object.

        Raises:
            ValidationError: On the first missing, malformed or
                out-of-range field.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("payload", "must be a JSON object")

        case_id = _parse_uuid(payload, "caseId")
        inputs = VehicleInputs(
            vehicle_value=_parse_amount(payload, "vehicleValue"),
            vehicle_age_months=_parse_int(
                payload, "vehicleAgeMonths", minimum=0, maximum=MAX_VEHICLE_AGE_MONTHS
            ),
            engine_capacity=_parse_int(
                payload, "engineCapacity", minimum=1, maximum=MAX_ENGINE_CAPACITY
            ),
            co2_emissions=_parse_int(
                payload, "co2Emissions", minimum=0, maximum=MAX_CO2_EMISSIONS
            ),
            fuel_type=_parse_fuel_type(payload, "fuelType"),
        )
        return cls(
            case_id=case_id,
            inputs=inputs,
            as_of_date=_parse_date(payload, "asOfDate"),
            calculated_by=_parse_uuid(payload, "calculatedBy", required=False),
        )
