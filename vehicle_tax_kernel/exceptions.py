"""
Typed exception hierarchy for the vehicle tax kernel.

Every error the engine can surface to a caller is a typed subclass of
``VehicleTaxError`` carrying:
  1. a ``code`` class attribute (machine-readable, API-safe), and
  2. structured attributes (never parse the message).

    VehicleTaxError (base)
    |
    +-- ValidationError
    |
    +-- TableError
    |   +-- TableNotFoundError
    |   +-- TableIntegrityError
    |
    +-- CaseNotFoundError
    |
    +-- EstimationError
    |   +-- EstimationNotFoundError
    |   +-- AlreadyFinalError
    |
    +-- PersistenceError
    |
    +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError

Category     | Code                   | When raised
-------------|------------------------|--------------------------------------------
Validation   | VALIDATION_ERROR       | Malformed or out-of-range request field
Table        | TABLE_NOT_FOUND        | No active table effective on the as-of date
             | TABLE_INTEGRITY        | Unsorted / overlapping brackets on publish
Case         | CASE_NOT_FOUND         | Unknown case id
Estimation   | ESTIMATION_NOT_FOUND   | Unknown estimation id
             | ALREADY_FINAL          | Second approval of the same estimation
Persistence  | PERSISTENCE_ERROR      | Write or version allocation failed
Audit        | AUDIT_CHAIN_BROKEN     | Hash chain validation failed
Immutability | IMMUTABILITY_VIOLATION | Modifying a final estimation, a published
             |                        | table's rates, or an audit row

A bracket miss is NOT an error: it contributes zero to the tax component.

Handling pattern::

    try:
        service.calculate(request)
    except TableNotFoundError as e:
        notify_admin(f"No {e.kind} table on {e.as_of_date}")
    except VehicleTaxError as e:
        return {"success": False, "error": str(e), "code": e.code}
"""


class VehicleTaxError(Exception):
    """
    Base exception for all vehicle tax errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "VEHICLE_TAX_ERROR"


class ValidationError(VehicleTaxError):
    """A request field is missing, malformed, or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Table-related exceptions


class TableError(VehicleTaxError):
    """Base exception for tax table errors."""

    code: str = "TABLE_ERROR"


class TableNotFoundError(TableError):
    """No active tax table of the requested kind is effective on the date."""

    code: str = "TABLE_NOT_FOUND"

    def __init__(self, kind: str, as_of_date: str):
        self.kind = kind
        self.as_of_date = as_of_date
        super().__init__(
            f"No active {kind} tax table effective on {as_of_date}"
        )


class TableIntegrityError(TableError):
    """A bracket set is malformed (unsorted, overlapping, inverted)."""

    code: str = "TABLE_INTEGRITY"

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Invalid {kind} bracket table: {reason}")


class CaseNotFoundError(VehicleTaxError):
    """Import case with given ID was not found."""

    code: str = "CASE_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Import case not found: {case_id}")


# Estimation-related exceptions


class EstimationError(VehicleTaxError):
    """Base exception for estimation lifecycle errors."""

    code: str = "ESTIMATION_ERROR"


class EstimationNotFoundError(EstimationError):
    """Tax estimation with given ID was not found."""

    code: str = "ESTIMATION_NOT_FOUND"

    def __init__(self, estimation_id: str):
        self.estimation_id = estimation_id
        super().__init__(f"Tax estimation not found: {estimation_id}")


class AlreadyFinalError(EstimationError):
    """The estimation has already been approved; approval is terminal."""

    code: str = "ALREADY_FINAL"

    def __init__(self, estimation_id: str, approved_by: str | None = None):
        self.estimation_id = estimation_id
        self.approved_by = approved_by
        super().__init__(
            f"Tax estimation {estimation_id} is already final"
            + (f" (approved by {approved_by})" if approved_by else "")
        )


class PersistenceError(VehicleTaxError):
    """
    The estimation write or version allocation failed.

    No estimation is considered created when this is raised.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str, attempts: int = 1):
        self.operation = operation
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Persistence failure during {operation} after {attempts} attempt(s): {reason}"
        )


class ImmutabilityViolationError(VehicleTaxError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(VehicleTaxError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
