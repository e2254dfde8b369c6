"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here check the record's lifecycle and
raise ImmutabilityViolationError, aborting the flush before any SQL is sent.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _block_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity         | When immutable               | What may still change
---------------|------------------------------|-------------------------------
TaxEstimation  | Once is_final was True       | nothing (updated_at only)
               | On the DRAFT -> FINAL flush  | is_final, approved_by, approved_at
TaxTable       | Always, for rate fields      | is_active, end_date, notes
AuditLog       | Always                       | nothing

Deletes are blocked for all three: estimations are superseded, tables are
retired, audit rows are permanent.

The DRAFT -> FINAL transition is detected from attribute history: if the
is_final history shows an old value of False and a new value of True, the
flush IS the approval and only the approval fields may change with it.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from vehicle_tax_kernel.exceptions import ImmutabilityViolationError
from vehicle_tax_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Row metadata that never counts as a modification
_METADATA_FIELDS = frozenset({"updated_at"})

_APPROVAL_FIELDS = frozenset({"is_final", "approved_by", "approved_at"})

_TABLE_LIFECYCLE_FIELDS = frozenset({"is_active", "end_date", "notes"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _METADATA_FIELDS and attr.history.has_changes()
    ]


def _violation(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_estimation_immutability(mapper, connection, target):
    """
    Block changes to final estimations.

    1. is_final changing True -> anything: block.
    2. is_final unchanged and True: block every field change.
    3. is_final changing False -> True: allow approval fields only.
    """
    history = get_history(target, "is_final")
    changed = _changed_fields(target)

    if history.deleted:
        was_final = bool(history.deleted[0])
    elif not history.added:
        was_final = bool(target.is_final)
    else:
        # Pending object flushed for the first time with is_final set
        was_final = False

    if was_final and changed:
        field = changed[0]
        raise _violation(
            "TaxEstimation",
            target,
            "UPDATE",
            f"Cannot modify field '{field}' on a final estimation",
            field,
        )

    if history.added and bool(history.added[0]):
        disallowed = [f for f in changed if f not in _APPROVAL_FIELDS]
        if disallowed:
            raise _violation(
                "TaxEstimation",
                target,
                "UPDATE",
                f"Cannot modify field '{disallowed[0]}' while finalizing",
                disallowed[0],
            )


def _check_tax_table_immutability(mapper, connection, target):
    """Rate-defining fields of a published table never change."""
    for field in _changed_fields(target):
        if field not in _TABLE_LIFECYCLE_FIELDS:
            raise _violation(
                "TaxTable",
                target,
                "UPDATE",
                f"Cannot modify field '{field}' on a published tax table; "
                "publish a new version instead",
                field,
            )


def _check_audit_log_immutability(mapper, connection, target):
    raise _violation("AuditLog", target, "UPDATE", "Audit log rows are append-only")


def _block_estimation_delete(mapper, connection, target):
    raise _violation(
        "TaxEstimation", target, "DELETE",
        "Estimations are superseded by new versions, never deleted",
    )


def _block_tax_table_delete(mapper, connection, target):
    raise _violation(
        "TaxTable", target, "DELETE",
        "Tax tables are retired, never deleted",
    )


def _block_audit_log_delete(mapper, connection, target):
    raise _violation("AuditLog", target, "DELETE", "Audit log rows are append-only")


def _listeners():
    # Inline imports: models import from db, db would otherwise import models.
    from vehicle_tax_kernel.models.audit_log import AuditLog
    from vehicle_tax_kernel.models.tax_estimation import TaxEstimation
    from vehicle_tax_kernel.models.tax_table import TaxTable

    return (
        (TaxEstimation, "before_update", _check_estimation_immutability),
        (TaxEstimation, "before_delete", _block_estimation_delete),
        (TaxTable, "before_update", _check_tax_table_immutability),
        (TaxTable, "before_delete", _block_tax_table_delete),
        (AuditLog, "before_update", _check_audit_log_immutability),
        (AuditLog, "before_delete", _block_audit_log_delete),
    )


def register_immutability_listeners() -> None:
    """Register all ORM immutability listeners (idempotent)."""
    for model, name, fn in _listeners():
        if not event.contains(model, name, fn):
            event.listen(model, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove all ORM immutability listeners. TESTS ONLY."""
    for model, name, fn in _listeners():
        if event.contains(model, name, fn):
            event.remove(model, name, fn)
