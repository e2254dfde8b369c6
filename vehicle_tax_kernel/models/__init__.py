"""
ORM models.  Importing this package registers every table on Base.metadata
and attaches the immutability listeners, so no session can flush an edit to
a final estimation, a published rate or an audit row.
"""

from vehicle_tax_kernel.db.immutability import register_immutability_listeners
from vehicle_tax_kernel.models.audit_log import AuditAction, AuditLog
from vehicle_tax_kernel.models.import_case import ImportCase
from vehicle_tax_kernel.models.tax_estimation import EstimationStatus, TaxEstimation
from vehicle_tax_kernel.models.tax_table import TaxTable, TaxTableKind
from vehicle_tax_kernel.services.sequence_service import SequenceCounter

register_immutability_listeners()

__all__ = [
    "AuditAction",
    "AuditLog",
    "EstimationStatus",
    "ImportCase",
    "SequenceCounter",
    "TaxEstimation",
    "TaxTable",
    "TaxTableKind",
]
