"""
vehicle_tax_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure calculators
    (vehicle_tax_engines/) with database sessions, the clock and the audit
    sink.  This is the only layer that opens transactions.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        vehicle_tax_services/ -> vehicle_tax_engines/  (allowed)
        vehicle_tax_services/ -> vehicle_tax_kernel/   (allowed)
        vehicle_tax_services/ -> vehicle_tax_config/   (allowed)
        vehicle_tax_engines/  -> vehicle_tax_services/ (FORBIDDEN)
        vehicle_tax_kernel/   -> vehicle_tax_services/ (FORBIDDEN)
"""

from vehicle_tax_services.calculation_service import (
    TaxCalculationService,
    build_aggregator,
    estimation_snapshot,
)
from vehicle_tax_services.request import CalculationRequest
from vehicle_tax_services.tax_table_service import TaxTableService

__all__ = [
    "CalculationRequest",
    "TaxCalculationService",
    "TaxTableService",
    "build_aggregator",
    "estimation_snapshot",
]
