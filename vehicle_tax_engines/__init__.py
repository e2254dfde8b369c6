"""
Module: vehicle_tax_engines
Responsibility:
    Package entrypoint re-exporting the pure tax calculators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import vehicle_tax_kernel domain values, db.types helpers,
    exceptions and logging (and sibling engine modules).
    MUST NOT import vehicle_tax_services or vehicle_tax_config.

Invariants enforced:
    - Purity: engines never read the clock or the database.  The as-of
      date and resolved tables are passed in by the service layer.
    - Decimal-only arithmetic at storage precision.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every calculator invocation is traced via ``@traced_engine``
    (see ``vehicle_tax_engines.tracer``), emitting ENGINE_TRACE records.
"""

from vehicle_tax_engines.aggregator import (
    EstimationAggregator,
    format_breakdown,
    format_payload,
)
from vehicle_tax_engines.brackets import (
    Bracket,
    CoverageGap,
    CoverageReport,
    find_coverage_gaps,
    parse_brackets,
    resolve_rate,
    validate_brackets,
)
from vehicle_tax_engines.depreciation import DepreciationCalculator, DepreciationResult
from vehicle_tax_engines.isv import ISVCalculator, ISVResult
from vehicle_tax_engines.iuc import DEFAULT_FEE_STEPS, FeeStep, IUCCalculator, IUCResult
from vehicle_tax_engines.iva import IVACalculator, IVAResult

__all__ = [
    "Bracket",
    "CoverageGap",
    "CoverageReport",
    "DEFAULT_FEE_STEPS",
    "DepreciationCalculator",
    "DepreciationResult",
    "EstimationAggregator",
    "FeeStep",
    "ISVCalculator",
    "ISVResult",
    "IUCCalculator",
    "IUCResult",
    "IVACalculator",
    "IVAResult",
    "find_coverage_gaps",
    "format_breakdown",
    "format_payload",
    "parse_brackets",
    "resolve_rate",
    "validate_brackets",
]
