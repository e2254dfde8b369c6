"""
Module: vehicle_tax_kernel.selectors.estimation_selector
Responsibility: Read-only access to stored tax estimations.
Architecture position: Kernel > Selectors.

Stored values are at storage precision and are authoritative.  Consumers
format them with vehicle_tax_engines.aggregator.format_payload().
"""

from uuid import UUID

from sqlalchemy import func, select

from vehicle_tax_kernel.domain.dtos import EstimationRecord
from vehicle_tax_kernel.models.tax_estimation import TaxEstimation
from vehicle_tax_kernel.selectors.base import BaseSelector


class EstimationSelector(BaseSelector[TaxEstimation]):
    """Queries over tax_estimations, returning EstimationRecord DTOs."""

    def get(self, estimation_id: UUID) -> EstimationRecord | None:
        model = self.session.get(TaxEstimation, estimation_id)
        return EstimationRecord.from_model(model) if model else None

    def list_for_case(self, case_id: UUID) -> list[EstimationRecord]:
        """All versions of a case, oldest first."""
        rows = self.session.execute(
            select(TaxEstimation)
            .where(TaxEstimation.case_id == case_id)
            .order_by(TaxEstimation.calculation_version)
        ).scalars().all()
        return [EstimationRecord.from_model(row) for row in rows]

    def latest(self, case_id: UUID) -> EstimationRecord | None:
        """Highest calculation version of a case."""
        row = self.session.execute(
            select(TaxEstimation)
            .where(TaxEstimation.case_id == case_id)
            .order_by(TaxEstimation.calculation_version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return EstimationRecord.from_model(row) if row else None

    def max_version(self, case_id: UUID) -> int:
        """Highest stored calculation version of a case (0 when none)."""
        return self.session.execute(
            select(func.coalesce(func.max(TaxEstimation.calculation_version), 0))
            .where(TaxEstimation.case_id == case_id)
        ).scalar_one()
