"""
EstimationStore -- versioned, finalizable persistence of tax estimations.

Responsibility:
    Allocates the per-case calculation version, writes the full estimation
    record, and performs the one-way DRAFT -> FINAL approval.

Architecture position:
    Kernel > Services -- imperative shell.  Called by TaxCalculationService
    inside a transaction it owns.

Invariants enforced:
    - Versions for a case are 1, 2, 3, ... with no gaps or duplicates.
      They come from the ``estimation:<case_id>`` counter row, locked with
      SELECT ... FOR UPDATE (SQLite: BEGIN IMMEDIATE).  A counter created
      for a case that already has rows starts after their highest version;
      the unique counter name turns a concurrent first use into a retry.
    - All fields of one estimation are written in a single flush.  A
      rollback discards both the row and the version increment.
    - DRAFT -> FINAL is terminal; a second approval raises
      AlreadyFinalError.  Field immutability after approval is enforced
      by the ORM listener in db/immutability.py.

Failure modes:
    - EstimationNotFoundError from finalize() on an unknown id.
    - AlreadyFinalError from finalize() on an approved estimation.
    - IntegrityError on a concurrent first-use race of the counter or on
      the (case_id, calculation_version) constraint; the caller retries
      the whole transaction.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from vehicle_tax_kernel.db.types import to_storage
from vehicle_tax_kernel.domain.clock import Clock, SystemClock
from vehicle_tax_kernel.domain.dtos import TaxBreakdown, VehicleInputs
from vehicle_tax_kernel.exceptions import AlreadyFinalError, EstimationNotFoundError
from vehicle_tax_kernel.logging_config import get_logger
from vehicle_tax_kernel.models.tax_estimation import TaxEstimation
from vehicle_tax_kernel.selectors.estimation_selector import EstimationSelector
from vehicle_tax_kernel.services.sequence_service import SequenceService
from vehicle_tax_kernel.utils.hashing import to_json_safe

logger = get_logger("services.estimation_store")


class EstimationStore:
    """
    Writes and approves TaxEstimation rows.

    Does NOT call ``session.commit()`` -- the caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def next_version(self, case_id: UUID) -> int:
        """Allocate the next calculation version of a case."""
        name = SequenceService.for_case(case_id)
        # Seeding only matters the first time; the counter is authoritative after.
        floor = 0
        if self._sequences.current_value(name) is None:
            floor = EstimationSelector(self._session).max_version(case_id)
        return self._sequences.next_value(name, floor=floor)

    def create(
        self,
        case_id: UUID,
        tenant_id: UUID,
        inputs: VehicleInputs,
        breakdown: TaxBreakdown,
        calculated_by: UUID | None = None,
    ) -> TaxEstimation:
        """
        Persist a new DRAFT estimation under the next version of the case.

        Preconditions:
            - ``breakdown`` satisfies its sum equation (TaxBreakdown checks
              this on construction).

        Returns:
            The flushed TaxEstimation.
        """
        version = self.next_version(case_id)

        estimation = TaxEstimation(
            tenant_id=tenant_id,
            case_id=case_id,
            calculation_version=version,
            calculated_at=self._clock.now(),
            calculated_by=calculated_by,
            vehicle_value=to_storage(inputs.vehicle_value),
            vehicle_age_months=inputs.vehicle_age_months,
            engine_capacity=inputs.engine_capacity,
            co2_emissions=inputs.co2_emissions,
            fuel_type=inputs.fuel_type,
            depreciation_rate=breakdown.depreciation_rate,
            depreciated_value=breakdown.depreciated_value,
            isv_cylinder=breakdown.isv_cylinder,
            isv_co2=breakdown.isv_co2,
            isv_total=breakdown.isv_total,
            isv_reduction_percentage=breakdown.isv_reduction_percentage,
            isv_final=breakdown.isv_final,
            iva_rate=breakdown.iva_rate,
            iva_base=breakdown.iva_base,
            iva_amount=breakdown.iva_amount,
            iuc_estimated=breakdown.iuc_estimated,
            total_estimated_cost=breakdown.total_estimated_cost,
            cylinder_table_version=breakdown.cylinder_table_version,
            co2_table_version=breakdown.co2_table_version,
            iuc_source=breakdown.iuc_source,
            calculation_details=to_json_safe(breakdown.details),
            is_final=False,
        )
        self._session.add(estimation)
        self._session.flush()

        logger.info(
            "estimation_created",
            extra={
                "estimation_id": str(estimation.id),
                "case_id": str(case_id),
                "calculation_version": version,
                "total_estimated_cost": breakdown.total_estimated_cost,
            },
        )
        return estimation

    def finalize(self, estimation_id: UUID, approved_by: UUID) -> TaxEstimation:
        """
        Approve an estimation.  Terminal.

        The row is locked so two concurrent approvals cannot both succeed.

        Raises:
            EstimationNotFoundError: If no estimation has this id.
            AlreadyFinalError: If it was already approved.
        """
        estimation = self._session.execute(
            select(TaxEstimation)
            .where(TaxEstimation.id == estimation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if estimation is None:
            raise EstimationNotFoundError(str(estimation_id))

        if estimation.is_final:
            logger.warning(
                "estimation_already_final",
                extra={
                    "estimation_id": str(estimation_id),
                    "approved_by": str(estimation.approved_by),
                },
            )
            raise AlreadyFinalError(
                str(estimation_id),
                str(estimation.approved_by) if estimation.approved_by else None,
            )

        estimation.is_final = True
        estimation.approved_by = approved_by
        estimation.approved_at = self._clock.now()
        self._session.flush()

        logger.info(
            "estimation_finalized",
            extra={
                "estimation_id": str(estimation_id),
                "case_id": str(estimation.case_id),
                "calculation_version": estimation.calculation_version,
                "approved_by": str(approved_by),
            },
        )
        return estimation
