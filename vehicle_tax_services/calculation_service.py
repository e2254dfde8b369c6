"""
vehicle_tax_services.calculation_service -- the tax calculation use case.

Responsibility:
    Owns the transaction around one calculation: case lookup, table
    resolution, pure aggregation, versioned persistence.  Emits the audit
    event after commit and shapes the ``{success, data | error}`` response
    envelope.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  All
    collaborators arrive through the constructor; nothing is looked up
    from module state.

Flow::

    payload --> CalculationRequest.from_payload   (ValidationError, no reads)
            --> session_scope:
                  CaseDirectory.get_tenant_id     (CaseNotFoundError)
                  TaxTableSelector.resolve x2     (TableNotFoundError)
                  TaxTableSelector.resolve_optional(CIRCULATION_FEE)
                  EstimationAggregator.aggregate  (pure)
                  EstimationStore.create          (version + row, one flush)
            --> commit
            --> AuditSink.emit(CALCULATE)         (own transaction, logged on failure)
            --> format_payload

Invariants enforced:
    - A failed calculation persists nothing: every read and the write share
      one transaction that is rolled back on any error.
    - Version allocation conflicts (IntegrityError) re-run the whole
      transaction up to ``settings.persistence.max_attempts`` times, then
      surface as PersistenceError.
    - Audit failure never affects a committed estimation.

Failure modes:
    - Every VehicleTaxError becomes ``{"success": False, "error", "code"}``
      in handle().
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from vehicle_tax_config.schema import EngineSettings
from vehicle_tax_engines.aggregator import EstimationAggregator, format_payload
from vehicle_tax_engines.iuc import FeeStep
from vehicle_tax_kernel.db.engine import session_scope
from vehicle_tax_kernel.domain.clock import Clock, SystemClock
from vehicle_tax_kernel.domain.dtos import EstimationRecord
from vehicle_tax_kernel.exceptions import PersistenceError, ValidationError, VehicleTaxError
from vehicle_tax_kernel.logging_config import LogContext, get_logger
from vehicle_tax_kernel.models.audit_log import AuditAction
from vehicle_tax_kernel.models.tax_table import TaxTableKind
from vehicle_tax_kernel.selectors.case_selector import CaseDirectory, CaseSelector
from vehicle_tax_kernel.selectors.tax_table_selector import TaxTableSelector
from vehicle_tax_kernel.services.auditor_service import AuditSink
from vehicle_tax_kernel.services.estimation_store import EstimationStore
from vehicle_tax_kernel.utils.hashing import to_json_safe
from vehicle_tax_services.request import CalculationRequest

logger = get_logger("services.calculation")

ENTITY_TYPE = "TaxEstimation"


def build_aggregator(settings: EngineSettings) -> EstimationAggregator:
    """Aggregator parameterised by the engine settings."""
    return EstimationAggregator(
        vat_rate=settings.vat_rate,
        depreciation_rate_per_month=settings.depreciation.rate_per_month,
        depreciation_cap=settings.depreciation.cap_percentage,
        fee_steps=tuple(
            FeeStep(max_co2=step.max_co2, fee=step.fee)
            for step in settings.circulation_fee_steps
        ),
    )


def estimation_snapshot(record: EstimationRecord) -> dict[str, Any]:
    """Audit ``new_values`` for a calculated estimation."""
    inputs = record.inputs
    b = record.breakdown
    return {
        "id": record.id,
        "tenant_id": record.tenant_id,
        "case_id": record.case_id,
        "calculation_version": record.calculation_version,
        "calculated_at": record.calculated_at,
        "calculated_by": record.calculated_by,
        "vehicle_value": inputs.vehicle_value,
        "vehicle_age_months": inputs.vehicle_age_months,
        "engine_capacity": inputs.engine_capacity,
        "co2_emissions": inputs.co2_emissions,
        "fuel_type": inputs.fuel_type,
        "depreciation_rate": b.depreciation_rate,
        "depreciated_value": b.depreciated_value,
        "isv_cylinder": b.isv_cylinder,
        "isv_co2": b.isv_co2,
        "isv_total": b.isv_total,
        "isv_reduction_percentage": b.isv_reduction_percentage,
        "isv_final": b.isv_final,
        "iva_rate": b.iva_rate,
        "iva_base": b.iva_base,
        "iva_amount": b.iva_amount,
        "iuc_estimated": b.iuc_estimated,
        "total_estimated_cost": b.total_estimated_cost,
        "cylinder_table_version": b.cylinder_table_version,
        "co2_table_version": b.co2_table_version,
        "iuc_source": b.iuc_source,
        "is_final": record.is_final,
    }


def failure_envelope(exc: VehicleTaxError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "code": exc.code}


class TaxCalculationService:
    """
    Calculates, persists and approves tax estimations.

    Contract:
        Receives a session factory (one session per transaction, safe to
        share across threads), engine settings, a clock, an optional
        audit sink and a case directory factory.

    Non-goals:
        - Does NOT publish tax tables (TaxTableService).
        - Does NOT retry anything except version allocation conflicts.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        case_directory: Callable[[Session], CaseDirectory] = CaseSelector,
    ):
        self._session_factory = session_factory
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._audit_sink = audit_sink
        self._case_directory = case_directory
        self._aggregator = build_aggregator(self._settings)

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def _calculate_once(self, request: CalculationRequest, as_of: date) -> EstimationRecord:
        with session_scope(self._session_factory) as session:
            tenant_id = self._case_directory(session).get_tenant_id(request.case_id)

            tables = TaxTableSelector(session)
            cylinder = tables.resolve(TaxTableKind.CYLINDER_CAPACITY, as_of)
            co2 = tables.resolve(TaxTableKind.CO2_EMISSIONS, as_of)
            fee = tables.resolve_optional(TaxTableKind.CIRCULATION_FEE, as_of)

            breakdown = self._aggregator.aggregate(
                inputs=request.inputs,
                cylinder_table=cylinder,
                co2_table=co2,
                fee_table=fee,
                as_of_date=as_of,
            )

            estimation = EstimationStore(session, self._clock).create(
                case_id=request.case_id,
                tenant_id=tenant_id,
                inputs=request.inputs,
                breakdown=breakdown,
                calculated_by=request.calculated_by,
            )
            return EstimationRecord.from_model(estimation)

    def calculate(self, request: CalculationRequest) -> EstimationRecord:
        """
        Run and persist one calculation.

        Raises:
            CaseNotFoundError: Unknown case.
            TableNotFoundError: No effective cylinder or CO2 table.
            PersistenceError: The write failed or version conflicts
                outlasted max_attempts.
        """
        as_of = request.as_of_date or self._clock.today()
        max_attempts = self._settings.persistence.max_attempts

        with LogContext.bind(case_id=request.case_id, actor_id=request.calculated_by):
            logger.info(
                "calculation_started",
                extra={
                    "as_of_date": as_of,
                    "engine_capacity": request.inputs.engine_capacity,
                    "co2_emissions": request.inputs.co2_emissions,
                    "fuel_type": request.inputs.fuel_type,
                },
            )

            attempt = 0
            while True:
                attempt += 1
                try:
                    record = self._calculate_once(request, as_of)
                    break
                except IntegrityError as exc:
                    if attempt >= max_attempts:
                        logger.error(
                            "calculation_version_conflict_exhausted",
                            extra={"attempts": attempt},
                        )
                        raise PersistenceError(
                            "calculate", str(exc.orig or exc), attempt
                        ) from exc
                    logger.warning(
                        "calculation_version_conflict_retry",
                        extra={"attempt": attempt, "max_attempts": max_attempts},
                    )
                except SQLAlchemyError as exc:
                    logger.error("calculation_persistence_failed", exc_info=True)
                    raise PersistenceError("calculate", str(exc), attempt) from exc

            logger.info(
                "calculation_completed",
                extra={
                    "estimation_id": record.id,
                    "calculation_version": record.calculation_version,
                    "total_estimated_cost": record.breakdown.total_estimated_cost,
                    "attempts": attempt,
                },
            )

            self._emit_audit(
                AuditAction.CALCULATE,
                record,
                estimation_snapshot(record),
                actor_id=request.calculated_by,
            )
        return record

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def finalize(self, estimation_id: UUID, approved_by: UUID) -> EstimationRecord:
        """
        Approve an estimation (DRAFT -> FINAL, terminal).

        Raises:
            EstimationNotFoundError: Unknown estimation id.
            AlreadyFinalError: The estimation was already approved.
            PersistenceError: The write failed.
        """
        with LogContext.bind(estimation_id=estimation_id, actor_id=approved_by):
            try:
                with session_scope(self._session_factory) as session:
                    estimation = EstimationStore(session, self._clock).finalize(
                        estimation_id, approved_by
                    )
                    record = EstimationRecord.from_model(estimation)
            except SQLAlchemyError as exc:
                logger.error("finalize_persistence_failed", exc_info=True)
                raise PersistenceError("finalize", str(exc)) from exc

            self._emit_audit(
                AuditAction.APPROVE,
                record,
                {
                    "calculation_version": record.calculation_version,
                    "is_final": True,
                    "approved_by": record.approved_by,
                    "approved_at": record.approved_at,
                },
                actor_id=approved_by,
            )
        return record

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _emit_audit(
        self,
        action: AuditAction,
        record: EstimationRecord,
        new_values: dict[str, Any],
        actor_id: UUID | None,
    ) -> None:
        """Emit after commit.  Failure is logged; the estimation stands."""
        if self._audit_sink is None:
            return
        try:
            self._audit_sink.emit(
                action,
                ENTITY_TYPE,
                record.id,
                to_json_safe(new_values),
                tenant_id=record.tenant_id,
                case_id=record.case_id,
                actor_id=actor_id,
            )
        except Exception:
            logger.error(
                "audit_emit_failed",
                exc_info=True,
                extra={"action": action.value, "estimation_id": record.id},
            )

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def handle(self, payload: Any) -> dict[str, Any]:
        """
        JSON-in, envelope-out entry point.

        Returns ``{"success": True, "data": {...}}`` or
        ``{"success": False, "error": message, "code": ERROR_CODE}``.
        """
        try:
            request = CalculationRequest.from_payload(payload)
            record = self.calculate(request)
        except VehicleTaxError as exc:
            logger.warning("calculation_rejected", extra={"code": exc.code, "reason": str(exc)})
            return failure_envelope(exc)
        return {"success": True, "data": format_payload(record)}

    def handle_finalize(self, estimation_id: Any, approved_by: Any) -> dict[str, Any]:
        """Envelope wrapper around finalize() for string identifiers."""
        try:
            est_id = _as_uuid(estimation_id, "estimationId")
            actor = _as_uuid(approved_by, "approvedBy")
            record = self.finalize(est_id, actor)
        except VehicleTaxError as exc:
            logger.warning("finalize_rejected", extra={"code": exc.code, "reason": str(exc)})
            return failure_envelope(exc)
        return {
            "success": True,
            "data": {
                "estimationId": str(record.id),
                "calculationVersion": record.calculation_version,
                "isFinal": record.is_final,
                "approvedBy": str(record.approved_by),
                "approvedAt": record.approved_at.isoformat() if record.approved_at else None,
            },
        }


def _as_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(field, f"{value!r} is not a valid UUID") from exc
