"""
vehicle_tax_services.tax_table_service -- administrative table publication.

Responsibility:
    Publishes new tax table versions and retires old ones.  Publication
    is where bracket integrity is checked: ordering and overlap errors are
    rejected, coverage gaps are reported (or rejected when the settings
    require full coverage).

Invariants enforced:
    - insertion_seq comes from the ``tax_table`` named sequence, so the
      selector's tie-break follows publication order.
    - A published table's rate-defining fields are never changed; retire()
      only touches is_active and end_date (ORM listener enforced).
    - Every publication and retirement is written to the audit chain in
      the same transaction.

Failure modes:
    - ValidationError: unknown table kind or table id.
    - TableIntegrityError: malformed brackets, end date not after the
      effective date, or a coverage gap under ``require_full_coverage``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from vehicle_tax_engines.brackets import find_coverage_gaps, parse_brackets, validate_brackets
from vehicle_tax_kernel.domain.clock import Clock, SystemClock
from vehicle_tax_kernel.exceptions import TableIntegrityError, ValidationError
from vehicle_tax_kernel.logging_config import get_logger
from vehicle_tax_kernel.models.tax_table import TaxTable, TaxTableKind
from vehicle_tax_kernel.services.auditor_service import AuditorService
from vehicle_tax_kernel.services.sequence_service import SequenceService

logger = get_logger("services.tax_table")


def _parse_kind(kind: TaxTableKind | str) -> TaxTableKind:
    if isinstance(kind, TaxTableKind):
        return kind
    try:
        return TaxTableKind(str(kind).strip().upper())
    except ValueError as exc:
        raise ValidationError("kind", f"unknown tax table kind {kind!r}") from exc


class TaxTableService:
    """
    Publishes and retires tax tables.

    Does NOT call ``session.commit()`` -- the caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        require_full_coverage: bool = False,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._require_full_coverage = require_full_coverage
        self._sequences = SequenceService(session)
        self._auditor = AuditorService(session, self._clock)

    def publish(
        self,
        kind: TaxTableKind | str,
        version: str,
        effective_date: date,
        brackets: Iterable[Mapping[str, Any]],
        end_date: date | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> TaxTable:
        """
        Validate and insert a new table version.

        Args:
            kind: Which schedule the table holds.
            version: Opaque label, e.g. "2024".
            effective_date: First day the table applies.
            brackets: ``{"min", "max", "rate"}`` mappings, ascending.
            end_date: Exclusive last day, if already known.
            notes: Free text.
            actor_id: Who published it.

        Returns:
            The flushed TaxTable.
        """
        table_kind = _parse_kind(kind)
        kind_value = table_kind.value

        try:
            parsed = parse_brackets(brackets)
        except ValueError as exc:
            raise TableIntegrityError(kind_value, str(exc)) from exc
        validate_brackets(kind_value, parsed)

        if end_date is not None and end_date <= effective_date:
            raise TableIntegrityError(
                kind_value, f"end_date {end_date} is not after effective_date {effective_date}"
            )

        coverage = find_coverage_gaps(parsed)
        if not coverage.is_complete:
            problems = coverage.describe()
            if self._require_full_coverage:
                raise TableIntegrityError(kind_value, "; ".join(problems))
            logger.warning(
                "tax_table_coverage_gap",
                extra={"kind": kind_value, "version": version, "gaps": problems},
            )

        table = TaxTable(
            kind=kind_value,
            version=version,
            effective_date=effective_date,
            end_date=end_date,
            brackets=[b.to_dict() for b in parsed],
            is_active=True,
            insertion_seq=self._sequences.next_value(SequenceService.TAX_TABLE),
            notes=notes,
        )
        self._session.add(table)
        self._session.flush()

        self._auditor.record_table_published(
            table_id=table.id,
            kind=kind_value,
            version=version,
            effective_date=effective_date,
            bracket_count=len(parsed),
            actor_id=actor_id,
        )

        logger.info(
            "tax_table_published",
            extra={
                "kind": kind_value,
                "version": version,
                "effective_date": effective_date,
                "insertion_seq": table.insertion_seq,
            },
        )
        return table

    def retire(
        self,
        table_id: UUID,
        end_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> TaxTable:
        """
        Stop a table from applying.

        With ``end_date`` the table stays active and applies before that
        date; without it the table is deactivated outright.

        Raises:
            ValidationError: If no table has this id.
            TableIntegrityError: If end_date is not after the effective date.
        """
        table = self._session.get(TaxTable, table_id)
        if table is None:
            raise ValidationError("tableId", f"no tax table {table_id}")

        if end_date is None:
            table.is_active = False
        else:
            if end_date <= table.effective_date:
                raise TableIntegrityError(
                    table.kind,
                    f"end_date {end_date} is not after effective_date {table.effective_date}",
                )
            table.end_date = end_date
        self._session.flush()

        self._auditor.record_table_retired(table.id, end_date, actor_id=actor_id)

        logger.info(
            "tax_table_retired",
            extra={
                "kind": table.kind,
                "version": table.version,
                "end_date": end_date,
                "is_active": table.is_active,
            },
        )
        return table
