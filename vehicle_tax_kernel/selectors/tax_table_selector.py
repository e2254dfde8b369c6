"""
Module: vehicle_tax_kernel.selectors.tax_table_selector
Responsibility: Resolve the tax table of a kind that is effective on a date.
Architecture position: Kernel > Selectors.

Selection rule:
    Among tables of the requested kind that are active, started on or
    before the as-of date, and have no end date or one after it, pick the
    latest effective_date.  Ties go to the highest insertion_seq, i.e. the
    most recently published table.

Failure modes:
    - TableNotFoundError from resolve() when nothing qualifies.
      resolve_optional() returns None instead.
"""

from datetime import date

from sqlalchemy import or_, select

from vehicle_tax_kernel.domain.dtos import Bracket, BracketTable
from vehicle_tax_kernel.exceptions import TableNotFoundError
from vehicle_tax_kernel.logging_config import get_logger
from vehicle_tax_kernel.models.tax_table import TaxTable, TaxTableKind
from vehicle_tax_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.tax_table")


def _kind_value(kind: TaxTableKind | str) -> str:
    return kind.value if isinstance(kind, TaxTableKind) else str(kind)


class TaxTableSelector(BaseSelector[TaxTable]):
    """
    Read access to date-effective tax tables.

    Guarantees:
        - Deterministic: the same stored tables and arguments always
          resolve to the same table.
        - Inactive tables are never returned by resolve().
    """

    @staticmethod
    def to_dto(table: TaxTable) -> BracketTable:
        return BracketTable(
            table_id=table.id,
            kind=table.kind,
            version=table.version,
            effective_date=table.effective_date,
            end_date=table.end_date,
            insertion_seq=table.insertion_seq,
            brackets=tuple(
                Bracket(minimum=lo, maximum=hi, rate=rate)
                for lo, hi, rate in table.bracket_tuples()
            ),
        )

    def resolve_optional(
        self, kind: TaxTableKind | str, as_of_date: date
    ) -> BracketTable | None:
        """Effective table of ``kind`` on ``as_of_date``, or None."""
        kind_value = _kind_value(kind)
        table = self.session.execute(
            select(TaxTable)
            .where(
                TaxTable.kind == kind_value,
                TaxTable.is_active.is_(True),
                TaxTable.effective_date <= as_of_date,
                or_(TaxTable.end_date.is_(None), TaxTable.end_date > as_of_date),
            )
            .order_by(TaxTable.effective_date.desc(), TaxTable.insertion_seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        if table is None:
            return None

        logger.debug(
            "tax_table_resolved",
            extra={
                "kind": kind_value,
                "as_of_date": as_of_date.isoformat(),
                "version": table.version,
                "insertion_seq": table.insertion_seq,
            },
        )
        return self.to_dto(table)

    def resolve(self, kind: TaxTableKind | str, as_of_date: date) -> BracketTable:
        """
        Effective table of ``kind`` on ``as_of_date``.

        Raises:
            TableNotFoundError: If no table qualifies.
        """
        table = self.resolve_optional(kind, as_of_date)
        if table is None:
            kind_value = _kind_value(kind)
            logger.warning(
                "tax_table_not_found",
                extra={"kind": kind_value, "as_of_date": as_of_date.isoformat()},
            )
            raise TableNotFoundError(kind_value, as_of_date.isoformat())
        return table

    def list_tables(
        self,
        kind: TaxTableKind | str | None = None,
        include_inactive: bool = False,
    ) -> list[BracketTable]:
        """All tables (optionally of one kind) in publication order."""
        stmt = select(TaxTable).order_by(TaxTable.insertion_seq)
        if kind is not None:
            stmt = stmt.where(TaxTable.kind == _kind_value(kind))
        if not include_inactive:
            stmt = stmt.where(TaxTable.is_active.is_(True))
        return [self.to_dto(t) for t in self.session.execute(stmt).scalars().all()]
