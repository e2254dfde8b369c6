"""
Module: vehicle_tax_kernel.selectors.case_selector
Responsibility: Case directory lookups consumed by the tax engine.
Architecture position: Kernel > Selectors.
"""

from typing import Protocol
from uuid import UUID

from vehicle_tax_kernel.exceptions import CaseNotFoundError
from vehicle_tax_kernel.models.import_case import ImportCase
from vehicle_tax_kernel.selectors.base import BaseSelector


class CaseDirectory(Protocol):
    """Resolves an import case to its owning tenant."""

    def get_tenant_id(self, case_id: UUID) -> UUID: ...


class CaseSelector(BaseSelector[ImportCase]):
    """CaseDirectory backed by the import_cases table."""

    def get_tenant_id(self, case_id: UUID) -> UUID:
        """
        Raises:
            CaseNotFoundError: If the case does not exist.
        """
        case = self.session.get(ImportCase, case_id)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        return case.tenant_id

    def exists(self, case_id: UUID) -> bool:
        return self.session.get(ImportCase, case_id) is not None
