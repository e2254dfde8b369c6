"""
Concurrent calculation version allocation.

N threads calculating for the same case must produce versions
{k+1, ..., k+N} exactly: no duplicates, no gaps.  Different cases never
share a counter.

Run with: pytest tests/concurrency/test_version_allocation.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select

from vehicle_tax_kernel.db.engine import session_scope
from vehicle_tax_kernel.models.tax_estimation import TaxEstimation
from vehicle_tax_kernel.services.auditor_service import AuditorService
from vehicle_tax_services.calculation_service import TaxCalculationService
from vehicle_tax_services.request import CalculationRequest

pytestmark = pytest.mark.slow_locks

THREADS = 8


def _stored_versions(session_factory, case_id) -> list[int]:
    with session_scope(session_factory) as sess:
        return sorted(
            sess.execute(
                select(TaxEstimation.calculation_version).where(TaxEstimation.case_id == case_id)
            ).scalars().all()
        )


class TestConcurrentVersions:
    """Locked counter row serializes version allocation per case."""

    def test_parallel_calculations_same_case(
        self, calc_service: TaxCalculationService, session_factory, seeded_tables, request_payload
    ):
        request = CalculationRequest.from_payload(request_payload())

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            records = list(pool.map(lambda _: calc_service.calculate(request), range(THREADS)))

        versions = sorted(r.calculation_version for r in records)
        assert versions == list(range(1, THREADS + 1))
        assert _stored_versions(session_factory, request.case_id) == versions

    def test_parallel_calculations_continue_existing_sequence(
        self, calc_service, session_factory, seeded_tables, request_payload
    ):
        request = CalculationRequest.from_payload(request_payload())
        for _ in range(3):
            calc_service.calculate(request)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            records = list(pool.map(lambda _: calc_service.calculate(request), range(THREADS)))

        assert sorted(r.calculation_version for r in records) == list(range(4, THREADS + 4))
        assert _stored_versions(session_factory, request.case_id) == list(range(1, THREADS + 4))

    def test_parallel_calculations_different_cases(
        self, calc_service, session_factory, seeded_tables, create_case, request_payload
    ):
        cases = [create_case() for _ in range(4)]
        requests = [
            CalculationRequest.from_payload(request_payload(caseId=str(c.case_id)))
            for c in cases
            for _ in range(2)
        ]

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            list(pool.map(calc_service.calculate, requests))

        for case in cases:
            assert _stored_versions(session_factory, case.case_id) == [1, 2]

    def test_audit_chain_intact_after_parallel_writes(
        self, calc_service, session_factory, seeded_tables, request_payload
    ):
        request = CalculationRequest.from_payload(request_payload())
        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            list(pool.map(lambda _: calc_service.calculate(request), range(THREADS)))

        with session_scope(session_factory) as sess:
            assert AuditorService(sess).validate_chain() is True
            assert len(AuditorService(sess).get_recent_entries(limit=100)) == THREADS + 2
