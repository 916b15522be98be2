"""Tests for the budget comparison engine."""

from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_engines.budget import BudgetComparator
from procurement_kernel.domain.dtos import (
    FundingAllocation,
    ProcurementRequest,
    ProgramSettings,
)

PROGRAM = uuid4()
SOURCE_A = uuid4()
SOURCE_B = uuid4()
YEAR = 2025


def _request(total="770", funding_source_id=None, program_id=PROGRAM, year=YEAR):
    return ProcurementRequest(
        id=uuid4(),
        program_id=program_id,
        year=year,
        facility_id=uuid4(),
        funding_source_id=funding_source_id,
        current_stage="approved",
        status="approved",
        psm_percent=Decimal("10"),
        psm_amount=Decimal("70"),
        request_subtotal=Decimal("700"),
        request_total=Decimal(total),
        notes="",
        owner_id=uuid4(),
    )


@pytest.fixture
def settings():
    return ProgramSettings(PROGRAM, YEAR, Decimal("10"), Decimal("1000"))


@pytest.fixture
def allocations():
    return [
        FundingAllocation(PROGRAM, YEAR, SOURCE_A, Decimal("500")),
        FundingAllocation(PROGRAM, YEAR, SOURCE_B, Decimal("300")),
        FundingAllocation(PROGRAM, YEAR + 1, SOURCE_A, Decimal("9999")),
        FundingAllocation(uuid4(), YEAR, SOURCE_A, Decimal("4444")),
    ]


@pytest.fixture
def comparator():
    return BudgetComparator()


class TestBudgetComparator:
    def test_within_budget(self, comparator, settings, allocations):
        result = comparator.compare(_request(), settings, allocations)
        assert result.budget_known
        assert result.budget_total == Decimal("1000")
        assert result.request_total == Decimal("770")
        assert result.gap == Decimal("230")
        assert result.earmarked is None

    def test_other_program_and_year_ignored(self, comparator, settings, allocations):
        result = comparator.compare(_request(), settings, allocations)
        assert result.allocated_total == Decimal("800")

    def test_over_budget_gap_negative(self, comparator, settings, allocations):
        result = comparator.compare(_request(total="1200.50"), settings, allocations)
        assert result.gap == Decimal("-200.50")

    def test_missing_settings_is_unknown_not_zero(self, comparator, allocations, captured_logs):
        result = comparator.compare(_request(), None, allocations)
        assert not result.budget_known
        assert result.budget_total is None
        assert result.gap is None
        assert result.allocated_total == Decimal("800")
        assert any(r["message"] == "budget_unknown" for r in captured_logs())

    def test_settings_for_other_year_treated_as_missing(self, comparator, allocations):
        stale = ProgramSettings(PROGRAM, YEAR - 1, Decimal("10"), Decimal("1000"))
        assert comparator.compare(_request(), stale, allocations).budget_known is False

    def test_earmarked_source(self, comparator, settings, allocations):
        result = comparator.compare(_request(funding_source_id=SOURCE_A), settings, allocations)
        assert result.earmarked.funding_source_id == SOURCE_A
        assert result.earmarked.allocated_amount == Decimal("500")
        assert result.earmarked.gap == Decimal("-270")
        # program-level figures are unchanged by earmarking
        assert result.gap == Decimal("230")

    def test_earmarked_source_without_allocation(self, comparator, settings, allocations):
        result = comparator.compare(_request(funding_source_id=uuid4()), settings, allocations)
        assert result.earmarked.allocated_amount == 0
        assert result.earmarked.gap == Decimal("-770")

    def test_no_allocations(self, comparator, settings):
        result = comparator.compare(_request(), settings, [])
        assert result.allocated_total == 0
        assert result.gap == Decimal("230")
