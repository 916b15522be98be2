"""
procurement_engines.budget -- Request total against program budget and funding.

Responsibility:
    Compare a request's total with the program's yearly budget and with the
    funding allocations for that program and year.  When the request names a
    funding source, also report the headroom against that source alone.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Never mutates stored
    totals; callers pass the committed request plus reference data.

Invariants enforced:
    - gap = budget_total - request_total; negative means over budget.
    - Missing program settings give an unknown budget (gap None,
      budget_known False), never a zero budget.
    - Allocations for another program or year are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from procurement_kernel.domain.dtos import (
    BudgetComparison,
    EarmarkedHeadroom,
    FundingAllocation,
    ProcurementRequest,
    ProgramSettings,
)
from procurement_kernel.logging_config import get_logger
from procurement_engines.tracer import traced_engine

logger = get_logger("engines.budget")

_ZERO = Decimal("0")


class BudgetComparator:
    """Stateless budget comparison."""

    @traced_engine("budget", "1.0")
    def compare(
        self,
        request: ProcurementRequest,
        program_settings: ProgramSettings | None,
        allocations: Iterable[FundingAllocation],
    ) -> BudgetComparison:
        relevant = [
            a for a in allocations
            if a.program_id == request.program_id and a.year == request.year
        ]
        allocated_total = sum((a.allocated_amount for a in relevant), _ZERO)

        settings_match = (
            program_settings is not None
            and program_settings.program_id == request.program_id
            and program_settings.year == request.year
        )
        if settings_match:
            budget_total = program_settings.budget_total
            gap = budget_total - request.request_total
        else:
            budget_total = None
            gap = None
            logger.info(
                "budget_unknown",
                extra={
                    "request_id": str(request.id),
                    "program_id": str(request.program_id),
                    "year": request.year,
                },
            )

        earmarked = None
        if request.funding_source_id is not None:
            source_amount = sum(
                (a.allocated_amount for a in relevant
                 if a.funding_source_id == request.funding_source_id),
                _ZERO,
            )
            earmarked = EarmarkedHeadroom(
                funding_source_id=request.funding_source_id,
                allocated_amount=source_amount,
                gap=source_amount - request.request_total,
            )

        return BudgetComparison(
            budget_total=budget_total,
            allocated_total=allocated_total,
            request_total=request.request_total,
            gap=gap,
            budget_known=settings_match,
            earmarked=earmarked,
        )
