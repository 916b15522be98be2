"""
Data Transfer Objects for the procurement kernel.

These are immutable, pure data structures with no ORM dependencies.  Models
convert to them with ``to_dto()``; services and selectors return them to
callers so that no live ORM object escapes a unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ForecastLine:
    """
    A candidate line produced by the forecasting engine.

    Read-only input.  Copied into a request item, never live-linked.
    ``line_ref`` is the stable id of the forecast row when the forecast has
    one; ``program_id``/``year`` let the builder reject lines from another
    program or year.
    """

    product: str
    unit: str
    forecasted_quantity: Decimal
    unit_price: Decimal
    line_ref: str | None = None
    program_id: UUID | None = None
    year: int | None = None


@dataclass(frozen=True)
class UserRoleRecord:
    """A user's single role assignment and its scope root."""

    user_id: UUID
    role: str
    admin_level: str
    facility_id: UUID | None = None
    woreda_id: UUID | None = None
    zone_id: UUID | None = None
    region_id: UUID | None = None


@dataclass(frozen=True)
class RequestTotals:
    subtotal: Decimal
    psm_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class RequestItem:
    id: UUID
    request_id: UUID
    forecast_line_ref: str | None
    item_name: str
    unit: str
    requested_quantity: Decimal
    updated_unit_price: Decimal
    line_subtotal: Decimal
    forecast_quantity: Decimal
    forecast_unit_price: Decimal
    override: bool = False
    override_reason: str | None = None

    @property
    def is_linked(self) -> bool:
        """False for items with no source forecast row."""
        return self.forecast_line_ref is not None


@dataclass(frozen=True)
class ProcurementRequest:
    id: UUID
    program_id: UUID
    year: int
    facility_id: UUID
    funding_source_id: UUID | None
    current_stage: str
    status: str
    psm_percent: Decimal
    psm_amount: Decimal
    request_subtotal: Decimal
    request_total: Decimal
    notes: str
    owner_id: UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: tuple[RequestItem, ...] = field(default_factory=tuple)

    @property
    def is_pooled(self) -> bool:
        """True when the request draws on pooled funding."""
        return self.funding_source_id is None

    @property
    def totals(self) -> RequestTotals:
        return RequestTotals(
            subtotal=self.request_subtotal,
            psm_amount=self.psm_amount,
            total=self.request_total,
        )


@dataclass(frozen=True)
class StageTransition:
    id: UUID
    request_id: UUID
    sequence: int
    from_stage: str
    to_stage: str
    actor_id: UUID
    decision: str
    comment: str | None
    attachment_ref: str | None
    created_at: datetime
    prev_hash: str | None
    hash: str


@dataclass(frozen=True)
class ProgramSettings:
    program_id: UUID
    year: int
    psm_percent: Decimal
    budget_total: Decimal


@dataclass(frozen=True)
class FundingAllocation:
    program_id: UUID
    year: int
    funding_source_id: UUID
    allocated_amount: Decimal


@dataclass(frozen=True)
class EarmarkedHeadroom:
    """Budget position against the request's named funding source."""

    funding_source_id: UUID
    allocated_amount: Decimal
    gap: Decimal


@dataclass(frozen=True)
class BudgetComparison:
    """
    Request total against the program budget.

    ``gap`` is None and ``budget_known`` False when the program has no
    settings for the year.  A negative gap means the request exceeds the
    budget.
    """

    budget_total: Decimal | None
    allocated_total: Decimal
    request_total: Decimal
    gap: Decimal | None
    budget_known: bool
    earmarked: EarmarkedHeadroom | None = None


@dataclass(frozen=True)
class ReconciliationResult:
    request_id: UUID
    before: RequestTotals
    after: RequestTotals
    items_repaired: int = 0

    @property
    def was_consistent(self) -> bool:
        return self.before == self.after and self.items_repaired == 0
