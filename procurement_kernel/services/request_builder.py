"""
procurement_kernel.services.request_builder -- Draft creation and item overrides.

Responsibility:
    Turn the forecast lines a facility selected into a draft request with
    computed totals, and apply quantity/price overrides to its items while
    the request is editable.

Architecture position:
    Kernel > Services.  Uses ScopeResolver for permission checks and
    TotalsService for the atomic recompute.  Flush-only.

Invariants enforced:
    - A request has at least one item and a single program and year.
    - Items copy product, unit, quantity and price from the forecast line;
      the line's ``line_ref`` is kept only as an optional reference.
    - psm_percent is snapshotted from ProgramSettings at creation (0 when
      the program has no settings for the year).
    - An item whose values differ from its forecast is flagged ``override``
      and must carry a reason; restoring the forecast values clears both.
    - Items change only in draft/returned.

Failure modes:
    - EmptyRequestError when no lines are selected.
    - ValidationError for mixed programs/years, bad quantities or prices, or
      a missing override reason.
    - ReferenceNotFoundError for an unknown program, facility or funding
      source.
    - PermissionDeniedError without create/edit permission.
    - ItemsFrozenError when editing outside draft/returned.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from procurement_engines.totals import to_amount, validate_psm_percent
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.dtos import ForecastLine, ProcurementRequest
from procurement_kernel.domain.scope import Action
from procurement_kernel.domain.stages import RequestStage, is_editable
from procurement_kernel.exceptions import (
    EmptyRequestError,
    ItemNotFoundError,
    ItemsFrozenError,
    ReferenceNotFoundError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.org_unit import FacilityModel
from procurement_kernel.models.reference import (
    FundingSourceModel,
    ProgramModel,
    ProgramSettingsModel,
)
from procurement_kernel.models.request import ProcurementRequestModel, RequestItemModel
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.scope_resolver import ScopeResolver
from procurement_kernel.services.totals_service import TotalsService

logger = get_logger("services.request_builder")


class RequestBuilder(BaseService):
    def __init__(
        self,
        session,
        scope_resolver: ScopeResolver,
        totals: TotalsService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.scope_resolver = scope_resolver
        self.totals = totals

    # ------------------------------------------------------------------
    # Reference checks
    # ------------------------------------------------------------------

    def _require(self, model, entity_id: UUID, entity_type: str) -> None:
        if self.session.get(model, entity_id) is None:
            raise ReferenceNotFoundError(entity_type, str(entity_id))

    def _snapshot_psm_percent(self, program_id: UUID, year: int) -> Decimal:
        settings = self.session.execute(
            select(ProgramSettingsModel).where(
                ProgramSettingsModel.program_id == program_id,
                ProgramSettingsModel.year == year,
            )
        ).scalar_one_or_none()
        if settings is None:
            logger.warning(
                "program_settings_missing",
                extra={"program_id": str(program_id), "year": year},
            )
            return Decimal("0")
        return validate_psm_percent(settings.psm_percent)

    @staticmethod
    def _check_line_scope(line: ForecastLine, program_id: UUID, year: int, index: int) -> None:
        if line.program_id is not None and line.program_id != program_id:
            raise ValidationError(
                f"Line {index} belongs to program {line.program_id}, not {program_id}",
                field="selected_lines",
                value=line.program_id,
            )
        if line.year is not None and line.year != year:
            raise ValidationError(
                f"Line {index} belongs to year {line.year}, not {year}",
                field="selected_lines",
                value=line.year,
            )

    # ------------------------------------------------------------------
    # Draft creation
    # ------------------------------------------------------------------

    def create_draft(
        self,
        program_id: UUID,
        year: int,
        funding_source_id: UUID | None,
        selected_lines: Sequence[ForecastLine],
        *,
        facility_id: UUID,
        actor_id: UUID,
        notes: str = "",
    ) -> ProcurementRequest:
        """
        Create a draft request from the selected forecast lines.

        ``funding_source_id`` None means pooled funding.
        """
        if not selected_lines:
            raise EmptyRequestError(str(program_id), year)
        if isinstance(year, bool) or not isinstance(year, int):
            raise ValidationError(f"year must be an integer, got {year!r}", field="year", value=year)

        self._require(ProgramModel, program_id, "Program")
        self._require(FacilityModel, facility_id, "Facility")
        if funding_source_id is not None:
            self._require(FundingSourceModel, funding_source_id, "FundingSource")

        self.scope_resolver.authorize(actor_id, facility_id, Action.CREATE)

        prepared = []
        for index, line in enumerate(selected_lines):
            self._check_line_scope(line, program_id, year, index)
            quantity = to_amount(line.forecasted_quantity, "requested_quantity")
            price = to_amount(line.unit_price, "updated_unit_price")
            prepared.append((line, quantity, price, self.totals.engine.compute_line(quantity, price)))

        now = self.clock.now()
        request = ProcurementRequestModel(
            program_id=program_id,
            year=year,
            facility_id=facility_id,
            funding_source_id=funding_source_id,
            current_stage=RequestStage.DRAFT.value,
            status=RequestStage.DRAFT.value,
            psm_percent=self._snapshot_psm_percent(program_id, year),
            notes=notes or "",
            owner_id=actor_id,
            created_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        for position, (line, quantity, price, line_subtotal) in enumerate(prepared):
            request.items.append(
                RequestItemModel(
                    position=position,
                    forecast_line_ref=line.line_ref,
                    item_name=line.product,
                    unit=line.unit,
                    requested_quantity=quantity,
                    updated_unit_price=price,
                    line_subtotal=line_subtotal,
                    forecast_quantity=quantity,
                    forecast_unit_price=price,
                    override=False,
                )
            )
        self.session.add(request)
        self.session.flush()

        totals = self.totals.recompute(request.id)

        logger.info(
            "draft_created",
            extra={
                "request_id": str(request.id),
                "program_id": str(program_id),
                "year": year,
                "facility_id": str(facility_id),
                "item_count": len(prepared),
                "unlinked_items": sum(1 for line, *_ in prepared if line.line_ref is None),
                "psm_percent": request.psm_percent,
                "total": totals.total,
            },
        )
        return request.to_dto()

    # ------------------------------------------------------------------
    # Item overrides
    # ------------------------------------------------------------------

    def add_override(
        self,
        item_id: UUID,
        new_qty: Any = None,
        new_price: Any = None,
        reason: str | None = None,
        *,
        actor_id: UUID,
    ) -> ProcurementRequest:
        """
        Change an item's quantity and/or price and recompute all totals.

        A reason is mandatory while the resulting values differ from the
        forecast.  Every change to an overridden item needs a fresh reason;
        only a call that leaves the values as they are keeps the old one.
        """
        item = self.session.get(RequestItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        request = item.request
        # Another session may have moved the request since it was loaded
        self.session.refresh(request, ["current_stage", "status"])

        if not is_editable(request.current_stage):
            raise ItemsFrozenError(str(request.id), request.current_stage)

        self.scope_resolver.authorize(actor_id, request, Action.EDIT)

        quantity = (
            to_amount(new_qty, "requested_quantity") if new_qty is not None
            else item.requested_quantity
        )
        price = (
            to_amount(new_price, "updated_unit_price") if new_price is not None
            else item.updated_unit_price
        )

        differs = quantity != item.forecast_quantity or price != item.forecast_unit_price
        changed = quantity != item.requested_quantity or price != item.updated_unit_price
        if differs:
            effective_reason = (reason or "").strip()
            if not effective_reason and item.override and not changed:
                effective_reason = item.override_reason
            if not effective_reason:
                raise ValidationError(
                    "An override reason is required when changing forecast values",
                    field="override_reason",
                    value=reason,
                )
        else:
            effective_reason = None

        # rejects a line that would not fit the stored scale
        self.totals.engine.compute_line(quantity, price)

        item.requested_quantity = quantity
        item.updated_unit_price = price
        item.override = differs
        item.override_reason = effective_reason
        request.updated_by_id = actor_id

        totals = self.totals.recompute(request.id)

        logger.info(
            "item_overridden" if differs else "item_override_cleared",
            extra={
                "request_id": str(request.id),
                "item_id": str(item_id),
                "requested_quantity": quantity,
                "updated_unit_price": price,
                "total": totals.total,
            },
        )
        return request.to_dto()
