"""
Module: procurement_kernel.selectors.request_selector
Responsibility: Read models for procurement requests: detail, scoped
    listing, and the reference data budget comparison needs.
Architecture position: Kernel > Selectors.  Read-only.

Scope filtering takes an already-resolved ``Scope``; resolving it (and
checking the view permission) is the caller's job, so this module never
imports from services/.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.dtos import (
    FundingAllocation,
    ProcurementRequest,
    ProgramSettings,
)
from procurement_kernel.domain.scope import Scope
from procurement_kernel.domain.stages import RequestStage
from procurement_kernel.exceptions import RequestNotFoundError
from procurement_kernel.models.reference import (
    FundingAllocationModel,
    ProgramSettingsModel,
)
from procurement_kernel.models.request import ProcurementRequestModel
from procurement_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector):
    def get(self, request_id: UUID) -> ProcurementRequest:
        """
        Request with its items, as currently stored.

        Raises:
            RequestNotFoundError: unknown id.
        """
        model = self.session.execute(
            select(ProcurementRequestModel)
            .where(ProcurementRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model.to_dto()

    def list_in_scope(
        self,
        scope: Scope,
        *,
        stage: RequestStage | str | None = None,
        program_id: UUID | None = None,
        year: int | None = None,
    ) -> list[ProcurementRequest]:
        """Requests raised by facilities inside scope, newest first."""
        if scope.is_empty:
            return []

        stmt = select(ProcurementRequestModel)
        if not scope.wildcard:
            stmt = stmt.where(ProcurementRequestModel.facility_id.in_(scope.facility_ids))
        if stage is not None:
            stage_value = stage.value if isinstance(stage, RequestStage) else stage
            stmt = stmt.where(ProcurementRequestModel.current_stage == stage_value)
        if program_id is not None:
            stmt = stmt.where(ProcurementRequestModel.program_id == program_id)
        if year is not None:
            stmt = stmt.where(ProcurementRequestModel.year == year)
        stmt = stmt.order_by(
            ProcurementRequestModel.created_at.desc(),
            ProcurementRequestModel.id,
        )
        return [model.to_dto() for model in self.session.execute(stmt).scalars()]

    def program_settings(self, program_id: UUID, year: int) -> ProgramSettings | None:
        model = self.session.execute(
            select(ProgramSettingsModel).where(
                ProgramSettingsModel.program_id == program_id,
                ProgramSettingsModel.year == year,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def allocations(self, program_id: UUID, year: int) -> list[FundingAllocation]:
        models = self.session.execute(
            select(FundingAllocationModel).where(
                FundingAllocationModel.program_id == program_id,
                FundingAllocationModel.year == year,
            )
        ).scalars()
        return [m.to_dto() for m in models]
