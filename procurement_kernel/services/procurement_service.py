"""
Procurement Request Service (``procurement_kernel.services.procurement_service``).

Responsibility
--------------
The public entry point of the kernel.  Composes ScopeResolver, TotalsService,
RequestBuilder, StageMachine, AuditTrail, RequestSelector and the pure
BudgetComparator, and owns the transaction boundary of every operation.

Architecture position
---------------------
**Kernel > Services (facade)** -- the only class that commits.  Everything it
delegates to is flush-only.

Invariants enforced
-------------------
* Each public method is one unit of work: ``commit`` on success,
  ``rollback`` on any failure, so an item edit and the request totals it
  changes are never committed separately.
* Every read model is gated by the ``view`` permission and the actor's
  scope.

Failure modes
-------------
* Kernel errors (validation, permission, stage)  -> rolled back, re-raised
  unchanged.
* ``SQLAlchemyError``  -> rolled back, re-raised as ``PersistenceError`` with
  the original error as ``__cause__``.

Usage::

    service = ProcurementService(session, clock=clock)
    draft = service.create_draft(
        program_id, 2025, None, lines,
        facility_id=facility_id, actor_id=officer_id,
    )
    service.transition(draft.id, "submitted", actor_id=officer_id)
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procurement_engines.budget import BudgetComparator
from procurement_engines.totals import TotalsEngine
from procurement_kernel.config import KernelSettings
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.dtos import (
    BudgetComparison,
    ForecastLine,
    ProcurementRequest,
    ReconciliationResult,
    RequestTotals,
    StageTransition,
)
from procurement_kernel.domain.scope import Action, granted_actions
from procurement_kernel.domain.stages import RequestStage
from procurement_kernel.exceptions import ItemNotFoundError, PersistenceError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.models.request import RequestItemModel
from procurement_kernel.selectors.request_selector import RequestSelector
from procurement_kernel.services.audit_trail import AuditTrail
from procurement_kernel.services.request_builder import RequestBuilder
from procurement_kernel.services.scope_resolver import ScopeResolver
from procurement_kernel.services.stage_machine import StageMachine
from procurement_kernel.services.totals_service import TotalsService

logger = get_logger("services.procurement")


class ProcurementService:
    """
    Facade over the procurement kernel.

    Contract
    --------
    * Every method returns frozen DTOs read back after flush.
    * Clock is injectable for deterministic tests.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
    ):
        settings = settings or KernelSettings()
        self._session = session
        self._clock = clock or SystemClock()
        self.scope = ScopeResolver(session, cache_enabled=settings.scope_cache_enabled)
        self.totals = TotalsService(
            session, self._clock, TotalsEngine(money_places=settings.money_places),
        )
        self.builder = RequestBuilder(session, self.scope, self.totals, self._clock)
        self.audit = AuditTrail(session, self._clock)
        self.stages = StageMachine(session, self.scope, self.audit, self._clock)
        self.selector = RequestSelector(session)
        self.comparator = BudgetComparator()

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str, **context: Any) -> Iterator[None]:
        with LogContext.bind(**context):
            try:
                yield
                self._session.commit()
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error(
                    "unit_of_work_failed",
                    extra={"operation": operation, "error": type(exc).__name__},
                )
                raise PersistenceError(operation, str(exc)) from exc
            except Exception:
                self._session.rollback()
                logger.info("unit_of_work_rolled_back", extra={"operation": operation})
                raise
            logger.debug("unit_of_work_committed", extra={"operation": operation})

    def _visible(self, request_id: UUID, actor_id: UUID) -> ProcurementRequest:
        request = self.selector.get(request_id)
        self.scope.authorize(actor_id, request, Action.VIEW)
        return request

    # ------------------------------------------------------------------
    # Writes
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
        submit: bool = False,
    ) -> ProcurementRequest:
        """
        Create a draft from the selected lines.

        With ``submit=True`` the draft is also submitted in the same unit of
        work, recording the draft -> submitted transition.
        """
        with self._unit_of_work("create_draft", actor_id=actor_id, facility_id=facility_id):
            draft = self.builder.create_draft(
                program_id,
                year,
                funding_source_id,
                selected_lines,
                facility_id=facility_id,
                actor_id=actor_id,
                notes=notes,
            )
            if submit:
                self.stages.transition(
                    draft.id,
                    RequestStage.SUBMITTED,
                    actor_id=actor_id,
                    expected_stage=RequestStage.DRAFT,
                )
        return self.selector.get(draft.id)

    def add_override(
        self,
        item_id: UUID,
        new_qty: Any = None,
        new_price: Any = None,
        reason: str | None = None,
        *,
        actor_id: UUID,
    ) -> ProcurementRequest:
        with self._unit_of_work("add_override", actor_id=actor_id):
            request = self.builder.add_override(
                item_id, new_qty, new_price, reason, actor_id=actor_id,
            )
        return self.selector.get(request.id)

    def transition(
        self,
        request_id: UUID,
        to_stage: RequestStage | str,
        *,
        actor_id: UUID,
        decision: str | None = None,
        comment: str | None = None,
        attachment_ref: str | None = None,
        expected_stage: RequestStage | str | None = None,
    ) -> StageTransition:
        with self._unit_of_work("transition", actor_id=actor_id, request_id=request_id):
            return self.stages.transition(
                request_id,
                to_stage,
                actor_id=actor_id,
                decision=decision,
                comment=comment,
                attachment_ref=attachment_ref,
                expected_stage=expected_stage,
            )

    def recompute(self, request_id: UUID, *, actor_id: UUID) -> RequestTotals:
        """Recompute and persist the request's totals from its items."""
        with self._unit_of_work("recompute", actor_id=actor_id, request_id=request_id):
            request = self.selector.get(request_id)
            self.scope.authorize(actor_id, request, Action.EDIT)
            return self.totals.recompute(request_id)

    def reconcile(self, request_id: UUID) -> ReconciliationResult:
        """Repair totals drift on one request (maintenance, no actor)."""
        with self._unit_of_work("reconcile", request_id=request_id):
            return self.totals.reconcile(request_id)

    def reconcile_all(self) -> list[ReconciliationResult]:
        with self._unit_of_work("reconcile_all"):
            return self.totals.reconcile_all()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def preview_override(
        self,
        item_id: UUID,
        new_qty: Any = None,
        new_price: Any = None,
        *,
        actor_id: UUID,
    ) -> RequestTotals:
        """Tentative totals for an unsaved item edit; nothing is written."""
        with self._unit_of_work("preview_override", actor_id=actor_id):
            item = self._session.get(RequestItemModel, item_id)
            if item is None:
                raise ItemNotFoundError(str(item_id))
            self._visible(item.request_id, actor_id)
            return self.totals.preview(item.request_id, item_id, new_qty, new_price)

    def get_request(self, request_id: UUID, *, actor_id: UUID) -> ProcurementRequest:
        with self._unit_of_work("get_request", actor_id=actor_id, request_id=request_id):
            return self._visible(request_id, actor_id)

    def list_requests(
        self,
        *,
        actor_id: UUID,
        stage: RequestStage | str | None = None,
        program_id: UUID | None = None,
        year: int | None = None,
    ) -> list[ProcurementRequest]:
        """Requests the actor may view.  Empty for actors without view rights."""
        with self._unit_of_work("list_requests", actor_id=actor_id):
            role = self.scope.role_for(actor_id)
            if role is None or Action.VIEW not in granted_actions(role.admin_level, role.role):
                return []
            return self.selector.list_in_scope(
                self.scope.resolve(role),
                stage=stage,
                program_id=program_id,
                year=year,
            )

    def timeline(self, request_id: UUID, *, actor_id: UUID) -> list[StageTransition]:
        with self._unit_of_work("timeline", actor_id=actor_id, request_id=request_id):
            self._visible(request_id, actor_id)
            return self.audit.timeline(request_id)

    def verify_audit(self, request_id: UUID) -> int:
        """Verify the request's transition hash chain."""
        with self._unit_of_work("verify_audit", request_id=request_id):
            return self.audit.verify(request_id)

    def compare_budget(self, request_id: UUID, *, actor_id: UUID) -> BudgetComparison:
        """Committed request total against live program budget and allocations."""
        with self._unit_of_work("compare_budget", actor_id=actor_id, request_id=request_id):
            request = self._visible(request_id, actor_id)
            return self.comparator.compare(
                request,
                self.selector.program_settings(request.program_id, request.year),
                self.selector.allocations(request.program_id, request.year),
            )
