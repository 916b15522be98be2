"""
procurement_kernel.services.totals_service -- Persisted request totals.

Responsibility:
    The persistence side of TotalsEngine: recompute and store line and
    request totals after an item change, preview tentative totals for an
    unsaved edit, and repair requests whose stored totals drifted from
    their items.

Architecture position:
    Kernel > Services.  Flush-only; the facade owns the commit, so an item
    edit and the request totals it changes land in one transaction.

Invariants enforced:
    - After ``recompute``: every item's line_subtotal = quantity x price and
      request_subtotal / psm_amount / request_total follow from them with
      the request's snapshot psm_percent.
    - ``preview`` never writes.  The value re-read after flush is the only
      committed truth.

Failure modes:
    - RequestNotFoundError / ItemNotFoundError for unknown ids.
    - ValidationError from TotalsEngine for bad operands.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from procurement_engines.totals import TotalsEngine, to_amount
from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.dtos import ReconciliationResult, RequestTotals
from procurement_kernel.domain.stages import is_editable
from procurement_kernel.exceptions import ItemNotFoundError, RequestNotFoundError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.request import ProcurementRequestModel, RequestItemModel
from procurement_kernel.services.base import BaseService

logger = get_logger("services.totals")


def _stored_totals(request: ProcurementRequestModel) -> RequestTotals:
    return RequestTotals(
        subtotal=request.request_subtotal,
        psm_amount=request.psm_amount,
        total=request.request_total,
    )


class TotalsService(BaseService):
    def __init__(self, session, clock: Clock | None = None, engine: TotalsEngine | None = None):
        super().__init__(session, clock)
        self.engine = engine or TotalsEngine()

    def _load_request(self, request_id: UUID) -> ProcurementRequestModel:
        request = self.session.get(ProcurementRequestModel, request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def _store(self, request: ProcurementRequestModel, totals: RequestTotals) -> None:
        request.request_subtotal = totals.subtotal
        request.psm_amount = totals.psm_amount
        request.request_total = totals.total
        request.updated_at = self.clock.now()

    def recompute(self, request_id: UUID) -> RequestTotals:
        """
        Recompute every line and the request totals, persist, and return
        the totals as re-read after flush.
        """
        request = self._load_request(request_id)
        for item in request.items:
            line = self.engine.compute_line(item.requested_quantity, item.updated_unit_price)
            if item.line_subtotal != line:
                item.line_subtotal = line

        totals = self.engine.compute_request_totals(request.items, request.psm_percent)
        self._store(request, totals)
        self.session.flush()
        self.session.refresh(request)

        confirmed = _stored_totals(request)
        logger.info(
            "totals_recomputed",
            extra={
                "request_id": str(request_id),
                "subtotal": confirmed.subtotal,
                "psm_amount": confirmed.psm_amount,
                "total": confirmed.total,
            },
        )
        return confirmed

    def preview(
        self,
        request_id: UUID,
        item_id: UUID,
        new_qty: Any = None,
        new_price: Any = None,
    ) -> RequestTotals:
        """
        Tentative totals if item_id took the given values.  Nothing is
        written; callers must treat the result as unconfirmed.
        """
        request = self._load_request(request_id)
        operands: list[tuple[Decimal, Decimal]] = []
        found = False
        for item in request.items:
            qty, price = item.requested_quantity, item.updated_unit_price
            if item.id == item_id:
                found = True
                if new_qty is not None:
                    qty = to_amount(new_qty, "requested_quantity")
                if new_price is not None:
                    price = to_amount(new_price, "updated_unit_price")
            operands.append((qty, price))
        if not found:
            raise ItemNotFoundError(str(item_id))
        return self.engine.compute_request_totals(operands, request.psm_percent)

    def is_consistent(self, request: ProcurementRequestModel) -> bool:
        for item in request.items:
            if item.line_subtotal != self.engine.compute_line(
                item.requested_quantity, item.updated_unit_price
            ):
                return False
        expected = self.engine.compute_request_totals(request.items, request.psm_percent)
        return expected == _stored_totals(request)

    def reconcile(self, request_id: UUID) -> ReconciliationResult:
        """
        Repair stored totals left inconsistent by a partial write.

        Item line subtotals are derived values, so drifted lines are
        rewritten even when the request's items are otherwise frozen.
        """
        request = self._load_request(request_id)
        before = _stored_totals(request)

        repaired = 0
        for item in request.items:
            line = self.engine.compute_line(item.requested_quantity, item.updated_unit_price)
            if item.line_subtotal == line:
                continue
            repaired += 1
            if is_editable(request.current_stage):
                item.line_subtotal = line
            else:
                self.session.execute(
                    update(RequestItemModel)
                    .where(RequestItemModel.id == item.id)
                    .values(line_subtotal=line)
                    .execution_options(synchronize_session=False)
                )
                self.session.expire(item, ["line_subtotal"])

        after = self.engine.compute_request_totals(request.items, request.psm_percent)
        if after != before:
            self._store(request, after)
        self.session.flush()

        result = ReconciliationResult(
            request_id=request_id,
            before=before,
            after=after,
            items_repaired=repaired,
        )
        if result.was_consistent:
            logger.debug("totals_consistent", extra={"request_id": str(request_id)})
        else:
            logger.warning(
                "totals_reconciled",
                extra={
                    "request_id": str(request_id),
                    "items_repaired": repaired,
                    "subtotal_before": before.subtotal,
                    "subtotal_after": after.subtotal,
                    "total_before": before.total,
                    "total_after": after.total,
                },
            )
        return result

    def find_inconsistent(self) -> list[UUID]:
        """Ids of requests whose stored totals disagree with their items."""
        requests = self.session.execute(
            select(ProcurementRequestModel).order_by(ProcurementRequestModel.created_at)
        ).scalars()
        return [r.id for r in requests if not self.is_consistent(r)]

    def reconcile_all(self) -> list[ReconciliationResult]:
        """Reconcile every inconsistent request; return what was repaired."""
        return [self.reconcile(request_id) for request_id in self.find_inconsistent()]
