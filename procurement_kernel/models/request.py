"""
Module: procurement_kernel.models.request
Responsibility: ORM persistence for procurement requests and their items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - current_stage holds one of the fixed lifecycle stages; status always
      mirrors it (DB check constraint).
    - Quantities, prices and totals are non-negative (DB check constraints).
    - psm_percent is write-once (ORM listener in db/immutability.py).
    - Items are frozen outside draft/returned (ORM listener in
      db/immutability.py; services raise ItemsFrozenError first).
    - request_subtotal / psm_amount / request_total are derived from the
      items and rewritten only by TotalsService.

Failure modes:
    - IntegrityError on a stage outside the lifecycle or status drift.
    - ImmutabilityViolationError on a psm_percent change or a frozen item
      edit that bypasses the services.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, TrackedBase, UUIDString
from procurement_kernel.db.types import Money, Percent, Quantity, StageName

if TYPE_CHECKING:
    from procurement_kernel.domain.dtos import ProcurementRequest, RequestItem
    from procurement_kernel.models.transition import StageTransitionModel

_STAGE_VALUES = (
    "'draft', 'submitted', 'approved', 'returned', "
    "'in_procurement', 'completed', 'cancelled'"
)


class ProcurementRequestModel(TrackedBase):
    """
    A request for one program and year, raised by one facility.

    Contract:
        Stage changes happen only through the stage machine's
        compare-and-swap UPDATE, never by assigning current_stage on a
        loaded object.
    """

    __tablename__ = "procurement_requests"

    __table_args__ = (
        CheckConstraint(
            f"current_stage IN ({_STAGE_VALUES})",
            name="ck_procurement_requests_valid_stage",
        ),
        CheckConstraint(
            "status = current_stage",
            name="ck_procurement_requests_status_mirrors_stage",
        ),
        CheckConstraint(
            "request_subtotal >= 0 AND psm_amount >= 0 AND request_total >= 0",
            name="ck_procurement_requests_non_negative_totals",
        ),
        Index("ix_procurement_requests_facility_stage", "facility_id", "current_stage"),
        Index("ix_procurement_requests_program_year", "program_id", "year"),
    )

    program_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("programs.id"), nullable=False,
    )
    year: Mapped[int] = mapped_column(nullable=False)
    facility_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("facilities.id"), nullable=False,
    )
    # NULL means pooled funding
    funding_source_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("funding_sources.id"), nullable=True,
    )
    current_stage: Mapped[StageName] = mapped_column(nullable=False, default="draft")
    status: Mapped[StageName] = mapped_column(nullable=False, default="draft")
    psm_percent: Mapped[Percent] = mapped_column(nullable=False, default=Decimal("0"))
    psm_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    request_subtotal: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    request_total: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    items: Mapped[list[RequestItemModel]] = relationship(
        back_populates="request",
        order_by="RequestItemModel.position",
        lazy="selectin",
    )
    transitions: Mapped[list[StageTransitionModel]] = relationship(
        "StageTransitionModel",
        order_by="StageTransitionModel.sequence",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<ProcurementRequest {self.id} [{self.current_stage}]>"

    def to_dto(self) -> ProcurementRequest:
        """Convert ORM model to frozen domain DTO (items included)."""
        from procurement_kernel.domain.dtos import ProcurementRequest

        return ProcurementRequest(
            id=self.id,
            program_id=self.program_id,
            year=self.year,
            facility_id=self.facility_id,
            funding_source_id=self.funding_source_id,
            current_stage=self.current_stage,
            status=self.status,
            psm_percent=self.psm_percent,
            psm_amount=self.psm_amount,
            request_subtotal=self.request_subtotal,
            request_total=self.request_total,
            notes=self.notes,
            owner_id=self.owner_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            items=tuple(item.to_dto() for item in self.items),
        )


class RequestItemModel(Base):
    """
    One requested commodity.

    forecast_quantity / forecast_unit_price keep the values copied from the
    forecast line so an override can be detected and undone.  An item with
    no forecast_line_ref is unlinked and is never matched back to a forecast
    row by product name.
    """

    __tablename__ = "procurement_request_items"

    __table_args__ = (
        CheckConstraint(
            "requested_quantity >= 0 AND updated_unit_price >= 0 AND line_subtotal >= 0",
            name="ck_request_items_non_negative",
        ),
        Index("ix_request_items_request_position", "request_id", "position"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_requests.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    forecast_line_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_name: Mapped[str] = mapped_column(String(300), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    requested_quantity: Mapped[Quantity] = mapped_column(nullable=False)
    updated_unit_price: Mapped[Money] = mapped_column(nullable=False)
    line_subtotal: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    forecast_quantity: Mapped[Quantity] = mapped_column(nullable=False)
    forecast_unit_price: Mapped[Money] = mapped_column(nullable=False)
    override: Mapped[bool] = mapped_column(nullable=False, default=False)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    request: Mapped[ProcurementRequestModel] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<RequestItem {self.item_name} {self.requested_quantity}@{self.updated_unit_price}>"

    def to_dto(self) -> RequestItem:
        from procurement_kernel.domain.dtos import RequestItem

        return RequestItem(
            id=self.id,
            request_id=self.request_id,
            forecast_line_ref=self.forecast_line_ref,
            item_name=self.item_name,
            unit=self.unit,
            requested_quantity=self.requested_quantity,
            updated_unit_price=self.updated_unit_price,
            line_subtotal=self.line_subtotal,
            forecast_quantity=self.forecast_quantity,
            forecast_unit_price=self.forecast_unit_price,
            override=self.override,
            override_reason=self.override_reason,
        )
