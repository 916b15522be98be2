"""
Module: procurement_kernel.models.transition
Responsibility: ORM persistence for stage transitions, the append-only audit
    trail of a request's lifecycle.
Architecture position: Kernel > Models.  May import from db/ and exceptions.

Invariants enforced:
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError
      (listeners below, always active).
    - UNIQUE(request_id, sequence): one accepted transition per position in
      a request's history.
    - Hash chain: each row's hash covers its fields plus prev_hash
      (computed by AuditTrail, verified by AuditTrail.verify).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, UUIDString
from procurement_kernel.db.types import PayloadHash, StageName
from procurement_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from procurement_kernel.domain.dtos import StageTransition


class StageTransitionModel(Base):
    """Persistent stage transition. Append-only."""

    __tablename__ = "request_transitions"

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_request_transitions_sequence"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("procurement_requests.id"), nullable=False, index=True,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    from_stage: Mapped[StageName] = mapped_column(nullable=False)
    to_stage: Mapped[StageName] = mapped_column(nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(100), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    prev_hash: Mapped[PayloadHash | None] = mapped_column(nullable=True)
    hash: Mapped[PayloadHash] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StageTransition {self.request_id} #{self.sequence} "
            f"{self.from_stage}->{self.to_stage}>"
        )

    def to_dto(self) -> StageTransition:
        from procurement_kernel.domain.dtos import StageTransition

        return StageTransition(
            id=self.id,
            request_id=self.request_id,
            sequence=self.sequence,
            from_stage=self.from_stage,
            to_stage=self.to_stage,
            actor_id=self.actor_id,
            decision=self.decision,
            comment=self.comment,
            attachment_ref=self.attachment_ref,
            created_at=self.created_at,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )


@event.listens_for(StageTransitionModel, "before_update")
def prevent_transition_update(mapper, connection, target):
    """Prevent updates to stage transition records."""
    raise ImmutabilityViolationError(
        entity_type="StageTransition",
        entity_id=str(target.id),
        reason="Stage transitions are append-only -- cannot modify",
    )


@event.listens_for(StageTransitionModel, "before_delete")
def prevent_transition_delete(mapper, connection, target):
    """Prevent deletion of stage transition records."""
    raise ImmutabilityViolationError(
        entity_type="StageTransition",
        entity_id=str(target.id),
        reason="Stage transitions are append-only -- cannot delete",
    )
