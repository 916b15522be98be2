"""
procurement_kernel.services.audit_trail -- Append-only, hash-chained stage history.

Responsibility:
    Record every accepted stage transition of a request, rebuild its
    timeline, and verify that the stored history has not been altered.

Architecture position:
    Kernel > Services.  Called by StageMachine inside the same transaction
    as the compare-and-swap that accepted the transition.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listeners on
      StageTransitionModel).  Corrections are new transitions.
    - Sequence numbers are 1..n per request with no gaps
      (UNIQUE(request_id, sequence)).
    - hash = sha256(payload hash | prev_hash); the first row chains from
      GENESIS.

Failure modes:
    - AuditChainBrokenError from ``verify`` when a stored hash, prev_hash or
      sequence no longer matches the recomputed chain.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from procurement_kernel.domain.dtos import StageTransition
from procurement_kernel.exceptions import AuditChainBrokenError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.transition import StageTransitionModel
from procurement_kernel.services.base import BaseService
from procurement_kernel.utils.hashing import GENESIS, hash_transition

logger = get_logger("services.audit_trail")


def _transition_payload(
    *,
    request_id: UUID,
    sequence: int,
    from_stage: str,
    to_stage: str,
    actor_id: UUID,
    decision: str,
    comment: str | None,
    attachment_ref: str | None,
    created_at: datetime,
) -> dict:
    return {
        "request_id": request_id,
        "sequence": sequence,
        "from_stage": from_stage,
        "to_stage": to_stage,
        "actor_id": actor_id,
        "decision": decision,
        "comment": comment,
        "attachment_ref": attachment_ref,
        "created_at": created_at,
    }


def _expected_hash(row: StageTransitionModel, prev_hash: str | None) -> str:
    payload = _transition_payload(
        request_id=row.request_id,
        sequence=row.sequence,
        from_stage=row.from_stage,
        to_stage=row.to_stage,
        actor_id=row.actor_id,
        decision=row.decision,
        comment=row.comment,
        attachment_ref=row.attachment_ref,
        created_at=row.created_at,
    )
    return hash_transition(payload, prev_hash)


class AuditTrail(BaseService):
    """Ledger of stage transitions, one chain per request."""

    def _rows(self, request_id: UUID) -> list[StageTransitionModel]:
        return list(
            self.session.execute(
                select(StageTransitionModel)
                .where(StageTransitionModel.request_id == request_id)
                .order_by(StageTransitionModel.sequence)
            ).scalars()
        )

    def _last(self, request_id: UUID) -> StageTransitionModel | None:
        return self.session.execute(
            select(StageTransitionModel)
            .where(StageTransitionModel.request_id == request_id)
            .order_by(StageTransitionModel.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        request_id: UUID,
        from_stage: str,
        to_stage: str,
        actor_id: UUID,
        decision: str,
        comment: str | None = None,
        attachment_ref: str | None = None,
    ) -> StageTransition:
        """
        Append one transition to the request's chain and flush.

        The caller must already have won the stage compare-and-swap; the
        unique sequence constraint rejects a second writer regardless.
        """
        last = self._last(request_id)
        sequence = last.sequence + 1 if last is not None else 1
        prev_hash = last.hash if last is not None else None
        created_at = self.clock.now()

        payload = _transition_payload(
            request_id=request_id,
            sequence=sequence,
            from_stage=from_stage,
            to_stage=to_stage,
            actor_id=actor_id,
            decision=decision,
            comment=comment,
            attachment_ref=attachment_ref,
            created_at=created_at,
        )
        row = StageTransitionModel(
            request_id=request_id,
            sequence=sequence,
            from_stage=from_stage,
            to_stage=to_stage,
            actor_id=actor_id,
            decision=decision,
            comment=comment,
            attachment_ref=attachment_ref,
            created_at=created_at,
            prev_hash=prev_hash,
            hash=hash_transition(payload, prev_hash),
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "transition_recorded",
            extra={
                "request_id": str(request_id),
                "sequence": sequence,
                "from_stage": from_stage,
                "to_stage": to_stage,
                "hash": row.hash,
            },
        )
        return row.to_dto()

    def timeline(self, request_id: UUID) -> list[StageTransition]:
        """Transitions of the request, oldest first."""
        return [row.to_dto() for row in self._rows(request_id)]

    def verify(self, request_id: UUID) -> int:
        """
        Recompute the chain and compare it with what is stored.

        Returns:
            Number of transitions verified.

        Raises:
            AuditChainBrokenError: at the first row that does not match.
        """
        prev_hash: str | None = None
        rows = self._rows(request_id)
        for expected_sequence, row in enumerate(rows, start=1):
            if row.sequence != expected_sequence:
                self._broken(request_id, expected_sequence, str(expected_sequence), str(row.sequence))
            if row.prev_hash != prev_hash:
                self._broken(request_id, row.sequence, prev_hash or GENESIS, row.prev_hash or GENESIS)
            expected = _expected_hash(row, prev_hash)
            if row.hash != expected:
                self._broken(request_id, row.sequence, expected, row.hash)
            prev_hash = row.hash

        logger.info(
            "audit_chain_verified",
            extra={"request_id": str(request_id), "transitions": len(rows)},
        )
        return len(rows)

    def _broken(self, request_id: UUID, sequence: int, expected: str, actual: str) -> None:
        logger.error(
            "audit_chain_broken",
            extra={"request_id": str(request_id), "sequence": sequence},
        )
        raise AuditChainBrokenError(str(request_id), sequence, expected, actual)
