"""
procurement_kernel.services.stage_machine -- Request lifecycle transitions.

Responsibility:
    Move a request between stages along the fixed transition table, after
    checking the actor's permission, using an optimistic compare-and-swap on
    ``current_stage`` so that two reviewers acting on the same request
    cannot both succeed.

Architecture position:
    Kernel > Services.  Consults ScopeResolver and appends to AuditTrail in
    the same transaction.  Flush-only.

Invariants enforced:
    - Only edges in ``TRANSITIONS`` are accepted.
    - The UPDATE is conditional on the stage the caller read; zero rows
      updated means another actor moved the request first.
    - Every accepted transition appends exactly one StageTransition whose
      from_stage is the stage replaced by the compare-and-swap.
    - status mirrors current_stage.

Failure modes:
    - RequestNotFoundError for an unknown request.
    - IllegalTransitionError for a pair absent from the table.
    - PermissionDeniedError with the specific reason.
    - ValidationError when a return has no comment.
    - StaleStageError when the compare-and-swap loses (recoverable).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update

from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.dtos import StageTransition
from procurement_kernel.domain.stages import (
    COMMENT_REQUIRED_ACTIONS,
    DECISION_LABELS,
    RequestStage,
    action_for,
)
from procurement_kernel.exceptions import (
    IllegalTransitionError,
    RequestNotFoundError,
    StaleStageError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.request import ProcurementRequestModel
from procurement_kernel.services.audit_trail import AuditTrail
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.scope_resolver import ScopeResolver

logger = get_logger("services.stage_machine")


def _stage_value(stage: RequestStage | str) -> str:
    return stage.value if isinstance(stage, RequestStage) else str(stage)


class StageMachine(BaseService):
    def __init__(
        self,
        session,
        scope_resolver: ScopeResolver,
        audit_trail: AuditTrail,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.scope_resolver = scope_resolver
        self.audit_trail = audit_trail

    def _current_stage(self, request_id: UUID) -> str | None:
        return self.session.execute(
            select(ProcurementRequestModel.current_stage).where(
                ProcurementRequestModel.id == request_id
            )
        ).scalar_one_or_none()

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
        """
        Move request_id to to_stage.

        ``expected_stage`` is the stage the caller last saw (for example on
        a review screen).  When omitted, the stage is read now.  Either way
        the UPDATE only applies if the stored stage still matches.
        """
        request = self.session.get(ProcurementRequestModel, request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))

        from_stage = (
            _stage_value(expected_stage) if expected_stage is not None
            else self._current_stage(request_id)
        )
        target = _stage_value(to_stage)

        action = action_for(from_stage, target)
        if action is None:
            logger.warning(
                "illegal_transition_rejected",
                extra={
                    "request_id": str(request_id),
                    "from_stage": from_stage,
                    "to_stage": target,
                },
            )
            raise IllegalTransitionError(str(request_id), from_stage, target)

        self.scope_resolver.authorize(actor_id, request, action)

        if action in COMMENT_REQUIRED_ACTIONS and not (comment or "").strip():
            raise ValidationError(
                f"A comment is required to {action.value} a request",
                field="comment",
                value=comment,
            )

        now = self.clock.now()
        result = self.session.execute(
            update(ProcurementRequestModel)
            .where(
                ProcurementRequestModel.id == request_id,
                ProcurementRequestModel.current_stage == from_stage,
            )
            .values(
                current_stage=target,
                status=target,
                updated_at=now,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            actual = self._current_stage(request_id)
            logger.warning(
                "stale_stage_detected",
                extra={
                    "request_id": str(request_id),
                    "expected_stage": from_stage,
                    "actual_stage": actual,
                    "to_stage": target,
                },
            )
            raise StaleStageError(str(request_id), from_stage, actual)

        self.session.expire(request, ["current_stage", "status", "updated_at", "updated_by_id"])

        recorded = self.audit_trail.append(
            request_id=request_id,
            from_stage=from_stage,
            to_stage=target,
            actor_id=actor_id,
            decision=(decision or "").strip() or DECISION_LABELS[action],
            comment=comment,
            attachment_ref=attachment_ref,
        )

        logger.info(
            "stage_transitioned",
            extra={
                "request_id": str(request_id),
                "from_stage": from_stage,
                "to_stage": target,
                "action": action.value,
                "sequence": recorded.sequence,
            },
        )
        return recorded
