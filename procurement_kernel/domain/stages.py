"""
Request lifecycle (``procurement_kernel.domain.stages``).

The stage set is fixed.  ``TRANSITIONS`` is the only source of legal edges;
every pair absent from it is rejected by the stage machine.

    draft -> submitted -> approved -> in_procurement -> completed
                 |            |                      -> cancelled
                 +-> returned <+
                        |
                        +-> draft
"""

from __future__ import annotations

from enum import Enum

from procurement_kernel.domain.scope import Action


class RequestStage(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    RETURNED = "returned"
    IN_PROCUREMENT = "in_procurement"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[tuple[RequestStage, RequestStage], Action] = {
    (RequestStage.DRAFT, RequestStage.SUBMITTED): Action.SUBMIT,
    (RequestStage.SUBMITTED, RequestStage.APPROVED): Action.APPROVE,
    (RequestStage.SUBMITTED, RequestStage.RETURNED): Action.RETURN,
    (RequestStage.APPROVED, RequestStage.IN_PROCUREMENT): Action.START_PROCUREMENT,
    (RequestStage.APPROVED, RequestStage.RETURNED): Action.RETURN,
    (RequestStage.RETURNED, RequestStage.DRAFT): Action.REVISE,
    (RequestStage.IN_PROCUREMENT, RequestStage.COMPLETED): Action.COMPLETE,
    (RequestStage.IN_PROCUREMENT, RequestStage.CANCELLED): Action.CANCEL,
}

EDITABLE_STAGES: frozenset[RequestStage] = frozenset({
    RequestStage.DRAFT,
    RequestStage.RETURNED,
})

TERMINAL_STAGES: frozenset[RequestStage] = frozenset({
    RequestStage.COMPLETED,
    RequestStage.CANCELLED,
})

# Default decision text recorded on a transition
DECISION_LABELS: dict[Action, str] = {
    Action.SUBMIT: "Submit",
    Action.APPROVE: "Approve",
    Action.RETURN: "Return",
    Action.REVISE: "Revise",
    Action.START_PROCUREMENT: "Start Procurement",
    Action.COMPLETE: "Complete",
    Action.CANCEL: "Cancel",
}

COMMENT_REQUIRED_ACTIONS: frozenset[Action] = frozenset({Action.RETURN})


def action_for(from_stage: RequestStage | str, to_stage: RequestStage | str) -> Action | None:
    """The action that moves from_stage to to_stage, or None if illegal."""
    try:
        key = (RequestStage(from_stage), RequestStage(to_stage))
    except ValueError:
        return None
    return TRANSITIONS.get(key)


def successors(stage: RequestStage | str) -> frozenset[RequestStage]:
    stage = RequestStage(stage)
    return frozenset(to for (frm, to) in TRANSITIONS if frm == stage)


def is_editable(stage: RequestStage | str) -> bool:
    try:
        return RequestStage(stage) in EDITABLE_STAGES
    except ValueError:
        return False
