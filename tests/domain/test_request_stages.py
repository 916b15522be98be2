"""
Tests for the request lifecycle table.

Every (from, to) pair outside TRANSITIONS must be illegal, and the edges
that exist must map to the action the permission matrix checks.
"""

from itertools import product

import pytest

from procurement_kernel.domain.scope import Action
from procurement_kernel.domain.stages import (
    COMMENT_REQUIRED_ACTIONS,
    DECISION_LABELS,
    EDITABLE_STAGES,
    TERMINAL_STAGES,
    TRANSITIONS,
    RequestStage,
    action_for,
    is_editable,
    successors,
)

LEGAL = {
    ("draft", "submitted"): Action.SUBMIT,
    ("submitted", "approved"): Action.APPROVE,
    ("submitted", "returned"): Action.RETURN,
    ("approved", "in_procurement"): Action.START_PROCUREMENT,
    ("approved", "returned"): Action.RETURN,
    ("returned", "draft"): Action.REVISE,
    ("in_procurement", "completed"): Action.COMPLETE,
    ("in_procurement", "cancelled"): Action.CANCEL,
}

ILLEGAL = [
    (f.value, t.value)
    for f, t in product(RequestStage, RequestStage)
    if (f.value, t.value) not in LEGAL
]


class TestTransitionTable:
    def test_exact_edge_set(self):
        assert {(f.value, t.value): a for (f, t), a in TRANSITIONS.items()} == LEGAL

    @pytest.mark.parametrize("from_stage,to_stage", sorted(LEGAL))
    def test_legal_edge_action(self, from_stage, to_stage):
        assert action_for(from_stage, to_stage) is LEGAL[(from_stage, to_stage)]

    @pytest.mark.parametrize("from_stage,to_stage", ILLEGAL)
    def test_illegal_pair(self, from_stage, to_stage):
        assert action_for(from_stage, to_stage) is None

    def test_unknown_stage_is_illegal(self):
        assert action_for("draft", "archived") is None
        assert action_for("pending", "submitted") is None

    def test_no_self_loops(self):
        for stage in RequestStage:
            assert action_for(stage, stage) is None

    def test_terminal_stages_have_no_successors(self):
        for stage in TERMINAL_STAGES:
            assert successors(stage) == frozenset()

    def test_successors_of_approved(self):
        assert successors("approved") == {RequestStage.IN_PROCUREMENT, RequestStage.RETURNED}

    def test_cancel_only_from_in_procurement(self):
        sources = {f for (f, t) in TRANSITIONS if t is RequestStage.CANCELLED}
        assert sources == {RequestStage.IN_PROCUREMENT}


class TestEditability:
    def test_editable_set(self):
        assert EDITABLE_STAGES == {RequestStage.DRAFT, RequestStage.RETURNED}

    @pytest.mark.parametrize("stage", ["submitted", "approved", "in_procurement", "completed", "cancelled"])
    def test_frozen_stages(self, stage):
        assert not is_editable(stage)

    def test_unknown_stage_not_editable(self):
        assert not is_editable("archived")


class TestDecisions:
    def test_every_transition_action_has_label(self):
        assert set(TRANSITIONS.values()) <= set(DECISION_LABELS)

    def test_only_return_needs_comment(self):
        assert COMMENT_REQUIRED_ACTIONS == {Action.RETURN}
