"""Tests for the request read models."""

from uuid import uuid4

import pytest

from procurement_kernel.domain.scope import AdminLevel, Scope
from procurement_kernel.exceptions import RequestNotFoundError
from procurement_kernel.selectors.request_selector import RequestSelector
from tests.conftest import YEAR


@pytest.fixture
def selector(session):
    return RequestSelector(session)


@pytest.fixture
def three_drafts(service, org, reference, users, forecast_lines, deterministic_clock):
    created = []
    for _ in range(3):
        deterministic_clock.advance(60)
        created.append(service.create_draft(
            reference.program_id, YEAR, None, forecast_lines,
            facility_id=org.facility_1, actor_id=users.officer,
        ))
    return created


class TestGet:
    def test_returns_items_in_position_order(self, selector, draft):
        request = selector.get(draft.id)
        assert [i.forecast_line_ref for i in request.items] == ["fc-A", "fc-B", "fc-C"]

    def test_unknown(self, selector):
        with pytest.raises(RequestNotFoundError):
            selector.get(uuid4())


class TestListInScope:
    def test_newest_first(self, selector, three_drafts):
        listed = selector.list_in_scope(Scope.national())
        assert [r.id for r in listed] == [r.id for r in reversed(three_drafts)]

    def test_empty_scope_lists_nothing(self, selector, three_drafts):
        assert selector.list_in_scope(Scope.empty()) == []

    def test_explicit_scope(self, selector, draft, org):
        inside = Scope(AdminLevel.WOREDA, org.woreda_1, frozenset({org.facility_1}))
        outside = Scope(AdminLevel.WOREDA, org.woreda_2, frozenset({org.facility_2}))
        assert [r.id for r in selector.list_in_scope(inside)] == [draft.id]
        assert selector.list_in_scope(outside) == []

    def test_stage_filter_accepts_enum_or_string(self, selector, draft):
        from procurement_kernel.domain.stages import RequestStage

        assert len(selector.list_in_scope(Scope.national(), stage=RequestStage.DRAFT)) == 1
        assert selector.list_in_scope(Scope.national(), stage="approved") == []


class TestReferenceData:
    def test_program_settings(self, selector, reference):
        settings = selector.program_settings(reference.program_id, YEAR)
        assert settings.psm_percent == 10
        assert selector.program_settings(reference.program_id, YEAR + 5) is None

    def test_allocations_for_year(self, selector, reference):
        amounts = sorted(a.allocated_amount for a in selector.allocations(reference.program_id, YEAR))
        assert amounts == [300, 500]
