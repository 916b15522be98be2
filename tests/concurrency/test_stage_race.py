"""
Concurrent approvals of the same request.

Two reviewers looking at the same submitted request both press "approve".
Exactly one transition may be recorded; the other reviewer gets
StaleStageError and the request history stays a clean chain.

The interleaved test is deterministic on any backend.  The threaded test
uses real parallel connections; on SQLite the second writer waits on the
busy timeout, on PostgreSQL on the row lock.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from procurement_kernel.exceptions import StaleStageError

pytestmark = pytest.mark.concurrency


class TestInterleavedApprovals:
    def test_second_approver_gets_stale_stage(self, submitted, make_service, users):
        reviewer_a = make_service()
        reviewer_b = make_service()

        # both load the review screen while the request is submitted
        seen_a = reviewer_a.get_request(submitted.id, actor_id=users.woreda_1_user)
        seen_b = reviewer_b.get_request(submitted.id, actor_id=users.zone_1_user)
        assert seen_a.current_stage == seen_b.current_stage == "submitted"

        reviewer_a.transition(
            submitted.id, "approved",
            actor_id=users.woreda_1_user, expected_stage=seen_a.current_stage,
        )
        with pytest.raises(StaleStageError) as exc_info:
            reviewer_b.transition(
                submitted.id, "approved",
                actor_id=users.zone_1_user, expected_stage=seen_b.current_stage,
            )
        assert exc_info.value.actual_stage == "approved"

        timeline = reviewer_b.timeline(submitted.id, actor_id=users.zone_1_user)
        assert [(t.to_stage, t.actor_id) for t in timeline] == [
            ("submitted", users.officer),
            ("approved", users.woreda_1_user),
        ]
        assert reviewer_b.verify_audit(submitted.id) == 2

    def test_approve_and_return_race(self, submitted, make_service, users):
        approver = make_service()
        returner = make_service()

        approver.transition(
            submitted.id, "approved", actor_id=users.woreda_1_user, expected_stage="submitted",
        )
        with pytest.raises(StaleStageError):
            returner.transition(
                submitted.id, "returned",
                actor_id=users.regional_1_user, comment="incomplete", expected_stage="submitted",
            )
        assert approver.get_request(submitted.id, actor_id=users.officer).current_stage == "approved"

    def test_loser_can_refetch_and_continue(self, submitted, make_service, users):
        reviewer_a = make_service()
        reviewer_b = make_service()
        reviewer_a.transition(
            submitted.id, "approved", actor_id=users.woreda_1_user, expected_stage="submitted",
        )
        with pytest.raises(StaleStageError):
            reviewer_b.transition(
                submitted.id, "approved", actor_id=users.zone_1_user, expected_stage="submitted",
            )

        current = reviewer_b.get_request(submitted.id, actor_id=users.zone_1_user)
        transition = reviewer_b.transition(
            submitted.id, "returned",
            actor_id=users.zone_1_user, comment="quantities too high",
            expected_stage=current.current_stage,
        )
        assert transition.from_stage == "approved"
        assert transition.sequence == 3


class TestParallelApprovals:
    @pytest.mark.parametrize("attempt", range(3))
    def test_exactly_one_winner(self, submitted, make_service, users, attempt):
        reviewers = [
            (make_service(), users.woreda_1_user),
            (make_service(), users.zone_1_user),
        ]
        barrier = threading.Barrier(len(reviewers))

        def approve(service, actor_id):
            barrier.wait(timeout=10)
            try:
                service.transition(
                    submitted.id, "approved", actor_id=actor_id, expected_stage="submitted",
                )
                return "ok"
            except StaleStageError:
                return "stale"

        with ThreadPoolExecutor(max_workers=len(reviewers)) as pool:
            futures = [pool.submit(approve, svc, actor) for svc, actor in reviewers]
            outcomes = sorted(f.result(timeout=60) for f in futures)

        assert outcomes == ["ok", "stale"]

        checker = make_service()
        timeline = checker.timeline(submitted.id, actor_id=users.admin)
        assert [t.to_stage for t in timeline] == ["submitted", "approved"]
        assert checker.verify_audit(submitted.id) == 2
