"""Tests for goal lifecycle and progress queries."""

from __future__ import annotations

import pytest
from conftest import DAY0, OTHER_USER_ID, USER_ID, day

from smartsave.errors import GoalNotFound, InconsistentRuleConfig, InvalidAmount
from smartsave.models import GoalPriority, GoalStatus
from smartsave.services import goals as goal_service
from smartsave.services.rules import FixedAmount


def contribute_after_read(monkeypatch, ledger, amount):
    """Land a contribution between the service's read and its write."""

    original = goal_service.get_goal

    def _get_goal(repo, goal_id, *, user_id):
        stored = original(repo, goal_id, user_id=user_id)
        ledger.add_contribution(goal_id, user_id, amount, at=day(2))
        return stored

    monkeypatch.setattr(goal_service, "get_goal", _get_goal)


class TestCreateGoal:
    """Goal creation and validation."""

    def test_new_goal_defaults(self, goal_factory):
        goal = goal_factory(name="  House  ", target_amount=5000.0)

        assert goal.id is not None
        assert goal.name == "House"
        assert goal.current_amount == 0.0
        assert goal.status == GoalStatus.ACTIVE
        assert goal.achieved_milestones == []
        assert goal.next_milestone == "25%"
        assert goal.contribution_streak == 0
        assert goal.risk_level is None
        assert goal.sustainability_score is None

    @pytest.mark.parametrize("target", [0.0, -100.0])
    def test_target_must_be_positive(self, goal_factory, target):
        with pytest.raises(InvalidAmount):
            goal_factory(target_amount=target)

    def test_deadline_must_follow_start(self, goal_factory):
        with pytest.raises(ValueError):
            goal_factory(start_date=day(10), deadline=day(5))

    def test_name_is_required(self, goal_factory):
        with pytest.raises(ValueError):
            goal_factory(name=" ")

    def test_auto_policy_amount_and_percentage_conflict(self, goal_factory):
        with pytest.raises(InconsistentRuleConfig):
            goal_factory(auto_contribute=True, auto_contribute_amount=10.0, auto_contribute_percentage=5.0)

    def test_auto_policy_needs_a_value(self, goal_factory):
        with pytest.raises(InconsistentRuleConfig):
            goal_factory(auto_contribute=True)


class TestGoalQueries:
    """Fetching and listing goals."""

    def test_goals_are_scoped_to_user(self, goal_repo, goal_factory):
        goal = goal_factory(user_id=USER_ID)
        goal_factory(user_id=OTHER_USER_ID)

        assert [g.id for g in goal_service.list_goals(goal_repo, user_id=USER_ID)] == [goal.id]
        with pytest.raises(GoalNotFound):
            goal_service.get_goal(goal_repo, goal.id, user_id=OTHER_USER_ID)

    def test_list_by_status_orders_by_priority(self, goal_repo, goal_factory):
        low = goal_factory(name="Low", priority=GoalPriority.LOW)
        high = goal_factory(name="High", priority=GoalPriority.HIGH)
        paused = goal_factory(name="Paused")
        goal_service.pause_goal(goal_repo, paused.id, user_id=USER_ID)

        active = goal_service.list_goals_by_status(goal_repo, GoalStatus.ACTIVE, user_id=USER_ID)

        assert [g.id for g in active] == [high.id, low.id]


class TestUpdateGoal:
    """Editing goals."""

    def test_edit_keeps_engine_owned_fields(self, goal_repo, goal_factory, ledger):
        goal = goal_factory(target_amount=1000.0)
        ledger.add_contribution(goal.id, USER_ID, 300.0, at=day(1))

        # A stale copy must not roll back the running total.
        goal.name = "Renamed"
        goal.deadline = day(200)
        updated = goal_service.update_goal(goal_repo, goal, user_id=USER_ID)

        assert updated.name == "Renamed"
        assert updated.deadline == day(200)
        assert updated.current_amount == pytest.approx(300.0)
        assert updated.achieved_milestones == ["25%"]

    def test_contribution_during_edit_is_kept(self, goal_repo, goal_factory, ledger, monkeypatch):
        goal = goal_factory(target_amount=1000.0)
        contribute_after_read(monkeypatch, ledger, 300.0)

        goal.name = "Renamed"
        updated = goal_service.update_goal(
            goal_repo, goal, user_id=USER_ID, goal_locks=ledger.goal_locks
        )

        assert updated.name == "Renamed"
        assert updated.current_amount == pytest.approx(300.0)
        assert updated.contribution_count == 1
        assert updated.achieved_milestones == ["25%"]
        assert ledger.verify_goal_total(goal.id)

    def test_target_cannot_change(self, goal_repo, goal_factory):
        goal = goal_factory(target_amount=1000.0)
        goal.target_amount = 2000.0

        with pytest.raises(ValueError):
            goal_service.update_goal(goal_repo, goal, user_id=USER_ID)


class TestGoalStatus:
    """Pausing, resuming and completion."""

    def test_pause_and_resume(self, goal_repo, goal_factory):
        goal = goal_factory()

        assert goal_service.pause_goal(goal_repo, goal.id, user_id=USER_ID).status == GoalStatus.PAUSED
        assert goal_service.resume_goal(goal_repo, goal.id, user_id=USER_ID).status == GoalStatus.ACTIVE

    def test_completion_is_not_a_manual_status(self, goal_repo, goal_factory):
        goal = goal_factory()

        with pytest.raises(ValueError):
            goal_service.set_goal_status(goal_repo, goal.id, GoalStatus.COMPLETED, user_id=USER_ID)

    def test_completed_goal_cannot_be_paused(self, goal_repo, goal_factory, ledger):
        goal = goal_factory(target_amount=50.0)
        ledger.add_contribution(goal.id, USER_ID, 50.0, at=day(1))

        with pytest.raises(ValueError):
            goal_service.pause_goal(goal_repo, goal.id, user_id=USER_ID)

    def test_goal_completed_during_pause_stays_completed(
        self, goal_repo, goal_factory, ledger, monkeypatch
    ):
        goal = goal_factory(target_amount=100.0)
        contribute_after_read(monkeypatch, ledger, 100.0)

        with pytest.raises(ValueError):
            goal_service.pause_goal(goal_repo, goal.id, user_id=USER_ID)

        stored = goal_repo.get_by_id(goal.id)
        assert stored.status == GoalStatus.COMPLETED
        assert stored.current_amount == pytest.approx(100.0)
        assert "100%" in stored.achieved_milestones
        assert ledger.verify_goal_total(goal.id)

    def test_contribution_during_pause_is_kept(self, goal_repo, goal_factory, ledger, monkeypatch):
        goal = goal_factory(target_amount=1000.0)
        contribute_after_read(monkeypatch, ledger, 100.0)

        paused = goal_service.pause_goal(
            goal_repo, goal.id, user_id=USER_ID, goal_locks=ledger.goal_locks
        )

        assert paused.status == GoalStatus.PAUSED
        assert paused.current_amount == pytest.approx(100.0)
        assert ledger.verify_goal_total(goal.id)

    def test_unknown_goal_status_change(self, goal_repo):
        with pytest.raises(GoalNotFound):
            goal_repo.set_status(999, GoalStatus.PAUSED, user_id=USER_ID)


class TestDeleteGoal:
    """Deleting goals."""

    def test_delete_removes_contributions_and_rules(
        self, goal_repo, rule_repo, contribution_repo, goal_factory, rule_factory, ledger
    ):
        goal = goal_factory()
        rule = rule_factory(goal, FixedAmount(amount=5.0))
        saved = ledger.add_contribution(goal.id, USER_ID, 10.0)

        goal_service.delete_goal(goal_repo, goal.id, user_id=USER_ID)

        assert goal_repo.get_by_id(goal.id) is None
        assert rule_repo.get_by_id(rule.id) is None
        assert contribution_repo.get_by_id(saved.id) is None

    def test_delete_other_users_goal(self, goal_repo, goal_factory):
        goal = goal_factory(user_id=USER_ID)

        with pytest.raises(GoalNotFound):
            goal_service.delete_goal(goal_repo, goal.id, user_id=OTHER_USER_ID)


class TestProgress:
    """Time-versus-amount progress."""

    def test_halfway_in_time_with_forty_percent_saved(self, goal_repo, contribution_repo, goal_factory, ledger):
        goal = goal_factory(target_amount=1000.0, start_date=DAY0, deadline=day(100))
        ledger.add_contribution(goal.id, USER_ID, 400.0, at=day(10))

        progress = goal_service.progress_for_goal(
            goal_repo, contribution_repo, goal.id, user_id=USER_ID, now=day(50)
        )

        assert progress.time_progress == pytest.approx(0.5)
        assert progress.amount_progress == pytest.approx(0.4)
        assert progress.is_on_track is False
        assert progress.remaining_amount == pytest.approx(600.0)
        assert progress.days_remaining == 50

    def test_progress_is_clamped(self, goal_repo, contribution_repo, goal_factory, ledger):
        goal = goal_factory(target_amount=100.0, start_date=DAY0, deadline=day(10))
        ledger.add_contribution(goal.id, USER_ID, 150.0, at=day(1))

        after = goal_service.progress_for_goal(
            goal_repo, contribution_repo, goal.id, user_id=USER_ID, now=day(30)
        )
        before = goal_service.progress_for_goal(
            goal_repo, contribution_repo, goal.id, user_id=USER_ID, now=day(-5)
        )

        assert after.time_progress == 1.0
        assert after.amount_progress == 1.0
        assert after.days_remaining == 0
        assert after.is_on_track is True
        assert before.time_progress == 0.0

    def test_behind_schedule_and_overdue(self, goal_repo, goal_factory, ledger):
        behind = goal_factory(name="Behind", target_amount=1000.0, deadline=day(100))
        ahead = goal_factory(name="Ahead", target_amount=1000.0, deadline=day(100))
        late = goal_factory(name="Late", target_amount=1000.0, deadline=day(20))
        ledger.add_contribution(behind.id, USER_ID, 100.0, at=day(1))
        ledger.add_contribution(ahead.id, USER_ID, 600.0, at=day(1))

        lagging = goal_service.behind_schedule_goals(goal_repo, user_id=USER_ID, now=day(50))
        overdue = goal_service.overdue_goals(goal_repo, user_id=USER_ID, now=day(50))

        assert {g.id for g in lagging} == {behind.id, late.id}
        assert [g.id for g in overdue] == [late.id]
