"""Tests for rule policies, amount computation and rule management."""

from __future__ import annotations

import pytest
from conftest import DAY0, OTHER_USER_ID, USER_ID, day

from smartsave.errors import GoalNotFound, InconsistentRuleConfig, InvalidAmount, RuleNotFound
from smartsave.models import RuleFrequency, RuleType, SavingsRule
from smartsave.services import rules as rule_service
from smartsave.services.rules import (
    FixedAmount,
    PercentageOfIncome,
    RoundUp,
    SmartSave,
    contribution_amount,
    policy_for,
)


class TestContributionAmount:
    """Amount each policy produces for a trigger."""

    def test_percentage_of_income(self):
        policy = PercentageOfIncome(percentage=10.0)

        assert contribution_amount(policy, income=2500.0) == pytest.approx(250.0)

    def test_income_below_threshold_yields_nothing(self):
        policy = PercentageOfIncome(percentage=10.0, minimum_income_threshold=600.0)

        assert contribution_amount(policy, income=500.0) == 0.0
        assert contribution_amount(policy, income=600.0) == pytest.approx(60.0)

    def test_percentage_without_income_yields_nothing(self):
        assert contribution_amount(PercentageOfIncome(percentage=10.0)) == 0.0

    def test_fixed_amount_is_capped(self):
        policy = FixedAmount(amount=200.0, maximum_contribution=150.0)

        assert contribution_amount(policy) == 150.0

    @pytest.mark.parametrize("income", [10.0, 999.0, 1500.0, 10_000.0, 1e9])
    def test_cap_is_never_exceeded(self, income):
        policy = PercentageOfIncome(percentage=25.0, maximum_contribution=300.0)

        assert contribution_amount(policy, income=income) <= 300.0

    def test_round_up_and_smart_save_never_fire(self):
        assert contribution_amount(RoundUp(), income=100.0) == 0.0
        assert contribution_amount(SmartSave(maximum_contribution=50.0), income=100.0) == 0.0


class TestPolicyValidation:
    """Construction-time checks on policy parameters."""

    def test_fixed_amount_must_be_positive(self):
        with pytest.raises(InvalidAmount):
            FixedAmount(amount=0.0)

    def test_percentage_range(self):
        with pytest.raises(InvalidAmount):
            PercentageOfIncome(percentage=150.0)
        with pytest.raises(InvalidAmount):
            PercentageOfIncome(percentage=-1.0)
        assert PercentageOfIncome(percentage=100.0).percentage == 100.0

    def test_cap_must_be_positive(self):
        with pytest.raises(InvalidAmount):
            FixedAmount(amount=10.0, maximum_contribution=0.0)

    def test_stored_percentage_rule_without_percentage(self):
        rule = SavingsRule(
            goal_id=1,
            rule_type=RuleType.PERCENTAGE_OF_INCOME,
            frequency=RuleFrequency.EVERY_INCOME,
            description="broken",
        )

        with pytest.raises(InconsistentRuleConfig):
            policy_for(rule)

    def test_stored_fixed_rule_without_amount(self):
        rule = SavingsRule(
            goal_id=1,
            rule_type=RuleType.FIXED_AMOUNT,
            frequency=RuleFrequency.DAILY,
            description="broken",
        )

        with pytest.raises(InconsistentRuleConfig):
            policy_for(rule)

    def test_policy_round_trips_through_columns(self):
        policy = PercentageOfIncome(
            percentage=12.5, minimum_income_threshold=100.0, maximum_contribution=80.0
        )
        rule = SavingsRule(
            goal_id=1,
            rule_type=RuleType.FIXED_AMOUNT,
            frequency=RuleFrequency.EVERY_INCOME,
            description="x",
            amount=99.0,
        )

        rule_service.apply_policy(rule, policy)

        assert rule.rule_type == RuleType.PERCENTAGE_OF_INCOME
        assert rule.amount is None
        assert policy_for(rule) == policy


class TestRuleManagement:
    """Creating and editing stored rules."""

    def test_create_rule_persists_policy(self, rule_factory, rule_repo, goal_factory):
        goal = goal_factory()

        rule = rule_factory(goal, FixedAmount(amount=50.0), RuleFrequency.WEEKLY, "Weekly fifty")

        stored = rule_repo.get_by_id(rule.id)
        assert stored.rule_type == RuleType.FIXED_AMOUNT
        assert stored.amount == 50.0
        assert stored.frequency == RuleFrequency.WEEKLY
        assert stored.is_enabled is True
        assert stored.last_executed is None
        assert stored.next_scheduled is None

    def test_description_is_required(self, rule_factory, goal_factory):
        goal = goal_factory()

        with pytest.raises(ValueError):
            rule_factory(goal, FixedAmount(amount=5.0), description="   ")

    def test_rule_on_other_users_goal(self, rule_repo, goal_repo, goal_factory):
        goal = goal_factory(user_id=USER_ID)

        with pytest.raises(GoalNotFound):
            rule_service.create_rule(
                rule_repo,
                goal_repo,
                user_id=OTHER_USER_ID,
                goal_id=goal.id,
                policy=FixedAmount(amount=5.0),
                frequency=RuleFrequency.DAILY,
                description="not mine",
            )

    def test_changing_frequency_resets_schedule(self, rule_factory, rule_repo, goal_repo, goal_factory):
        goal = goal_factory()
        rule = rule_factory(goal, FixedAmount(amount=5.0), RuleFrequency.DAILY)
        rule_repo.set_next_scheduled(rule.id, day(10))

        updated = rule_service.update_rule(
            rule_repo, goal_repo, rule.id, user_id=USER_ID, frequency=RuleFrequency.MONTHLY
        )

        assert updated.frequency == RuleFrequency.MONTHLY
        assert updated.next_scheduled is None

    def test_update_policy_keeps_schedule(self, rule_factory, rule_repo, goal_repo, goal_factory):
        goal = goal_factory()
        rule = rule_factory(goal, FixedAmount(amount=5.0), RuleFrequency.DAILY)
        rule_repo.set_next_scheduled(rule.id, day(10))

        updated = rule_service.update_rule(
            rule_repo, goal_repo, rule.id, user_id=USER_ID, policy=FixedAmount(amount=9.0)
        )

        assert updated.amount == 9.0
        assert updated.next_scheduled == day(10)

    def test_toggle_and_delete(self, rule_factory, rule_repo, goal_repo, goal_factory):
        goal = goal_factory()
        rule = rule_factory(goal, FixedAmount(amount=5.0))

        disabled = rule_service.toggle_rule(rule_repo, goal_repo, rule.id, False, user_id=USER_ID)
        assert disabled.is_enabled is False
        assert rule_service.rules_for_goal(
            rule_repo, goal_repo, goal.id, user_id=USER_ID, enabled_only=True
        ) == []

        rule_service.delete_rule(rule_repo, goal_repo, rule.id, user_id=USER_ID)
        with pytest.raises(RuleNotFound):
            rule_service.get_rule(rule_repo, goal_repo, rule.id, user_id=USER_ID)

    def test_describe_schedule(self, rule_factory, rule_repo, goal_factory):
        goal = goal_factory()
        income_rule = rule_factory(goal, PercentageOfIncome(percentage=5.0))
        daily = rule_factory(goal, FixedAmount(amount=5.0), RuleFrequency.DAILY)

        assert rule_service.describe_schedule(income_rule) == "on every income"
        assert rule_service.describe_schedule(daily, now=DAY0) == "due now"

        rule_repo.set_next_scheduled(daily.id, day(2))
        scheduled = rule_repo.get_by_id(daily.id)
        assert rule_service.describe_schedule(scheduled, now=DAY0).startswith("next run 2024-01-03")
