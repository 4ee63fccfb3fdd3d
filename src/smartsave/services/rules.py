"""Rule catalog: policy variants, amount computation and rule management.

A rule's behaviour is carried by a small frozen policy object per rule type.
The ``SavingsRule`` table keeps the flat columns; ``policy_for`` turns a stored
record back into its policy and ``apply_policy`` writes a policy onto a record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ..domain.repositories import GoalRepository, RuleRepository
from ..errors import GoalNotFound, InconsistentRuleConfig, InvalidAmount, RuleNotFound
from ..logging_config import get_logger
from ..models.rule import TIME_BASED_FREQUENCIES, RuleFrequency, RuleType, SavingsRule

logger = get_logger(__name__)


def _positive(value: Optional[float], field: str, *, required: bool = True) -> Optional[float]:
    if value is None:
        if required:
            raise InconsistentRuleConfig(f"{field} is required")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InconsistentRuleConfig(f"{field} must be a number, got {value!r}") from exc
    if not math.isfinite(number) or number <= 0:
        raise InvalidAmount(f"{field} must be positive, got {value!r}")
    return number


def _apply_cap(amount: float, cap: Optional[float]) -> float:
    return min(amount, cap) if cap is not None else amount


@dataclass(frozen=True, slots=True)
class PercentageOfIncome:
    """Save a share of every qualifying income."""

    percentage: float
    minimum_income_threshold: Optional[float] = None
    maximum_contribution: Optional[float] = None

    rule_type = RuleType.PERCENTAGE_OF_INCOME

    def __post_init__(self) -> None:
        pct = _positive(self.percentage, "percentage")
        if pct is not None and pct > 100:
            raise InvalidAmount(f"percentage must be at most 100, got {self.percentage!r}")
        if self.minimum_income_threshold is not None:
            threshold = float(self.minimum_income_threshold)
            if not math.isfinite(threshold) or threshold < 0:
                raise InvalidAmount("minimum_income_threshold must be zero or positive")
        _positive(self.maximum_contribution, "maximum_contribution", required=False)

    def amount_for(self, income: Optional[float]) -> float:
        if income is None or income <= 0:
            return 0.0
        if self.minimum_income_threshold is not None and income < self.minimum_income_threshold:
            return 0.0
        return _apply_cap(income * self.percentage / 100.0, self.maximum_contribution)


@dataclass(frozen=True, slots=True)
class FixedAmount:
    """Save the same amount each time the rule fires."""

    amount: float
    maximum_contribution: Optional[float] = None

    rule_type = RuleType.FIXED_AMOUNT

    def __post_init__(self) -> None:
        _positive(self.amount, "amount")
        _positive(self.maximum_contribution, "maximum_contribution", required=False)

    def amount_for(self, income: Optional[float]) -> float:
        return _apply_cap(self.amount, self.maximum_contribution)


@dataclass(frozen=True, slots=True)
class RoundUp:
    """Round expenses up and save the change. No amount algorithm yet; never fires."""

    maximum_contribution: Optional[float] = None

    rule_type = RuleType.ROUND_UP

    def __post_init__(self) -> None:
        _positive(self.maximum_contribution, "maximum_contribution", required=False)

    def amount_for(self, income: Optional[float]) -> float:
        return 0.0


@dataclass(frozen=True, slots=True)
class SmartSave:
    """Spending-pattern based amount. No amount algorithm yet; never fires."""

    maximum_contribution: Optional[float] = None

    rule_type = RuleType.SMART_SAVE

    def __post_init__(self) -> None:
        _positive(self.maximum_contribution, "maximum_contribution", required=False)

    def amount_for(self, income: Optional[float]) -> float:
        return 0.0


RulePolicy = Union[PercentageOfIncome, FixedAmount, RoundUp, SmartSave]


def policy_for(rule: SavingsRule) -> RulePolicy:
    """Build the policy for a stored rule.

    Raises:
        InconsistentRuleConfig: the field the rule type needs is missing
        InvalidAmount: a stored amount, percentage or cap is not positive
    """

    rule_type = RuleType(rule.rule_type)
    if rule_type is RuleType.PERCENTAGE_OF_INCOME:
        if rule.percentage is None:
            raise InconsistentRuleConfig(f"Rule {rule.id}: percentage rule without a percentage")
        return PercentageOfIncome(
            percentage=rule.percentage,
            minimum_income_threshold=rule.minimum_income_threshold,
            maximum_contribution=rule.maximum_contribution,
        )
    if rule_type is RuleType.FIXED_AMOUNT:
        if rule.amount is None:
            raise InconsistentRuleConfig(f"Rule {rule.id}: fixed-amount rule without an amount")
        return FixedAmount(amount=rule.amount, maximum_contribution=rule.maximum_contribution)
    if rule_type is RuleType.ROUND_UP:
        return RoundUp(maximum_contribution=rule.maximum_contribution)
    return SmartSave(maximum_contribution=rule.maximum_contribution)


def apply_policy(rule: SavingsRule, policy: RulePolicy) -> SavingsRule:
    """Write a policy's parameters onto the flat storage columns."""

    rule.rule_type = policy.rule_type
    rule.amount = getattr(policy, "amount", None)
    rule.percentage = getattr(policy, "percentage", None)
    rule.minimum_income_threshold = getattr(policy, "minimum_income_threshold", None)
    rule.maximum_contribution = policy.maximum_contribution
    return rule


def contribution_amount(policy: RulePolicy, *, income: Optional[float] = None) -> float:
    """Amount the policy produces for this trigger; 0.0 means do not fire."""

    amount = policy.amount_for(income)
    return amount if amount > 0 else 0.0


def _require_description(description: str) -> str:
    text = (description or "").strip()
    if not text:
        raise ValueError("Rule description must not be empty")
    return text


def _check_frequency(policy: RulePolicy, frequency: RuleFrequency) -> None:
    # Only fixed amounts fire on the calendar, and percentages need an income.
    if frequency in TIME_BASED_FREQUENCIES and not isinstance(policy, FixedAmount):
        logger.warning(
            "Rule type is not executed on a calendar schedule",
            extra={"rule_type": policy.rule_type.value, "frequency": frequency.value},
        )


def create_rule(
    rule_repo: RuleRepository,
    goal_repo: GoalRepository,
    *,
    user_id: int,
    goal_id: int,
    policy: RulePolicy,
    frequency: RuleFrequency,
    description: str,
    enabled: bool = True,
) -> SavingsRule:
    """Attach a new rule to one of the user's goals."""

    if goal_repo.get_by_id(goal_id, user_id=user_id) is None:
        raise GoalNotFound(goal_id)
    _check_frequency(policy, frequency)
    rule = SavingsRule(
        goal_id=goal_id,
        rule_type=policy.rule_type,
        frequency=frequency,
        is_enabled=enabled,
        description=_require_description(description),
    )
    apply_policy(rule, policy)
    created = rule_repo.create(rule)
    logger.info(
        "Rule created",
        extra={"rule_id": created.id, "goal_id": goal_id, "rule_type": policy.rule_type.value},
    )
    return created


def get_rule(
    rule_repo: RuleRepository, goal_repo: GoalRepository, rule_id: int, *, user_id: int
) -> SavingsRule:
    """Fetch a rule that belongs to one of the user's goals."""

    rule = rule_repo.get_by_id(rule_id)
    if rule is None or goal_repo.get_by_id(rule.goal_id, user_id=user_id) is None:
        raise RuleNotFound(rule_id)
    return rule


def update_rule(
    rule_repo: RuleRepository,
    goal_repo: GoalRepository,
    rule_id: int,
    *,
    user_id: int,
    policy: Optional[RulePolicy] = None,
    frequency: Optional[RuleFrequency] = None,
    description: Optional[str] = None,
) -> SavingsRule:
    """Edit a rule's policy, cadence or description.

    Changing the cadence clears ``next_scheduled`` so the rule is due on the
    next tick under its new frequency. Execution stamps are otherwise kept.
    """

    rule = get_rule(rule_repo, goal_repo, rule_id, user_id=user_id)
    if policy is not None:
        apply_policy(rule, policy)
    if frequency is not None and frequency != rule.frequency:
        rule.frequency = frequency
        rule.next_scheduled = None
    if description is not None:
        rule.description = _require_description(description)
    _check_frequency(policy_for(rule), RuleFrequency(rule.frequency))
    return rule_repo.update(rule)


def toggle_rule(
    rule_repo: RuleRepository,
    goal_repo: GoalRepository,
    rule_id: int,
    enabled: bool,
    *,
    user_id: int,
) -> SavingsRule:
    get_rule(rule_repo, goal_repo, rule_id, user_id=user_id)
    return rule_repo.set_enabled(rule_id, enabled)


def delete_rule(
    rule_repo: RuleRepository, goal_repo: GoalRepository, rule_id: int, *, user_id: int
) -> None:
    get_rule(rule_repo, goal_repo, rule_id, user_id=user_id)
    rule_repo.delete(rule_id)
    logger.info("Rule deleted", extra={"rule_id": rule_id})


def rules_for_goal(
    rule_repo: RuleRepository,
    goal_repo: GoalRepository,
    goal_id: int,
    *,
    user_id: int,
    enabled_only: bool = False,
) -> list[SavingsRule]:
    if goal_repo.get_by_id(goal_id, user_id=user_id) is None:
        raise GoalNotFound(goal_id)
    return rule_repo.list_for_goal(goal_id, enabled_only=enabled_only)


def describe_schedule(rule: SavingsRule, *, now: Optional[datetime] = None) -> str:
    """Short human-readable status of when a rule runs next."""

    frequency = RuleFrequency(rule.frequency)
    if not rule.is_enabled:
        return "disabled"
    if frequency is RuleFrequency.EVERY_INCOME:
        return "on every income"
    if frequency is RuleFrequency.ON_EXPENSE:
        return "on every expense"
    if rule.next_scheduled is None or rule.next_scheduled <= (now or datetime.now()):
        return "due now"
    return f"next run {rule.next_scheduled:%Y-%m-%d %H:%M}"


__all__ = [
    "FixedAmount",
    "PercentageOfIncome",
    "RoundUp",
    "RulePolicy",
    "SmartSave",
    "apply_policy",
    "contribution_amount",
    "create_rule",
    "delete_rule",
    "describe_schedule",
    "get_rule",
    "policy_for",
    "rules_for_goal",
    "toggle_rule",
    "update_rule",
]
