"""Exception taxonomy raised by the savings engine."""

from __future__ import annotations


class SmartSaveError(Exception):
    """Base class for all engine errors."""


class InvalidAmount(SmartSaveError, ValueError):
    """A contribution or rule amount is non-positive or otherwise unusable."""


class GoalNotFound(SmartSaveError, LookupError):
    """The referenced goal id does not exist for the user."""

    def __init__(self, goal_id: int | None):
        super().__init__(f"Savings goal {goal_id} not found")
        self.goal_id = goal_id


class RuleNotFound(SmartSaveError, LookupError):
    """The referenced rule id does not exist."""

    def __init__(self, rule_id: int | None):
        super().__init__(f"Savings rule {rule_id} not found")
        self.rule_id = rule_id


class ContributionNotFound(SmartSaveError, LookupError):
    """The referenced contribution does not exist for the user."""

    def __init__(self, contribution_id: int | None):
        super().__init__(f"Contribution {contribution_id} not found")
        self.contribution_id = contribution_id


class InconsistentRuleConfig(SmartSaveError, ValueError):
    """A rule record is missing the field its type requires."""


class PersistenceFailure(SmartSaveError):
    """The storage layer failed; the work unit was rolled back."""


__all__ = [
    "SmartSaveError",
    "InvalidAmount",
    "GoalNotFound",
    "RuleNotFound",
    "ContributionNotFound",
    "InconsistentRuleConfig",
    "PersistenceFailure",
]
