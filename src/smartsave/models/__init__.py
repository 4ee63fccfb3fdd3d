"""SQLModel table exports."""

from .contribution import Contribution, ContributionType
from .goal import GoalPriority, GoalStatus, RiskLevel, SavingsGoal
from .rule import TIME_BASED_FREQUENCIES, RuleFrequency, RuleType, SavingsRule

__all__ = [
    "Contribution",
    "ContributionType",
    "GoalPriority",
    "GoalStatus",
    "RiskLevel",
    "SavingsGoal",
    "RuleFrequency",
    "RuleType",
    "SavingsRule",
    "TIME_BASED_FREQUENCIES",
]
