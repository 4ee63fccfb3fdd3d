"""Repository protocol definitions for domain layer."""

from .contribution import ContributionRepository
from .goal import GoalRepository
from .rule import RuleRepository

__all__ = [
    "ContributionRepository",
    "GoalRepository",
    "RuleRepository",
]
