"""Concrete repository implementations using SQLModel."""

from .contribution import SQLModelContributionRepository
from .goal import SQLModelGoalRepository
from .rule import SQLModelRuleRepository

__all__ = [
    "SQLModelContributionRepository",
    "SQLModelGoalRepository",
    "SQLModelRuleRepository",
]
