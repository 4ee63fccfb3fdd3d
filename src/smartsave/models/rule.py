"""Storage form of user-defined savings rules."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class RuleType(str, Enum):
    PERCENTAGE_OF_INCOME = "percentage_of_income"
    FIXED_AMOUNT = "fixed_amount"
    ROUND_UP = "round_up"
    SMART_SAVE = "smart_save"


class RuleFrequency(str, Enum):
    EVERY_INCOME = "every_income"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ON_EXPENSE = "on_expense"


TIME_BASED_FREQUENCIES = (RuleFrequency.DAILY, RuleFrequency.WEEKLY, RuleFrequency.MONTHLY)


class SavingsRule(SQLModel, table=True):
    """A standing policy that generates contributions for one goal.

    The flat amount/percentage columns are only the persisted shape; engine
    code works with the policy objects built by ``services.rules.policy_for``.
    """

    __tablename__: ClassVar[str] = "savings_rule"

    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(
        foreign_key="savings_goal.id", nullable=False, index=True, ondelete="CASCADE"
    )
    rule_type: RuleType = Field(nullable=False)
    frequency: RuleFrequency = Field(nullable=False, index=True)
    amount: Optional[float] = Field(default=None)
    percentage: Optional[float] = Field(default=None)
    minimum_income_threshold: Optional[float] = Field(default=None)
    maximum_contribution: Optional[float] = Field(default=None)
    is_enabled: bool = Field(default=True, nullable=False, index=True)
    description: str = Field(nullable=False, max_length=255)
    last_executed: Optional[datetime] = Field(default=None)
    next_scheduled: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.now, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.now, nullable=False)
