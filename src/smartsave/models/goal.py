"""Savings goal entity and its enumerations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import ClassVar, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class GoalPriority(IntEnum):
    HIGH = 1
    MEDIUM = 2
    LOW = 3


class RiskLevel(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


# Columns a caller may change after creation; everything else is engine-owned.
EDITABLE_GOAL_FIELDS = (
    "name",
    "description",
    "deadline",
    "priority",
    "category_id",
    "auto_contribute",
    "auto_contribute_amount",
    "auto_contribute_percentage",
)


class SavingsGoal(SQLModel, table=True):
    """A target amount a user intends to accumulate by a deadline."""

    __tablename__: ClassVar[str] = "savings_goal"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80, index=True)
    description: Optional[str] = Field(default=None, max_length=255)
    target_amount: float = Field(nullable=False)
    current_amount: float = Field(default=0.0, nullable=False)
    start_date: datetime = Field(default_factory=datetime.now, nullable=False)
    deadline: datetime = Field(nullable=False, index=True)
    priority: GoalPriority = Field(default=GoalPriority.MEDIUM, nullable=False)
    category_id: Optional[int] = Field(default=None, index=True)
    status: GoalStatus = Field(default=GoalStatus.ACTIVE, nullable=False, index=True)

    # Progress tracking, maintained by the ledger and the rule scheduler
    contribution_count: int = Field(default=0, nullable=False)
    last_contribution_at: Optional[datetime] = Field(default=None)
    contribution_streak: int = Field(default=0, nullable=False)
    last_streak_at: Optional[datetime] = Field(default=None)
    achieved_milestones: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    next_milestone: Optional[str] = Field(default="25%", max_length=8)

    # Goal-level auto-contribution: at most one of amount / percentage is set
    auto_contribute: bool = Field(default=False, nullable=False)
    auto_contribute_amount: Optional[float] = Field(default=None)
    auto_contribute_percentage: Optional[float] = Field(default=None)

    # Cached analytics, written only by the analytics pass
    sustainability_score: Optional[int] = Field(default=None, ge=0, le=100)
    risk_level: Optional[RiskLevel] = Field(default=None)
    projected_completion_date: Optional[datetime] = Field(default=None)
    progress_rate: Optional[float] = Field(default=None)
    suggested_monthly_amount: Optional[float] = Field(default=None)
    next_suggested_contribution: Optional[float] = Field(default=None)
    average_monthly_contribution: Optional[float] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.now, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.now, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE
