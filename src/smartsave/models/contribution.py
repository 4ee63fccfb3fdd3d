"""Append-only contribution records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class ContributionType(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    MILESTONE_REWARD = "milestone_reward"


class Contribution(SQLModel, table=True):
    """A single recorded addition of money toward a goal.

    Rows are never updated. The goal's ``current_amount`` is the running total
    of its contributions and is adjusted in the same transaction as every
    insert or delete.
    """

    __tablename__: ClassVar[str] = "savings_contribution"

    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(
        foreign_key="savings_goal.id", nullable=False, index=True, ondelete="CASCADE"
    )
    user_id: int = Field(nullable=False, index=True)
    amount: float = Field(nullable=False)
    contributed_at: datetime = Field(default_factory=datetime.now, nullable=False, index=True)
    contribution_type: ContributionType = Field(default=ContributionType.MANUAL, nullable=False)
    transaction_id: Optional[str] = Field(default=None, index=True, max_length=128)
    rule_id: Optional[int] = Field(
        default=None, foreign_key="savings_rule.id", index=True, ondelete="SET NULL"
    )
    created_at: datetime = Field(default_factory=datetime.now, nullable=False)
