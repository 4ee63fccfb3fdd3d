"""Savings goal repository protocol."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ...models.goal import GoalStatus, SavingsGoal


class GoalRepository(Protocol):
    """Repository for managing savings goals."""

    def get_by_id(self, goal_id: int, *, user_id: Optional[int] = None) -> Optional[SavingsGoal]:
        """Retrieve a goal by ID, optionally scoped to its owner."""
        ...

    def list_by_user(self, *, user_id: int) -> list[SavingsGoal]:
        """List every goal owned by a user."""
        ...

    def list_by_status(self, status: GoalStatus, *, user_id: int) -> list[SavingsGoal]:
        """List a user's goals in the given status."""
        ...

    def create(self, goal: SavingsGoal, *, user_id: int) -> SavingsGoal:
        """Create a new goal."""
        ...

    def update(self, goal: SavingsGoal, *, user_id: int) -> SavingsGoal:
        """Write the user-editable columns of a goal."""
        ...

    def set_status(
        self, goal_id: int, status: GoalStatus, *, user_id: int
    ) -> Optional[SavingsGoal]:
        """Set the status unless the goal has completed; ``None`` if it has."""
        ...

    def delete(self, goal_id: int, *, user_id: int) -> None:
        """Delete a goal along with its contributions and rules."""
        ...

    def increment_current_amount(
        self, goal_id: int, delta: float, *, at: Optional[datetime] = None
    ) -> SavingsGoal:
        """Atomically add ``delta`` to the cached running total."""
        ...

    def advance_streak(self, goal_id: int, *, at: datetime, window_days: int) -> SavingsGoal:
        """Bump the contribution streak, restarting it after a long gap."""
        ...

    def record_milestones(
        self,
        goal_id: int,
        labels: list[str],
        *,
        next_milestone: Optional[str],
        complete: bool,
    ) -> SavingsGoal:
        """Append milestone labels and optionally mark the goal completed."""
        ...

    def update_analytics(self, goal_id: int, analytics) -> SavingsGoal:
        """Write the cached analytics fields computed by the analytics pass."""
        ...
