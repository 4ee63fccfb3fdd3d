"""Contribution ledger repository protocol."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ...models.contribution import Contribution


class ContributionRepository(Protocol):
    """Append-only store for contributions."""

    def append(
        self, contribution: Contribution, *, skip_if_duplicate: bool = False
    ) -> Optional[Contribution]:
        """Insert a contribution and bump the goal's cached total in one transaction."""
        ...

    def append_for_rule(
        self,
        contribution: Contribution,
        *,
        rule_id: int,
        executed_at: datetime,
        next_scheduled: Optional[datetime],
        due_as_of: Optional[datetime],
        streak_window_days: int,
    ) -> Optional[Contribution]:
        """Record a rule firing atomically; ``None`` when the rule is no longer due."""
        ...

    def get_by_id(self, contribution_id: int) -> Optional[Contribution]:
        """Retrieve a contribution by ID."""
        ...

    def remove(self, contribution_id: int, *, user_id: int) -> Optional[Contribution]:
        """Delete a contribution and reconcile the goal's cached total."""
        ...

    def list_for_goal(self, goal_id: int) -> list[Contribution]:
        """List a goal's contributions, newest first."""
        ...

    def list_for_user(self, *, user_id: int) -> list[Contribution]:
        """List every contribution a user made, newest first."""
        ...

    def total_for_goal(self, goal_id: int) -> float:
        """Sum of a goal's contributions, 0.0 if none."""
        ...

    def find_by_transaction(
        self, transaction_id: str, *, goal_id: int, rule_id: Optional[int] = None
    ) -> Optional[Contribution]:
        """Find the contribution an income transaction already produced."""
        ...
