"""Savings rule repository protocol."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ...models.rule import RuleFrequency, SavingsRule


class RuleRepository(Protocol):
    """Repository for managing savings rules."""

    def get_by_id(self, rule_id: int) -> Optional[SavingsRule]:
        """Retrieve a rule by ID."""
        ...

    def list_for_goal(self, goal_id: int, *, enabled_only: bool = False) -> list[SavingsRule]:
        """List the rules attached to a goal."""
        ...

    def income_rules(self, *, user_id: int) -> list[SavingsRule]:
        """Enabled EVERY_INCOME rules on the user's goals."""
        ...

    def due_rules(
        self, frequency: RuleFrequency, as_of: datetime, *, user_id: Optional[int] = None
    ) -> list[SavingsRule]:
        """Enabled rules of a frequency whose next run is unset or not after ``as_of``."""
        ...

    def create(self, rule: SavingsRule) -> SavingsRule:
        """Create a new rule."""
        ...

    def update(self, rule: SavingsRule) -> SavingsRule:
        """Persist a full rule record."""
        ...

    def delete(self, rule_id: int) -> None:
        """Delete a rule by ID."""
        ...

    def set_enabled(self, rule_id: int, enabled: bool) -> SavingsRule:
        """Enable or disable a rule."""
        ...

    def set_next_scheduled(self, rule_id: int, when: Optional[datetime]) -> None:
        """Stamp the next time-based firing."""
        ...
