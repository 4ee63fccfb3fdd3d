"""SQLModel implementation of the savings rule repository."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import or_, select

from ...errors import RuleNotFound
from ...models.goal import SavingsGoal
from ...models.rule import RuleFrequency, SavingsRule
from ..database import SessionFactory


class SQLModelRuleRepository:
    """SQLModel-based savings rule repository implementation."""

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get_by_id(self, rule_id: int) -> Optional[SavingsRule]:
        """Retrieve a rule by ID."""
        with self.session_factory() as session:
            obj = session.get(SavingsRule, rule_id)
            if obj:
                session.expunge(obj)
            return obj

    def list_for_goal(self, goal_id: int, *, enabled_only: bool = False) -> list[SavingsRule]:
        """List the rules attached to a goal."""
        with self.session_factory() as session:
            statement = (
                select(SavingsRule).where(SavingsRule.goal_id == goal_id).order_by(SavingsRule.id)  # type: ignore
            )
            if enabled_only:
                statement = statement.where(SavingsRule.is_enabled == True)  # noqa: E712
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def income_rules(self, *, user_id: int) -> list[SavingsRule]:
        """Enabled EVERY_INCOME rules on the user's goals."""
        with self.session_factory() as session:
            statement = (
                select(SavingsRule)
                .join(SavingsGoal, SavingsGoal.id == SavingsRule.goal_id)  # type: ignore[arg-type]
                .where(SavingsGoal.user_id == user_id)
                .where(SavingsRule.frequency == RuleFrequency.EVERY_INCOME)
                .where(SavingsRule.is_enabled == True)  # noqa: E712
                .order_by(SavingsRule.id)  # type: ignore
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def due_rules(
        self, frequency: RuleFrequency, as_of: datetime, *, user_id: Optional[int] = None
    ) -> list[SavingsRule]:
        """Enabled rules of a frequency whose next run is unset or not after ``as_of``."""
        with self.session_factory() as session:
            statement = (
                select(SavingsRule)
                .where(SavingsRule.frequency == frequency)
                .where(SavingsRule.is_enabled == True)  # noqa: E712
                .where(
                    or_(
                        SavingsRule.next_scheduled == None,  # noqa: E711
                        SavingsRule.next_scheduled <= as_of,  # type: ignore[operator]
                    )
                )
                .order_by(SavingsRule.id)  # type: ignore
            )
            if user_id is not None:
                statement = statement.join(
                    SavingsGoal, SavingsGoal.id == SavingsRule.goal_id  # type: ignore[arg-type]
                ).where(SavingsGoal.user_id == user_id)
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def create(self, rule: SavingsRule) -> SavingsRule:
        """Create a new rule."""
        with self.session_factory() as session:
            session.add(rule)
            session.commit()
            session.refresh(rule)
            session.expunge(rule)
            return rule

    def update(self, rule: SavingsRule) -> SavingsRule:
        """Persist a full rule record."""
        with self.session_factory() as session:
            if rule.id is None or session.get(SavingsRule, rule.id) is None:
                raise RuleNotFound(rule.id)
            rule.updated_at = datetime.now()
            merged = session.merge(rule)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def delete(self, rule_id: int) -> None:
        """Delete a rule by ID."""
        with self.session_factory() as session:
            rule = session.get(SavingsRule, rule_id)
            if rule is None:
                raise RuleNotFound(rule_id)
            session.delete(rule)
            session.commit()

    def set_enabled(self, rule_id: int, enabled: bool) -> SavingsRule:
        """Enable or disable a rule."""
        with self.session_factory() as session:
            rule = session.get(SavingsRule, rule_id)
            if rule is None:
                raise RuleNotFound(rule_id)
            rule.is_enabled = enabled
            rule.updated_at = datetime.now()
            session.add(rule)
            session.commit()
            session.refresh(rule)
            session.expunge(rule)
            return rule

    def set_next_scheduled(self, rule_id: int, when: Optional[datetime]) -> None:
        """Stamp the next time-based firing."""
        with self.session_factory() as session:
            rule = session.get(SavingsRule, rule_id)
            if rule is None:
                raise RuleNotFound(rule_id)
            rule.next_scheduled = when
            session.add(rule)
            session.commit()
