"""SQLModel implementation of the contribution ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, or_, select

from ...errors import RuleNotFound
from ...models.contribution import Contribution
from ...models.goal import GoalStatus, SavingsGoal
from ...models.rule import SavingsRule
from ..database import SessionFactory
from .goal import advance_goal_streak, bump_goal_total


def _duplicate_of(session: Session, contribution: Contribution) -> Optional[Contribution]:
    """Return the contribution an income transaction already produced for the same source."""

    if not contribution.transaction_id:
        return None
    statement = (
        select(Contribution)
        .where(Contribution.goal_id == contribution.goal_id)
        .where(Contribution.transaction_id == contribution.transaction_id)
    )
    if contribution.rule_id is None:
        statement = statement.where(Contribution.rule_id == None)  # noqa: E711
    else:
        statement = statement.where(Contribution.rule_id == contribution.rule_id)
    return session.exec(statement).first()


class SQLModelContributionRepository:
    """SQLModel-based append-only ledger.

    Every write adjusts the goal's cached ``current_amount`` inside the same
    session, so the cached total and the ledger sum commit together.
    """

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def append(
        self, contribution: Contribution, *, skip_if_duplicate: bool = False
    ) -> Optional[Contribution]:
        """Insert a contribution and bump the goal's cached total.

        With ``skip_if_duplicate`` a contribution carrying a transaction id that
        already fed this goal from the same source is dropped and ``None`` is
        returned.
        """
        with self.session_factory() as session:
            if skip_if_duplicate and _duplicate_of(session, contribution) is not None:
                return None
            bump_goal_total(
                session, contribution.goal_id, contribution.amount, at=contribution.contributed_at
            )
            session.add(contribution)
            session.commit()
            session.refresh(contribution)
            session.expunge(contribution)
            return contribution

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
        """Record a rule firing as one unit of work.

        The rule row is claimed with a conditional UPDATE first: the rule must
        be enabled and its goal active, and when ``due_as_of`` is given the rule
        must still be due. A failed claim, or a transaction id the rule already
        consumed, returns ``None`` and writes nothing.
        """
        with self.session_factory() as session:
            if session.get(SavingsRule, rule_id) is None:
                raise RuleNotFound(rule_id)
            if _duplicate_of(session, contribution) is not None:
                return None

            values: dict = {"last_executed": executed_at}
            if next_scheduled is not None:
                values["next_scheduled"] = next_scheduled
            claim = (
                update(SavingsRule)
                .where(SavingsRule.id == rule_id)  # type: ignore[arg-type]
                .where(SavingsRule.is_enabled == True)  # noqa: E712
                .where(
                    SavingsRule.goal_id.in_(  # type: ignore[union-attr]
                        select(SavingsGoal.id).where(SavingsGoal.status == GoalStatus.ACTIVE)
                    )
                )
            )
            if due_as_of is not None:
                claim = claim.where(
                    or_(
                        SavingsRule.next_scheduled == None,  # noqa: E711
                        SavingsRule.next_scheduled <= due_as_of,  # type: ignore[operator]
                    )
                )
            result = session.connection().execute(claim.values(**values))
            if result.rowcount == 0:
                session.rollback()
                return None

            goal = bump_goal_total(
                session, contribution.goal_id, contribution.amount, at=contribution.contributed_at
            )
            advance_goal_streak(goal, at=executed_at, window_days=streak_window_days)
            session.add(goal)
            session.add(contribution)
            session.commit()
            session.refresh(contribution)
            session.expunge(contribution)
            return contribution

    def get_by_id(self, contribution_id: int) -> Optional[Contribution]:
        """Retrieve a contribution by ID."""
        with self.session_factory() as session:
            obj = session.get(Contribution, contribution_id)
            if obj:
                session.expunge(obj)
            return obj

    def remove(self, contribution_id: int, *, user_id: int) -> Optional[Contribution]:
        """Delete a contribution and take its amount back off the goal total."""
        with self.session_factory() as session:
            contribution = session.exec(
                select(Contribution)
                .where(Contribution.id == contribution_id)
                .where(Contribution.user_id == user_id)
            ).first()
            if contribution is None:
                return None
            bump_goal_total(
                session,
                contribution.goal_id,
                -contribution.amount,
                at=datetime.now(),
                count_delta=-1,
                touch_last_contribution=False,
            )
            session.delete(contribution)
            session.commit()
            return contribution

    def list_for_goal(self, goal_id: int) -> list[Contribution]:
        """List a goal's contributions, newest first."""
        with self.session_factory() as session:
            statement = (
                select(Contribution)
                .where(Contribution.goal_id == goal_id)
                .order_by(Contribution.contributed_at.desc(), Contribution.id.desc())  # type: ignore
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def list_for_user(self, *, user_id: int) -> list[Contribution]:
        """List every contribution a user made, newest first."""
        with self.session_factory() as session:
            statement = (
                select(Contribution)
                .where(Contribution.user_id == user_id)
                .order_by(Contribution.contributed_at.desc(), Contribution.id.desc())  # type: ignore
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def total_for_goal(self, goal_id: int) -> float:
        """Sum of a goal's contributions, 0.0 if none."""
        with self.session_factory() as session:
            total = session.exec(
                select(func.sum(Contribution.amount)).where(Contribution.goal_id == goal_id)
            ).one()
            return float(total or 0.0)

    def find_by_transaction(
        self, transaction_id: str, *, goal_id: int, rule_id: Optional[int] = None
    ) -> Optional[Contribution]:
        """Find the contribution an income transaction already produced."""
        key = Contribution(
            goal_id=goal_id, user_id=0, amount=0.0, transaction_id=transaction_id, rule_id=rule_id
        )
        with self.session_factory() as session:
            obj = _duplicate_of(session, key)
            if obj:
                session.expunge(obj)
            return obj
