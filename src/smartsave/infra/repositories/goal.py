"""SQLModel implementation of the savings goal repository."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from ...errors import GoalNotFound
from ...models.contribution import Contribution
from ...models.goal import EDITABLE_GOAL_FIELDS, GoalStatus, SavingsGoal
from ...models.rule import SavingsRule
from ..database import SessionFactory

if TYPE_CHECKING:  # pragma: no cover
    from ...services.analytics import GoalAnalytics


def bump_goal_total(
    session: Session,
    goal_id: int,
    delta: float,
    *,
    at: datetime,
    count_delta: int = 1,
    touch_last_contribution: bool = True,
) -> SavingsGoal:
    """Add ``delta`` to the cached total with a single UPDATE inside ``session``.

    The increment is computed by the database so concurrent writers cannot
    lose updates. Returns the refreshed goal row.
    """

    values: dict = {
        "current_amount": SavingsGoal.current_amount + delta,
        "contribution_count": SavingsGoal.contribution_count + count_delta,
        "updated_at": at,
    }
    if touch_last_contribution:
        values["last_contribution_at"] = at
    result = session.connection().execute(
        update(SavingsGoal).where(SavingsGoal.id == goal_id).values(**values)  # type: ignore[arg-type]
    )
    if result.rowcount == 0:
        raise GoalNotFound(goal_id)
    goal = session.get(SavingsGoal, goal_id, populate_existing=True)
    if goal is None:  # pragma: no cover - row vanished between statements
        raise GoalNotFound(goal_id)
    return goal


def advance_goal_streak(goal: SavingsGoal, *, at: datetime, window_days: int) -> None:
    """Continue the streak when the previous auto contribution is recent, else restart it."""

    last = goal.last_streak_at
    if last is not None and timedelta(0) <= at - last <= timedelta(days=window_days):
        goal.contribution_streak += 1
    else:
        goal.contribution_streak = 1
    goal.last_streak_at = at


class SQLModelGoalRepository:
    """SQLModel-based savings goal repository implementation."""

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get_by_id(self, goal_id: int, *, user_id: Optional[int] = None) -> Optional[SavingsGoal]:
        """Retrieve a goal by ID."""
        with self.session_factory() as session:
            statement = select(SavingsGoal).where(SavingsGoal.id == goal_id)
            if user_id is not None:
                statement = statement.where(SavingsGoal.user_id == user_id)
            obj = session.exec(statement).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_by_user(self, *, user_id: int) -> list[SavingsGoal]:
        """List every goal owned by a user, newest first."""
        with self.session_factory() as session:
            statement = (
                select(SavingsGoal)
                .where(SavingsGoal.user_id == user_id)
                .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())  # type: ignore
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def list_by_status(self, status: GoalStatus, *, user_id: int) -> list[SavingsGoal]:
        """List a user's goals in a status, highest priority first."""
        with self.session_factory() as session:
            statement = (
                select(SavingsGoal)
                .where(SavingsGoal.user_id == user_id)
                .where(SavingsGoal.status == status)
                .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())  # type: ignore
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            # Enum columns are stored by name; rank by the numeric priority here.
            rows.sort(key=lambda goal: int(goal.priority))
            return rows

    def create(self, goal: SavingsGoal, *, user_id: int) -> SavingsGoal:
        """Create a new goal."""
        with self.session_factory() as session:
            goal.user_id = user_id
            session.add(goal)
            session.commit()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def update(self, goal: SavingsGoal, *, user_id: int) -> SavingsGoal:
        """Write the user-editable columns of ``goal``.

        Totals, streak, milestones, status and analytics are owned by their
        own targeted writes and are left as stored.
        """
        with self.session_factory() as session:
            values = {field_name: getattr(goal, field_name) for field_name in EDITABLE_GOAL_FIELDS}
            values["updated_at"] = datetime.now()
            result = session.connection().execute(
                update(SavingsGoal)  # type: ignore[arg-type]
                .where(SavingsGoal.id == goal.id, SavingsGoal.user_id == user_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise GoalNotFound(goal.id)
            stored = session.get(SavingsGoal, goal.id, populate_existing=True)
            session.commit()
            session.expunge(stored)
            return stored

    def set_status(
        self, goal_id: int, status: GoalStatus, *, user_id: int
    ) -> Optional[SavingsGoal]:
        """Set the status unless the goal has completed.

        Returns ``None`` when the stored goal is already completed.
        """
        with self.session_factory() as session:
            result = session.connection().execute(
                update(SavingsGoal)  # type: ignore[arg-type]
                .where(SavingsGoal.id == goal_id, SavingsGoal.user_id == user_id)
                .where(SavingsGoal.status != GoalStatus.COMPLETED)
                .values(status=status, updated_at=datetime.now())
            )
            if result.rowcount == 0:
                found = session.exec(
                    select(SavingsGoal.id).where(
                        SavingsGoal.id == goal_id, SavingsGoal.user_id == user_id
                    )
                ).first()
                if found is None:
                    raise GoalNotFound(goal_id)
                return None
            goal = session.get(SavingsGoal, goal_id, populate_existing=True)
            session.commit()
            session.expunge(goal)
            return goal

    def delete(self, goal_id: int, *, user_id: int) -> None:
        """Delete a goal and everything attached to it."""
        with self.session_factory() as session:
            goal = session.exec(
                select(SavingsGoal).where(SavingsGoal.id == goal_id, SavingsGoal.user_id == user_id)
            ).first()
            if goal is None:
                raise GoalNotFound(goal_id)
            session.connection().execute(
                delete(Contribution).where(Contribution.goal_id == goal_id)  # type: ignore[arg-type]
            )
            session.connection().execute(
                delete(SavingsRule).where(SavingsRule.goal_id == goal_id)  # type: ignore[arg-type]
            )
            session.delete(goal)
            session.commit()

    def increment_current_amount(
        self, goal_id: int, delta: float, *, at: Optional[datetime] = None
    ) -> SavingsGoal:
        """Atomically add ``delta`` to the cached running total."""
        with self.session_factory() as session:
            goal = bump_goal_total(session, goal_id, delta, at=at or datetime.now())
            session.commit()
            session.expunge(goal)
            return goal

    def advance_streak(self, goal_id: int, *, at: datetime, window_days: int) -> SavingsGoal:
        """Bump the contribution streak, restarting it after a long gap."""
        with self.session_factory() as session:
            goal = session.get(SavingsGoal, goal_id)
            if goal is None:
                raise GoalNotFound(goal_id)
            advance_goal_streak(goal, at=at, window_days=window_days)
            session.add(goal)
            session.commit()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def record_milestones(
        self,
        goal_id: int,
        labels: list[str],
        *,
        next_milestone: Optional[str],
        complete: bool,
    ) -> SavingsGoal:
        """Append milestone labels and optionally mark the goal completed."""
        with self.session_factory() as session:
            goal = session.get(SavingsGoal, goal_id)
            if goal is None:
                raise GoalNotFound(goal_id)
            achieved = list(goal.achieved_milestones or [])
            achieved.extend(label for label in labels if label not in achieved)
            goal.achieved_milestones = achieved
            goal.next_milestone = next_milestone
            if complete:
                goal.status = GoalStatus.COMPLETED
            goal.updated_at = datetime.now()
            session.add(goal)
            session.commit()
            session.refresh(goal)
            session.expunge(goal)
            return goal

    def update_analytics(self, goal_id: int, analytics: "GoalAnalytics") -> SavingsGoal:
        """Write the cached analytics fields."""
        with self.session_factory() as session:
            goal = session.get(SavingsGoal, goal_id)
            if goal is None:
                raise GoalNotFound(goal_id)
            goal.sustainability_score = analytics.sustainability_score
            goal.risk_level = analytics.risk_level
            goal.projected_completion_date = analytics.projected_completion_date
            goal.progress_rate = analytics.progress_rate
            goal.suggested_monthly_amount = analytics.required_monthly_amount
            goal.next_suggested_contribution = analytics.next_suggested_contribution
            goal.average_monthly_contribution = analytics.average_monthly_contribution
            goal.updated_at = datetime.now()
            session.add(goal)
            session.commit()
            session.refresh(goal)
            session.expunge(goal)
            return goal
