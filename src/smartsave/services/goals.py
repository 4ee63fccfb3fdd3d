"""Goal lifecycle helpers and progress queries."""

from __future__ import annotations

import math
from contextlib import nullcontext
from datetime import datetime
from typing import ContextManager, Optional

from ..domain.repositories import ContributionRepository, GoalRepository
from ..errors import GoalNotFound, InconsistentRuleConfig, InvalidAmount
from ..logging_config import get_logger
from ..models.goal import EDITABLE_GOAL_FIELDS, GoalPriority, GoalStatus, SavingsGoal
from .analytics import GoalProgress, goal_progress
from .locks import KeyedLock

logger = get_logger(__name__)

CONSISTENT_STREAK = 3

EDITABLE_FIELDS = EDITABLE_GOAL_FIELDS


def _holding(goal_locks: Optional[KeyedLock], goal_id: int) -> ContextManager[None]:
    return goal_locks.hold(goal_id) if goal_locks is not None else nullcontext()


def _validate_auto_policy(
    auto_contribute: bool, amount: Optional[float], percentage: Optional[float]
) -> None:
    if amount is not None and percentage is not None:
        raise InconsistentRuleConfig("Set either an auto-contribute amount or a percentage, not both")
    if amount is not None and (not math.isfinite(amount) or amount <= 0):
        raise InvalidAmount(f"Auto-contribute amount must be positive, got {amount!r}")
    if percentage is not None and not 0 < percentage <= 100:
        raise InvalidAmount(f"Auto-contribute percentage must be in (0, 100], got {percentage!r}")
    if auto_contribute and amount is None and percentage is None:
        raise InconsistentRuleConfig("Auto-contribute is enabled without an amount or percentage")


def create_goal(
    repo: GoalRepository,
    *,
    user_id: int,
    name: str,
    target_amount: float,
    deadline: datetime,
    start_date: Optional[datetime] = None,
    priority: GoalPriority = GoalPriority.MEDIUM,
    category_id: Optional[int] = None,
    description: Optional[str] = None,
    auto_contribute: bool = False,
    auto_contribute_amount: Optional[float] = None,
    auto_contribute_percentage: Optional[float] = None,
) -> SavingsGoal:
    """Create an active goal with nothing saved yet."""

    name = (name or "").strip()
    if not name:
        raise ValueError("Goal name must not be empty")
    if not math.isfinite(target_amount) or target_amount <= 0:
        raise InvalidAmount(f"Target amount must be positive, got {target_amount!r}")
    start = start_date or datetime.now()
    if deadline <= start:
        raise ValueError("Deadline must be after the start date")
    _validate_auto_policy(auto_contribute, auto_contribute_amount, auto_contribute_percentage)

    goal = SavingsGoal(
        user_id=user_id,
        name=name,
        description=description,
        target_amount=float(target_amount),
        current_amount=0.0,
        start_date=start,
        deadline=deadline,
        priority=GoalPriority(priority),
        category_id=category_id,
        status=GoalStatus.ACTIVE,
        auto_contribute=auto_contribute,
        auto_contribute_amount=auto_contribute_amount,
        auto_contribute_percentage=auto_contribute_percentage,
    )
    created = repo.create(goal, user_id=user_id)
    logger.info("Goal created", extra={"goal_id": created.id, "user_id": user_id})
    return created


def get_goal(repo: GoalRepository, goal_id: int, *, user_id: int) -> SavingsGoal:
    goal = repo.get_by_id(goal_id, user_id=user_id)
    if goal is None:
        raise GoalNotFound(goal_id)
    return goal


def list_goals(repo: GoalRepository, *, user_id: int) -> list[SavingsGoal]:
    return repo.list_by_user(user_id=user_id)


def list_goals_by_status(
    repo: GoalRepository, status: GoalStatus, *, user_id: int
) -> list[SavingsGoal]:
    return repo.list_by_status(GoalStatus(status), user_id=user_id)


def update_goal(
    repo: GoalRepository,
    goal: SavingsGoal,
    *,
    user_id: int,
    goal_locks: Optional[KeyedLock] = None,
) -> SavingsGoal:
    """Save user edits to a goal.

    Only ``EDITABLE_FIELDS`` are written. The target, the running total,
    status, milestones and analytics keep whatever the store holds, so a
    contribution landing while the edit is prepared is not overwritten.
    Pass the ledger's ``goal_locks`` to serialize with in-process writers.
    """

    if goal.id is None:
        raise GoalNotFound(None)
    with _holding(goal_locks, goal.id):
        stored = get_goal(repo, goal.id, user_id=user_id)
        if goal.target_amount != stored.target_amount:
            raise ValueError("The target amount is fixed once a goal is created")

        for field_name in EDITABLE_FIELDS:
            setattr(stored, field_name, getattr(goal, field_name))
        stored.name = (stored.name or "").strip()
        if not stored.name:
            raise ValueError("Goal name must not be empty")
        stored.priority = GoalPriority(stored.priority)
        if stored.deadline <= stored.start_date:
            raise ValueError("Deadline must be after the start date")
        _validate_auto_policy(
            stored.auto_contribute, stored.auto_contribute_amount, stored.auto_contribute_percentage
        )
        return repo.update(stored, user_id=user_id)


def set_goal_status(
    repo: GoalRepository,
    goal_id: int,
    status: GoalStatus,
    *,
    user_id: int,
    goal_locks: Optional[KeyedLock] = None,
) -> SavingsGoal:
    """Pause or resume a goal.

    Completion is recorded by the milestone tracker only, and a completed goal
    keeps its status, including one completed after this call read it.
    """

    status = GoalStatus(status)
    if status is GoalStatus.COMPLETED:
        raise ValueError("Goals complete when their target is reached, not by status edit")
    with _holding(goal_locks, goal_id):
        goal = get_goal(repo, goal_id, user_id=user_id)
        if goal.status == GoalStatus.COMPLETED:
            raise ValueError(f"Goal {goal_id} is already completed")
        if goal.status == status:
            return goal
        updated = repo.set_status(goal_id, status, user_id=user_id)
        if updated is None:
            raise ValueError(f"Goal {goal_id} is already completed")
    logger.info("Goal status changed", extra={"goal_id": goal_id, "status": status.value})
    return updated


def pause_goal(
    repo: GoalRepository,
    goal_id: int,
    *,
    user_id: int,
    goal_locks: Optional[KeyedLock] = None,
) -> SavingsGoal:
    return set_goal_status(
        repo, goal_id, GoalStatus.PAUSED, user_id=user_id, goal_locks=goal_locks
    )


def resume_goal(
    repo: GoalRepository,
    goal_id: int,
    *,
    user_id: int,
    goal_locks: Optional[KeyedLock] = None,
) -> SavingsGoal:
    return set_goal_status(
        repo, goal_id, GoalStatus.ACTIVE, user_id=user_id, goal_locks=goal_locks
    )


def delete_goal(repo: GoalRepository, goal_id: int, *, user_id: int) -> None:
    """Remove a goal; the store drops its contributions and rules with it."""

    repo.delete(goal_id, user_id=user_id)
    logger.info("Goal deleted", extra={"goal_id": goal_id, "user_id": user_id})


def progress_for_goal(
    goal_repo: GoalRepository,
    contribution_repo: ContributionRepository,
    goal_id: int,
    *,
    user_id: int,
    now: Optional[datetime] = None,
) -> GoalProgress:
    """Progress measured against the ledger sum rather than the cached total."""

    goal = get_goal(goal_repo, goal_id, user_id=user_id)
    total = contribution_repo.total_for_goal(goal_id)
    return goal_progress(goal, total, now=now or datetime.now())


def behind_schedule_goals(
    repo: GoalRepository, *, user_id: int, now: Optional[datetime] = None
) -> list[SavingsGoal]:
    """Active goals whose saved share trails the elapsed share of their window."""

    moment = now or datetime.now()
    return [
        goal
        for goal in repo.list_by_status(GoalStatus.ACTIVE, user_id=user_id)
        if not goal_progress(goal, goal.current_amount, now=moment).is_on_track
    ]


def overdue_goals(
    repo: GoalRepository, *, user_id: int, now: Optional[datetime] = None
) -> list[SavingsGoal]:
    """Active goals whose deadline has passed."""

    moment = now or datetime.now()
    return [
        goal
        for goal in repo.list_by_status(GoalStatus.ACTIVE, user_id=user_id)
        if goal.deadline < moment
    ]


def consistent_goals(repo: GoalRepository, *, user_id: int) -> list[SavingsGoal]:
    """Active goals with an unbroken streak of at least ``CONSISTENT_STREAK`` auto contributions."""

    return [
        goal
        for goal in repo.list_by_status(GoalStatus.ACTIVE, user_id=user_id)
        if goal.contribution_streak >= CONSISTENT_STREAK
    ]


__all__ = [
    "EDITABLE_FIELDS",
    "behind_schedule_goals",
    "consistent_goals",
    "create_goal",
    "delete_goal",
    "get_goal",
    "list_goals",
    "list_goals_by_status",
    "overdue_goals",
    "pause_goal",
    "progress_for_goal",
    "resume_goal",
    "set_goal_status",
    "update_goal",
]
