"""Contribution ledger: validated, per-goal serialized writes plus aggregates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from ..domain.repositories import ContributionRepository, GoalRepository
from ..errors import ContributionNotFound, GoalNotFound, InvalidAmount, RuleNotFound
from ..logging_config import get_logger
from ..models.contribution import Contribution, ContributionType
from ..models.rule import SavingsRule
from .locks import KeyedLock
from .milestones import check_milestones

logger = get_logger(__name__)

# Cached totals and ledger sums are floats; allow for summation drift.
TOTAL_TOLERANCE = 1e-6


def validate_amount(amount: float, *, what: str = "Contribution amount") -> float:
    """Reject non-positive, NaN and infinite amounts."""

    try:
        value = float(amount)
    except (TypeError, ValueError) as exc:
        raise InvalidAmount(f"{what} must be a number, got {amount!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmount(f"{what} must be positive, got {amount!r}")
    return value


@dataclass(frozen=True)
class ContributionHistory:
    """Restartable, newest-first view of a goal's contributions.

    Each iteration re-reads the ledger, so a second pass sees later inserts.
    """

    repository: ContributionRepository
    goal_id: int

    def __iter__(self) -> Iterator[Contribution]:
        return iter(self.repository.list_for_goal(self.goal_id))


class ContributionLedger:
    """Append-only ledger over a contribution store.

    Writes against one goal are serialized with a keyed lock; the store
    applies each insert and the goal total increment in a single transaction.
    """

    def __init__(
        self,
        goal_repo: GoalRepository,
        contribution_repo: ContributionRepository,
        *,
        goal_locks: Optional[KeyedLock] = None,
    ):
        self.goal_repo = goal_repo
        self.contribution_repo = contribution_repo
        self.goal_locks = goal_locks or KeyedLock()

    def add_contribution(
        self,
        goal_id: int,
        user_id: int,
        amount: float,
        contribution_type: ContributionType = ContributionType.MANUAL,
        transaction_id: Optional[str] = None,
        *,
        at: Optional[datetime] = None,
        skip_if_duplicate: bool = False,
    ) -> Optional[Contribution]:
        """Record a contribution and re-check milestones.

        Raises:
            InvalidAmount: amount is not a positive number
            GoalNotFound: the goal does not exist for ``user_id``

        Returns ``None`` only when ``skip_if_duplicate`` is set and the
        transaction already contributed to this goal.
        """
        value = validate_amount(amount)
        when = at or datetime.now()

        with self.goal_locks.hold(goal_id):
            goal = self.goal_repo.get_by_id(goal_id, user_id=user_id)
            if goal is None:
                raise GoalNotFound(goal_id)
            contribution = Contribution(
                goal_id=goal_id,
                user_id=user_id,
                amount=value,
                contributed_at=when,
                contribution_type=contribution_type,
                transaction_id=transaction_id,
            )
            saved = self.contribution_repo.append(contribution, skip_if_duplicate=skip_if_duplicate)
            if saved is None:
                logger.info(
                    "Duplicate transaction ignored",
                    extra={"goal_id": goal_id, "transaction_id": transaction_id},
                )
                return None
            check_milestones(self.goal_repo, goal_id)

        logger.info(
            "Contribution recorded",
            extra={
                "goal_id": goal_id,
                "contribution_id": saved.id,
                "amount": value,
                "type": contribution_type.value,
            },
        )
        return saved

    def record_rule_firing(
        self,
        rule: SavingsRule,
        amount: float,
        *,
        user_id: int,
        executed_at: datetime,
        next_scheduled: Optional[datetime] = None,
        due_as_of: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        streak_window_days: int = 30,
    ) -> Optional[Contribution]:
        """Apply one rule firing: contribution, streak and rule stamps commit together.

        Returns ``None`` when the store refuses the claim: the rule was already
        fired for this period or this transaction, or its goal stopped being
        active.
        """
        value = validate_amount(amount)
        if rule.id is None:
            raise RuleNotFound(None)

        with self.goal_locks.hold(rule.goal_id):
            contribution = Contribution(
                goal_id=rule.goal_id,
                user_id=user_id,
                amount=value,
                contributed_at=executed_at,
                contribution_type=ContributionType.AUTO,
                transaction_id=transaction_id,
                rule_id=rule.id,
            )
            saved = self.contribution_repo.append_for_rule(
                contribution,
                rule_id=rule.id,
                executed_at=executed_at,
                next_scheduled=next_scheduled,
                due_as_of=due_as_of,
                streak_window_days=streak_window_days,
            )
            if saved is None:
                return None
            check_milestones(self.goal_repo, rule.goal_id)
        return saved

    def remove_contribution(self, contribution_id: int, *, user_id: int) -> Contribution:
        """Delete a contribution (external correction); milestones are kept."""
        existing = self.contribution_repo.get_by_id(contribution_id)
        if existing is None or existing.user_id != user_id:
            raise ContributionNotFound(contribution_id)
        with self.goal_locks.hold(existing.goal_id):
            removed = self.contribution_repo.remove(contribution_id, user_id=user_id)
        if removed is None:
            raise ContributionNotFound(contribution_id)
        logger.warning(
            "Contribution removed",
            extra={"goal_id": removed.goal_id, "contribution_id": contribution_id, "amount": removed.amount},
        )
        return removed

    def contributions_for_goal(self, goal_id: int) -> ContributionHistory:
        return ContributionHistory(self.contribution_repo, goal_id)

    def contributions_for_user(self, user_id: int) -> list[Contribution]:
        return self.contribution_repo.list_for_user(user_id=user_id)

    def total_contributions(self, goal_id: int) -> float:
        return self.contribution_repo.total_for_goal(goal_id)

    def verify_goal_total(self, goal_id: int) -> bool:
        """True when the goal's cached total matches the ledger sum."""
        goal = self.goal_repo.get_by_id(goal_id)
        if goal is None:
            raise GoalNotFound(goal_id)
        ledger_total = self.total_contributions(goal_id)
        consistent = abs(goal.current_amount - ledger_total) <= TOTAL_TOLERANCE
        if not consistent:
            logger.error(
                "Cached goal total drifted from ledger",
                extra={"goal_id": goal_id, "cached": goal.current_amount, "ledger": ledger_total},
            )
        return consistent


__all__ = ["ContributionHistory", "ContributionLedger", "validate_amount"]
