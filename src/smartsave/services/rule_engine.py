"""Rule scheduler: decides which rules fire for an income event or a tick."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from ..domain.repositories import GoalRepository, RuleRepository
from ..errors import GoalNotFound, SmartSaveError
from ..logging_config import get_logger
from ..models.contribution import ContributionType
from ..models.goal import GoalStatus, SavingsGoal
from ..models.rule import TIME_BASED_FREQUENCIES, RuleFrequency, RuleType, SavingsRule
from .analytics import BatchResult
from .ledger import ContributionLedger, validate_amount
from .locks import KeyedLock
from .rules import contribution_amount, policy_for

logger = get_logger(__name__)

# Calendar-aware periods: relativedelta clamps Jan 31 + 1 month to Feb 28/29.
PERIODS: dict[RuleFrequency, relativedelta] = {
    RuleFrequency.DAILY: relativedelta(days=1),
    RuleFrequency.WEEKLY: relativedelta(weeks=1),
    RuleFrequency.MONTHLY: relativedelta(months=1),
}


@dataclass(frozen=True)
class IncomeEvent:
    """One income transaction reported by the transaction feed."""

    user_id: int
    transaction_id: str
    amount: float


def next_run_after(when: datetime, frequency: RuleFrequency) -> datetime:
    """Advance ``when`` by one period of a time-based frequency."""

    try:
        return when + PERIODS[RuleFrequency(frequency)]
    except KeyError as exc:
        raise ValueError(f"{frequency} is not a calendar frequency") from exc


class RuleScheduler:
    """Runs the income-triggered and time-triggered rule passes.

    Each rule firing is serialized per rule id in-process, and the ledger
    store re-checks that the rule is still due inside the write transaction,
    so overlapping or repeated passes cannot contribute twice for one period.
    """

    def __init__(
        self,
        goal_repo: GoalRepository,
        rule_repo: RuleRepository,
        ledger: ContributionLedger,
        *,
        streak_window_days: int = 30,
        rule_locks: Optional[KeyedLock] = None,
    ):
        self.goal_repo = goal_repo
        self.rule_repo = rule_repo
        self.ledger = ledger
        self.streak_window_days = streak_window_days
        self.rule_locks = rule_locks or KeyedLock()

    def run_income_pass(self, event: IncomeEvent, *, now: Optional[datetime] = None) -> BatchResult:
        """Fire every enabled EVERY_INCOME rule on the user's goals for one income."""

        income = validate_amount(event.amount, what="Income amount")
        moment = now or datetime.now()
        result = BatchResult()

        for rule in self.rule_repo.income_rules(user_id=event.user_id):
            self._fire(
                rule,
                result,
                income=income,
                executed_at=moment,
                transaction_id=event.transaction_id,
            )

        for goal in self.goal_repo.list_by_status(GoalStatus.ACTIVE, user_id=event.user_id):
            if goal.auto_contribute:
                self._apply_goal_policy(goal, event, moment, result)

        logger.info(
            "Income pass finished",
            extra={
                "user_id": event.user_id,
                "transaction_id": event.transaction_id,
                **result.to_dict(),
            },
        )
        return result

    def run_time_pass(
        self, *, as_of: Optional[datetime] = None, user_id: Optional[int] = None
    ) -> BatchResult:
        """Fire calendar rules that are due as of ``as_of``.

        Only FIXED_AMOUNT rules have a calendar algorithm; other types are
        counted as skipped and keep their schedule untouched.
        """

        moment = as_of or datetime.now()
        result = BatchResult()

        for frequency in TIME_BASED_FREQUENCIES:
            for rule in self.rule_repo.due_rules(frequency, moment, user_id=user_id):
                if RuleType(rule.rule_type) is not RuleType.FIXED_AMOUNT:
                    logger.debug(
                        "Rule type has no calendar algorithm",
                        extra={"rule_id": rule.id, "rule_type": RuleType(rule.rule_type).value},
                    )
                    result.skipped += 1
                    continue
                self._fire(
                    rule,
                    result,
                    income=None,
                    executed_at=moment,
                    next_scheduled=next_run_after(moment, frequency),
                    due_as_of=moment,
                )

        logger.info(
            "Time pass finished",
            extra={"as_of": moment.isoformat(), "user_id": user_id, **result.to_dict()},
        )
        return result

    def _fire(
        self,
        rule: SavingsRule,
        result: BatchResult,
        *,
        income: Optional[float],
        executed_at: datetime,
        next_scheduled: Optional[datetime] = None,
        due_as_of: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
    ) -> None:
        try:
            with self.rule_locks.hold(rule.id):
                goal = self.goal_repo.get_by_id(rule.goal_id)
                if goal is None:
                    raise GoalNotFound(rule.goal_id)
                if goal.status != GoalStatus.ACTIVE:
                    logger.debug(
                        "Rule skipped, goal not active",
                        extra={"rule_id": rule.id, "goal_id": goal.id, "status": goal.status},
                    )
                    result.skipped += 1
                    return

                amount = contribution_amount(policy_for(rule), income=income)
                if amount <= 0:
                    logger.info(
                        "Rule produced no contribution",
                        extra={"rule_id": rule.id, "goal_id": goal.id, "income": income},
                    )
                    result.skipped += 1
                    return

                saved = self.ledger.record_rule_firing(
                    rule,
                    amount,
                    user_id=goal.user_id,
                    executed_at=executed_at,
                    next_scheduled=next_scheduled,
                    due_as_of=due_as_of,
                    transaction_id=transaction_id,
                    streak_window_days=self.streak_window_days,
                )
        except (SmartSaveError, ValueError) as exc:
            logger.error(
                f"Rule {rule.id} failed: {exc}",
                exc_info=True,
                extra={"rule_id": rule.id, "goal_id": rule.goal_id},
            )
            result.record_failure(f"rule {rule.id}: {exc}")
            return

        if saved is None:
            logger.info(
                "Rule claim refused, already fired or goal not active",
                extra={"rule_id": rule.id},
            )
            result.skipped += 1
            return
        logger.info(
            "Rule fired",
            extra={
                "rule_id": rule.id,
                "goal_id": rule.goal_id,
                "amount": saved.amount,
                "next_scheduled": next_scheduled.isoformat() if next_scheduled else None,
            },
        )
        result.succeeded += 1

    def _apply_goal_policy(
        self, goal: SavingsGoal, event: IncomeEvent, moment: datetime, result: BatchResult
    ) -> None:
        """Goal-level auto contribution: a fixed amount or a share of the income."""

        if goal.auto_contribute_amount is not None:
            amount = goal.auto_contribute_amount
        elif goal.auto_contribute_percentage is not None:
            amount = event.amount * goal.auto_contribute_percentage / 100.0
        else:
            result.skipped += 1
            return

        try:
            saved = self.ledger.add_contribution(
                goal.id,
                goal.user_id,
                amount,
                ContributionType.AUTO,
                event.transaction_id,
                at=moment,
                skip_if_duplicate=True,
            )
        except (SmartSaveError, ValueError) as exc:
            logger.error(
                f"Auto contribution failed for goal {goal.id}: {exc}",
                exc_info=True,
                extra={"goal_id": goal.id},
            )
            result.record_failure(f"goal {goal.id}: {exc}")
            return

        if saved is None:
            result.skipped += 1
        else:
            result.succeeded += 1


__all__ = ["IncomeEvent", "PERIODS", "RuleScheduler", "next_run_after"]
