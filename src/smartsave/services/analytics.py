"""Progress, sustainability and risk analytics for savings goals."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..domain.repositories import GoalRepository
from ..errors import SmartSaveError
from ..logging_config import get_logger
from ..models.goal import GoalStatus, RiskLevel, SavingsGoal

logger = get_logger(__name__)

MONTH = timedelta(days=30)
DAY = timedelta(days=1)
# Floor for months remaining near or past the deadline (one day).
MIN_MONTHS_REMAINING = DAY / MONTH

HIGH_RISK_RATE = 0.8
HIGH_RISK_ELAPSED = 0.7
MEDIUM_RISK_RATE = 0.9
MEDIUM_RISK_ELAPSED = 0.5
LOW_SUSTAINABILITY = 50
SUGGESTION_INCOME_SHARE = 0.5


@dataclass(frozen=True)
class FinancialSnapshot:
    """Monthly income/expense figures from an external aggregation source."""

    user_id: int
    monthly_income: float
    monthly_expenses: float

    @property
    def disposable_income(self) -> float:
        return self.monthly_income - self.monthly_expenses


@dataclass(frozen=True)
class GoalProgress:
    """Time-versus-amount progress of a goal at one instant."""

    time_progress: float
    amount_progress: float
    is_on_track: bool
    current_amount: float
    target_amount: float
    remaining_amount: float
    days_remaining: int


@dataclass(frozen=True)
class GoalAnalytics:
    """Derived metrics written back onto the goal's cached fields."""

    elapsed_fraction: float
    expected_progress: float
    progress_rate: float
    disposable_income: float
    months_remaining: float
    required_monthly_amount: float
    sustainability_score: int
    risk_level: RiskLevel
    average_monthly_contribution: Optional[float]
    projected_completion_date: datetime
    next_suggested_contribution: float


@dataclass
class BatchResult:
    """Aggregate outcome of a batch pass; per-item failures do not abort it."""

    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def elapsed_fraction(start: datetime, deadline: datetime, now: datetime) -> float:
    """Share of the goal's time window already used, clamped to [0, 1]."""

    span = (deadline - start).total_seconds()
    if span <= 0:
        return 1.0
    return _clamp((now - start).total_seconds() / span, 0.0, 1.0)


def goal_progress(goal: SavingsGoal, total_contributions: float, *, now: datetime) -> GoalProgress:
    """Compare elapsed time with saved amount for a goal."""

    time_progress = elapsed_fraction(goal.start_date, goal.deadline, now)
    amount_progress = _clamp(total_contributions / goal.target_amount, 0.0, 1.0)
    days_remaining = max(0, math.floor((goal.deadline - now).total_seconds() / DAY.total_seconds()))
    return GoalProgress(
        time_progress=time_progress,
        amount_progress=amount_progress,
        is_on_track=amount_progress >= time_progress,
        current_amount=total_contributions,
        target_amount=goal.target_amount,
        remaining_amount=goal.target_amount - total_contributions,
        days_remaining=days_remaining,
    )


def sustainability_score(disposable_income: float, required_monthly_amount: float) -> int:
    """0-100 affordability of the required monthly pace."""

    if required_monthly_amount <= 0:
        return 100
    return int(_clamp(disposable_income / required_monthly_amount * 100.0, 0.0, 100.0))


def classify_risk(progress_rate: float, elapsed: float, score: int) -> RiskLevel:
    if progress_rate < HIGH_RISK_RATE and elapsed > HIGH_RISK_ELAPSED:
        return RiskLevel.HIGH
    if (progress_rate < MEDIUM_RISK_RATE and elapsed > MEDIUM_RISK_ELAPSED) or score < LOW_SUSTAINABILITY:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def suggestion_factor(progress_rate: float) -> float:
    if progress_rate < HIGH_RISK_RATE:
        return 1.2
    if progress_rate < MEDIUM_RISK_RATE:
        return 1.1
    return 1.0


def analyze_goal(
    goal: SavingsGoal,
    *,
    monthly_income: float,
    monthly_expenses: float,
    now: datetime,
) -> GoalAnalytics:
    """Compute every cached analytics figure for one goal."""

    elapsed = elapsed_fraction(goal.start_date, goal.deadline, now)
    expected = elapsed * goal.target_amount
    progress_rate = goal.current_amount / expected if expected > 0 else 1.0

    disposable = monthly_income - monthly_expenses
    remaining = max(0.0, goal.target_amount - goal.current_amount)
    months_remaining = max(MIN_MONTHS_REMAINING, (goal.deadline - now) / MONTH)
    required_monthly = remaining / months_remaining

    score = sustainability_score(disposable, required_monthly)
    risk = classify_risk(progress_rate, elapsed, score)

    months_elapsed = (now - goal.start_date) / MONTH
    average_monthly = goal.current_amount / months_elapsed if months_elapsed > 0 else None

    if remaining <= 0:
        projected = now
    elif average_monthly is not None and average_monthly > 0:
        projected = now + MONTH * (remaining / average_monthly)
    else:
        projected = goal.deadline

    suggestion = required_monthly * suggestion_factor(progress_rate)
    suggestion = max(0.0, min(suggestion, disposable * SUGGESTION_INCOME_SHARE))

    return GoalAnalytics(
        elapsed_fraction=elapsed,
        expected_progress=expected,
        progress_rate=progress_rate,
        disposable_income=disposable,
        months_remaining=months_remaining,
        required_monthly_amount=required_monthly,
        sustainability_score=score,
        risk_level=risk,
        average_monthly_contribution=average_monthly,
        projected_completion_date=projected,
        next_suggested_contribution=suggestion,
    )


def run_analytics_pass(
    goal_repo: GoalRepository,
    snapshot: FinancialSnapshot,
    *,
    now: Optional[datetime] = None,
) -> BatchResult:
    """Recompute and store analytics for every active goal of a user."""

    moment = now or datetime.now()
    result = BatchResult()
    for goal in goal_repo.list_by_status(GoalStatus.ACTIVE, user_id=snapshot.user_id):
        try:
            analytics = analyze_goal(
                goal,
                monthly_income=snapshot.monthly_income,
                monthly_expenses=snapshot.monthly_expenses,
                now=moment,
            )
            goal_repo.update_analytics(goal.id, analytics)
        except (SmartSaveError, ArithmeticError, ValueError) as exc:
            logger.error(
                f"Analytics failed for goal {goal.id}: {exc}",
                exc_info=True,
                extra={"goal_id": goal.id, "user_id": snapshot.user_id},
            )
            result.record_failure(f"goal {goal.id}: {exc}")
            continue
        result.succeeded += 1

    logger.info(
        "Analytics pass finished",
        extra={"user_id": snapshot.user_id, **result.to_dict()},
    )
    return result


__all__ = [
    "BatchResult",
    "FinancialSnapshot",
    "GoalAnalytics",
    "GoalProgress",
    "analyze_goal",
    "classify_risk",
    "elapsed_fraction",
    "goal_progress",
    "run_analytics_pass",
    "sustainability_score",
]
