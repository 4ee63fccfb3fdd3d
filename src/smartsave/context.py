"""Engine context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .infra.database import SessionFactory, bootstrap_database
from .infra.repositories import (
    SQLModelContributionRepository,
    SQLModelGoalRepository,
    SQLModelRuleRepository,
)
from .services.analytics import BatchResult, FinancialSnapshot, run_analytics_pass
from .services.ledger import ContributionLedger
from .services.rule_engine import IncomeEvent, RuleScheduler


@dataclass
class EngineContext:
    """Wired repositories and services sharing one database engine.

    Holds no user or session state; every call names its user explicitly.
    """

    config: BaseConfig
    engine: Engine
    session_factory: SessionFactory

    goal_repo: SQLModelGoalRepository
    rule_repo: SQLModelRuleRepository
    contribution_repo: SQLModelContributionRepository

    ledger: ContributionLedger
    rule_scheduler: RuleScheduler

    def handle_income(self, event: IncomeEvent, *, now: Optional[datetime] = None) -> BatchResult:
        return self.rule_scheduler.run_income_pass(event, now=now)

    def tick(self, *, as_of: Optional[datetime] = None, user_id: Optional[int] = None) -> BatchResult:
        return self.rule_scheduler.run_time_pass(as_of=as_of, user_id=user_id)

    def refresh_analytics(
        self, snapshot: FinancialSnapshot, *, now: Optional[datetime] = None
    ) -> BatchResult:
        return run_analytics_pass(self.goal_repo, snapshot, now=now)

    def dispose(self) -> None:
        self.engine.dispose()


def create_engine_context(config: Optional[BaseConfig] = None) -> EngineContext:
    """Create and initialize the engine context."""

    if config is None:
        config = BaseConfig()

    engine, session_factory = bootstrap_database(config)

    goal_repo = SQLModelGoalRepository(session_factory)
    rule_repo = SQLModelRuleRepository(session_factory)
    contribution_repo = SQLModelContributionRepository(session_factory)

    ledger = ContributionLedger(goal_repo, contribution_repo)
    rule_scheduler = RuleScheduler(
        goal_repo,
        rule_repo,
        ledger,
        streak_window_days=config.STREAK_WINDOW_DAYS,
    )

    return EngineContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        goal_repo=goal_repo,
        rule_repo=rule_repo,
        contribution_repo=contribution_repo,
        ledger=ledger,
        rule_scheduler=rule_scheduler,
    )
