"""Pytest configuration and shared fixtures for SmartSave tests.

Each test gets its own SQLite file in a temporary directory, wired through the
same engine context the CLI and scheduler use.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from smartsave.config import TestConfig
from smartsave.context import create_engine_context
from smartsave.models import GoalPriority, RuleFrequency
from smartsave.services import goals as goal_service
from smartsave.services import rules as rule_service

# Fixed calendar anchor so date arithmetic in tests is deterministic.
DAY0 = datetime(2024, 1, 1, 9, 0, 0)
USER_ID = 1
OTHER_USER_ID = 2


def day(n: float) -> datetime:
    """Return DAY0 shifted by ``n`` days."""
    return DAY0 + timedelta(days=n)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a throwaway data directory."""
    return TestConfig(data_dir=tmp_path)


@pytest.fixture
def engine_ctx(test_config):
    """Fully wired engine context over a fresh database.

    Yields:
        EngineContext: repositories, ledger and rule scheduler
    """
    ctx = create_engine_context(test_config)
    yield ctx
    ctx.dispose()


@pytest.fixture
def goal_repo(engine_ctx):
    return engine_ctx.goal_repo


@pytest.fixture
def rule_repo(engine_ctx):
    return engine_ctx.rule_repo


@pytest.fixture
def contribution_repo(engine_ctx):
    return engine_ctx.contribution_repo


@pytest.fixture
def ledger(engine_ctx):
    return engine_ctx.ledger


@pytest.fixture
def rule_scheduler(engine_ctx):
    return engine_ctx.rule_scheduler


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def goal_factory(goal_repo):
    """Factory for creating persisted savings goals.

    Returns:
        Callable: Function that creates goals through the goal service
    """

    def _create_goal(
        name: str = "Emergency fund",
        target_amount: float = 1000.0,
        start_date: datetime = DAY0,
        deadline: datetime | None = None,
        user_id: int = USER_ID,
        priority: GoalPriority = GoalPriority.MEDIUM,
        **kwargs,
    ):
        """Create a goal with sensible defaults (100-day window from DAY0)."""
        return goal_service.create_goal(
            goal_repo,
            user_id=user_id,
            name=name,
            target_amount=target_amount,
            start_date=start_date,
            deadline=deadline or start_date + timedelta(days=100),
            priority=priority,
            **kwargs,
        )

    return _create_goal


@pytest.fixture
def rule_factory(rule_repo, goal_repo):
    """Factory for creating persisted savings rules.

    Returns:
        Callable: Function that attaches a rule to an existing goal
    """

    def _create_rule(
        goal,
        policy,
        frequency: RuleFrequency = RuleFrequency.EVERY_INCOME,
        description: str = "Test rule",
        enabled: bool = True,
    ):
        return rule_service.create_rule(
            rule_repo,
            goal_repo,
            user_id=goal.user_id,
            goal_id=goal.id,
            policy=policy,
            frequency=frequency,
            description=description,
            enabled=enabled,
        )

    return _create_rule
