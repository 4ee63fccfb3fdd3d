"""Tests for the APScheduler-backed background scheduler."""

from __future__ import annotations

import pytest
from conftest import USER_ID, day

from smartsave.errors import PersistenceFailure
from smartsave.models import RuleFrequency
from smartsave.scheduler import ANALYTICS_JOB_ID, TICK_JOB_ID, BackgroundScheduler, create_scheduler
from smartsave.services.analytics import FinancialSnapshot
from smartsave.services.rules import FixedAmount


@pytest.fixture
def snapshots():
    return lambda: [FinancialSnapshot(user_id=USER_ID, monthly_income=1000.0, monthly_expenses=500.0)]


def test_run_tick_now_fires_due_rules(engine_ctx, goal_factory, rule_factory, goal_repo):
    goal = goal_factory()
    rule_factory(goal, FixedAmount(amount=15.0), RuleFrequency.DAILY)
    scheduler = BackgroundScheduler(engine_ctx)

    result = scheduler.run_tick_now(as_of=day(1))

    assert result.succeeded == 1
    assert goal_repo.get_by_id(goal.id).current_amount == pytest.approx(15.0)


def test_run_analytics_now_without_provider(engine_ctx):
    result = BackgroundScheduler(engine_ctx).run_analytics_now()

    assert result.total == 0


def test_run_analytics_now_aggregates_users(engine_ctx, goal_factory, goal_repo, snapshots):
    goal = goal_factory(target_amount=1000.0)
    scheduler = BackgroundScheduler(engine_ctx, snapshot_provider=snapshots)

    result = scheduler.run_analytics_now(now=day(10))

    assert result.succeeded == 1
    assert goal_repo.get_by_id(goal.id).sustainability_score is not None


def test_start_registers_jobs_and_stop(engine_ctx, snapshots):
    scheduler = create_scheduler(engine_ctx, snapshot_provider=snapshots, auto_start=True)
    try:
        assert scheduler.running
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert job_ids == {TICK_JOB_ID, ANALYTICS_JOB_ID}
    finally:
        scheduler.stop()

    assert not scheduler.running


def test_analytics_job_runs_after_tick(engine_ctx, snapshots):
    engine_ctx.config.TICK_HOUR = 23
    engine_ctx.config.TICK_MINUTE = 45
    scheduler = create_scheduler(engine_ctx, snapshot_provider=snapshots, auto_start=True)
    try:
        trigger = scheduler.scheduler.get_job(ANALYTICS_JOB_ID).trigger
        fields = {field.name: str(field) for field in trigger.fields}
        assert fields["hour"] == "0"
        assert fields["minute"] == "15"
    finally:
        scheduler.stop()


def test_run_tick_now_logs_and_swallows_engine_errors(engine_ctx, monkeypatch):
    def failing_tick(**kwargs):
        raise PersistenceFailure("database is locked")

    monkeypatch.setattr(engine_ctx, "tick", failing_tick)

    assert BackgroundScheduler(engine_ctx).run_tick_now(as_of=day(1)) is None
