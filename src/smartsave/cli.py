"""Command-line entry points for running engine passes by hand or from cron."""

from __future__ import annotations

import json
from datetime import datetime

import click

from .config import BaseConfig
from .context import EngineContext, create_engine_context
from .errors import SmartSaveError
from .logging_config import setup_logging
from .services import goals as goal_service
from .services.analytics import FinancialSnapshot
from .services.rule_engine import IncomeEvent


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    """SmartSave automatic savings engine."""

    config = BaseConfig()
    setup_logging(config)
    ctx.obj = create_engine_context(config)
    ctx.call_on_close(ctx.obj.dispose)


@main.command("init-db")
@click.pass_obj
def init_db(engine_ctx: EngineContext) -> None:
    """Create the database schema (idempotent)."""

    click.echo(f"Database ready: {engine_ctx.config.DATABASE_URL}")


@main.command("tick")
@click.option("--as-of", type=click.DateTime(), default=None, help="Evaluate rules as of this time")
@click.option("--user-id", type=int, default=None, help="Limit the pass to one user")
@click.pass_obj
def tick(engine_ctx: EngineContext, as_of: datetime | None, user_id: int | None) -> None:
    """Run the time-triggered rule pass."""

    try:
        result = engine_ctx.tick(as_of=as_of, user_id=user_id)
    except SmartSaveError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(result.to_dict())


@main.command("income")
@click.option("--user-id", type=int, required=True)
@click.option("--transaction-id", required=True)
@click.option("--amount", type=float, required=True)
@click.pass_obj
def income(engine_ctx: EngineContext, user_id: int, transaction_id: str, amount: float) -> None:
    """Run the income-triggered rule pass for one income event."""

    try:
        result = engine_ctx.handle_income(
            IncomeEvent(user_id=user_id, transaction_id=transaction_id, amount=amount)
        )
    except SmartSaveError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(result.to_dict())


@main.command("analytics")
@click.option("--user-id", type=int, required=True)
@click.option("--income", "monthly_income", type=float, required=True, help="Monthly income")
@click.option("--expenses", "monthly_expenses", type=float, required=True, help="Monthly expenses")
@click.pass_obj
def analytics(
    engine_ctx: EngineContext, user_id: int, monthly_income: float, monthly_expenses: float
) -> None:
    """Recompute cached analytics for a user's active goals."""

    snapshot = FinancialSnapshot(
        user_id=user_id, monthly_income=monthly_income, monthly_expenses=monthly_expenses
    )
    _echo_json(engine_ctx.refresh_analytics(snapshot).to_dict())


@main.command("progress")
@click.option("--user-id", type=int, required=True)
@click.option("--goal-id", type=int, required=True)
@click.pass_obj
def progress(engine_ctx: EngineContext, user_id: int, goal_id: int) -> None:
    """Show time-versus-amount progress for a goal."""

    try:
        result = goal_service.progress_for_goal(
            engine_ctx.goal_repo, engine_ctx.contribution_repo, goal_id, user_id=user_id
        )
    except SmartSaveError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(
        {
            "goal_id": goal_id,
            "time_progress": round(result.time_progress, 4),
            "amount_progress": round(result.amount_progress, 4),
            "is_on_track": result.is_on_track,
            "remaining_amount": result.remaining_amount,
            "days_remaining": result.days_remaining,
        }
    )


@main.command("goals")
@click.option("--user-id", type=int, required=True)
@click.pass_obj
def goals(engine_ctx: EngineContext, user_id: int) -> None:
    """List a user's goals with their cached progress and risk."""

    rows = [
        {
            "id": goal.id,
            "name": goal.name,
            "status": goal.status.value,
            "current_amount": goal.current_amount,
            "target_amount": goal.target_amount,
            "milestones": goal.achieved_milestones,
            "risk_level": goal.risk_level.name if goal.risk_level else None,
            "sustainability_score": goal.sustainability_score,
        }
        for goal in goal_service.list_goals(engine_ctx.goal_repo, user_id=user_id)
    ]
    _echo_json({"goals": rows})


if __name__ == "__main__":  # pragma: no cover
    main()
