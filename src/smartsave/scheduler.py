"""Background task scheduler for the periodic rule and analytics passes."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from apscheduler.schedulers.background import BackgroundScheduler as APScheduler
from apscheduler.triggers.cron import CronTrigger

from .errors import SmartSaveError
from .logging_config import get_logger
from .services.analytics import BatchResult, FinancialSnapshot

if TYPE_CHECKING:
    from .context import EngineContext

logger = get_logger(__name__)

SnapshotProvider = Callable[[], Iterable[FinancialSnapshot]]

TICK_JOB_ID = "rule_tick"
ANALYTICS_JOB_ID = "goal_analytics"


class BackgroundScheduler:
    """Runs the time-triggered rule pass and the analytics pass on a cron schedule."""

    def __init__(self, ctx: EngineContext, *, snapshot_provider: Optional[SnapshotProvider] = None):
        """Initialize the scheduler with the engine context.

        Args:
            ctx: Engine context with repositories, services and config
            snapshot_provider: Returns the monthly income/expense figures of
                every user whose goals should be re-analyzed. Without it the
                analytics job is not scheduled.
        """
        self.ctx = ctx
        self.snapshot_provider = snapshot_provider
        self.scheduler: Optional[APScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None

    def start(self) -> None:
        """Start the background scheduler."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        config = self.ctx.config
        self.scheduler = APScheduler()

        self.scheduler.add_job(
            func=self.run_tick_now,
            trigger=CronTrigger(hour=config.TICK_HOUR, minute=config.TICK_MINUTE),
            id=TICK_JOB_ID,
            name="Savings Rule Tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Scheduled rule tick at {config.TICK_HOUR:02d}:{config.TICK_MINUTE:02d}")

        if self.snapshot_provider is not None:
            # Half an hour after the tick so fresh contributions are reflected.
            offset = config.TICK_HOUR * 60 + config.TICK_MINUTE + 30
            self.scheduler.add_job(
                func=self.run_analytics_now,
                trigger=CronTrigger(hour=(offset // 60) % 24, minute=offset % 60),
                id=ANALYTICS_JOB_ID,
                name="Goal Analytics",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("Scheduled goal analytics after the rule tick")

        self.scheduler.start()
        logger.info("Background scheduler started")

    def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
            logger.info("Background scheduler stopped")

    def run_tick_now(self, as_of: Optional[datetime] = None) -> Optional[BatchResult]:
        """Execute the time-triggered rule pass."""
        try:
            result = self.ctx.tick(as_of=as_of)
        except SmartSaveError as exc:
            logger.error(f"Scheduled rule tick failed: {exc}", exc_info=True)
            return None
        logger.info("Scheduled rule tick completed", extra=result.to_dict())
        return result

    def run_analytics_now(self, now: Optional[datetime] = None) -> BatchResult:
        """Recompute analytics for every user the snapshot provider reports."""
        total = BatchResult()
        if self.snapshot_provider is None:
            return total
        for snapshot in self.snapshot_provider():
            try:
                result = self.ctx.refresh_analytics(snapshot, now=now)
            except SmartSaveError as exc:
                logger.error(
                    f"Analytics pass failed for user {snapshot.user_id}: {exc}", exc_info=True
                )
                total.record_failure(f"user {snapshot.user_id}: {exc}")
                continue
            total.succeeded += result.succeeded
            total.skipped += result.skipped
            total.failed += result.failed
            total.errors.extend(result.errors)
        return total


def create_scheduler(
    ctx: EngineContext,
    *,
    snapshot_provider: Optional[SnapshotProvider] = None,
    auto_start: bool = False,
) -> BackgroundScheduler:
    """Create and optionally start a background scheduler."""
    scheduler = BackgroundScheduler(ctx, snapshot_provider=snapshot_provider)
    if auto_start:
        scheduler.start()
    return scheduler
