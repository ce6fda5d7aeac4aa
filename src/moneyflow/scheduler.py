"""Background task scheduler for periodic operations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from apscheduler.schedulers.background import BackgroundScheduler as APScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .logging_config import get_logger

if TYPE_CHECKING:
    from .context import AppContext

logger = get_logger("scheduler")


class BackgroundScheduler:
    """Runs recurring-transaction processing and outbox flushing periodically."""

    def __init__(self, ctx: AppContext):
        """Initialize the scheduler with app context.

        Args:
            ctx: Application context holding the open ledger sessions
        """
        self.ctx = ctx
        self.scheduler = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None

    def start(self) -> None:
        """Start the background scheduler."""
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        interval = self.ctx.config.SCHEDULER_INTERVAL_MINUTES
        self.scheduler = APScheduler()
        self.scheduler.add_job(
            func=self._process_recurring,
            trigger=IntervalTrigger(minutes=interval),
            id="process_recurring",
            name="Process Recurring Transactions",
            replace_existing=True,
        )
        self.scheduler.add_job(
            func=self._flush_outboxes,
            trigger=IntervalTrigger(minutes=interval),
            id="flush_outboxes",
            name="Flush Sync Outboxes",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Background scheduler started", extra={"interval_minutes": interval})

    def stop(self) -> None:
        """Stop the background scheduler, flushing whatever is still pending."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
            self._flush_outboxes()
            logger.info("Background scheduler stopped")

    def _process_recurring(self) -> None:
        try:
            spawned = self.ctx.process_recurring_all()
            if any(spawned.values()):
                logger.info("Scheduled recurring run completed", extra={"spawned": spawned})
        except Exception as exc:
            logger.error(f"Scheduled recurring run failed: {exc}", exc_info=True)

    def _flush_outboxes(self) -> None:
        try:
            reports = self.ctx.flush_all()
            failed = [user for user, report in reports.items() if not report.ok]
            if failed:
                logger.warning("Outbox flush left pending changes", extra={"users": failed})
        except Exception as exc:
            logger.error(f"Scheduled flush failed: {exc}", exc_info=True)

    def add_job(
        self,
        func: Callable,
        trigger: str,
        *,
        job_id: str,
        name: str | None = None,
        **trigger_args,
    ) -> None:
        """Add a custom job to the scheduler.

        Args:
            func: Function to execute
            trigger: Trigger type ('cron', 'interval', 'date')
            job_id: Unique job identifier
            name: Human-readable job name
            **trigger_args: Additional trigger arguments
        """
        if self.scheduler is None:
            logger.warning(f"Cannot add job {job_id}: scheduler not started")
            return

        if trigger == "cron":
            trigger_obj = CronTrigger(**trigger_args)
        elif trigger == "interval":
            trigger_obj = IntervalTrigger(**trigger_args)
        elif trigger == "date":
            trigger_obj = DateTrigger(**trigger_args)
        else:
            raise ValueError(f"Unknown trigger type: {trigger}")

        self.scheduler.add_job(
            func=func,
            trigger=trigger_obj,
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )
        logger.info(f"Added job: {job_id}")

    def remove_job(self, job_id: str) -> None:
        if self.scheduler is not None:
            self.scheduler.remove_job(job_id)
            logger.info(f"Removed job: {job_id}")


def create_scheduler(ctx: AppContext, *, auto_start: bool = False) -> BackgroundScheduler:
    """Create and optionally start a background scheduler."""
    scheduler = BackgroundScheduler(ctx)
    if auto_start:
        scheduler.start()
    return scheduler
