import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from recurrence import RecurrenceRun, RecurringEngine


settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> Optional[RecurrenceRun]:
        logger.info(f"scheduler_run: source={source}")
        try:
            with session_scope() as session:
                run = RecurringEngine(session).post_due()
        except Exception:
            logger.exception(f"scheduler_run_failed: source={source}")
            return None
        logger.info(
            f"scheduler_run: source={source} posted={len(run.posted)} "
            f"failed={len(run.failed)}"
        )
        return run

    def start(self) -> None:
        trigger = CronTrigger(hour=0, minute=0, timezone=settings.timezone)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_midnight"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started: daily at 00:00 {settings.timezone}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
