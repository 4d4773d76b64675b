"""Scheduler service - periodic log cleanup and the optional in-process daily run.

In production the daily run is normally triggered by an external scheduler
calling ``POST /api/scheduler/notifications``; set SCHEDULER_ENABLED to run it
from this process instead.
"""
import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import Settings, settings as app_settings
from ..repositories import NotificationLogStore, SqlNotificationLogStore
from ..utils.clock import Clock, SystemClock
from .pipeline import NotificationPipeline, build_pipeline

logger = logging.getLogger(__name__)


class SchedulerService:
    """Owns the APScheduler instance and its jobs."""

    def __init__(
        self,
        settings: Settings = app_settings,
        log_store: Optional[NotificationLogStore] = None,
        pipeline_factory: Optional[Callable[[], NotificationPipeline]] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.log_store = log_store or SqlNotificationLogStore()
        self.pipeline_factory = pipeline_factory or (lambda: build_pipeline(self.settings))
        self.clock = clock or SystemClock(settings.timezone)
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone=self.settings.timezone)

        # Expired notification logs no longer suppress anything
        self.scheduler.add_job(
            self.cleanup_expired_logs,
            trigger=IntervalTrigger(hours=self.settings.log_cleanup_interval_hours),
            id="cleanup_expired_logs",
            replace_existing=True,
            max_instances=1,
        )

        if self.settings.scheduler_enabled:
            self.scheduler.add_job(
                self.run_notifications,
                trigger=CronTrigger(
                    hour=self.settings.scheduler_run_hour,
                    minute=self.settings.scheduler_run_minute,
                ),
                id="run_notifications",
                replace_existing=True,
                max_instances=1,
                misfire_grace_time=3600,
            )

        self.scheduler.start()
        self._running = True
        if self.settings.scheduler_enabled:
            logger.info(
                f"Scheduler started (daily run at {self.settings.scheduler_run_hour:02d}:"
                f"{self.settings.scheduler_run_minute:02d} {self.settings.timezone})"
            )
        else:
            logger.info("Scheduler started (log cleanup only, notifications triggered externally)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def run_notifications(self):
        """Run the notification pipeline once."""
        try:
            result = await self.pipeline_factory().run_scheduled_processing()
            logger.info(f"Scheduled notification run complete: {result.to_dict()}")
        except Exception as e:
            logger.error(f"Error running scheduled notifications: {e}")

    async def cleanup_expired_logs(self) -> int:
        """Delete notification logs whose expiry has passed."""
        try:
            deleted = await self.log_store.delete_expired(self.clock.now())
            logger.info(f"Cleaned up {deleted} expired notification logs")
            return deleted
        except Exception as e:
            logger.error(f"Error cleaning up notification logs: {e}")
            return 0


# Global instance
scheduler_service = SchedulerService()
