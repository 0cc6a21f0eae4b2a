"""APScheduler setup and job registration."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from kantong.config import settings
from kantong.jobs.daily_backup import daily_backup
from kantong.jobs.session_eviction import evict_idle_sessions

scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)


def register_jobs() -> None:
    """Register all periodic jobs if not already present."""
    if scheduler.get_job("daily_backup") is None:
        scheduler.add_job(
            daily_backup,
            CronTrigger(hour=settings.BACKUP_HOUR, minute=0, timezone=settings.TIMEZONE),
            id="daily_backup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    if scheduler.get_job("evict_idle_sessions") is None:
        scheduler.add_job(
            evict_idle_sessions,
            IntervalTrigger(minutes=5),
            id="evict_idle_sessions",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
