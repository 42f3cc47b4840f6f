"""APScheduler wrapper for the daily post expiry job."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger


class JobScheduler:
    """Minimal wrapper around AsyncIOScheduler for maintenance jobs."""

    def __init__(self, timezone: str = "UTC") -> None:
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if not self._started:
            self._scheduler.start()
            self._started = True

    def shutdown(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False

    def schedule_daily(self, job_id: str, func: Callable[[], object], *, hour: int, minute: int = 1) -> None:
        """Run ``func`` once a day at ``hour:minute`` in the scheduler's zone."""
        trigger = CronTrigger(hour=hour, minute=minute, timezone=self._scheduler.timezone)
        self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)

    def job_ids(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]


__all__ = ["JobScheduler"]
