"""
Scheduler infrastructure: APScheduler interval jobs for the monitor tick
and the hourly follower refresh.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger


logger = logging.getLogger(__name__)


class Scheduler:
    """In-memory AsyncIOScheduler running coroutine jobs on fixed periods.

    A run that overruns its period is never cancelled; up to
    ``max_instances`` runs of the same job may overlap before APScheduler
    starts dropping the late ones with a warning.
    """

    def __init__(self, timezone: str = "UTC", max_instances: int = 3):
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": False,
                "max_instances": max_instances,
                "misfire_grace_time": 60,
            },
            timezone=timezone,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        if not self.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    async def stop(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def add_interval_job(
        self,
        func: Callable,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        job_id: Optional[str] = None,
        run_now: bool = False,
        **kwargs
    ) -> None:
        """Run ``func`` every ``hours:minutes:seconds``, first run now if asked."""
        period = timedelta(hours=hours, minutes=minutes, seconds=seconds)
        if period.total_seconds() <= 0:
            raise ValueError("interval must be positive")

        trigger = IntervalTrigger(seconds=int(period.total_seconds()))
        if run_now:
            kwargs.setdefault("next_run_time", datetime.now(trigger.timezone))

        job_id = job_id or func.__name__
        self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(f"Scheduled {job_id} every {period}")

    def list_jobs(self) -> Dict[str, Any]:
        return {
            job.id: {"name": job.name, "next_run": job.next_run_time, "trigger": str(job.trigger)}
            for job in self._scheduler.get_jobs()
        }
