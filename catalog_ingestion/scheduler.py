"""APScheduler-based interval scheduling for provider refreshes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from catalog_ingestion.config import IngestionSettings

logger = logging.getLogger("ingestion.scheduler")


class IntervalTaskRunner:
    """Registers refresh closures as APScheduler interval jobs.

    ``interval_for`` maps a task id to its cadence in minutes. The first run
    fires immediately so a freshly started process populates the catalog.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        interval_for: Callable[[str], int],
        misfire_grace_time: int = 300,
        run_immediately: bool = True,
    ) -> None:
        self.scheduler = scheduler
        self.interval_for = interval_for
        self.misfire_grace_time = misfire_grace_time
        self.run_immediately = run_immediately

    def run(self, task_id: str, fn: Callable[[], None]) -> None:
        minutes = self.interval_for(task_id)
        kwargs = {}
        if self.run_immediately:
            # an explicit None would add the job paused
            kwargs["next_run_time"] = datetime.now(timezone.utc)
        self.scheduler.add_job(
            fn,
            "interval",
            minutes=minutes,
            id=task_id,
            name=task_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
            replace_existing=True,
            **kwargs,
        )
        logger.info("Scheduled %s every %d minutes", task_id, minutes)


def _on_job_event(event) -> None:
    if event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning("Job %s still running, skipped this run", event.job_id)
    else:
        logger.error("Job %s raised an exception: %s", event.job_id, event.exception)


def kind_of(task_id: str) -> str:
    """``aws_rds:east:refresh`` -> ``aws_rds``."""
    return task_id.split(":", 1)[0]


def create_scheduler(
    settings: IngestionSettings,
    scheduler: Optional[BaseScheduler] = None,
) -> tuple[BaseScheduler, IntervalTaskRunner]:
    scheduler = scheduler or BlockingScheduler(timezone=timezone.utc)
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)
    runner = IntervalTaskRunner(
        scheduler,
        interval_for=lambda task_id: settings.interval_for(kind_of(task_id)),
        misfire_grace_time=settings.misfire_grace_time,
    )
    return scheduler, runner


def start_scheduler(scheduler: BaseScheduler) -> None:
    """Block running the scheduled refreshes until the process is stopped."""
    logger.info("Starting scheduler with jobs: %s", [j.id for j in scheduler.get_jobs()])
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
