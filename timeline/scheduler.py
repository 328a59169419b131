"""
APScheduler entry point: social accounts and the official site on fixed intervals.
"""
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from timeline.models import Summary
from timeline.pipeline import TimelinePipeline

logger = logging.getLogger(__name__)


def _log_summary(job: str, summary: Summary) -> None:
    level = logging.INFO if summary.success else logging.WARNING
    logger.log(level, "[%s] %s", job, summary.message)


def build_scheduler(pipeline: TimelinePipeline, scheduler: Optional[BlockingScheduler] = None) -> BlockingScheduler:
    settings = pipeline.settings
    scheduler = scheduler or BlockingScheduler(timezone="UTC")

    def job_accounts():
        _log_summary("accounts", pipeline.run_all())

    def job_official():
        for kind in ("news", "team", "events"):
            _log_summary(f"official:{kind}", pipeline.run_official(kind))

    scheduler.add_job(
        job_accounts, "interval", minutes=settings.schedule_minutes, id="social_accounts", max_instances=1
    )
    scheduler.add_job(
        job_official, "interval", minutes=settings.official_schedule_minutes, id="official_site", max_instances=1
    )
    return scheduler


def run_scheduler(pipeline: Optional[TimelinePipeline] = None) -> None:
    scheduler = build_scheduler(pipeline or TimelinePipeline())
    logger.info("Starting timeline scheduler with %s job(s)", len(scheduler.get_jobs()))
    scheduler.start()


if __name__ == "__main__":  # pragma: no cover
    run_scheduler()
