from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from pgbackup.backup import run_backup
from pgbackup.config import Settings


def run_guarded(settings: Settings, logger, runner: Callable[[Settings], object] = run_backup) -> None:
    """Run one backup, logging failures instead of raising them."""
    try:
        result = runner(settings)
        if not getattr(result, "ok", False):
            logger.error("event=scheduled_backup_failed file=%s", result.job.filename)
    except Exception as e:
        # One broken run must not take the scheduler down with it.
        logger.exception("Unexpected error in backup job: %s", str(e))


def build_scheduler(
    settings: Settings,
    logger,
    *,
    scheduler: BaseScheduler | None = None,
    runner: Callable[[Settings], object] = run_backup,
) -> BaseScheduler:
    scheduler = scheduler or BlockingScheduler()
    trigger = CronTrigger.from_crontab(settings.cron_schedule)

    def _job():
        run_guarded(settings, logger, runner)

    scheduler.add_job(
        _job,
        trigger,
        id="db-backup",
        name="Database backup",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def start_scheduler(settings: Settings, logger) -> BaseScheduler:
    scheduler = build_scheduler(settings, logger)
    logger.info("Backup cron scheduled with '%s'", settings.cron_schedule)
    scheduler.start()
    return scheduler
