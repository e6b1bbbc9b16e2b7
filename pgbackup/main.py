import logging
import sys

from pgbackup.backup import run_backup
from pgbackup.config import load_settings
from pgbackup.core.metrics import metrics
from pgbackup.scheduler import run_guarded, start_scheduler

logger = logging.getLogger("pgbackup")


def main() -> int:
    try:
        settings = load_settings()
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        return 2

    logging.basicConfig(level=settings.log_level)

    if settings.single_shot_mode:
        logger.info("Single shot mode: running one backup and exiting")
        result = run_backup(settings)
        if not result.ok:
            logger.error(
                "Backup failed at stage %s: %s", result.failed_stage.value, result.error
            )
            return 1
        return 0

    if settings.run_on_startup:
        logger.info("Running backup on startup...")
        run_guarded(settings, logger, runner=run_backup)

    try:
        start_scheduler(settings, logger)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Backup scheduler stopped. metrics=%s", metrics.snapshot())
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
