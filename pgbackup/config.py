from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass

from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv

load_dotenv()

_TRUTHY = {"true", "1", "yes"}


def _flag(env: Mapping[str, str], name: str, default: str = "false") -> bool:
    return env.get(name, default).strip().lower() in _TRUTHY


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ValueError(f"{name} must be set")
    return value


def _log_level(env: Mapping[str, str]) -> str:
    level = env.get("LOG_LEVEL", "").strip().upper() or "INFO"
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"LOG_LEVEL {level!r} is not a logging level")
    return level


def _cron_schedule(env: Mapping[str, str]) -> str:
    schedule = env.get("BACKUP_CRON_SCHEDULE", "").strip() or "0 5 * * *"
    try:
        CronTrigger.from_crontab(schedule)
    except ValueError as exc:
        raise ValueError(f"BACKUP_CRON_SCHEDULE {schedule!r} is invalid: {exc}") from exc
    return schedule


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, loaded once at startup and passed explicitly."""

    database_url: str
    access_key_id: str
    secret_access_key: str
    bucket: str
    endpoint: str = ""
    region: str = "auto"
    public_access_url: str = ""
    bucket_subfolder: str = ""
    file_prefix: str = "backup"
    backup_options: str = ""
    pg_dump_path: str = "pg_dump"
    support_object_lock: bool = False
    cron_schedule: str = "0 5 * * *"
    run_on_startup: bool = False
    single_shot_mode: bool = False
    scratch_dir: str = ""
    log_level: str = "INFO"

    @property
    def dump_options(self) -> list[str]:
        # Plain whitespace split; quoted values are not supported.
        return self.backup_options.split()


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        database_url=_required(env, "BACKUP_DATABASE_URL"),
        access_key_id=_required(env, "S3_ACCESS_KEY_ID"),
        secret_access_key=_required(env, "S3_SECRET_ACCESS_KEY"),
        bucket=_required(env, "S3_BUCKET"),
        endpoint=env.get("S3_ENDPOINT", "").strip(),
        region=env.get("S3_REGION", "").strip() or "auto",
        public_access_url=env.get("S3_PUBLIC_ACCESS_URL", "").strip(),
        bucket_subfolder=env.get("BUCKET_SUBFOLDER", "").strip(),
        file_prefix=env.get("BACKUP_FILE_PREFIX", "").strip() or "backup",
        backup_options=env.get("BACKUP_OPTIONS", ""),
        pg_dump_path=env.get("PG_DUMP_PATH", "").strip() or "pg_dump",
        # Hashing large archives is slow, so this stays off unless asked for.
        support_object_lock=_flag(env, "SUPPORT_OBJECT_LOCK"),
        cron_schedule=_cron_schedule(env),
        run_on_startup=_flag(env, "RUN_ON_STARTUP"),
        single_shot_mode=_flag(env, "SINGLE_SHOT_MODE"),
        scratch_dir=env.get("BACKUP_SCRATCH_DIR", "").strip() or tempfile.gettempdir(),
        log_level=_log_level(env),
    )
