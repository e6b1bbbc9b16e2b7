from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from pgbackup.config import Settings
from pgbackup.core.exceptions import BackupError, CleanupFailed
from pgbackup.core.metrics import MetricsStore, metrics as default_metrics
from pgbackup.models import BackupJob, BackupResult, BackupState
from pgbackup.services.dump import DumpProducer
from pgbackup.services.integrity import PreUploadHook, default_hooks
from pgbackup.services.s3_upload import S3Uploader
from pgbackup.services.validator import validate_archive
from pgbackup.storage import delete_local_archive, ensure_scratch_dir

logger = logging.getLogger("pgbackup.backup")


class BackupOrchestrator:
    """Runs one backup job: dump, validate, upload, and always clean up.

    Collaborators are injected so tests can swap in fakes; by default they
    are built from the settings.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        producer: Optional[DumpProducer] = None,
        uploader: Optional[S3Uploader] = None,
        hooks: Optional[Sequence[PreUploadHook]] = None,
        metrics: Optional[MetricsStore] = None,
    ):
        self._settings = settings
        self._producer = producer or DumpProducer.from_settings(settings)
        self._uploader = uploader
        self._hooks = list(default_hooks(settings) if hooks is None else hooks)
        self._metrics = metrics or default_metrics

    @property
    def uploader(self) -> S3Uploader:
        # Built lazily so a dump failure never needs a working S3 client.
        if self._uploader is None:
            self._uploader = S3Uploader.from_settings(self._settings)
        return self._uploader

    def run(self, now: Optional[datetime] = None) -> BackupResult:
        logger.info("Initiating DB backup...")
        settings = self._settings
        ensure_scratch_dir(settings.scratch_dir)
        job = BackupJob.create(settings.file_prefix, settings.scratch_dir, settings.bucket_subfolder, now=now)
        result = BackupResult(job=job, state=BackupState.IDLE, transitions=[BackupState.IDLE])

        def enter(state: BackupState) -> None:
            result.state = state
            result.transitions.append(state)
            logger.info("event=stage stage=%s file=%s", state.value, job.filename)

        try:
            enter(BackupState.DUMPING)
            self._producer.dump_to_file(job.local_path)

            enter(BackupState.VALIDATING)
            archive = validate_archive(job.local_path)
            result.archive_size = archive.size

            enter(BackupState.UPLOADING)
            uploader = self.uploader
            descriptor = uploader.describe(job.filename)
            for hook in self._hooks:
                descriptor = hook(archive, descriptor)
            uploader.upload(archive, descriptor)
            result.public_url = uploader.public_url(descriptor.key)
        except BackupError as exc:
            result.failed_stage = result.state
            result.error = exc
        finally:
            self._cleanup(job, result)

        if result.error is not None:
            enter(BackupState.FAILED)
            self._metrics.record_failure(result.failed_stage.value)
            logger.error(
                "event=backup_failure stage=%s error=%s", result.failed_stage.value, result.error
            )
            return result

        enter(BackupState.DONE)
        self._metrics.record_success(result.archive_size)
        if result.public_url:
            logger.info("Backup available at %s", result.public_url)
        logger.info("DB backup complete.")
        return result

    def _cleanup(self, job: BackupJob, result: BackupResult) -> None:
        result.state = BackupState.CLEANING_UP
        result.transitions.append(BackupState.CLEANING_UP)
        try:
            delete_local_archive(job.local_path)
        except CleanupFailed as exc:
            result.cleanup_error = exc
            self._metrics.record_cleanup_failure()
            logger.warning("event=cleanup_failure path=%s error=%s", job.local_path, exc)


def run_backup(settings: Settings, **kwargs) -> BackupResult:
    return BackupOrchestrator(settings, **kwargs).run()
