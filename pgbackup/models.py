from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pgbackup.core.exceptions import BackupError, CleanupFailed

ARCHIVE_CONTENT_TYPE = "application/gzip"

_UNSAFE_TIMESTAMP_CHARS = re.compile(r"[:.]+")


def remote_key_for(name: str, subfolder: str = "") -> str:
    folder = subfolder.strip("/")
    return f"{folder}/{name}" if folder else name


@dataclass(frozen=True)
class BackupJob:
    timestamp: str
    filename: str
    local_path: str
    remote_key: str

    @classmethod
    def create(cls, prefix: str, scratch_dir: str, subfolder: str = "", now: Optional[datetime] = None) -> "BackupJob":
        now = now or datetime.now(timezone.utc)
        iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        timestamp = _UNSAFE_TIMESTAMP_CHARS.sub("-", iso)
        filename = f"{prefix}-{timestamp}.tar.gz"
        return cls(
            timestamp=timestamp,
            filename=filename,
            local_path=os.path.join(scratch_dir, filename),
            remote_key=remote_key_for(filename, subfolder),
        )


@dataclass(frozen=True)
class ArchiveFile:
    path: str
    size: int
    valid: bool = False


@dataclass(frozen=True)
class UploadDescriptor:
    bucket: str
    key: str
    content_type: str = ARCHIVE_CONTENT_TYPE
    content_md5: Optional[str] = None  # base64 of the raw digest
    subfolder: Optional[str] = None


class BackupState(str, Enum):
    IDLE = "idle"
    DUMPING = "dumping"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BackupResult:
    job: BackupJob
    state: BackupState
    failed_stage: Optional[BackupState] = None
    error: Optional[BackupError] = None
    cleanup_error: Optional[CleanupFailed] = None
    archive_size: int = 0
    public_url: Optional[str] = None
    transitions: list[BackupState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is BackupState.DONE
