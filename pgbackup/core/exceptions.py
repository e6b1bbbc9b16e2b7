from __future__ import annotations


class BackupError(Exception):
    """Base class for a failed pipeline stage."""

    stage = "backup"

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        message = super().__str__()
        if self.detail:
            return f"{message}: {self.detail}"
        return message


class DumpFailed(BackupError):
    stage = "dumping"

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "", detail: str | None = None):
        super().__init__(message, detail=detail or (stderr.strip() or None))
        self.returncode = returncode
        self.stderr = stderr


class ArchiveInvalid(BackupError):
    stage = "validating"

    def __init__(self, message: str, *, path: str, detail: str | None = None):
        super().__init__(message, detail=detail)
        self.path = path


class UploadFailed(BackupError):
    stage = "uploading"

    def __init__(self, message: str, *, bucket: str, key: str, detail: str | None = None):
        super().__init__(f"{message} (bucket={bucket} key={key})", detail=detail)
        self.bucket = bucket
        self.key = key


class CleanupFailed(BackupError):
    """Raised when the local archive could not be removed. Never fatal to a job."""

    stage = "cleaning_up"

    def __init__(self, message: str, *, path: str, detail: str | None = None):
        super().__init__(message, detail=detail)
        self.path = path
