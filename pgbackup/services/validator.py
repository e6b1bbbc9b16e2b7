from __future__ import annotations

import gzip
import logging
import os
import zlib

from pgbackup.core.exceptions import ArchiveInvalid
from pgbackup.models import ArchiveFile
from pgbackup.services.stats import format_size

logger = logging.getLogger("pgbackup.validator")

_CHUNK_SIZE = 64 * 1024


def validate_archive(file_path: str) -> ArchiveFile:
    """Confirm the archive is a non-empty, complete gzip stream.

    The dump tool's exit status is not enough on its own: a broken pipe can
    leave an empty or truncated file behind without a non-zero exit. The
    whole stream is decompressed so a missing end-of-stream marker is caught
    too.
    """
    try:
        size = os.path.getsize(file_path)
    except OSError as exc:
        raise ArchiveInvalid("Backup archive file is missing", path=file_path, detail=str(exc)) from exc

    if size <= 0:
        raise ArchiveInvalid(
            "Backup archive file is invalid or empty; pg_dump produced no data", path=file_path
        )

    decompressed = 0
    try:
        with gzip.open(file_path, "rb") as gz:
            for chunk in iter(lambda: gz.read(_CHUNK_SIZE), b""):
                decompressed += len(chunk)
    except (OSError, EOFError, zlib.error) as exc:
        raise ArchiveInvalid(
            "Backup archive file is not a valid gzip stream", path=file_path, detail=str(exc)
        ) from exc

    if decompressed == 0:
        raise ArchiveInvalid("Backup archive decompresses to nothing", path=file_path)

    logger.info("Backup archive file is valid")
    logger.info("Backup filesize: %s", format_size(size))
    return ArchiveFile(path=file_path, size=size, valid=True)
