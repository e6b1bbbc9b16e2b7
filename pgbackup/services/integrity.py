from __future__ import annotations

import base64
import dataclasses
import hashlib
import logging
from typing import Callable

from pgbackup.core.exceptions import UploadFailed
from pgbackup.models import ArchiveFile, UploadDescriptor

logger = logging.getLogger("pgbackup.integrity")

_CHUNK_SIZE = 1024 * 1024

# A pre-upload hook sees the validated archive and returns the descriptor to upload with.
PreUploadHook = Callable[[ArchiveFile, UploadDescriptor], UploadDescriptor]


def md5_base64(file_path: str) -> str:
    """Base64 of the raw MD5 digest, the form S3 expects in Content-MD5."""
    digest = hashlib.md5()
    with open(file_path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


def attach_content_md5(archive: ArchiveFile, descriptor: UploadDescriptor) -> UploadDescriptor:
    logger.info("MD5 hashing file...")
    try:
        content_md5 = md5_base64(archive.path)
    except OSError as exc:
        raise UploadFailed(
            "Could not hash archive for Content-MD5", bucket=descriptor.bucket, key=descriptor.key, detail=str(exc)
        ) from exc
    logger.info("Done hashing file")
    return dataclasses.replace(descriptor, content_md5=content_md5)


def default_hooks(settings) -> list[PreUploadHook]:
    hooks: list[PreUploadHook] = []
    if settings.support_object_lock:
        hooks.append(attach_content_md5)
    return hooks
