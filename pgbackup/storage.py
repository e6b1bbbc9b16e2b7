from __future__ import annotations

import logging
import os

from pgbackup.core.exceptions import CleanupFailed

logger = logging.getLogger("pgbackup.storage")


def ensure_scratch_dir(scratch_dir: str) -> str:
    os.makedirs(scratch_dir, exist_ok=True)
    return scratch_dir


def delete_local_archive(file_path: str) -> bool:
    """Remove the scratch archive. Returns False when there was nothing to delete."""
    logger.info("Deleting file...")
    try:
        os.remove(file_path)
    except FileNotFoundError:
        return False  # dump never got far enough to create it
    except OSError as exc:
        raise CleanupFailed(f"Could not delete {file_path}", path=file_path, detail=str(exc)) from exc
    return True
