from __future__ import annotations


def format_size(size_bytes: int) -> str:
    """Format a byte count for progress logs, e.g. ``1.50 MB``."""
    if size_bytes <= 0:
        return "0 B"
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024.0:
            return f"{size:.2f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024.0
    return f"{size:.2f} PB"
