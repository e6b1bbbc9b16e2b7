from __future__ import annotations

import threading
from typing import Dict


class MetricsStore:
    """Thread-safe in-memory backup counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {
            "backups_succeeded": 0,
            "backups_failed": 0,
            "bytes_uploaded": 0,
            "cleanup_failures": 0,
        }
        self._failures_by_stage: Dict[str, int] = {}

    def record_success(self, size_bytes: int) -> None:
        with self._lock:
            self._counters["backups_succeeded"] += 1
            self._counters["bytes_uploaded"] += size_bytes

    def record_failure(self, stage: str) -> None:
        with self._lock:
            self._counters["backups_failed"] += 1
            self._failures_by_stage[stage] = self._failures_by_stage.get(stage, 0) + 1

    def record_cleanup_failure(self) -> None:
        with self._lock:
            self._counters["cleanup_failures"] += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            data = dict(self._counters)
            for stage, count in self._failures_by_stage.items():
                data[f"failed_{stage}"] = count
            return data


metrics = MetricsStore()
