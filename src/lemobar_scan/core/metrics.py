from __future__ import annotations

from collections import defaultdict


class InMemoryScanMetricsCollector:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.points_scanned: dict[str, int] = defaultdict(int)
        self.fetch_errors_total: dict[tuple[str, str], int] = defaultdict(int)
        self.records_received: dict[str, int] = defaultdict(int)
        self.records_saved: dict[str, int] = defaultdict(int)
        self.persistence_errors_total: dict[str, int] = defaultdict(int)
        self.worker_runs_total: dict[tuple[str, str], int] = defaultdict(int)
        self.worker_duration_seconds: dict[str, float] = {}
        self.scan_duration_seconds: float | None = None

    def increment_points(self, center: str) -> None:
        self.points_scanned[center] += 1

    def increment_fetch_error(self, center: str, kind: str) -> None:
        self.fetch_errors_total[(center, kind)] += 1

    def add_records(self, center: str, received: int, saved: int) -> None:
        self.records_received[center] += received
        self.records_saved[center] += saved

    def increment_persistence_error(self, center: str) -> None:
        self.persistence_errors_total[center] += 1

    def observe_worker_completed(self, center: str, stop_reason: str, duration_seconds: float) -> None:
        self.worker_runs_total[(center, stop_reason)] += 1
        self.worker_duration_seconds[center] = duration_seconds

    def observe_scan_duration(self, duration_seconds: float) -> None:
        self.scan_duration_seconds = duration_seconds

    @property
    def total_points(self) -> int:
        return sum(self.points_scanned.values())

    @property
    def total_fetch_errors(self) -> int:
        return sum(self.fetch_errors_total.values())
