from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from lemobar_scan.core.metrics import InMemoryScanMetricsCollector


class ScanPrometheusExporter:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._points_scanned = Gauge(
            "scan_points_total",
            "Grid points queried grouped by center",
            labelnames=("center",),
            registry=self._registry,
        )
        self._fetch_errors = Gauge(
            "scan_fetch_errors_total",
            "Failed upstream lookups grouped by center and error kind",
            labelnames=("center", "kind"),
            registry=self._registry,
        )
        self._records = Gauge(
            "scan_records_total",
            "Area records grouped by center and result",
            labelnames=("center", "result"),
            registry=self._registry,
        )
        self._persistence_errors = Gauge(
            "scan_persistence_errors_total",
            "Failed store writes grouped by center",
            labelnames=("center",),
            registry=self._registry,
        )
        self._worker_runs = Gauge(
            "scan_worker_runs_total",
            "Finished workers grouped by center and stop reason",
            labelnames=("center", "stop_reason"),
            registry=self._registry,
        )
        self._worker_duration = Gauge(
            "scan_worker_duration_seconds",
            "Last worker run duration by center",
            labelnames=("center",),
            registry=self._registry,
        )
        self._scan_duration = Gauge(
            "scan_duration_seconds",
            "Last full scan duration",
            registry=self._registry,
        )

    def render(self, metrics: InMemoryScanMetricsCollector) -> str:
        for center, count in metrics.points_scanned.items():
            self._points_scanned.labels(center=center).set(count)
        for (center, kind), count in metrics.fetch_errors_total.items():
            self._fetch_errors.labels(center=center, kind=kind).set(count)
        for center, count in metrics.records_received.items():
            self._records.labels(center=center, result="received").set(count)
        for center, count in metrics.records_saved.items():
            self._records.labels(center=center, result="saved").set(count)
        for center, count in metrics.persistence_errors_total.items():
            self._persistence_errors.labels(center=center).set(count)
        for (center, stop_reason), count in metrics.worker_runs_total.items():
            self._worker_runs.labels(center=center, stop_reason=stop_reason).set(count)
        for center, duration in metrics.worker_duration_seconds.items():
            self._worker_duration.labels(center=center).set(duration)
        if metrics.scan_duration_seconds is not None:
            self._scan_duration.set(metrics.scan_duration_seconds)
        return generate_latest(self._registry).decode("utf-8")
