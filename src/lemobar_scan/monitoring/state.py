from __future__ import annotations

from lemobar_scan.core.metrics import InMemoryScanMetricsCollector
from lemobar_scan.core.prometheus_exporter import ScanPrometheusExporter

scan_metrics = InMemoryScanMetricsCollector()
scan_exporter = ScanPrometheusExporter()
