from __future__ import annotations

from fastapi import FastAPI, Response

from lemobar_scan.core.metrics import InMemoryScanMetricsCollector
from lemobar_scan.core.prometheus_exporter import ScanPrometheusExporter
from lemobar_scan.monitoring.state import scan_exporter, scan_metrics


def create_monitoring_app(
    metrics: InMemoryScanMetricsCollector | None = None,
    exporter: ScanPrometheusExporter | None = None,
) -> FastAPI:
    collector = metrics or scan_metrics
    renderer = exporter or scan_exporter
    app = FastAPI(title="Lemobar Scan Monitoring", version="0.1.0")

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz() -> dict[str, str]:
        return {"status": "ready"}

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        body = renderer.render(collector)
        return Response(content=body, media_type="text/plain; version=0.0.4")

    return app
