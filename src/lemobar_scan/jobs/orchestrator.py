from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

import httpx

from lemobar_scan.core.centers import DEFAULT_CENTERS
from lemobar_scan.core.metrics import InMemoryScanMetricsCollector
from lemobar_scan.core.models import Center, ScanOptions, ScanReport, ScanSummary
from lemobar_scan.core.settings import ScanSettings
from lemobar_scan.jobs.scan_worker import SpiralScanWorker
from lemobar_scan.jobs.store import AreaStore
from lemobar_scan.providers.base import AreaSource
from lemobar_scan.providers.lemobar import LemobarAreaClient

logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """Runs one ``SpiralScanWorker`` per center concurrently and waits for all of them."""

    def __init__(
        self,
        centers: Sequence[Center],
        options: ScanOptions,
        source: AreaSource,
        store: AreaStore,
        metrics: InMemoryScanMetricsCollector | None = None,
        stop_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._centers = list(centers)
        self._options = options
        self._source = source
        self._store = store
        self._metrics = metrics
        self._stop_event = stop_event
        self._clock = clock
        self._sleep_fn = sleep_fn

    def build_worker(self, center: Center) -> SpiralScanWorker:
        return SpiralScanWorker(
            center=center,
            options=self._options,
            source=self._source,
            store=self._store,
            metrics=self._metrics,
            stop_event=self._stop_event,
            clock=self._clock,
            sleep_fn=self._sleep_fn,
        )

    async def run(self) -> ScanReport:
        started = self._clock()
        logger.info("scan_started", extra={"center_count": len(self._centers)})
        workers = [self.build_worker(center) for center in self._centers]
        results = await asyncio.gather(*(worker.run() for worker in workers), return_exceptions=True)

        summaries: list[ScanSummary] = []
        failed_centers: list[str] = []
        for center, result in zip(self._centers, results):
            if isinstance(result, ScanSummary):
                summaries.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            failed_centers.append(center.name)
            logger.error(
                "scan_worker_crashed",
                exc_info=result,
                extra={"center": center.name, "error": str(result)},
            )

        elapsed = self._clock() - started
        if self._metrics:
            self._metrics.observe_scan_duration(elapsed)
        report = ScanReport(summaries=summaries, failed_centers=failed_centers, elapsed_seconds=elapsed)
        logger.info(
            "scan_completed",
            extra={
                "center_count": len(self._centers),
                "failed_centers": len(failed_centers),
                "points_scanned": report.points_scanned,
                "records_saved": report.records_saved,
                "elapsed_minutes": round(elapsed / 60.0, 2),
            },
        )
        return report


async def run_scan(
    settings: ScanSettings,
    store: AreaStore,
    centers: Sequence[Center] = DEFAULT_CENTERS,
    metrics: InMemoryScanMetricsCollector | None = None,
    stop_event: asyncio.Event | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> ScanReport:
    """Scan ``centers`` with the upstream API client built from ``settings``.

    Raises ``ConfigError`` before any worker starts when no authorization is configured.
    """
    authorization = settings.require_authorization()
    options = settings.to_scan_options()
    async with LemobarAreaClient(authorization, client_factory=client_factory) as client:
        orchestrator = ScanOrchestrator(
            centers=centers,
            options=options,
            source=client,
            store=store,
            metrics=metrics,
            stop_event=stop_event,
        )
        return await orchestrator.run()
