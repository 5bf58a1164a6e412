from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from opentelemetry import trace

from lemobar_scan.core.exceptions import FetchError, PersistenceError
from lemobar_scan.core.metrics import InMemoryScanMetricsCollector
from lemobar_scan.core.models import (
    STOP_CANCELLED,
    STOP_MAX_DURATION,
    STOP_MAX_POINTS,
    Center,
    Coordinate,
    ScanOptions,
    ScanSummary,
)
from lemobar_scan.core.spiral import SpiralPath
from lemobar_scan.jobs.store import AreaStore
from lemobar_scan.providers.base import AreaSource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class _PointResult:
    received: int = 0
    saved: int = 0
    failed: bool = False


class SpiralScanWorker:
    """Walks the spiral around one center until a budget runs out or the scan is stopped.

    Every point costs one budget slot and one pacing delay, whether the lookup
    succeeded or not. Failed lookups and failed writes are logged and skipped.
    """

    def __init__(
        self,
        center: Center,
        options: ScanOptions,
        source: AreaSource,
        store: AreaStore,
        metrics: InMemoryScanMetricsCollector | None = None,
        stop_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._center = center
        self._options = options
        self._source = source
        self._store = store
        self._metrics = metrics
        self._stop_event = stop_event
        self._clock = clock
        self._sleep_fn = sleep_fn

    @property
    def center(self) -> Center:
        return self._center

    async def run(self) -> ScanSummary:
        started = self._clock()
        offsets = iter(SpiralPath())
        scanned = received = saved = failed = 0
        logger.info(
            "scan_worker_started",
            extra={
                "center": self._center.name,
                "max_points": self._options.budget.max_points,
                "max_duration_seconds": self._options.budget.max_duration_seconds,
            },
        )

        stop_reason = self._stop_reason(scanned, started)
        while stop_reason is None:
            x, y = next(offsets)
            coordinate = Coordinate.from_offset(self._center, x, y, self._options.step_degrees)
            result = await self._scan_point(scanned, coordinate)
            received += result.received
            saved += result.saved
            failed += int(result.failed)
            scanned += 1
            if self._metrics:
                self._metrics.increment_points(self._center.name)
            await self._sleep_fn(self._options.interval_seconds)
            stop_reason = self._stop_reason(scanned, started)

        elapsed = self._clock() - started
        if self._metrics:
            self._metrics.observe_worker_completed(self._center.name, stop_reason, elapsed)
        logger.info(
            "scan_worker_completed",
            extra={
                "center": self._center.name,
                "points_scanned": scanned,
                "records_saved": saved,
                "failed_points": failed,
                "elapsed_seconds": round(elapsed, 3),
                "stop_reason": stop_reason,
            },
        )
        return ScanSummary(
            center=self._center.name,
            points_scanned=scanned,
            records_received=received,
            records_saved=saved,
            failed_points=failed,
            elapsed_seconds=elapsed,
            stop_reason=stop_reason,
        )

    def _stop_reason(self, scanned: int, started: float) -> str | None:
        if self._stop_event is not None and self._stop_event.is_set():
            return STOP_CANCELLED
        if scanned >= self._options.budget.max_points:
            return STOP_MAX_POINTS
        if self._clock() - started >= self._options.budget.max_duration_seconds:
            return STOP_MAX_DURATION
        return None

    async def _scan_point(self, index: int, coordinate: Coordinate) -> _PointResult:
        context = {
            "center": self._center.name,
            "point_index": index,
            "lat": round(coordinate.lat, 4),
            "lng": round(coordinate.lng, 4),
        }
        with tracer.start_as_current_span("scan_point") as span:
            span.set_attribute("scan.center", self._center.name)
            span.set_attribute("scan.point_index", index)
            try:
                areas = await self._source.fetch_areas(coordinate)
            except FetchError as exc:
                span.record_exception(exc)
                if self._metrics:
                    self._metrics.increment_fetch_error(self._center.name, type(exc).__name__)
                logger.warning(
                    "scan_point_failed",
                    extra={**context, "error_type": type(exc).__name__, "error": str(exc)},
                )
                return _PointResult(failed=True)

            try:
                saved = await self._store.insert_or_ignore_many(areas)
            except PersistenceError as exc:
                span.record_exception(exc)
                if self._metrics:
                    self._metrics.increment_persistence_error(self._center.name)
                    self._metrics.add_records(self._center.name, received=len(areas), saved=0)
                logger.error("scan_point_persist_failed", extra={**context, "error": str(exc)})
                return _PointResult(received=len(areas), failed=True)

            span.set_attribute("scan.record_count", len(areas))
            if self._metrics:
                self._metrics.add_records(self._center.name, received=len(areas), saved=saved)
            logger.info(
                "scan_point_completed",
                extra={**context, "record_count": len(areas), "saved_count": saved},
            )
            return _PointResult(received=len(areas), saved=saved)
