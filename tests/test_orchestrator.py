from __future__ import annotations

import asyncio

import httpx
import pytest

from lemobar_scan.core.exceptions import ConfigError
from lemobar_scan.core.metrics import InMemoryScanMetricsCollector
from lemobar_scan.core.models import STOP_MAX_POINTS, AreaRecord, Center, Coordinate, ScanBudget, ScanOptions
from lemobar_scan.core.settings import ScanSettings
from lemobar_scan.jobs.orchestrator import ScanOrchestrator, run_scan
from lemobar_scan.jobs.store import InMemoryAreaStore
from lemobar_scan.providers.base import AreaSource


def _record(area_id: int) -> AreaRecord:
    return AreaRecord(
        area_id=area_id,
        name=f"area-{area_id}",
        address="somewhere",
        lat=0.0,
        lng=0.0,
        total_device_count=1,
        free_device_count=1,
        wait_duration_seconds=0,
    )


class OverlappingSource(AreaSource):
    """Returns ids that overlap between neighbouring points and centers."""

    provider_name = "overlap"

    def __init__(self) -> None:
        self.returned_ids: set[int] = set()
        self.calls = 0

    async def fetch_areas(self, coordinate: Coordinate) -> list[AreaRecord]:
        self.calls += 1
        await asyncio.sleep(0)
        base = int(round(coordinate.lng / 0.03)) + int(round(coordinate.lat / 0.03)) * 10
        ids = [base % 7, base % 11, 100 + base % 5]
        self.returned_ids.update(ids)
        return [_record(area_id) for area_id in ids]


class CrashingSource(AreaSource):
    provider_name = "crash"

    def __init__(self, crash_on_lat: float) -> None:
        self._crash_on_lat = crash_on_lat

    async def fetch_areas(self, coordinate: Coordinate) -> list[AreaRecord]:
        await asyncio.sleep(0)
        if coordinate.lat == self._crash_on_lat:
            raise RuntimeError("unexpected payload shape")
        return [_record(int(coordinate.lat))]


def _options(max_points: int) -> ScanOptions:
    return ScanOptions(budget=ScanBudget(max_points=max_points, max_duration_seconds=60.0), interval_seconds=0.0)


@pytest.mark.asyncio
async def test_concurrent_workers_lose_no_writes_and_store_no_duplicates() -> None:
    source = OverlappingSource()
    store = InMemoryAreaStore()
    centers = [Center("a", 0.0, 0.0), Center("b", 0.03, 0.0), Center("c", 0.0, 0.03)]
    orchestrator = ScanOrchestrator(centers=centers, options=_options(max_points=9), source=source, store=store)

    report = await orchestrator.run()

    areas = await store.list_areas()
    ids = [area.area_id for area in areas]
    assert len(ids) == len(set(ids))
    assert set(ids) == source.returned_ids
    assert source.calls == 27
    assert report.failed_centers == []
    assert [summary.center for summary in report.summaries] == ["a", "b", "c"]
    assert report.points_scanned == 27
    assert report.records_saved == len(ids)


@pytest.mark.asyncio
async def test_crashing_worker_does_not_stop_siblings() -> None:
    store = InMemoryAreaStore()
    metrics = InMemoryScanMetricsCollector()
    centers = [Center("broken", 13.0, 0.0), Center("fine", 20.0, 0.0)]
    orchestrator = ScanOrchestrator(
        centers=centers,
        options=_options(max_points=3),
        source=CrashingSource(crash_on_lat=13.0),
        store=store,
        metrics=metrics,
    )

    report = await orchestrator.run()

    assert report.failed_centers == ["broken"]
    assert len(report.summaries) == 1
    assert report.summaries[0].center == "fine"
    assert report.summaries[0].points_scanned == 3
    assert report.summaries[0].stop_reason == STOP_MAX_POINTS
    assert metrics.scan_duration_seconds is not None


@pytest.mark.asyncio
async def test_stop_event_stops_every_worker() -> None:
    stop_event = asyncio.Event()
    stop_event.set()
    source = OverlappingSource()
    orchestrator = ScanOrchestrator(
        centers=[Center("a", 0.0, 0.0), Center("b", 1.0, 1.0)],
        options=_options(max_points=50),
        source=source,
        store=InMemoryAreaStore(),
        stop_event=stop_event,
    )

    report = await orchestrator.run()

    assert source.calls == 0
    assert all(summary.stop_reason == "cancelled" for summary in report.summaries)


@pytest.mark.asyncio
async def test_run_scan_requires_authorization_before_launch(monkeypatch) -> None:
    monkeypatch.delenv("LEMOBAR_AUTHORIZATION", raising=False)
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"code": 200, "data": {"records": []}})

    transport = httpx.MockTransport(handler)
    with pytest.raises(ConfigError):
        await run_scan(
            ScanSettings(authorization=""),
            InMemoryAreaStore(),
            centers=[Center("a", 0.0, 0.0)],
            client_factory=lambda: httpx.AsyncClient(transport=transport),
        )
    assert calls == []


@pytest.mark.asyncio
async def test_run_scan_queries_upstream_with_configured_budget() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        area_id = len(seen) % 2
        return httpx.Response(
            200,
            json={
                "code": 200,
                "data": {
                    "records": [
                        {
                            "id": area_id,
                            "areaName": "杭州西湖店",
                            "detailAddress": "西湖区",
                            "latitude": "30.2741",
                            "longitude": "120.1551",
                            "totalDeviceNum": 3,
                            "freeDeviceNum": 0,
                            "waitDuration": 60,
                        }
                    ]
                },
            },
        )

    transport = httpx.MockTransport(handler)
    store = InMemoryAreaStore()
    settings = ScanSettings(authorization="secret", interval=0.001, duration=60, max_blocks=3)

    report = await run_scan(
        settings,
        store,
        centers=[Center("杭州", 30.2741, 120.1551)],
        client_factory=lambda: httpx.AsyncClient(transport=transport),
    )

    assert len(seen) == 3
    assert all(request.headers["Authorization"] == "secret" for request in seen)
    assert await store.count() == 2
    assert report.summaries[0].points_scanned == 3
