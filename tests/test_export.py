from __future__ import annotations

import csv

import pytest

from lemobar_scan.core.exceptions import ExportError
from lemobar_scan.core.models import AreaRecord
from lemobar_scan.jobs.export import EXPORT_COLUMNS, collect_stats, export_csv
from lemobar_scan.jobs.sqlite_store import SqliteAreaStore
from lemobar_scan.jobs.store import InMemoryAreaStore


def _record(area_id: int, name: str, address: str = "天河路, 1号") -> AreaRecord:
    return AreaRecord(
        area_id=area_id,
        name=name,
        address=address,
        lat=23.1291,
        lng=113.2644,
        total_device_count=10,
        free_device_count=3,
        wait_duration_seconds=90,
    )


@pytest.mark.asyncio
async def test_export_csv_writes_header_and_rows(tmp_path) -> None:
    store = InMemoryAreaStore()
    await store.insert_or_ignore_many([_record(2, "广州天河店"), _record(1, '广州"越秀"店')])
    output = tmp_path / "out" / "areas.csv"

    count = await export_csv(store, output)

    with output.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert count == 2
    assert tuple(rows[0]) == EXPORT_COLUMNS
    assert rows[1] == ["1", '广州"越秀"店', "天河路, 1号", "23.129100", "113.264400", "10", "3", "90"]
    assert rows[2][0] == "2"


@pytest.mark.asyncio
async def test_export_csv_rejects_empty_store(tmp_path) -> None:
    with pytest.raises(ExportError):
        await export_csv(InMemoryAreaStore(), tmp_path / "areas.csv")
    assert not (tmp_path / "areas.csv").exists()


@pytest.mark.asyncio
async def test_export_csv_rejects_missing_table(tmp_path) -> None:
    store = SqliteAreaStore(str(tmp_path / "fresh.db"), create_tables=False)
    try:
        with pytest.raises(ExportError):
            await export_csv(store, tmp_path / "areas.csv")
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_collect_stats_groups_by_city_prefix() -> None:
    store = InMemoryAreaStore()
    await store.insert_or_ignore_many(
        [_record(1, "广州天河店"), _record(2, "广州越秀店"), _record(3, "佛山禅城店")]
    )

    stats = await collect_stats(store)

    assert stats.table_exists is True
    assert stats.total == 3
    assert stats.by_prefix == [("广州", 2), ("佛山", 1)]


@pytest.mark.asyncio
async def test_collect_stats_reports_missing_table(tmp_path) -> None:
    store = SqliteAreaStore(str(tmp_path / "fresh.db"), create_tables=False)
    try:
        stats = await collect_stats(store)
    finally:
        await store.close()

    assert stats.table_exists is False
    assert stats.total == 0
