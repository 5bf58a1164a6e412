from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path

from lemobar_scan.core.exceptions import ExportError
from lemobar_scan.jobs.store import AreaStore

logger = logging.getLogger(__name__)

EXPORT_COLUMNS: tuple[str, ...] = (
    "area_id",
    "area_name",
    "detail_address",
    "latitude",
    "longitude",
    "total_device_num",
    "free_device_num",
    "wait_duration",
)


@dataclass(frozen=True)
class StoreStats:
    table_exists: bool
    total: int = 0
    by_prefix: list[tuple[str, int]] = field(default_factory=list)


async def export_csv(store: AreaStore, output_path: str | Path) -> int:
    if not await store.table_exists():
        raise ExportError("area table does not exist, run a scan first")
    areas = await store.list_areas()
    if not areas:
        raise ExportError("area table is empty, run a scan first")

    file = Path(output_path)
    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(EXPORT_COLUMNS)
        for area in areas:
            writer.writerow(
                [
                    area.area_id,
                    area.name,
                    area.address,
                    f"{area.lat:.6f}",
                    f"{area.lng:.6f}",
                    area.total_device_count,
                    area.free_device_count,
                    area.wait_duration_seconds,
                ]
            )
    logger.info("export_completed", extra={"path": str(file.resolve()), "row_count": len(areas)})
    return len(areas)


async def collect_stats(store: AreaStore, prefix_length: int = 2, limit: int = 10) -> StoreStats:
    if not await store.table_exists():
        return StoreStats(table_exists=False)
    total = await store.count()
    by_prefix = await store.count_by_name_prefix(prefix_length=prefix_length, limit=limit)
    return StoreStats(table_exists=True, total=total, by_prefix=by_prefix)
