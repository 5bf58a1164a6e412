from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import Counter

from lemobar_scan.core.models import AreaRecord


class AreaStore(ABC):
    """Insert-or-ignore store of areas keyed by ``area_id``."""

    @abstractmethod
    async def insert_or_ignore_many(self, records: list[AreaRecord]) -> int:
        """Insert records whose id is not stored yet; return how many were inserted."""
        raise NotImplementedError

    @abstractmethod
    async def list_areas(self) -> list[AreaRecord]:
        raise NotImplementedError

    @abstractmethod
    async def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_by_name_prefix(self, prefix_length: int = 2, limit: int = 10) -> list[tuple[str, int]]:
        raise NotImplementedError

    async def table_exists(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryAreaStore(AreaStore):
    def __init__(self) -> None:
        self._rows: dict[int, AreaRecord] = {}
        self._lock = asyncio.Lock()

    async def insert_or_ignore_many(self, records: list[AreaRecord]) -> int:
        async with self._lock:
            inserted = 0
            for record in records:
                if record.area_id in self._rows:
                    continue
                self._rows[record.area_id] = record
                inserted += 1
            return inserted

    async def list_areas(self) -> list[AreaRecord]:
        return [self._rows[area_id] for area_id in sorted(self._rows)]

    async def count(self) -> int:
        return len(self._rows)

    async def count_by_name_prefix(self, prefix_length: int = 2, limit: int = 10) -> list[tuple[str, int]]:
        counts = Counter(record.name[:prefix_length] for record in self._rows.values())
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]
