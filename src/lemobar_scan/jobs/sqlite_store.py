from __future__ import annotations

import asyncio
import logging
from typing import Any

from devkit.db import AsyncDatabaseManager, Base, create_all_tables, has_table
from sqlalchemy import Float, Integer, Text, desc, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from lemobar_scan.core.exceptions import PersistenceError
from lemobar_scan.core.models import AreaRecord
from lemobar_scan.jobs.store import AreaStore

logger = logging.getLogger(__name__)

AREA_TABLE = "lemobar_areas"


class AreaORM(Base):
    __tablename__ = AREA_TABLE

    area_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    area_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    detail_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    total_device_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    free_device_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wait_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SqliteAreaStore(AreaStore):
    """SQLite backed area store.

    SQLite allows a single writer at a time, so every write goes through one
    ``asyncio.Lock`` while the callers keep fetching concurrently. Each write is
    one ``INSERT ... ON CONFLICT (area_id) DO NOTHING`` transaction.
    """

    def __init__(
        self,
        path_or_dsn: str,
        *,
        create_tables: bool = True,
        db: AsyncDatabaseManager | None = None,
    ) -> None:
        self._db = db or AsyncDatabaseManager(path_or_dsn)
        self._create_tables = create_tables
        self._ready = False
        self._ready_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    async def insert_or_ignore_many(self, records: list[AreaRecord]) -> int:
        if not records:
            return 0
        rows = [self._to_row(record) for record in records]
        stmt = sqlite_insert(AreaORM.__table__).values(rows).on_conflict_do_nothing(index_elements=["area_id"])

        async def _run(session) -> int:
            result = await session.execute(stmt)
            return max(int(result.rowcount or 0), 0)

        async with self._write_lock:
            return await self._execute("insert", _run)

    async def list_areas(self) -> list[AreaRecord]:
        async def _run(session) -> list[AreaRecord]:
            rows = (await session.scalars(select(AreaORM).order_by(AreaORM.area_id))).all()
            return [self._to_record(row) for row in rows]

        return await self._execute("list", _run)

    async def count(self) -> int:
        async def _run(session) -> int:
            return int((await session.scalar(select(func.count()).select_from(AreaORM))) or 0)

        return await self._execute("count", _run)

    async def count_by_name_prefix(self, prefix_length: int = 2, limit: int = 10) -> list[tuple[str, int]]:
        prefix = func.substr(AreaORM.area_name, 1, prefix_length).label("prefix")
        total = func.count().label("total")
        stmt = select(prefix, total).group_by(prefix).order_by(desc(total), prefix).limit(limit)

        async def _run(session) -> list[tuple[str, int]]:
            rows = (await session.execute(stmt)).all()
            return [(str(row.prefix or ""), int(row.total)) for row in rows]

        return await self._execute("count_by_prefix", _run)

    async def table_exists(self) -> bool:
        try:
            await self._db.connect()
            return await has_table(self._db.engine, AREA_TABLE)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to inspect area store: {exc}") from exc

    async def close(self) -> None:
        await self._db.disconnect()
        self._ready = False

    async def _execute(self, operation: str, fn: Any) -> Any:
        try:
            await self._ensure_ready()
            return await self._db.run_with_session(fn)
        except SQLAlchemyError as exc:
            logger.error("area_store_failed", extra={"operation": operation, "error": str(exc)})
            raise PersistenceError(f"area store {operation} failed: {exc}") from exc

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        async with self._ready_lock:
            if self._ready:
                return
            await self._db.connect()
            if self._create_tables:
                await create_all_tables(self._db.engine, Base.metadata)
            self._ready = True

    def _to_row(self, record: AreaRecord) -> dict[str, Any]:
        return {
            "area_id": record.area_id,
            "area_name": record.name,
            "detail_address": record.address,
            "latitude": record.lat,
            "longitude": record.lng,
            "total_device_num": record.total_device_count,
            "free_device_num": record.free_device_count,
            "wait_duration": record.wait_duration_seconds,
        }

    def _to_record(self, row: AreaORM) -> AreaRecord:
        return AreaRecord(
            area_id=row.area_id,
            name=row.area_name,
            address=row.detail_address,
            lat=row.latitude,
            lng=row.longitude,
            total_device_count=row.total_device_num,
            free_device_count=row.free_device_num,
            wait_duration_seconds=row.wait_duration,
        )
