"""
SQLite-backed remote store.

A thin aiosqlite wrapper holding the reviews table. Rows are upserted with
``INSERT ... ON CONFLICT DO UPDATE`` on the table's unique key, and changes
are fanned out to in-process subscribers.
"""

import asyncio
from pathlib import Path
from typing import List, Optional, Union

import aiosqlite

from ..models.rows import ROW_COLUMNS, ChangeEvent, ChangeType, RemoteRow, utc_now_iso
from ..utils.errors import RemoteReadError, RemoteWriteError
from ..utils.logging import get_logger, log_function_call
from .base import ChangeHandler, PushFanout, RemoteStore, RemoteSubscription


logger = get_logger("debrief-sync.remote.sqlite")

SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    organization TEXT NOT NULL,
    period TEXT NOT NULL,
    department_tag TEXT NOT NULL DEFAULT '',
    area_id TEXT NOT NULL,
    area_name TEXT NOT NULL DEFAULT '',
    category_id TEXT NOT NULL,
    rating INTEGER,
    worked_well TEXT,
    needs_improvement TEXT,
    notes TEXT,
    updated_at TEXT,
    UNIQUE (organization, period, area_id, category_id)
)
"""

_UPDATE_COLUMNS = [c for c in ROW_COLUMNS if c not in ("organization", "period", "area_id", "category_id")]


class SQLiteRemoteStore(RemoteStore):
    """Remote store over a local SQLite file."""

    def __init__(self, db_path: Union[Path, str], table: str = "reviews"):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            table: Table name
        """
        if not table.isidentifier():
            raise ValueError(f"invalid table name: {table}")
        self.db_path = Path(db_path)
        self.table = table
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._fanout = PushFanout()

    async def connect(self) -> None:
        """Open the connection and create the table if needed."""
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path, isolation_level=None)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.execute(SCHEMA.format(table=self.table))
            logger.info("sqlite_store_connected", path=str(self.db_path), table=self.table)

    async def close(self) -> None:
        """Close the connection and drop subscriptions."""
        self._fanout.close_all()
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            await self.connect()
        return self._connection

    @log_function_call(logger)
    async def upsert(self, row: RemoteRow) -> RemoteRow:
        row.updated_at = row.updated_at or utc_now_iso()
        columns = ", ".join(ROW_COLUMNS)
        placeholders = ", ".join("?" for _ in ROW_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _UPDATE_COLUMNS)
        values = tuple(getattr(row, c) for c in ROW_COLUMNS)

        try:
            async with self._lock:
                db = await self._conn()
                cursor = await db.execute(
                    f"SELECT 1 FROM {self.table} WHERE organization = ? AND period = ? "
                    f"AND area_id = ? AND category_id = ?",
                    row.unique_key,
                )
                existed = await cursor.fetchone() is not None
                await db.execute(
                    f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders}) "
                    f"ON CONFLICT (organization, period, area_id, category_id) DO UPDATE SET {updates}",
                    values,
                )
        except (aiosqlite.Error, OSError) as e:
            raise RemoteWriteError(f"upsert failed: {e}", cause=e) from e

        change_type = ChangeType.UPDATE if existed else ChangeType.INSERT
        self._fanout.publish(ChangeEvent(change_type, RemoteRow.from_dict(row.to_dict())))
        return row

    @log_function_call(logger)
    async def select_scope(self, organization: str, period: str) -> List[RemoteRow]:
        try:
            async with self._lock:
                db = await self._conn()
                cursor = await db.execute(
                    f"SELECT {', '.join(ROW_COLUMNS)} FROM {self.table} "
                    f"WHERE organization = ? AND period = ?",
                    (organization, period),
                )
                records = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            raise RemoteReadError(f"select failed: {e}", cause=e) from e
        return [RemoteRow.from_dict(dict(record)) for record in records]

    async def delete(self, organization: str, period: str, area_id: str, category_id: str) -> bool:
        key = (organization, period, area_id, category_id)
        try:
            async with self._lock:
                db = await self._conn()
                cursor = await db.execute(
                    f"SELECT {', '.join(ROW_COLUMNS)} FROM {self.table} WHERE organization = ? "
                    f"AND period = ? AND area_id = ? AND category_id = ?",
                    key,
                )
                record = await cursor.fetchone()
                if record is None:
                    return False
                await db.execute(
                    f"DELETE FROM {self.table} WHERE organization = ? AND period = ? "
                    f"AND area_id = ? AND category_id = ?",
                    key,
                )
        except (aiosqlite.Error, OSError) as e:
            raise RemoteWriteError(f"delete failed: {e}", cause=e) from e

        self._fanout.publish(ChangeEvent(ChangeType.DELETE, RemoteRow.from_dict(dict(record))))
        return True

    async def subscribe(self, organization: str, handler: ChangeHandler) -> RemoteSubscription:
        return self._fanout.subscribe(organization, handler)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
