"""
In-process remote store.

Holds rows in a dict keyed by the table's unique key and fans changes out
to subscribers. Reads and writes can be made to fail on demand.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from ..models.rows import ChangeEvent, ChangeType, RemoteRow, utc_now_iso
from ..utils.errors import RemoteReadError, RemoteWriteError
from ..utils.logging import get_logger
from .base import ChangeHandler, PushFanout, RemoteStore, RemoteSubscription


logger = get_logger("debrief-sync.remote.memory")


class MemoryRemoteStore(RemoteStore):
    """Dict-backed remote store with push fan-out and failure injection."""

    def __init__(self, rows: Optional[List[RemoteRow]] = None):
        self._rows: Dict[Tuple[str, str, str, str], RemoteRow] = {}
        self._fanout = PushFanout()
        self.upserts: List[RemoteRow] = []
        self.selects: int = 0
        self._fail_writes = 0
        self._fail_reads = 0
        for row in rows or []:
            self._rows[row.unique_key] = replace(row)

    def fail_next_writes(self, count: int = 1) -> None:
        self._fail_writes = count

    def fail_next_reads(self, count: int = 1) -> None:
        self._fail_reads = count

    @property
    def rows(self) -> List[RemoteRow]:
        return [replace(row) for row in self._rows.values()]

    def get(self, organization: str, period: str, area_id: str, category_id: str) -> Optional[RemoteRow]:
        row = self._rows.get((organization, period, area_id, category_id))
        return replace(row) if row else None

    async def upsert(self, row: RemoteRow) -> RemoteRow:
        if self._fail_writes:
            self._fail_writes -= 1
            raise RemoteWriteError(f"injected write failure for {row.unique_key}")

        stored = replace(row, updated_at=row.updated_at or utc_now_iso())
        change_type = ChangeType.UPDATE if stored.unique_key in self._rows else ChangeType.INSERT
        self._rows[stored.unique_key] = stored
        self.upserts.append(replace(stored))
        self._fanout.publish(ChangeEvent(change_type, replace(stored)))
        return replace(stored)

    async def select_scope(self, organization: str, period: str) -> List[RemoteRow]:
        self.selects += 1
        if self._fail_reads:
            self._fail_reads -= 1
            raise RemoteReadError(f"injected read failure for {organization}/{period}")
        return [
            replace(row) for row in self._rows.values()
            if row.organization == organization and row.period == period
        ]

    async def delete(self, organization: str, period: str, area_id: str, category_id: str) -> bool:
        row = self._rows.pop((organization, period, area_id, category_id), None)
        if row is None:
            return False
        self._fanout.publish(ChangeEvent(ChangeType.DELETE, replace(row)))
        return True

    async def subscribe(self, organization: str, handler: ChangeHandler) -> RemoteSubscription:
        return self._fanout.subscribe(organization, handler)

    def subscriber_count(self, organization: str) -> int:
        return self._fanout.subscriber_count(organization)

    async def close(self) -> None:
        self._fanout.close_all()
