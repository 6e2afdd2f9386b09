"""
Remote-to-local sync channels.

Three independent sources feed the local store:

- bulk load when a scope is opened
- a periodic poll, plus an immediate refresh when the client becomes visible
- a push subscription delivering row changes for the open organization

All of them decode rows with the same codec and merge through ``merge_row``.
Merges are last-fetch-wins per key, with two guards: bulk load never
overwrites a pending key, and poll/push skip keys that are debouncing, have
a write in flight, or hold an edit whose save failed.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..codec.record import decode_row
from ..keys import CONFIG_PERIOD, Address, ConfigName, KeyKind, areas_address, config_address, slugify
from ..models.catalog import default_areas
from ..models.rows import ChangeEvent, ChangeType, RemoteRow
from ..remote.base import RemoteStore, RemoteSubscription
from ..store.local_state import LocalStateStore, SaveStatus
from ..utils.errors import RemoteReadError
from ..utils.logging import get_logger
from .writer import DebouncedWriter


logger = get_logger("debrief-sync.channels")


class MergeSource(str, Enum):
    """Which channel a merge came from."""
    BULK = "bulk"
    POLL = "poll"
    PUSH = "push"


@dataclass(frozen=True)
class Scope:
    """The (organization, period, department) a client has open."""
    organization: str
    period: str
    department: str


class SyncChannels:
    """Bulk load, poll and push, sharing one decode/merge path."""

    def __init__(
        self,
        remote: RemoteStore,
        store: LocalStateStore,
        writer: DebouncedWriter,
        default_department: str = "production",
        poll_interval_seconds: float = 10.0,
        protect_debouncing_keys: bool = True,
    ):
        self.remote = remote
        self.store = store
        self.writer = writer
        self.default_department = default_department
        self.poll_interval_seconds = poll_interval_seconds
        self.protect_debouncing_keys = protect_debouncing_keys

        self.scope: Optional[Scope] = None
        self.loading = False
        self._loaded_scopes: Set[Scope] = set()
        self._subscription: Optional[RemoteSubscription] = None
        self._refresh_lock = asyncio.Lock()
        self.merge_listeners: List[Callable[[MergeSource, Address], Any]] = []

    # Decode/merge

    def known_departments(self) -> List[str]:
        if self.scope is None:
            return []
        departments = self.store.get(config_address(self.scope.organization, ConfigName.DEPARTMENTS))
        return [d.id for d in departments]

    def _skip(self, address: Address, source: MergeSource) -> bool:
        key = address.key
        if source == MergeSource.BULK:
            return self.store.is_pending(key)
        if self.store.is_pending(key) and self.store.status(key) == SaveStatus.ERROR:
            # Unsynced local edit; the next edit retries the save
            return True
        return self.protect_debouncing_keys and self.writer.is_busy(key)

    def decode(self, row: RemoteRow) -> Tuple[Address, Any]:
        return decode_row(row, self.default_department, self.known_departments())

    def merge_row(self, row: RemoteRow, source: MergeSource) -> Optional[Address]:
        """Decode a row and replace the value of the key it addresses.

        Returns the address merged, or None when the key was skipped.
        """
        address, value = self.decode(row)
        if self._skip(address, source):
            logger.debug("merge_skipped", key=address.key, source=source.value)
            return None
        self.store.put(address, value)
        self._emit_merge(source, address)
        return address

    def merge_delete(self, row: RemoteRow, source: MergeSource = MergeSource.PUSH) -> Optional[Address]:
        """Reset the key a deleted row addressed to its default."""
        address, _ = self.decode(row)
        if self._skip(address, source):
            return None
        self.store.reset(address)
        self._emit_merge(source, address)
        return address

    def _emit_merge(self, source: MergeSource, address: Address) -> None:
        for listener in list(self.merge_listeners):
            try:
                listener(source, address)
            except Exception as e:
                logger.error("merge_listener_failed", key=address.key, error=str(e))

    # Fetching

    async def _fetch(self, organization: str, period: str) -> List[RemoteRow]:
        try:
            return await self.remote.select_scope(organization, period)
        except RemoteReadError as e:
            logger.warning("remote_read_failed", organization=organization, period=period, error=e.message)
            return []

    async def _fetch_scope(self, scope: Scope) -> Tuple[List[RemoteRow], List[RemoteRow]]:
        config_rows, scope_rows = await asyncio.gather(
            self._fetch(scope.organization, CONFIG_PERIOD),
            self._fetch(scope.organization, scope.period),
        )
        return config_rows, scope_rows

    def _merge_all(self, config_rows: List[RemoteRow], scope_rows: List[RemoteRow], source: MergeSource) -> int:
        merged = 0
        # Config first: the department list decides how area ids are split
        for row in config_rows + scope_rows:
            if self.merge_row(row, source) is not None:
                merged += 1
        return merged

    # Bulk load

    async def open_scope(self, organization: str, period: str, department: str) -> None:
        """Switch to a scope and load it; only the first load reports loading."""
        scope = Scope(organization, period, department)
        previous = self.scope
        self.scope = scope

        if previous is None or previous.organization != organization:
            await self._resubscribe(organization)

        first_load = scope not in self._loaded_scopes
        if first_load:
            self.loading = True
        try:
            await self.bulk_load(scope)
        finally:
            if first_load:
                self.loading = False
                self._loaded_scopes.add(scope)

    async def bulk_load(self, scope: Scope) -> int:
        config_rows, scope_rows = await self._fetch_scope(scope)
        merged = self._merge_all(config_rows, scope_rows, MergeSource.BULK)
        self._augment_area_lists(scope, scope_rows)
        logger.info(
            "bulk_load_complete",
            organization=scope.organization,
            period=scope.period,
            rows=len(config_rows) + len(scope_rows),
            merged=merged,
        )
        return merged

    def _augment_area_lists(self, scope: Scope, rows: List[RemoteRow]) -> None:
        """Append areas referenced by review/task rows but missing from their list."""
        referenced: Dict[str, Dict[str, str]] = {}
        for row in rows:
            address, _ = self.decode(row)
            if address.kind not in (KeyKind.REVIEW, KeyKind.TASKS, KeyKind.DESCRIPTION, KeyKind.CATEGORIES):
                continue
            if not address.area:
                continue
            names = referenced.setdefault(address.department, {})
            names.setdefault(address.area, row.area_name or address.area)

        for department, names in referenced.items():
            list_address = areas_address(scope.organization, scope.period, department)
            if self.store.is_pending(list_address.key):
                continue
            if self.store.has(list_address):
                areas = self.store.get(list_address)
            elif department == self.default_department:
                areas = default_areas(scope.organization)
            else:
                areas = []
            known = {slugify(name) for name in areas}
            missing = [name for slug, name in names.items() if slug not in known]
            if missing or not self.store.has(list_address):
                self.store.put(list_address, areas + missing)
                if missing:
                    logger.debug("area_list_augmented", key=list_address.key, added=missing)

    # Poll

    async def refresh(self) -> int:
        """Re-fetch the open scope and merge last-fetch-wins."""
        if self.scope is None:
            return 0
        async with self._refresh_lock:
            scope = self.scope
            config_rows, scope_rows = await self._fetch_scope(scope)
            if scope != self.scope:
                return 0
            merged = self._merge_all(config_rows, scope_rows, MergeSource.POLL)
        logger.debug("poll_complete", organization=scope.organization, period=scope.period, merged=merged)
        return merged

    async def poll_forever(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            await self.refresh()

    # Push

    async def _resubscribe(self, organization: str) -> None:
        await self.unsubscribe()
        self._subscription = await self.remote.subscribe(organization, self.handle_change)
        if self._subscription is None:
            logger.info("push_unavailable", organization=organization)

    async def unsubscribe(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    def handle_change(self, event: ChangeEvent) -> Optional[Address]:
        """Merge one pushed row change into exactly the key it addresses."""
        if self.scope is None or event.row.organization != self.scope.organization:
            return None
        if event.change_type == ChangeType.DELETE:
            return self.merge_delete(event.row)
        return self.merge_row(event.row, MergeSource.PUSH)


__all__ = [
    'SyncChannels',
    'MergeSource',
    'Scope',
]
