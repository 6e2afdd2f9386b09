"""
Debounced writer: the single path from local edits to the remote store.

Each key has its own quiet-period timer. A new edit to a key cancels and
restarts that key's timer; edits to different keys never coalesce. When a
timer fires the row is built from the current local value and written
once. Writes already in flight are never cancelled.
"""

import asyncio
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set

from ..models.rows import RemoteRow
from ..remote.base import RemoteStore
from ..store.local_state import LocalStateStore, SaveStatus
from ..utils.errors import DebriefError, error_context
from ..utils.logging import get_logger
from ..utils.notifications import NotificationCenter, NotificationLevel


logger = get_logger("debrief-sync.writer")

RowBuilder = Callable[[], RemoteRow]

SAVE_FAILED_MESSAGE = "Couldn't save your change. It's kept on this device; edit again to retry."


class DebouncedWriter:
    """Per-key debounced remote writes with save-status tracking."""

    def __init__(
        self,
        remote: RemoteStore,
        store: LocalStateStore,
        notifier: NotificationCenter,
        debounce_seconds: float = 0.8,
        saved_display_seconds: float = 2.0,
    ):
        """
        Initialize the writer.

        Args:
            remote: Remote store receiving the writes
            store: Local store whose status and pending maps are maintained
            notifier: Where write failures are reported
            debounce_seconds: Quiet interval before a key is written
            saved_display_seconds: How long a key shows ``saved`` before ``idle``
        """
        self.remote = remote
        self.store = store
        self.notifier = notifier
        self.debounce_seconds = debounce_seconds
        self.saved_display_seconds = saved_display_seconds

        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._builders: Dict[str, RowBuilder] = {}
        self._revert_timers: Dict[str, asyncio.TimerHandle] = {}
        self._in_flight: Dict[str, Set[asyncio.Task]] = defaultdict(set)
        self._generation: Dict[str, int] = defaultdict(int)

    def submit(self, key: str, build_row: RowBuilder, immediate: bool = False) -> None:
        """Schedule a write of key; immediate writes skip the quiet interval."""
        loop = asyncio.get_running_loop()

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        revert = self._revert_timers.pop(key, None)
        if revert is not None:
            revert.cancel()

        self._generation[key] += 1
        self._builders[key] = build_row
        self.store.mark_pending(key)
        self.store.set_status(key, SaveStatus.SAVING)

        if immediate:
            self._fire(key)
        else:
            self._timers[key] = loop.call_later(self.debounce_seconds, self._fire, key)

    def is_debouncing(self, key: str) -> bool:
        return key in self._timers

    def is_busy(self, key: str) -> bool:
        """Debouncing or with a write in flight."""
        return key in self._timers or bool(self._in_flight.get(key))

    @property
    def debouncing_keys(self) -> List[str]:
        return list(self._timers)

    def _fire(self, key: str) -> None:
        self._timers.pop(key, None)
        build_row = self._builders.pop(key, None)
        if build_row is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._write(key, build_row, self._generation[key]),
            name=f"write:{key}",
        )
        self._in_flight[key].add(task)
        task.add_done_callback(lambda t, k=key: self._write_done(k, t))

    def _write_done(self, key: str, task: asyncio.Task) -> None:
        tasks = self._in_flight.get(key)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._in_flight[key]

    async def _write(self, key: str, build_row: RowBuilder, generation: int) -> None:
        try:
            with error_context("writer", "write", key=key):
                row = build_row()
                await self.remote.upsert(row)
        except DebriefError as e:
            if self._generation[key] != generation:
                # A newer edit owns the status
                logger.info("stale_write_failed", key=key, error=e.message, code=e.code)
                return
            self._on_failure(key, e)
            return

        if key in self._timers or self._generation[key] != generation:
            # Newer edit not written yet: the key stays pending
            if self.store.status(key) == SaveStatus.SAVING:
                self._mark_saved(key)
            logger.debug("write_superseded", key=key)
            return

        self.store.clear_pending(key)
        self._mark_saved(key)
        logger.debug("write_complete", key=key)

    def _mark_saved(self, key: str) -> None:
        self.store.set_status(key, SaveStatus.SAVED)
        revert = self._revert_timers.pop(key, None)
        if revert is not None:
            revert.cancel()
        loop = asyncio.get_running_loop()
        self._revert_timers[key] = loop.call_later(self.saved_display_seconds, self._revert, key)

    def _on_failure(self, key: str, error: DebriefError) -> None:
        # Local value stays; the key remains pending until a later write succeeds
        self.store.set_status(key, SaveStatus.ERROR)
        logger.warning("write_failed", key=key, error=error.message, code=error.code)
        self.notifier.notify(
            SAVE_FAILED_MESSAGE,
            level=NotificationLevel.ERROR,
            key=key,
            error=error.message,
        )

    def _revert(self, key: str) -> None:
        self._revert_timers.pop(key, None)
        if self.store.status(key) == SaveStatus.SAVED:
            self.store.set_status(key, SaveStatus.IDLE)

    async def flush(self) -> None:
        """Fire every pending timer now and wait for all writes to settle."""
        for key in list(self._timers):
            timer = self._timers.get(key)
            if timer is not None:
                timer.cancel()
                self._fire(key)

        tasks = [t for tasks in self._in_flight.values() for t in tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        for timer in self._revert_timers.values():
            timer.cancel()
        self._revert_timers.clear()

    def pending_writes(self) -> int:
        return len(self._timers) + sum(len(t) for t in self._in_flight.values())


__all__ = [
    'DebouncedWriter',
    'RowBuilder',
    'SAVE_FAILED_MESSAGE',
]
