"""
Pytest configuration and shared fixtures for debrief-sync tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import AsyncGenerator

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from debrief_sync.keys import review_address
from debrief_sync.models.rows import RemoteRow
from debrief_sync.remote.memory import MemoryRemoteStore
from debrief_sync.remote.sqlite import SQLiteRemoteStore
from debrief_sync.storage.preferences import PreferenceStore
from debrief_sync.store.local_state import LocalStateStore
from debrief_sync.sync.channels import SyncChannels
from debrief_sync.sync.engine import SyncEngine
from debrief_sync.sync.writer import DebouncedWriter
from debrief_sync.utils.config import DebriefConfig
from debrief_sync.utils.notifications import NotificationCenter


# Short intervals keep timer-driven tests fast
DEBOUNCE = 0.05
SAVED_DISPLAY = 0.3


async def settle(seconds: float = DEBOUNCE * 3) -> None:
    """Let timers fire and scheduled callbacks run."""
    await asyncio.sleep(seconds)


@pytest.fixture
def test_config(tmp_path: Path) -> DebriefConfig:
    """Configuration with short timers and the poll loop disabled."""
    return DebriefConfig(
        sync={
            "debounce_seconds": DEBOUNCE,
            "saved_display_seconds": SAVED_DISPLAY,
            "poll_interval_seconds": 60,
            "enable_poll": False,
        },
        storage={"preferences_path": tmp_path / "preferences.json"},
    )


@pytest.fixture
def remote() -> MemoryRemoteStore:
    return MemoryRemoteStore()


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter(ttl_seconds=0.5)


@pytest.fixture
def store() -> LocalStateStore:
    return LocalStateStore()


@pytest.fixture
def writer(remote, store, notifier) -> DebouncedWriter:
    return DebouncedWriter(
        remote,
        store,
        notifier,
        debounce_seconds=DEBOUNCE,
        saved_display_seconds=SAVED_DISPLAY,
    )


@pytest.fixture
def channels(remote, store, writer) -> SyncChannels:
    return SyncChannels(remote, store, writer, default_department="production")


@pytest.fixture
def preferences(tmp_path: Path) -> PreferenceStore:
    return PreferenceStore(tmp_path / "preferences.json")


@pytest.fixture
async def engine(remote, notifier, test_config, preferences) -> AsyncGenerator[SyncEngine, None]:
    """Running engine with the peep / 2024 / production scope open."""
    engine = SyncEngine(remote, notifier, config=test_config, preferences=preferences)
    await engine.start()
    await engine.set_identity("Sam")
    await engine.open("peep", "2024", "production")
    yield engine
    await engine.stop()


@pytest.fixture
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[SQLiteRemoteStore, None]:
    store = SQLiteRemoteStore(tmp_path / "remote.db")
    await store.connect()
    yield store
    await store.close()


def make_review_row(
    area: str = "Main Stage",
    category: str = "lighting",
    org: str = "peep",
    period: str = "2024",
    department: str = "production",
    **columns,
) -> RemoteRow:
    """A review row for the given scope with raw column values."""
    row = review_address(org, period, department, area, category).blank_row(area)
    for name, value in columns.items():
        setattr(row, name, value)
    return row
