"""
Tests for the sync engine's read accessors and mutation entry points.
"""

import asyncio
from datetime import date

import pytest

from debrief_sync.models.catalog import PeriodKind, category_ids, default_areas
from debrief_sync.models.records import TaskStatus
from debrief_sync.remote.memory import MemoryRemoteStore
from debrief_sync.store.local_state import SaveStatus
from debrief_sync.sync.engine import SyncEngine
from debrief_sync.utils.errors import ValidationError
from debrief_sync.utils.lifecycle import ServiceNotReadyError, ServiceState

from conftest import SAVED_DISPLAY, make_review_row, settle


class TestReviews:
    """Test votes, comments and review patches."""

    @pytest.mark.asyncio
    async def test_revote_keeps_one_entry(self, engine, remote):
        engine.cast_vote("Main Stage", "lighting", 4)
        engine.cast_vote("Main Stage", "lighting", 2)

        record = engine.review("Main Stage", "lighting")
        assert record.votes == {"Sam": 2}
        assert record.rating == 2

        await settle()
        row = remote.get(*make_review_row().unique_key)
        assert row.rating == 2
        assert row.area_name == "Main Stage"

    @pytest.mark.asyncio
    async def test_votes_write_immediately(self, engine, remote):
        engine.cast_vote("Main Stage", "lighting", 5)
        await asyncio.sleep(0)
        assert len(remote.upserts) == 1

    @pytest.mark.asyncio
    async def test_same_value_toggles_off(self, engine):
        engine.cast_vote("Main Stage", "sound", 3)
        engine.cast_vote("Main Stage", "sound", 3)
        assert engine.review("Main Stage", "sound").votes == {}

    @pytest.mark.asyncio
    async def test_votes_from_several_people(self, engine):
        engine.cast_vote("Main Stage", "sound", 3, voter="Ana")
        engine.cast_vote("Main Stage", "sound", 5)
        engine.cast_vote("Main Stage", "sound", 5, voter="Lee")
        assert engine.review("Main Stage", "sound").rating == 5

    @pytest.mark.asyncio
    async def test_vote_requires_identity(self, remote, notifier, test_config):
        engine = SyncEngine(remote, notifier, config=test_config)
        await engine.start()
        await engine.open("peep", "2024")
        with pytest.raises(ValidationError):
            engine.cast_vote("Main Stage", "lighting", 4)
        await engine.stop()

    @pytest.mark.asyncio
    async def test_comment_burst_is_one_entry_and_one_write(self, engine, remote):
        for text in ("L", "Lo", "Loud"):
            engine.save_comment("Main Stage", "sound", "needs_improvement", text)

        record = engine.review("Main Stage", "sound")
        assert [(e.author, e.text) for e in record.needs_improvement] == [("Sam", "Loud")]

        await settle()
        assert len(remote.upserts) == 1

    @pytest.mark.asyncio
    async def test_review_patch_notes_and_tags(self, engine):
        engine.save_review_patch("Main Stage", "power", notes="Gennie failed", tags=["Power", "URGENT", "power"])
        record = engine.review("Main Stage", "power")
        assert record.notes == "Gennie failed"
        assert record.tags == ["power", "urgent"]

    @pytest.mark.asyncio
    async def test_area_summary(self, engine):
        engine.cast_vote("Main Stage", "lighting", 4)
        engine.cast_vote("Main Stage", "sound", 2)
        summary = engine.area_summary("Main Stage")
        assert summary.average == 3.0
        assert summary.completed == 2

    @pytest.mark.asyncio
    async def test_categories(self, engine):
        assert engine.categories("Main Stage") == category_ids()
        engine.set_categories("Main Stage", ["sound", "lighting", "sound"])
        assert engine.categories("Main Stage") == ["sound", "lighting"]
        assert list(engine.reviews_for_area("Main Stage")) == ["sound", "lighting"]
        with pytest.raises(ValidationError):
            engine.set_categories("Main Stage", ["smell"])


class TestAreas:
    """Test area list edits."""

    @pytest.mark.asyncio
    async def test_defaults_from_catalog(self, engine):
        assert engine.areas() == default_areas("peep")
        assert engine.areas("bars") == []

    @pytest.mark.asyncio
    async def test_add_existing_area_is_noop(self, engine, remote):
        assert engine.add_area("main   STAGE") is None
        await settle()
        assert remote.upserts == []

    @pytest.mark.asyncio
    async def test_add_and_remove(self, engine):
        engine.add_area("Hidden Grove")
        assert engine.areas()[-1] == "Hidden Grove"
        engine.remove_area("hidden grove")
        assert "Hidden Grove" not in engine.areas()

    @pytest.mark.asyncio
    async def test_description(self, engine):
        engine.set_description("Main Stage", "Big top by the lake")
        assert engine.description("Main Stage") == "Big top by the lake"


class TestTasks:
    """Test task list edits."""

    @pytest.mark.asyncio
    async def test_add_status_move(self, engine, remote):
        a = engine.add_task("Main Stage", "Hang banners")
        b = engine.add_task("Main Stage", "Order fuel", assignees=["Kim Park"], due=date(2026, 6, 1))
        engine.set_task_status("Main Stage", b.id, TaskStatus.IN_PROGRESS)

        assert [t.id for t in engine.tasks_for_display("Main Stage")] == [b.id, a.id]

        engine.move_task("Main Stage", a.id, 0)
        assert [t.id for t in engine.tasks_for_display("Main Stage")] == [a.id, b.id]
        assert {t.id for t in engine.tasks("Main Stage")} == {a.id, b.id}

        await settle()
        assert engine.save_status(engine.tasks_key("Main Stage")) == SaveStatus.SAVED

    @pytest.mark.asyncio
    async def test_assignee_is_enrolled(self, engine):
        engine.add_task("Main Stage", "Rig", assignees=["Kim Park"])
        assert [m.name for m in engine.roster()] == ["Kim Park"]
        engine.add_task("Main Stage", "Derig", assignees=["kim"])
        assert len(engine.roster()) == 1

    @pytest.mark.asyncio
    async def test_update_and_remove(self, engine):
        task = engine.add_task("Main Stage", "Rig")
        updated = engine.update_task("Main Stage", task.id, notes="needs truss", tags=["Power"])
        assert updated.id == task.id
        assert updated.tags == ["power"]
        assert engine.tasks("Main Stage")[0].notes == "needs truss"

        engine.remove_task("Main Stage", task.id)
        assert engine.tasks("Main Stage") == []

    @pytest.mark.asyncio
    async def test_unknown_task(self, engine):
        with pytest.raises(KeyError):
            engine.set_task_status("Main Stage", "missing", TaskStatus.DONE)
        with pytest.raises(ValidationError):
            engine.add_task("Main Stage", "   ")

    @pytest.mark.asyncio
    async def test_period_kind(self, engine):
        assert engine.period_kind() == PeriodKind.REVIEW
        assert engine.period_kind("2026") == PeriodKind.TRACKER


class TestConfigRecords:
    """Test organization-level config records."""

    @pytest.mark.asyncio
    async def test_add_period_and_department(self, engine):
        engine.add_period("2027")
        assert engine.periods()[-1] == "2027"
        assert engine.add_period("2027") is None

        bars = engine.add_department("Bars")
        assert bars.id == "bars"
        assert engine.add_department("bars") == bars
        assert [d.id for d in engine.departments()] == ["production", "bars"]

    @pytest.mark.asyncio
    async def test_roster_members(self, engine):
        member = engine.add_roster_member("Ana Ruiz", role="Stage manager")
        assert engine.person_color("Ana") != engine.person_color("Nobody")
        assert engine.remove_roster_member(member.id)
        assert engine.remove_roster_member(member.id) is None
        assert engine.roster() == []

    @pytest.mark.asyncio
    async def test_config_cache_restores_on_open(self, engine, preferences, notifier, test_config):
        engine.add_roster_member("Ana Ruiz")
        await settle()
        cache = await preferences.get_config_cache("peep")
        assert cache["__roster__"][0]["name"] == "Ana Ruiz"

        offline = MemoryRemoteStore()
        offline.fail_next_reads(2)
        other = SyncEngine(offline, notifier, config=test_config, preferences=preferences)
        await other.start()
        await other.open("peep", "2024")
        assert [m.name for m in other.roster()] == ["Ana Ruiz"]
        assert other.identity == "Sam"
        await other.stop()


class TestLifecycle:
    """Test engine lifecycle and status accessors."""

    @pytest.mark.asyncio
    async def test_open_requires_initialize(self, remote, notifier):
        engine = SyncEngine(remote, notifier)
        with pytest.raises(ServiceNotReadyError):
            await engine.open("peep", "2024")

    @pytest.mark.asyncio
    async def test_reads_require_scope(self, remote, notifier, test_config):
        engine = SyncEngine(remote, notifier, config=test_config)
        await engine.initialize()
        with pytest.raises(ServiceNotReadyError):
            engine.areas()

    @pytest.mark.asyncio
    async def test_stop_flushes_writes(self, remote, notifier, test_config):
        engine = SyncEngine(remote, notifier, config=test_config)
        await engine.start()
        await engine.open("peep", "2024")
        engine.set_description("Main Stage", "flushed")
        await engine.stop()

        assert engine.state == ServiceState.STOPPED
        assert [row.notes for row in remote.upserts] == ["flushed"]

    @pytest.mark.asyncio
    async def test_aggregate_status(self, engine):
        engine.set_description("Main Stage", "x")
        assert engine.aggregate_status() == SaveStatus.SAVING
        await settle()
        assert engine.aggregate_status() == SaveStatus.SAVED
        await asyncio.sleep(SAVED_DISPLAY * 1.5)
        assert engine.aggregate_status() == SaveStatus.IDLE

    @pytest.mark.asyncio
    async def test_visibility_refresh(self, engine, remote):
        before = remote.selects
        engine.notify_visibility(False)
        await asyncio.sleep(0.01)
        assert remote.selects == before

        engine.notify_visibility(True)
        await asyncio.sleep(0.01)
        assert remote.selects == before + 2

    @pytest.mark.asyncio
    async def test_health_check(self, engine):
        engine.set_description("Main Stage", "x")
        health = await engine.health_check()
        assert health.healthy
        assert health.details["scope"]["organization"] == "peep"
        assert health.details["pending"] == 1
