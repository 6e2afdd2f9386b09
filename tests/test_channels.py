"""
Tests for bulk load, poll and push merging.
"""

import asyncio
import json

import pytest

from debrief_sync.codec.record import encode_value
from debrief_sync.keys import ConfigName, areas_address, config_address, review_address
from debrief_sync.models.catalog import default_areas
from debrief_sync.models.records import ReviewRecord
from debrief_sync.models.rows import ChangeEvent, ChangeType
from debrief_sync.store.local_state import SaveStatus
from debrief_sync.sync.channels import MergeSource

from conftest import make_review_row, settle


LIGHTING = review_address("peep", "2024", "production", "Main Stage", "lighting")
AREAS = areas_address("peep", "2024", "production")


class TestBulkLoad:
    """Test opening a scope."""

    @pytest.mark.asyncio
    async def test_populates_store(self, remote, store, channels):
        await remote.upsert(make_review_row(worked_well="Bright", rating=5))
        await remote.upsert(encode_value(config_address("peep", ConfigName.PERIODS), ["2024", "2027"]))

        await channels.open_scope("peep", "2024", "production")

        assert store.get(LIGHTING).worked_well[0].text == "Bright"
        assert store.get(config_address("peep", ConfigName.PERIODS)) == ["2024", "2027"]
        assert not channels.loading

    @pytest.mark.asyncio
    async def test_does_not_overwrite_pending_key(self, remote, store, channels):
        await remote.upsert(make_review_row(notes="remote"))
        store.put(LIGHTING, ReviewRecord(notes="local"))
        store.mark_pending(LIGHTING.key)

        await channels.open_scope("peep", "2024", "production")
        assert store.get(LIGHTING).notes == "local"

    @pytest.mark.asyncio
    async def test_stale_load_keeps_pending_added_area(self, remote, store, channels):
        await remote.upsert(encode_value(AREAS, ["Main Stage", "Bar"]))
        store.put(AREAS, ["Main Stage", "Bar", "New Tent"])
        store.mark_pending(AREAS.key)

        await channels.open_scope("peep", "2024", "production")
        assert store.get(AREAS) == ["Main Stage", "Bar", "New Tent"]

    @pytest.mark.asyncio
    async def test_referenced_areas_are_appended(self, remote, store, channels):
        await remote.upsert(encode_value(AREAS, ["Main Stage"]))
        await remote.upsert(make_review_row(area="Hidden Grove", notes="x"))

        await channels.open_scope("peep", "2024", "production")
        assert store.get(AREAS) == ["Main Stage", "Hidden Grove"]

    @pytest.mark.asyncio
    async def test_referenced_areas_extend_catalog_defaults(self, remote, store, channels):
        await remote.upsert(make_review_row(area="Hidden Grove", notes="x"))

        await channels.open_scope("peep", "2024", "production")
        assert store.get(AREAS) == default_areas("peep") + ["Hidden Grove"]

    @pytest.mark.asyncio
    async def test_read_failure_resolves_to_no_data(self, remote, store, channels):
        store.put(LIGHTING, ReviewRecord(notes="cached"))
        remote.fail_next_reads(2)

        await channels.open_scope("peep", "2024", "production")
        assert store.get(LIGHTING).notes == "cached"
        assert not channels.loading

    @pytest.mark.asyncio
    async def test_only_first_load_reports_loading(self, remote, channels):
        states = []
        original = remote.select_scope

        async def observing(org, period):
            states.append(channels.loading)
            return await original(org, period)

        remote.select_scope = observing
        await channels.open_scope("peep", "2024", "production")
        await channels.open_scope("peep", "2024", "production")
        assert states == [True, True, False, False]


class TestPoll:
    """Test periodic refresh."""

    @pytest.mark.asyncio
    async def test_refresh_merges_last_fetch(self, remote, store, channels):
        await channels.open_scope("peep", "2024", "production")
        store.put(LIGHTING, ReviewRecord(notes="old"))
        await remote.upsert(make_review_row(notes="new"))

        await channels.refresh()
        assert store.get(LIGHTING).notes == "new"

    @pytest.mark.asyncio
    async def test_refresh_skips_debouncing_key(self, remote, store, writer, channels):
        await channels.open_scope("peep", "2024", "production")
        await remote.upsert(make_review_row(notes="remote"))

        store.put(LIGHTING, ReviewRecord(notes="typing"))
        writer.submit(LIGHTING.key, lambda: encode_value(LIGHTING, store.get(LIGHTING)))
        await channels.refresh()
        assert store.get(LIGHTING).notes == "typing"

        await settle()
        assert remote.get(*make_review_row().unique_key).notes == "typing"

    @pytest.mark.asyncio
    async def test_refresh_keeps_edit_whose_save_failed(self, remote, store, writer, channels):
        await channels.open_scope("peep", "2024", "production")
        await remote.upsert(make_review_row(notes="remote"))
        remote.fail_next_writes(1)

        store.put(LIGHTING, ReviewRecord(notes="my unsynced edit"))
        writer.submit(LIGHTING.key, lambda: encode_value(LIGHTING, store.get(LIGHTING)))
        await settle()
        assert store.status(LIGHTING.key) == SaveStatus.ERROR

        await channels.refresh()
        channels.merge_row(make_review_row(notes="pushed"), MergeSource.PUSH)
        assert store.get(LIGHTING).notes == "my unsynced edit"
        assert remote.get(*make_review_row().unique_key).notes == "remote"

    @pytest.mark.asyncio
    async def test_poll_loop(self, remote, store, channels):
        channels.poll_interval_seconds = 0.02
        await channels.open_scope("peep", "2024", "production")
        task = asyncio.create_task(channels.poll_forever())
        try:
            await remote.upsert(make_review_row(notes="polled"))
            await asyncio.sleep(0.1)
        finally:
            task.cancel()
        assert store.get(LIGHTING).notes == "polled"
        assert remote.selects > 2


class TestPush:
    """Test pushed row changes."""

    @pytest.mark.asyncio
    async def test_push_merges_into_key(self, remote, store, channels):
        await channels.open_scope("peep", "2024", "production")
        await remote.upsert(make_review_row(notes="pushed"))
        await asyncio.sleep(0)

        assert store.get(LIGHTING).notes == "pushed"

    @pytest.mark.asyncio
    async def test_same_event_twice_equals_once(self, store, channels):
        await channels.open_scope("peep", "2024", "production")
        event = ChangeEvent(ChangeType.UPDATE, make_review_row(worked_well='__votes__{"votes":{"Sam":2}}'))

        channels.handle_change(event)
        once = store.get(LIGHTING)
        channels.handle_change(event)
        assert store.get(LIGHTING) == once
        assert once.votes == {"Sam": 2}

    @pytest.mark.asyncio
    async def test_delete_resets_key(self, remote, store, channels):
        await remote.upsert(make_review_row(notes="gone soon"))
        await channels.open_scope("peep", "2024", "production")
        await remote.delete(*make_review_row().unique_key)
        await asyncio.sleep(0)

        assert not store.has(LIGHTING)
        assert store.get(LIGHTING) == ReviewRecord()

    @pytest.mark.asyncio
    async def test_other_organization_ignored(self, store, channels):
        await channels.open_scope("peep", "2024", "production")
        event = ChangeEvent(ChangeType.INSERT, make_review_row(org="gottwood", notes="x"))
        assert channels.handle_change(event) is None

    @pytest.mark.asyncio
    async def test_switching_organization_resubscribes(self, remote, channels):
        await channels.open_scope("peep", "2024", "production")
        await channels.open_scope("gottwood", "2024", "production")
        assert remote.subscriber_count("peep") == 0
        assert remote.subscriber_count("gottwood") == 1

    @pytest.mark.asyncio
    async def test_merge_listeners(self, remote, channels):
        seen = []
        channels.merge_listeners.append(lambda source, address: seen.append((source, address.key)))
        await remote.upsert(make_review_row(notes="x"))
        await channels.open_scope("peep", "2024", "production")
        assert (MergeSource.BULK, LIGHTING.key) in seen

    @pytest.mark.asyncio
    async def test_config_row_with_legacy_shape(self, remote, store, channels):
        row = config_address("peep", ConfigName.DEPARTMENTS).blank_row()
        row.notes = json.dumps({"2024": ["Production", "Bars"]})
        await remote.upsert(row)
        await remote.upsert(make_review_row(department="bars", area="Tent", notes="bar note"))

        await channels.open_scope("peep", "2024", "production")
        tent = review_address("peep", "2024", "bars", "Tent", "lighting")
        assert store.get(tent).notes == "bar note"
