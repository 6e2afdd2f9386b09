"""
Tests for the SQLite and PostgREST remote stores.
"""

import asyncio
import json

import httpx
import pytest

from debrief_sync.models.rows import ChangeType, RemoteRow
from debrief_sync.remote import MemoryRemoteStore, SQLiteRemoteStore, PostgrestRemoteStore, create_remote_store
from debrief_sync.utils.config import RemoteConfig
from debrief_sync.utils.errors import ConfigurationError, RemoteReadError, RemoteWriteError

from conftest import make_review_row


class TestSQLiteRemoteStore:
    """Test the aiosqlite-backed store."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_on_unique_key(self, sqlite_store):
        await sqlite_store.upsert(make_review_row(notes="first", rating=2))
        await sqlite_store.upsert(make_review_row(notes="second", rating=4))
        await sqlite_store.upsert(make_review_row(category="sound", notes="other"))

        rows = await sqlite_store.select_scope("peep", "2024")
        by_category = {row.category_id: row for row in rows}
        assert len(rows) == 2
        assert by_category["lighting"].notes == "second"
        assert by_category["lighting"].rating == 4
        assert by_category["lighting"].department_tag == "production"

    @pytest.mark.asyncio
    async def test_select_is_scoped(self, sqlite_store):
        await sqlite_store.upsert(make_review_row(period="2023"))
        await sqlite_store.upsert(make_review_row(org="gottwood"))
        assert await sqlite_store.select_scope("peep", "2024") == []

    @pytest.mark.asyncio
    async def test_push_events(self, sqlite_store):
        events = []
        await sqlite_store.subscribe("peep", events.append)

        await sqlite_store.upsert(make_review_row(notes="a"))
        await sqlite_store.upsert(make_review_row(notes="b"))
        assert await sqlite_store.delete(*make_review_row().unique_key)
        assert not await sqlite_store.delete(*make_review_row().unique_key)
        await asyncio.sleep(0)

        assert [e.change_type for e in events] == [ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE]
        assert events[1].row.notes == "b"

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_delivery(self, sqlite_store):
        events = []
        subscription = await sqlite_store.subscribe("peep", events.append)
        await subscription.close()
        await sqlite_store.upsert(make_review_row())
        await asyncio.sleep(0)
        assert events == []

    @pytest.mark.asyncio
    async def test_reopen_persists(self, tmp_path):
        async with SQLiteRemoteStore(tmp_path / "r.db") as store:
            await store.upsert(make_review_row(notes="durable"))
        async with SQLiteRemoteStore(tmp_path / "r.db") as store:
            rows = await store.select_scope("peep", "2024")
        assert rows[0].notes == "durable"

    def test_rejects_bad_table_name(self, tmp_path):
        with pytest.raises(ValueError):
            SQLiteRemoteStore(tmp_path / "r.db", table="reviews; drop")


def _postgrest(handler) -> PostgrestRemoteStore:
    return PostgrestRemoteStore(
        "https://example.test/rest/v1",
        api_key="key",
        transport=httpx.MockTransport(handler),
    )


class TestPostgrestRemoteStore:
    """Test the HTTP store against a mocked transport."""

    @pytest.mark.asyncio
    async def test_select_sends_eq_filters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["apikey"] = request.headers.get("apikey")
            return httpx.Response(200, json=[{"festival": "peep", "year": "2024", "area_id": "main-stage",
                                              "category_id": "lighting", "rating": "3"}])

        store = _postgrest(handler)
        rows = await store.select_scope("peep", "2024")
        await store.close()

        assert seen["params"]["organization"] == "eq.peep"
        assert seen["params"]["period"] == "eq.2024"
        assert seen["apikey"] == "key"
        assert rows == [RemoteRow("peep", "2024", "main-stage", "lighting", rating=3)]

    @pytest.mark.asyncio
    async def test_upsert_merges_duplicates(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["prefer"] = request.headers.get("prefer")
            seen["on_conflict"] = request.url.params.get("on_conflict")
            seen["body"] = json.loads(request.content)
            return httpx.Response(201)

        store = _postgrest(handler)
        await store.upsert(make_review_row(notes="hi"))
        await store.close()

        assert "resolution=merge-duplicates" in seen["prefer"]
        assert seen["on_conflict"] == "organization,period,area_id,category_id"
        assert seen["body"][0]["notes"] == "hi"
        assert seen["body"][0]["updated_at"]

    @pytest.mark.asyncio
    async def test_http_errors_become_remote_errors(self):
        store = _postgrest(lambda request: httpx.Response(503))
        with pytest.raises(RemoteWriteError):
            await store.upsert(make_review_row())
        with pytest.raises(RemoteReadError):
            await store.select_scope("peep", "2024")
        await store.close()

    @pytest.mark.asyncio
    async def test_no_push(self):
        store = _postgrest(lambda request: httpx.Response(200, json=[]))
        assert not store.supports_push
        assert await store.subscribe("peep", lambda event: None) is None
        await store.close()


class TestCreateRemoteStore:
    """Test backend selection from configuration."""

    def test_backends(self, tmp_path):
        assert isinstance(create_remote_store(RemoteConfig()), MemoryRemoteStore)
        sqlite = create_remote_store(RemoteConfig(backend="sqlite", sqlite_path=tmp_path / "x.db"))
        assert isinstance(sqlite, SQLiteRemoteStore)

    def test_postgrest_needs_url(self):
        with pytest.raises(ConfigurationError):
            create_remote_store(RemoteConfig(backend="postgrest"))
