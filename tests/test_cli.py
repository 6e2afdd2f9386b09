"""
Tests for the command line interface.
"""

import asyncio
import sqlite3

from click.testing import CliRunner

from debrief_sync.cli import cli
from debrief_sync.codec.record import encode_value
from debrief_sync.keys import tasks_address
from debrief_sync.models.records import Task, TaskStatus
from debrief_sync.remote.sqlite import SQLiteRemoteStore

from conftest import make_review_row


def _seed(path, rows):
    async def run():
        async with SQLiteRemoteStore(path) as store:
            for row in rows:
                await store.upsert(row)

    asyncio.run(run())


def _invoke(tmp_path, *args):
    runner = CliRunner(env={"DEBRIEF_STORAGE__PREFERENCES_PATH": str(tmp_path / "prefs.json")})
    return runner.invoke(cli, ["--log-level", "WARNING", *args], obj={})


class TestCli:
    """Test the debrief-sync commands."""

    def test_init_db(self, tmp_path):
        db_path = tmp_path / "remote.db"
        result = _invoke(tmp_path, "init-db", str(db_path))

        assert result.exit_code == 0, result.output
        with sqlite3.connect(db_path) as conn:
            tables = [r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")]
        assert "reviews" in tables

    def test_show_review_period(self, tmp_path):
        db_path = tmp_path / "remote.db"
        _seed(db_path, [make_review_row(worked_well='__votes__{"votes":{"Sam":4}}')])

        result = _invoke(tmp_path, "--backend", "sqlite", "--sqlite-path", str(db_path), "show", "peep", "2024")

        assert result.exit_code == 0, result.output
        assert "Main Stage" in result.output
        assert "lighting" in result.output

    def test_show_tracker_period(self, tmp_path):
        db_path = tmp_path / "remote.db"
        address = tasks_address("peep", "2026", "production", "Main Stage")
        _seed(db_path, [encode_value(address, [Task("a", "Order fuel", TaskStatus.BLOCKED)], "Main Stage")])

        result = _invoke(tmp_path, "--backend", "sqlite", "--sqlite-path", str(db_path), "show", "peep", "2026")

        assert result.exit_code == 0, result.output
        assert "tracker" in result.output
        assert "Order fuel" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "debrief-sync" in result.output
