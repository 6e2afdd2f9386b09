"""
Command line interface for debrief-sync.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .codec.fields import text_of, thread_of
from .models.catalog import PeriodKind, rating_option
from .remote import SQLiteRemoteStore, create_remote_store
from .storage.preferences import PreferenceStore
from .sync.engine import SyncEngine
from .utils.config import DebriefConfig, load_config
from .utils.errors import DebriefError
from .utils.logging import get_logger, setup_logging
from .utils.notifications import NotificationCenter, NotificationLevel


logger = get_logger("debrief-sync.cli")
console = Console()


def _overrides(backend: Optional[str], sqlite_path: Optional[str], base_url: Optional[str],
               log_level: Optional[str]) -> Dict[str, Any]:
    remote: Dict[str, Any] = {}
    if backend:
        remote["backend"] = backend
    if sqlite_path:
        remote["sqlite_path"] = sqlite_path
    if base_url:
        remote["base_url"] = base_url
    overrides: Dict[str, Any] = {"remote": remote} if remote else {}
    if log_level:
        overrides["logging"] = {"level": log_level}
    return overrides


async def _build(ctx_obj: Dict[str, Any], enable_poll: bool) -> Tuple[DebriefConfig, SyncEngine]:
    config = await load_config(ctx_obj["config_paths"], ctx_obj["overrides"])
    config.sync.enable_poll = enable_poll
    setup_logging(
        app_name=config.app_name,
        log_level=config.logging.level,
        log_dir=config.logging.directory,
        enable_json=config.logging.json_output,
        enable_sentry=config.logging.enable_sentry,
        sentry_dsn=config.logging.sentry_dsn,
    )
    notifier = NotificationCenter(ttl_seconds=config.catalog.notification_ttl_seconds)
    notifier.subscribe(
        lambda n: console.print(f"[red]{n.message}[/red]"),
        levels=[NotificationLevel.ERROR, NotificationLevel.WARNING],
    )
    engine = SyncEngine(
        create_remote_store(config.remote),
        notifier,
        config=config,
        preferences=PreferenceStore(config.storage.preferences_path),
    )
    return config, engine


def _rating_cell(rating: Optional[int]) -> str:
    option = rating_option(rating)
    if option is None:
        return "-"
    return f"[{option.color}]{rating} {option.label}[/]"


def _render_review_scope(engine: SyncEngine) -> None:
    for area in engine.areas():
        summary = engine.area_summary(area)
        average = f"{summary.average}" if summary.average is not None else "-"
        table = Table(title=f"{area}  (avg {average}, {summary.completed}/{summary.total} rated)")
        table.add_column("Category")
        table.add_column("Rating")
        table.add_column("Votes")
        table.add_column("Worked well")
        table.add_column("Needs improvement")
        table.add_column("Tags")
        for category, record in engine.reviews_for_area(area).items():
            if record.is_empty:
                continue
            votes = ", ".join(f"{voter}: {value}" for voter, value in sorted(record.votes.items()))
            table.add_row(
                category,
                _rating_cell(record.rating),
                votes or "-",
                text_of(thread_of(record.worked_well)) or "-",
                text_of(thread_of(record.needs_improvement)) or "-",
                ", ".join(record.tags) or "-",
            )
        if table.row_count:
            console.print(table)


def _render_tracker_scope(engine: SyncEngine) -> None:
    for area in engine.areas():
        tasks = engine.tasks_for_display(area)
        if not tasks:
            continue
        table = Table(title=area)
        table.add_column("Status")
        table.add_column("Task")
        table.add_column("Assignees")
        table.add_column("Due")
        for task in tasks:
            assignees = ", ".join(
                f"[{engine.person_color(name)}]{name}[/]" for name in task.assignees
            )
            table.add_row(
                task.status.value,
                task.label,
                assignees or "-",
                task.due.isoformat() if task.due else "-",
            )
        console.print(table)


@click.group()
@click.version_option(__version__, prog_name="debrief-sync")
@click.option("--config", "config_paths", multiple=True, type=click.Path(path_type=Path),
              help="Configuration file (JSON, YAML, TOML or .env); repeatable")
@click.option("--backend", type=click.Choice(["memory", "sqlite", "postgrest"]), help="Remote store backend")
@click.option("--sqlite-path", help="SQLite remote database path")
@click.option("--base-url", help="PostgREST base URL")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx, config_paths, backend, sqlite_path, base_url, log_level):
    """Event review and task tracker sync core."""
    ctx.ensure_object(dict)
    ctx.obj["config_paths"] = list(config_paths)
    ctx.obj["overrides"] = _overrides(backend, sqlite_path, base_url, log_level)


@cli.command()
@click.argument("organization")
@click.argument("period")
@click.option("--department", help="Department id (defaults to the configured default)")
@click.pass_obj
def show(obj, organization, period, department):
    """Print the decoded records of one organization and period."""

    async def run():
        _, engine = await _build(obj, enable_poll=False)
        await engine.start()
        try:
            await engine.open(organization, period, department)
            kind = engine.period_kind()
            console.rule(f"{organization} {period} ({kind.value})")
            if kind == PeriodKind.TRACKER:
                _render_tracker_scope(engine)
            else:
                _render_review_scope(engine)
        finally:
            await engine.stop()
            await engine.remote.close()

    _run(run())


@cli.command()
@click.argument("organization")
@click.argument("period")
@click.option("--department", help="Department id (defaults to the configured default)")
@click.pass_obj
def watch(obj, organization, period, department):
    """Keep a scope synced and log every merge until interrupted."""

    async def run():
        _, engine = await _build(obj, enable_poll=True)
        engine.channels.merge_listeners.append(
            lambda source, address: logger.info("merge", source=source.value, key=address.key)
        )
        await engine.start()
        try:
            await engine.open(organization, period, department)
            console.print(f"Watching {organization} {period}; Ctrl-C to stop")
            await asyncio.Event().wait()
        finally:
            await engine.stop()
            await engine.remote.close()

    _run(run())


@cli.command("init-db")
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--table", default="reviews", show_default=True)
def init_db(path, table):
    """Create the SQLite remote schema at PATH."""

    async def run():
        async with SQLiteRemoteStore(path, table=table):
            pass
        console.print(f"Initialized [bold]{table}[/bold] in {path}")

    _run(run())


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("Stopped")
    except DebriefError as e:
        console.print(f"[red]{e.code}[/red]: {e.message}")
        for suggestion in e.get_suggestions():
            console.print(f"  - {suggestion}")
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
