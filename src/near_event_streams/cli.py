"""CLI entry point for the near_event_streams indexer."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from near_event_streams.config import load_config
from near_event_streams.daemon import run_daemon
from near_event_streams.errors import StreamError
from near_event_streams.models.config import ResumeMode
from near_event_streams.storage.sqlite import SQLiteCursorStore


def _apply_log_level(ctx: click.Context, cfg) -> None:
    """Use the configured log level unless -v asked for debug."""
    level = "DEBUG" if ctx.obj["verbose"] else cfg.log_level.upper()
    logging.getLogger().setLevel(level)


def _load(ctx: click.Context):
    """Load config or exit with the error on stderr."""
    try:
        cfg = load_config(ctx.obj["config_path"])
        cfg.validate()
        _apply_log_level(ctx, cfg)
    except StreamError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    return cfg


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """near_event_streams - stream NEAR contract events to a message sink."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


# ── Indexer ────────────────────────────────────────────


@cli.command()
@click.option(
    "--sync-mode",
    type=click.Choice([m.value for m in ResumeMode]),
    default=None,
    help="Where to start: genesis, last committed height, or --height",
)
@click.option("--height", type=int, default=None, help="Start height for from-height")
@click.option(
    "--stream-while-syncing",
    is_flag=True,
    help="Deliver events during catch-up instead of suppressing them",
)
@click.pass_context
def run(
    ctx: click.Context,
    sync_mode: str | None,
    height: int | None,
    stream_while_syncing: bool,
) -> None:
    """Start the indexer."""
    try:
        cfg = load_config(ctx.obj["config_path"])
    except StreamError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if sync_mode is not None:
        cfg.sync_mode = ResumeMode(sync_mode)
    if height is not None:
        cfg.start_height = height
        if sync_mode is None:
            cfg.sync_mode = ResumeMode.FROM_HEIGHT
    if stream_while_syncing:
        cfg.suppress_during_catchup = False

    click.echo(f"Starting near_event_streams (sync mode: {cfg.sync_mode.value})")
    try:
        cfg.validate()
        _apply_log_level(ctx, cfg)
        asyncio.run(run_daemon(cfg))
    except StreamError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.option("--activity", "activity_limit", default=10, help="Recent activity entries to show")
@click.pass_context
def status(ctx: click.Context, activity_limit: int) -> None:
    """Show the last committed cursor and recent activity."""
    cfg = _load(ctx)

    async def _status():
        store = SQLiteCursorStore(cfg.db_path)
        try:
            await store.initialize()
            cursor = await store.load()
            activity = await store.get_recent_activity(activity_limit)
        finally:
            await store.close()

        click.echo(f"DB path:    {cfg.db_path}")
        if cursor is None:
            click.echo("Cursor:     (nothing committed)")
        else:
            click.echo(f"Height:     {cursor.last_height}")
            click.echo(f"Hash:       {cursor.last_hash}")
            click.echo(f"Mode:       {cursor.mode.value}")
            click.echo(f"Updated:    {cursor.updated_at}")

        if activity:
            click.echo("")
            click.echo("Recent activity:")
            for a in activity:
                where = f" @{a.height}" if a.height is not None else ""
                click.echo(f"  {a.created_at}  {a.event_type:<16}{where}  {a.message}")

    try:
        asyncio.run(_status())
    except StreamError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@cli.command(name="show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective configuration."""
    cfg = _load(ctx)
    click.echo(f"Sync mode:     {cfg.sync_mode.value}")
    click.echo(f"Start height:  {cfg.start_height if cfg.start_height is not None else '(not set)'}")
    click.echo(f"Genesis:       {cfg.genesis_height}")
    click.echo(f"Suppress:      {cfg.suppress_during_catchup}")
    click.echo(f"Shards:        {', '.join(str(s) for s in cfg.tracked_shards)}")
    click.echo(f"Queue:         {cfg.queue_capacity} blocks")
    click.echo(f"Log level:     {cfg.log_level}")
    if cfg.feed.kind == "file":
        click.echo(f"Feed:          file {cfg.feed.path}")
    else:
        click.echo(f"Feed:          http {cfg.feed.url}")
    if cfg.sink.kind == "jsonl":
        click.echo(f"Sink:          jsonl {cfg.sink.path}")
    else:
        click.echo(f"Sink:          http {cfg.sink.url}")
        click.echo(f"Topics:        {cfg.sink.topic_prefix}_<standard> {cfg.sink.all_topic}")
    click.echo(f"Retries:       {cfg.delivery.retries} (base {cfg.delivery.base_delay}s)")
    click.echo(f"Whitelist:     {', '.join(cfg.whitelist_contract_ids) or '(all)'}")
    click.echo(f"Blacklist:     {', '.join(cfg.blacklist_contract_ids) or '(none)'}")
    click.echo(f"DB path:       {cfg.db_path}")


if __name__ == "__main__":
    cli()
