"""SSE EventSource CLI: listen to a stream, manage defaults."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from . import config as settings
from .source import EventSource
from .types import EventSourceError, Message


# ============================================================================
# CLI group
# ============================================================================

@click.group()
@click.option("-v", "--verbose", count=True, help="Log connection activity (-vv for debug)")
@click.option("--config-file", type=click.Path(dir_okay=False, path_type=Path),
              default=settings.CONFIG_FILE, show_default=True,
              help="Path to the TOML config file")
@click.pass_context
def cli(ctx: click.Context, verbose: int, config_file: Path):
    """Server-Sent Events client"""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.obj = {"config_file": config_file}


# ============================================================================
# sse-eventsource listen <url>
# ============================================================================

def _format_message(message: Message, as_json: bool) -> str:
    if as_json:
        return json.dumps(message.model_dump())
    lines = []
    if message.name:
        lines.append(f"event: {message.name}")
    if message.id:
        lines.append(f"id: {message.id}")
    lines.extend(f"data: {line}" for line in message.data.split("\n"))
    return "\n".join(lines) + "\n"


@cli.command()
@click.argument("url")
@click.option("--retry", "retry_interval_ms", type=click.IntRange(min=0), default=None,
              help="Initial reconnection delay in milliseconds")
@click.option("--last-event-id", default=None, help="Resume after this event id")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON object per message")
@click.pass_context
def listen(ctx: click.Context, url: str, retry_interval_ms: Optional[int],
           last_event_id: Optional[str], as_json: bool):
    """Print messages from URL until interrupted."""
    try:
        cfg = settings.load_config(
            ctx.obj["config_file"],
            retry_interval_ms=retry_interval_ms,
            last_event_id=last_event_id,
        )
    except ValidationError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)

    try:
        source = EventSource(url, config=cfg)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        source.connect()
    except EventSourceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        for message in source:
            click.echo(_format_message(message, as_json))
    except KeyboardInterrupt:
        pass
    finally:
        source.close()

    if source.last_event_id:
        click.echo(f"Last event id: {source.last_event_id}", err=True)


# ============================================================================
# sse-eventsource config (subgroup)
# ============================================================================

@cli.group()
def config():
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context):
    """Print config file contents."""
    path: Path = ctx.obj["config_file"]
    if not path.exists():
        click.echo(f"No config file found at {path}")
        return

    with open(path, "r") as f:
        click.echo(f.read())


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str):
    """Set a config value (e.g., sse-eventsource config set default.retry_interval_ms 3000)"""
    path: Path = ctx.obj["config_file"]
    cfg = settings.load_raw(path)
    settings.set_nested(cfg, key, settings.coerce_value(key, value))
    settings.save_raw(cfg, path)
    click.echo(f"Set {key} = {value}")


# ============================================================================
# Entry point
# ============================================================================

def main():
    cli()


if __name__ == "__main__":
    main()
