"""Command-line interface for watchnode using Typer.

Commands:
- run: Watch a folder and report changes to the collector
- snapshot: Print the current listing of a folder as JSON
- init-config: Write a default configuration file
"""

from __future__ import annotations

import json
import os
import signal
import sys
from pathlib import Path
from types import FrameType
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape

from watchnode.core.config import (
    Config,
    apply_overrides,
    create_default_config,
    load_config_or_default,
)
from watchnode.core.diff import Diff
from watchnode.core.errors import ConfigError, FilesystemError, SchedulingError
from watchnode.core.logging_setup import get_logger, setup_logging
from watchnode.core.runtime import Watcher
from watchnode.core.snapshot import read_snapshot

console = Console()
logger = get_logger(__name__)

app = typer.Typer(
    name="watchnode",
    help="watchnode - report changes in a folder to a collector",
    add_completion=False,
)

# Typer option metadata constants to avoid function calls in annotations/defaults
CONFIG_OPTION = typer.Option(
    "--config",
    "-c",
    help="Path to configuration file",
)
FOLDER_OPTION = typer.Option(
    "--folder",
    "-f",
    help="Folder to watch",
)
MASTER_OPTION = typer.Option(
    "--master",
    "-m",
    help="URL of the collector reports are POSTed to",
)
ID_OPTION = typer.Option(
    "--id",
    help="Agent identity (random if unset)",
)
INTERVAL_OPTION = typer.Option(
    "--interval",
    help="Seconds between ticks",
)
TIMEOUT_OPTION = typer.Option(
    "--timeout",
    help="HTTP timeout in seconds",
)
ONCE_OPTION = typer.Option(
    "--once",
    help="Send a single report and exit",
)
DRY_RUN_OPTION = typer.Option(
    "--dry-run",
    help="Validate config and exit",
)
VERBOSITY_OPTION = typer.Option(
    "--verbosity",
    help="Console verbosity (debug|info|warning|error)",
)

_ENV_OVERRIDES = {
    "WATCHNODE_FOLDER": "folder",
    "WATCHNODE_COLLECTOR_URL": "collector_url",
    "WATCHNODE_AGENT_ID": "agent_id",
    "WATCHNODE_INTERVAL_S": "interval_s",
}


def _apply_watcher_env_overrides(config: Config) -> Config:
    """Apply WATCHNODE_* environment variables on top of the loaded config."""
    overrides: dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        overrides[field_name] = raw.strip()
    return apply_overrides(config, overrides)


def _install_graceful_sigterm_handler(watcher: Watcher) -> None:
    """Stop the watcher on SIGTERM instead of dying mid-report."""

    def _handle_sigterm(signum: int, frame: FrameType | None) -> None:
        logger.info("SIGTERM received, stopping watcher")
        watcher.stop()

    signal.signal(signal.SIGTERM, _handle_sigterm)


@app.command()
def run(
    config_path: Annotated[Path | None, CONFIG_OPTION] = Path("watchnode.toml"),
    folder: Annotated[str | None, FOLDER_OPTION] = None,
    master: Annotated[str | None, MASTER_OPTION] = None,
    agent_id: Annotated[str | None, ID_OPTION] = None,
    interval: Annotated[float | None, INTERVAL_OPTION] = None,
    timeout: Annotated[float | None, TIMEOUT_OPTION] = None,
    once: Annotated[bool, ONCE_OPTION] = False,
    dry_run: Annotated[bool, DRY_RUN_OPTION] = False,
    verbosity: Annotated[str | None, VERBOSITY_OPTION] = None,
) -> None:
    """Watch a folder and report its changes to the collector.

    Precedence: defaults < config file < WATCHNODE_* env < command-line flags.
    """
    try:
        config = load_config_or_default(config_path)
        config = _apply_watcher_env_overrides(config)
        config = apply_overrides(
            config,
            {
                "folder": folder,
                "collector_url": master,
                "agent_id": agent_id,
                "interval_s": interval,
                "timeout_s": timeout,
                "console_verbosity": verbosity,
            },
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        sys.exit(2)

    setup_logging(
        verbosity=config.watcher.console_verbosity,
        log_file_path=config.watcher.log_file,
    )

    if dry_run:
        console.print("[yellow]Dry-run mode: validating only[/yellow]")
        console.print(json.dumps(config.model_dump(), indent=2))
        return

    watcher = Watcher(config.watcher, console=console)

    if once:
        ok = watcher.process_tick()
        watcher.reporter.close()
        if not ok:
            console.print(f"[red]Report failed: {escape(str(watcher.stats.last_error))}[/red]")
            sys.exit(1)
        console.print("[green]Report delivered[/green]")
        return

    _install_graceful_sigterm_handler(watcher)
    try:
        watcher.run()
    except SchedulingError as e:
        logger.error(str(e))
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)


@app.command()
def snapshot(
    folder: Annotated[Path, typer.Argument(help="Folder to list")] = Path("."),
) -> None:
    """Print the current listing of a folder as a report-style JSON diff."""
    try:
        entries = read_snapshot(folder)
    except FilesystemError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    print(json.dumps(Diff(added=entries).to_dict()["added"], indent=2))


@app.command("init-config")
def init_config(
    path: Annotated[Path, typer.Argument(help="Config file to create (.toml/.yaml)")] = Path(
        "watchnode.toml"
    ),
) -> None:
    """Write a default configuration file."""
    try:
        create_default_config(path)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(2)
    console.print(f"[green]Wrote default configuration to {path}[/green]")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
