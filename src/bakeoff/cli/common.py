# Copyright (c) Syntropy Systems
"""Helpers shared by the CLI commands.

Commands run in one of two modes:

LOCAL MODE (default): talk to the SQLite store in the nearest .bakeoff
directory.

REMOTE MODE (--server): talk to a bakeoff server over HTTP.
"""
from __future__ import annotations

import shlex
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import typer
from rich.console import Console

from bakeoff.client import BakeoffClient, BakeoffClientError
from bakeoff.config import BakeoffConfig, get_db_path, load_config, require_bakeoff_dir
from bakeoff.db import CorruptRecordError, get_connection
from bakeoff.runner import CommandTaskRunner

console = Console()

SERVER_OPTION_HELP = "Server URL for remote mode (e.g., http://localhost:8080)"


@contextmanager
def local_store() -> Iterator[tuple[sqlite3.Connection, BakeoffConfig]]:
    """Open the project's store, exiting with an error on failure."""
    try:
        bakeoff_dir = require_bakeoff_dir()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    config = load_config(bakeoff_dir)
    conn = get_connection(get_db_path(bakeoff_dir))
    try:
        yield conn, config
    except (CorruptRecordError, sqlite3.Error) as e:
        console.print(f"[red]Store error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        conn.close()


@contextmanager
def remote_client(server: str, token: Optional[str]) -> Iterator[BakeoffClient]:
    """Open a client, exiting with an error on communication failure."""
    client = BakeoffClient(server, token=token)
    try:
        yield client
    except BakeoffClientError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        client.close()


def build_task_runner(
    config: BakeoffConfig, task_command: Optional[str] = None
) -> CommandTaskRunner:
    """Build the local task runner from --task-command or config.task_command."""
    argv = shlex.split(task_command) if task_command else config.task_command
    if not argv:
        console.print("[red]Error:[/red] No task command configured.")
        console.print("Set task_command in .bakeoff/config.yaml or pass --task-command.")
        raise typer.Exit(1)
    return CommandTaskRunner(argv, timeout=config.task_timeout)
