# Copyright (c) Syntropy Systems
"""bakeoff drive command."""
from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Callable, Optional

import typer

from bakeoff.cli.advance import print_step
from bakeoff.cli.common import (
    SERVER_OPTION_HELP,
    build_task_runner,
    console,
    remote_client,
)
from bakeoff.config import get_db_path, load_config, require_bakeoff_dir
from bakeoff.db import CorruptRecordError, get_connection
from bakeoff.driver import DriveReport
from bakeoff.driver import drive as drive_loop
from bakeoff.executor import advance_one

if TYPE_CHECKING:
    from bakeoff.config import BakeoffConfig
    from bakeoff.models.api import AdvanceResponse


def drive(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
    task_command: Optional[str] = typer.Option(
        None, "--task-command", help="Command to run per task (local mode)",
    ),
    max_steps: Optional[int] = typer.Option(
        None, "--max-steps", min=1, help="Stop after this many advance calls",
    ),
) -> None:
    """
    Advance the experiment until it completes.

    Safe to run from several terminals at once: only one advances at a
    time, the others back off. Stopping (Ctrl-C) loses at most the task in
    flight; run drive again to resume.

    Examples:

        # Local mode (in a bakeoff project)
        bakeoff drive

        # Remote mode
        bakeoff drive --server http://localhost:8080
    """
    if server:
        with remote_client(server, token) as client:
            report = _run(client.advance, load_config(), max_steps)
    else:
        try:
            bakeoff_dir = require_bakeoff_dir()
        except RuntimeError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

        config = load_config(bakeoff_dir)
        db_path = get_db_path(bakeoff_dir)
        run_task = build_task_runner(config, task_command)

        def local_advance() -> AdvanceResponse:
            # A fresh connection per call, like any other stateless caller
            conn = get_connection(db_path)
            try:
                return advance_one(conn, run_task, config).to_response()
            finally:
                conn.close()

        try:
            report = _run(local_advance, config, max_steps)
        except (CorruptRecordError, sqlite3.Error) as e:
            console.print(f"[red]Store error:[/red] {e}")
            raise typer.Exit(1) from e

    _print_report(report)


def _run(
    advance: Callable[[], AdvanceResponse], config: BakeoffConfig, max_steps: Optional[int]
) -> DriveReport:
    try:
        return drive_loop(advance, config, max_steps=max_steps, on_step=print_step)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow] Progress is saved; run drive again to resume.")
        raise typer.Exit(130)


def _print_report(report: DriveReport) -> None:
    console.print()
    console.print(f"[bold]Drive finished:[/bold] {report.final_status}")
    console.print(f"  [dim]tasks advanced:[/dim] {report.advanced}")
    if report.busy:
        console.print(f"  [dim]busy responses:[/dim] {report.busy}")
    if report.transport_errors:
        console.print(f"  [yellow]transport errors:[/yellow] {report.transport_errors}")
    if report.task_errors:
        console.print(f"  [red]task errors:[/red] {len(report.task_errors)}")
        for line in report.task_errors:
            console.print(f"    - {line}")
