# Copyright (c) Syntropy Systems
"""bakeoff status command."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import typer

from bakeoff.cli.common import SERVER_OPTION_HELP, console, local_store, remote_client
from bakeoff.db import now_ms
from bakeoff.models.experiment import ProgressRecord
from bakeoff.progress import read_lease, read_progress


def format_elapsed(started_at: Optional[str], finished_at: Optional[str] = None) -> str:
    """Format the time between started_at and finished_at (or now)."""
    if not started_at:
        return "-"

    try:
        start = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        end = datetime.now(timezone.utc)
        if finished_at:
            end = datetime.fromisoformat(finished_at.replace("Z", "+00:00"))
    except ValueError:
        return "-"

    total_seconds = max(0, int((end - start).total_seconds()))
    if total_seconds < 60:
        return f"{total_seconds}s"
    if total_seconds < 3600:
        return f"{total_seconds // 60}m {total_seconds % 60}s"
    return f"{total_seconds // 3600}h {(total_seconds % 3600) // 60}m"


def status(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
) -> None:
    """Show progress of the current experiment."""
    lease: Optional[int] = None
    lease_duration_ms: Optional[int] = None
    if server:
        with remote_client(server, token) as client:
            progress = client.status()
    else:
        with local_store() as (conn, config):
            progress = read_progress(conn)
            lease = read_lease(conn)
            lease_duration_ms = config.lease_duration_ms

    if progress is None:
        console.print("[dim]No experiment running[/dim]")
        console.print("Create one with: bakeoff create -m MODEL -p PROFILE")
        return

    print_progress(progress, lease, lease_duration_ms)


def print_progress(
    progress: ProgressRecord,
    lease: Optional[int] = None,
    lease_duration_ms: Optional[int] = None,
) -> None:
    """Print a progress record, and the lease when it was read locally."""
    style = {"running": "yellow", "complete": "green"}.get(progress.status, "dim")
    console.print(
        f"[bold]Experiment {progress.experiment_id[:8]}[/bold] "
        f"[{style}]{progress.status}[/{style}]"
    )

    percent = 0.0
    if progress.total_tasks:
        percent = 100.0 * progress.completed_count / progress.total_tasks
    console.print(
        f"  [dim]progress:[/dim] {progress.completed_count}/{progress.total_tasks} "
        f"({percent:.0f}%)"
    )
    if progress.error_count:
        console.print(f"  [dim]errors:[/dim]   [red]{progress.error_count}[/red]")

    console.print(
        f"  [dim]plan:[/dim]     {len(progress.models)} models x "
        f"{len(progress.profiles)} profiles x {progress.runs_per_combination} runs"
    )

    if progress.status == "running" and progress.current_model:
        console.print(
            f"  [dim]current:[/dim]  {progress.current_model} | "
            f"{progress.current_profile} | run {progress.current_run}"
        )
    if lease is not None:
        console.print(f"  [dim]lease:[/dim]    {describe_lease(lease, lease_duration_ms)}")

    console.print(
        f"  [dim]elapsed:[/dim]  {format_elapsed(progress.started_at, progress.completed_at)}"
    )
    if progress.status == "running":
        console.print(f"  [dim]estimate:[/dim] ~{progress.estimated_minutes} min total")


def describe_lease(
    claimed_at: int, lease_duration_ms: Optional[int], now: Optional[int] = None
) -> str:
    """Say whether a lease is still live or has been abandoned."""
    age_ms = max((now if now is not None else now_ms()) - claimed_at, 0)
    age = f"claimed {age_ms // 1000}s ago"
    if lease_duration_ms is not None and age_ms >= lease_duration_ms:
        return f"[yellow]expired[/yellow] ({age}, next advance reclaims it)"
    return f"held ({age})"
