# Copyright (c) Syntropy Systems
"""bakeoff advance command."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer

from bakeoff.cli.common import (
    SERVER_OPTION_HELP,
    build_task_runner,
    console,
    local_store,
    remote_client,
)
from bakeoff.executor import advance_one

if TYPE_CHECKING:
    from bakeoff.models.api import AdvanceResponse


def print_step(response: AdvanceResponse) -> None:
    """Print one advance outcome."""
    if response.status == "no_experiment":
        console.print("[dim]No experiment running[/dim]")
    elif response.status == "busy":
        console.print("[yellow]Busy:[/yellow] another caller is advancing the experiment")
    elif response.status == "complete":
        console.print(
            f"[green]Complete[/green] ({response.completed_count}/{response.total_tasks})"
        )
    else:
        label = (
            f"{response.current_model} | {response.current_profile} | "
            f"run {response.current_run}"
        )
        position = f"[dim]({response.completed_count}/{response.total_tasks})[/dim]"
        if response.error:
            console.print(f"[red]✗[/red] {label} {position} [red]{response.error}[/red]")
        else:
            console.print(f"[green]✓[/green] {label} {position}")


def advance(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
    task_command: Optional[str] = typer.Option(
        None, "--task-command", help="Command to run per task (local mode)",
    ),
) -> None:
    """Run exactly one task of the current experiment."""
    if server:
        with remote_client(server, token) as client:
            response = client.advance()
    else:
        with local_store() as (conn, config):
            run_task = build_task_runner(config, task_command)
            response = advance_one(conn, run_task, config).to_response()

    print_step(response)
