# Copyright (c) Syntropy Systems
"""bakeoff create command."""
from __future__ import annotations

from typing import Optional

import typer

from bakeoff.cli.common import SERVER_OPTION_HELP, console, local_store, remote_client
from bakeoff.plan import ExperimentConflictError, create_plan


def create(
    models: list[str] = typer.Option(
        ...,
        "--model", "-m",
        help="Model to compare (repeat for each model)",
    ),
    profiles: list[str] = typer.Option(
        ...,
        "--profile", "-p",
        help="Test profile (repeat for each profile)",
    ),
    runs: int = typer.Option(3, "--runs", "-r", min=1, help="Repetitions per model/profile pair"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
) -> None:
    """Plan a new experiment.

    Builds the models x profiles x runs queue. Nothing runs until the
    experiment is advanced (see 'bakeoff drive').

    Example:
        bakeoff create -m claude -m gemini -p progressive_urban -p rural_senior -r 3

    """
    if server:
        with remote_client(server, token) as client:
            response = client.create_experiment(models, profiles, runs)
        experiment_id, total_tasks = response.experiment_id, response.total_tasks
    else:
        with local_store() as (conn, config):
            try:
                handle = create_plan(conn, models, profiles, runs, config)
            except ExperimentConflictError as e:
                console.print(f"[red]Error:[/red] {e}")
                console.print("[dim]Use 'bakeoff abort' to discard it first[/dim]")
                raise typer.Exit(1) from e
            except ValueError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(1) from e
        experiment_id, total_tasks = handle.experiment_id, handle.total_tasks

    console.print(f"[green]Created experiment[/green] {experiment_id[:8]}")
    console.print(
        f"  [dim]tasks:[/dim] {len(models)} models x {len(profiles)} profiles "
        f"x {runs} runs = {total_tasks}"
    )
