# Copyright (c) Syntropy Systems
"""bakeoff results command."""
from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from bakeoff.cli.common import SERVER_OPTION_HELP, console, local_store, remote_client
from bakeoff.models.leaderboard import ResultsResponse
from bakeoff.scoring import get_results


def results(
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw scorecard as JSON"),
) -> None:
    """Show the leaderboard for the current or last experiment.

    Works while an experiment is still running; the table then covers
    only the results recorded so far.
    """
    if server:
        with remote_client(server, token) as client:
            response = client.results()
    else:
        with local_store() as (conn, config):
            response = get_results(conn, config)

    if as_json:
        typer.echo(response.model_dump_json(indent=2))
        return

    print_leaderboard(response)


def print_leaderboard(response: ResultsResponse) -> None:
    """Render a leaderboard as a table."""
    board = response.leaderboard
    if not board.entries:
        console.print("[dim]No results recorded yet[/dim]")
        return

    table = Table(title="Leaderboard")
    table.add_column("#", justify="right", style="bold")
    table.add_column("Model", style="cyan")
    table.add_column("Composite", justify="right", style="green")
    table.add_column("Quality", justify="right")
    table.add_column("Reasoning", justify="right")
    table.add_column("JSON", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Speed", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Robust", justify="right")
    table.add_column("Calls", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Median", justify="right")
    table.add_column("$/month", justify="right")

    for entry in board.entries:
        scores = entry.scores
        errors = f"[red]{entry.error_count}[/red]" if entry.error_count else "0"
        table.add_row(
            str(entry.rank),
            entry.model,
            f"{entry.composite_score:.2f}",
            f"{scores.quality:.1f}",
            f"{scores.reasoning:.1f}",
            f"{scores.json_validity:.1f}",
            f"{scores.balance:.1f}",
            f"{scores.speed:.0f}",
            f"{scores.cost:.0f}",
            f"{scores.robustness:.1f}",
            str(entry.total_calls),
            errors,
            f"{entry.median_timing_ms / 1000:.1f}s",
            f"${entry.projected_monthly_cost:,.2f}",
        )

    console.print(table)
    console.print(f"  [dim]results:[/dim] {board.total_results}")
    if board.missing_results:
        console.print(f"  [yellow]missing or unreadable:[/yellow] {board.missing_results}")
    console.print(f"  [dim]consensus races:[/dim] {board.consensus_races}")

    if response.complete and response.summary is not None:
        summary = response.summary
        console.print(
            f"  [green]Complete[/green] in {summary.elapsed_ms / 1000:.0f}s "
            f"({summary.error_count} errors)"
        )
    else:
        console.print("  [yellow]Partial:[/yellow] experiment has not finished")
