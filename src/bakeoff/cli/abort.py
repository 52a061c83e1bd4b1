# Copyright (c) Syntropy Systems
"""bakeoff abort command."""
from __future__ import annotations

from typing import Optional

import typer

from bakeoff.cli.common import SERVER_OPTION_HELP, console, local_store, remote_client
from bakeoff.progress import abort_experiment


def abort(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="BAKEOFF_SERVER_URL", help=SERVER_OPTION_HELP,
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="BAKEOFF_ADMIN_TOKEN", help="Bearer token for the server",
    ),
) -> None:
    """Discard the current experiment's progress and lease.

    Recorded results are left to expire. A task already in flight finishes
    but its result is discarded.
    """
    if not yes:
        typer.confirm("Abort the current experiment?", abort=True)

    if server:
        with remote_client(server, token) as client:
            client.abort()
    else:
        with local_store() as (conn, _config):
            abort_experiment(conn)

    console.print("[green]Experiment reset[/green]")
