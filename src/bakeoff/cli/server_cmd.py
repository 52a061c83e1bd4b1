# Copyright (c) Syntropy Systems
"""CLI command for running the bakeoff server."""
from __future__ import annotations

import shlex
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from bakeoff.cli.common import console
from bakeoff.config import find_bakeoff_dir, load_config
from bakeoff.runner import CommandTaskRunner
from bakeoff.server.app import create_app


def server(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    data_dir: Optional[Path] = typer.Option(
        None,
        "--data-dir",
        "-d",
        envvar="BAKEOFF_DATA_DIR",
        help="Directory holding bakeoff.db (defaults to the project's .bakeoff)",
    ),
    task_command: Optional[str] = typer.Option(
        None, "--task-command", help="Command run once per task",
    ),
) -> None:
    """
    Start the bakeoff HTTP server.

    The server only moves an experiment forward when a client calls
    advance; run 'bakeoff drive --server URL' from one or more machines.

    Examples:

        # Serve the current project
        bakeoff server

        # Serve a shared store, reachable from other hosts
        bakeoff server --data-dir /data/bakeoff --host 0.0.0.0
    """
    bakeoff_dir = find_bakeoff_dir()
    if data_dir is None:
        if bakeoff_dir is None:
            console.print("[red]Error:[/red] No data directory provided.")
            console.print()
            console.print("Provide one of:")
            console.print("  --data-dir /path/to/bakeoff/data")
            console.print("  BAKEOFF_DATA_DIR environment variable")
            console.print("  a .bakeoff project (bakeoff init)")
            raise typer.Exit(1)
        data_dir = bakeoff_dir

    config = load_config(bakeoff_dir)
    task_runner = None
    if task_command:
        task_runner = CommandTaskRunner(shlex.split(task_command), timeout=config.task_timeout)
    elif not config.task_command:
        console.print("[yellow]Warning:[/yellow] No task command configured; advance will return 503.")

    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / "bakeoff.db"

    console.print("[bold]bakeoff server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Store: {db_path}")
    if config.admin_token:
        console.print("  Auth: bearer token required")
    console.print()

    app = create_app(db_path=db_path, config=config, task_runner=task_runner)
    uvicorn.run(app, host=host, port=port, log_level="info")
