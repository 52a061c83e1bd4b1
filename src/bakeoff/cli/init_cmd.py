# Copyright (c) Syntropy Systems
"""bakeoff init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from bakeoff.config import DEFAULT_WEIGHTS
from bakeoff.db import init_db

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new bakeoff project.

    Creates a .bakeoff directory with configuration and the store.
    """
    target = path.resolve()
    bakeoff_dir = target / ".bakeoff"

    if bakeoff_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {bakeoff_dir}")
        return

    bakeoff_dir.mkdir(parents=True)

    # Create default config
    config = {
        "lease_duration_ms": 120_000,
        "step_delay": 0.5,
        "busy_backoff": 3.0,
        "error_backoff": 5.0,
        "task_command": [],
        "task_timeout": 90,
        "daily_call_volume": 1000,
        "consensus_threshold": 0.66,
        "weights": dict(DEFAULT_WEIGHTS),
    }

    config_path = bakeoff_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    db_path = bakeoff_dir / "bakeoff.db"
    init_db(db_path)

    console.print(f"[green]Initialized bakeoff project:[/green] {bakeoff_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]store:[/dim] {db_path}")
    console.print("  [dim]next:[/dim] set task_command in config.yaml")
