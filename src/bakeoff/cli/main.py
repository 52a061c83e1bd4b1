# Copyright (c) Syntropy Systems
"""Main CLI entry point for bakeoff."""

import logging

import typer
from rich.logging import RichHandler

from bakeoff.cli.abort import abort
from bakeoff.cli.advance import advance
from bakeoff.cli.create import create
from bakeoff.cli.drive import drive
from bakeoff.cli.init_cmd import init
from bakeoff.cli.results import results
from bakeoff.cli.server_cmd import server
from bakeoff.cli.status import status

app = typer.Typer(
    name="bakeoff",
    help=(
        "Model comparison experiments. Plan a models x profiles x runs "
        "matrix, advance it one task at a time, rank the results."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


# Register commands
_ = app.command()(init)
_ = app.command()(create)
_ = app.command()(advance)
_ = app.command()(drive)
_ = app.command()(status)
_ = app.command()(results)
_ = app.command()(abort)
_ = app.command()(server)


if __name__ == "__main__":
    app()
