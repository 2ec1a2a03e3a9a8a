"""Plumage CLI for inspecting learned annotation patterns.

Package structure:
    cli/
    ├── __init__.py   # This file - app assembly
    ├── commands.py   # stats, export, recommend, adjustments, enhance, evaluate
    ├── helpers.py    # config loading, logging setup, learner restore
    └── output.py     # Rich tables and console
"""

from __future__ import annotations

import typer

from plumage import __version__

from .commands import adjustments, enhance, evaluate, export, recommend, stats
from .output import console

app = typer.Typer(
    name="plumage",
    help="Inspect patterns learned from annotation review feedback",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Plumage v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Plumage - online pattern learning for bird annotations."""


app.command()(stats)
app.command()(export)
app.command()(recommend)
app.command()(adjustments)
app.command()(enhance)
app.command()(evaluate)


__all__ = ["app", "main"]
