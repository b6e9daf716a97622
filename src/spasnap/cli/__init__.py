"""spasnap CLI for capturing single-page applications as static sites."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version

import typer
from rich.console import Console

from spasnap.cli.commands import crawl

app = typer.Typer(
    name="spasnap",
    help="Discover the routes of a single-page application and capture them as a static site",
    no_args_is_help=True,
)
console = Console()

app.command(name="crawl")(crawl.crawl)


@app.command()
def version() -> None:
    """Show the CLI version."""
    try:
        current = package_version("spasnap")
    except PackageNotFoundError:
        current = "unknown"
    console.print(f"spasnap version {current}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


__all__ = ["app", "main"]
