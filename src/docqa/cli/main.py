"""docqa CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer

from docqa.cli.ask import ask_cmd
from docqa.cli.health import health_cmd
from docqa.cli.ingest import ingest_cmd
from docqa.log import configure_logging


def _version() -> str:
    try:
        return importlib.metadata.version("docqa")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docqa {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docqa",
    help=(
        "docqa: question answering over crawled documentation.\n\n"
        "  docqa ingest  Chunk, embed and store crawled documents.\n"
        "  docqa ask     Answer a question from the stored documentation."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline stages at DEBUG."),
    ] = False,
) -> None:
    """docqa: question answering over crawled documentation."""
    configure_logging(logging.DEBUG if verbose else logging.ERROR)


app.command("ask")(ask_cmd)
app.command("ingest")(ingest_cmd)
app.command("health")(health_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docqa version."""
    typer.echo(f"docqa {_version()}")


if __name__ == "__main__":
    app()
