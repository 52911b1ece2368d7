"""repoqa CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from repoqa.cli.ask import ask_cmd
from repoqa.cli.commits import commits_cmd
from repoqa.cli.index import index_cmd
from repoqa.cli.project import project_app
from repoqa.cli.remove import remove_cmd
from repoqa.cli.status import status_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("repoqa")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"repoqa {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="repoqa",
    help=(
        "repoqa: ask questions about a GitHub repository.\n\n"
        "  repoqa commits  Summarize new commits.\n"
        "  repoqa index    Summarize + embed every source file.\n"
        "  repoqa ask      Answer a question from the indexed files."
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
) -> None:
    """repoqa: ask questions about a GitHub repository."""


app.add_typer(project_app, name="project")
app.command("commits")(commits_cmd)
app.command("index")(index_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed repoqa version."""
    typer.echo(f"repoqa {_version()}")


if __name__ == "__main__":
    app()
