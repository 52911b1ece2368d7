"""repoqa project CLI commands.

Commands:
  repoqa project add --name N --url URL  : register a GitHub repository
  repoqa project list                    : show projects with commit/file counts
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from repoqa.cli.errors import err_invalid_repo_url
from repoqa.cli.runtime import DEFAULT_DB, console, open_db, setup_logging
from repoqa.db.repository import Repository
from repoqa.errors import PermanentFailure
from repoqa.github.client import parse_repo_url

project_app = typer.Typer(
    name="project",
    help="Register and list projects (GitHub repositories).",
    add_completion=False,
)


@project_app.command("add")
def project_add_cmd(
    name: Annotated[str, typer.Option("--name", "-n", help="Display name.")],
    url: Annotated[str, typer.Option("--url", "-u", help="GitHub repository URL.")],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .repoqa.db (created if missing)."),
    ] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Register a GitHub repository as a project and print its id."""
    setup_logging(verbose)
    try:
        parse_repo_url(url)
    except PermanentFailure:
        console.print(err_invalid_repo_url(url))
        raise typer.Exit(1)

    conn = open_db(db, create=True)
    try:
        project = Repository(conn).add_project(name, url)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Project created: [bold]{project.name}[/]")
    console.print(f"  ID:  {project.id}")
    console.print(f"  Next:  repoqa index --project {project.id}")


@project_app.command("list")
def project_list_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """List registered projects."""
    setup_logging(verbose)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        projects = repo.list_projects()
        if not projects:
            console.print("[yellow]No projects registered.[/]")
            raise typer.Exit(0)

        table = Table(title="Projects", show_header=True, header_style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("GitHub URL")
        table.add_column("Commits", justify="right")
        table.add_column("Files", justify="right")
        for p in projects:
            table.add_row(
                p.id,
                p.name,
                p.github_url,
                str(repo.count_commits(p.id)),
                str(repo.count_embeddings(p.id)),
            )
        console.print(table)
    finally:
        conn.close()
