"""repoqa remove: project lifecycle management.

Removes a project and all its associated data:
  - commit summaries
  - source file embeddings
  - project record

Usage:
  repoqa remove --project <id>
  repoqa remove --project <id> --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from repoqa.cli.errors import err_project_not_found
from repoqa.cli.runtime import DEFAULT_DB, console, open_db, setup_logging
from repoqa.db.repository import Repository


def remove_cmd(
    project: Annotated[str, typer.Option("--project", "-p", help="Project ID to remove.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Remove a project with its commits and embeddings."""
    setup_logging(verbose)
    conn = open_db(db)
    repo = Repository(conn)

    try:
        existing = repo.get_project(project)
        if existing is None:
            console.print(err_project_not_found(project))
            raise typer.Exit(0)

        commit_count = repo.count_commits(project)
        file_count = repo.count_embeddings(project)

        console.print(f"\nRemove project: [bold]{existing.name}[/] ({existing.github_url})")
        console.print(f"  Commits: {commit_count}  |  Files: {file_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_project(project)

        console.print(f"\n[green]✓[/] Removed: {existing.name}")
        console.print(f"  {commit_count} commits, {file_count} files deleted")
    finally:
        conn.close()
