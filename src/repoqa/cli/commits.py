"""repoqa commits: summarize new commits of a project.

Usage:
  repoqa commits --project <id>          poll GitHub, summarize unseen commits
  repoqa commits --project <id> --list   show stored commits instead
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from repoqa.cli.errors import (
    err_github_auth,
    err_project_not_found,
    err_rate_limited,
    err_repository_not_found,
)
from repoqa.cli.runtime import (
    DEFAULT_DB,
    build_executor,
    build_limiter,
    build_summarizer,
    console,
    load_cfg,
    open_db,
    require_api_keys,
    setup_logging,
)
from repoqa.config import RepoQAConfig
from repoqa.db.models import CommitRecord
from repoqa.db.repository import Repository
from repoqa.errors import (
    AuthenticationFailed,
    NotFound,
    ProjectNotFound,
    RateLimited,
    RepoQAError,
)
from repoqa.github.client import GitHubClient
from repoqa.ingest.commits import ingest_commits


def commits_cmd(
    project: Annotated[str, typer.Option("--project", "-p", help="Project ID.")],
    list_only: Annotated[
        bool,
        typer.Option("--list", help="Show stored commits without polling GitHub."),
    ] = False,
    token: Annotated[
        str | None,
        typer.Option("--token", help="GitHub token (default: $GITHUB_TOKEN)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Summarize the newest unprocessed commits of a project."""
    setup_logging(verbose)
    cfg = load_cfg()
    conn = open_db(db)
    repo = Repository(conn)

    try:
        if repo.get_project(project) is None:
            console.print(err_project_not_found(project))
            raise typer.Exit(1)

        if list_only:
            _print_commits(repo.list_commits(project), title="Stored commits")
            return

        require_api_keys(cfg.generation.summary_model)
        gh_token = token or os.getenv("GITHUB_TOKEN")
        try:
            with console.status("Summarizing commits…"):
                stored = asyncio.run(_run(project, repo, cfg, gh_token))
        except ProjectNotFound:
            console.print(err_project_not_found(project))
            raise typer.Exit(1)
        except RateLimited as exc:
            console.print(err_rate_limited(str(exc)))
            raise typer.Exit(1)
        except AuthenticationFailed as exc:
            console.print(err_github_auth(str(exc)))
            raise typer.Exit(1)
        except NotFound as exc:
            url = repo.get_project(project).github_url
            console.print(err_repository_not_found(url, str(exc)))
            raise typer.Exit(1)
        except RepoQAError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)

        if not stored:
            console.print("[dim]No new commits to process.[/]")
            return
        _print_commits(stored, title=f"{len(stored)} new commit(s)")
    finally:
        conn.close()


async def _run(
    project_id: str, repo: Repository, cfg: RepoQAConfig, token: str | None
) -> list[CommitRecord]:
    executor = build_executor(cfg)
    async with GitHubClient(
        token=token, api_url=cfg.github.api_url, timeout=cfg.github.timeout
    ) as github:
        return await ingest_commits(
            project_id,
            repo,
            github,
            build_summarizer(cfg, executor),
            build_limiter(cfg),
            executor,
            commit_limit=cfg.ingest.commit_limit,
            batch_size=cfg.ingest.commit_batch_size,
            batch_pause=cfg.ingest.batch_pause,
        )


def _print_commits(records: list[CommitRecord], title: str) -> None:
    if not records:
        console.print("[yellow]No commits stored for this project.[/]")
        return
    table = Table(title=title, show_header=True, header_style="bold", show_lines=True)
    table.add_column("Commit", style="dim", no_wrap=True)
    table.add_column("Author")
    table.add_column("Date", no_wrap=True)
    table.add_column("Message")
    table.add_column("Summary")
    for r in records:
        table.add_row(
            r.commit_hash[:7],
            r.author_name,
            r.commit_date,
            r.commit_message.splitlines()[0] if r.commit_message else "",
            r.summary,
        )
    console.print(table)
