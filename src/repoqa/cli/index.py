"""repoqa index: load a repository snapshot, summarize and embed every file.

Usage:
  repoqa index --project <id>
  repoqa index --project <id> --token ghp_...   (default: $GITHUB_TOKEN)
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

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
from repoqa.db.repository import Repository
from repoqa.errors import AuthenticationFailed, NotFound, RateLimited, RepoQAError
from repoqa.github.client import GitHubClient
from repoqa.ingest.embedding_writer import (
    EmbeddingConfig,
    FileEmbeddingWriter,
    IngestReport,
    ingest_repository_snapshot,
)
from repoqa.ingest.loader import RepositoryLoader


def index_cmd(
    project: Annotated[str, typer.Option("--project", "-p", help="Project ID.")],
    token: Annotated[
        str | None,
        typer.Option("--token", help="GitHub token (default: $GITHUB_TOKEN)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Index a project's source files for question answering."""
    setup_logging(verbose)
    cfg = load_cfg()
    conn = open_db(db)
    repo = Repository(conn)

    try:
        existing = repo.get_project(project)
        if existing is None:
            console.print(err_project_not_found(project))
            raise typer.Exit(1)

        require_api_keys(cfg.generation.summary_model, cfg.embedding.model)
        gh_token = token or os.getenv("GITHUB_TOKEN")
        if not gh_token:
            console.print(
                "[yellow]No GitHub token provided.[/] Unauthenticated requests are "
                "heavily rate limited. Set GITHUB_TOKEN or pass --token."
            )

        console.print(f"\n[bold]→ {existing.github_url}[/]")
        try:
            report = asyncio.run(_run(project, existing.github_url, repo, cfg, gh_token))
        except RateLimited as exc:
            console.print(err_rate_limited(str(exc)))
            raise typer.Exit(1)
        except NotFound as exc:
            console.print(err_repository_not_found(existing.github_url, str(exc)))
            raise typer.Exit(1)
        except AuthenticationFailed as exc:
            console.print(err_github_auth(str(exc)))
            raise typer.Exit(1)
        except RepoQAError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)

        console.print(f"  [green]✓[/] {report.stored} files embedded")
        if report.skipped:
            console.print(f"  [yellow]↷ {report.skipped} files skipped[/]")
            for path in report.failed_paths:
                console.print(f"    [dim]{path}[/]")
    finally:
        conn.close()


async def _run(
    project_id: str,
    github_url: str,
    repo: Repository,
    cfg: RepoQAConfig,
    token: str | None,
) -> IngestReport:
    executor = build_executor(cfg)
    loader = RepositoryLoader(
        branch=cfg.ingest.branch,
        ignore=cfg.ingest.ignore,
        max_concurrency=cfg.ingest.loader_concurrency,
        max_attempts=cfg.ingest.loader_attempts,
        client_factory=lambda t: GitHubClient(
            token=t, api_url=cfg.github.api_url, timeout=cfg.github.timeout
        ),
    )
    writer = FileEmbeddingWriter(
        repo,
        build_summarizer(cfg, executor),
        build_limiter(cfg),
        executor,
        EmbeddingConfig(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            replace_existing=cfg.ingest.replace_existing,
        ),
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Loading repository…", total=None)

        def on_progress(done: int, total: int) -> None:
            prog.update(task, description="Summarizing + embedding…", completed=done, total=total)

        return await ingest_repository_snapshot(
            project_id, github_url, loader, writer, token=token, on_progress=on_progress
        )
