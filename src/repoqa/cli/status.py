"""repoqa status command.

Shows an overview: database, configured models, and per-project counts of
summarized commits and indexed files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from repoqa.cli.runtime import DEFAULT_DB, console, load_cfg, open_db, setup_logging
from repoqa.config import RepoQAConfig
from repoqa.db.repository import Repository


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Show database, model, and project overview."""
    setup_logging(verbose)
    cfg = load_cfg()

    # ---- Panel 1: Database + models ----
    _show_config_panel(db, cfg)

    # ---- Panel 2: Projects ----
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  repoqa project add --name <name> --url <github-url>",
                title="[bold]Projects[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        _show_projects_panel(Repository(conn), cfg)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db: Path, cfg: RepoQAConfig) -> None:
    db_info = f"{db}"
    if db.exists():
        size_mb = db.stat().st_size / (1024 * 1024)
        db_info = f"{db} ({size_mb:.1f} MB)"

    lines = [
        f"Database:    {db_info}",
        f"Generation:  {cfg.generation.model}",
        f"Summaries:   {cfg.generation.summary_model}",
        f"Embeddings:  {cfg.embedding.model}",
        f"Retrieval:   similarity > {cfg.retrieval.min_similarity}, top {cfg.retrieval.top_k}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]repoqa[/]", expand=False))


def _show_projects_panel(repo: Repository, cfg: RepoQAConfig) -> None:
    projects = repo.list_projects()
    if not projects:
        console.print(
            Panel("[dim]No projects registered yet.[/]", title="[bold]Projects[/]", expand=False)
        )
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Commits", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Embedding model")

    for p in projects:
        models = repo.list_embedding_models(p.id)
        if not models:
            model_info = "[dim]not indexed[/]"
        elif cfg.embedding.model in models:
            model_info = f"[green]✓[/] {', '.join(models)}"
        else:
            model_info = f"[yellow]✗ {', '.join(models)}[/]"
        table.add_row(
            p.name,
            p.id,
            str(repo.count_commits(p.id)),
            str(repo.count_embeddings(p.id)),
            model_info,
        )

    console.print(
        Panel(table, title=f"[bold]Projects[/] [dim]({len(projects)})[/]", expand=False)
    )
