"""repoqa ask: answer a question about a project's code.

Citations (file + similarity) are printed as soon as retrieval finishes; the
answer is then streamed to the terminal chunk by chunk.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from repoqa.cli.errors import (
    err_embedding_model_mismatch,
    err_no_context,
    err_project_not_found,
    err_stream_failed,
)
from repoqa.cli.runtime import (
    DEFAULT_DB,
    build_executor,
    console,
    load_cfg,
    open_db,
    require_api_keys,
    setup_logging,
)
from repoqa.config import RepoQAConfig
from repoqa.db.repository import Repository
from repoqa.errors import EmbeddingModelMismatch, ProjectNotFound, RepoQAError, StreamFailed
from repoqa.rag.answer import AnswerConfig, answer_question
from repoqa.rag.retriever import RetrieverConfig, ScoredFile


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the project's code.")],
    project: Annotated[str, typer.Option("--project", "-p", help="Project ID.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .repoqa.db.")] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show progress logs.")] = False,
) -> None:
    """Ask a question; print the cited files, then stream the answer."""
    setup_logging(verbose)
    cfg = load_cfg()
    conn = open_db(db)
    repo = Repository(conn)

    try:
        require_api_keys(cfg.embedding.model, cfg.generation.model)
        try:
            asyncio.run(_run(question, project, repo, cfg))
        except ProjectNotFound:
            console.print(err_project_not_found(project))
            raise typer.Exit(1)
        except EmbeddingModelMismatch as exc:
            console.print(err_embedding_model_mismatch(exc.stored_models, exc.requested))
            raise typer.Exit(1)
        except StreamFailed as exc:
            console.print()
            console.print(err_stream_failed(str(exc.__cause__ or exc)))
            raise typer.Exit(1)
        except RepoQAError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
    finally:
        conn.close()


async def _run(question: str, project_id: str, repo: Repository, cfg: RepoQAConfig) -> None:
    answer = await answer_question(
        question,
        project_id,
        repo,
        retriever_config=RetrieverConfig(
            embedding_model=cfg.embedding.model,
            min_similarity=cfg.retrieval.min_similarity,
            top_k=cfg.retrieval.top_k,
        ),
        answer_config=AnswerConfig(
            generation_model=cfg.generation.model,
            max_tokens=cfg.generation.max_tokens,
        ),
        executor=build_executor(cfg),
    )
    _print_citations(answer.citations)

    try:
        async for chunk in answer.stream:
            console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)
    finally:
        await answer.stream.aclose()
    console.print()


def _print_citations(citations: list[ScoredFile]) -> None:
    if not citations:
        console.print(err_no_context())
        return
    table = Table(title="Sources", show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Similarity", justify="right")
    for c in citations:
        table.add_row(c.record.file_name, f"{c.similarity:.3f}")
    console.print(table)
    console.print()
