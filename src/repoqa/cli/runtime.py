"""Shared CLI wiring: logging, config, database, and pipeline clients.

Every command builds its collaborators here once and injects them into the
library pipelines; nothing below the CLI reaches for globals.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from repoqa.cli.errors import err_config, err_no_api_key, err_no_db
from repoqa.concurrency import ConcurrencyLimiter, RetryExecutor
from repoqa.config import ConfigError, RepoQAConfig, load_config
from repoqa.db.connection import Database
from repoqa.db.schema import initialize
from repoqa.ingest.summarizer import CodeSummarizer
from repoqa.rag.llm_client import provider_of, validate_api_key

console = Console()

DEFAULT_DB = Path(".repoqa.db")


def setup_logging(verbose: bool = False) -> None:
    """Route the ``repoqa`` logger through rich (INFO with --verbose, else WARNING)."""
    logger = logging.getLogger("repoqa")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    logger.propagate = False


def load_cfg() -> RepoQAConfig:
    """Load config or exit 1 with the loader's message."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def open_db(db_path: Path, *, create: bool = False) -> sqlite3.Connection:
    """Open (and migrate) the database; exit 1 if it is missing and not *create*."""
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def require_api_keys(*models: str) -> None:
    """Exit 1 if any model's provider key is missing from the environment."""
    for model in models:
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model)))
            raise typer.Exit(1)


def build_executor(cfg: RepoQAConfig) -> RetryExecutor:
    return RetryExecutor(delays=cfg.ingest.retry_delays, timeout=cfg.ingest.call_timeout)


def build_limiter(cfg: RepoQAConfig) -> ConcurrencyLimiter:
    return ConcurrencyLimiter(cfg.ingest.max_concurrency)


def build_summarizer(cfg: RepoQAConfig, executor: RetryExecutor) -> CodeSummarizer:
    return CodeSummarizer(
        model=cfg.generation.summary_model,
        executor=executor,
        max_file_chars=cfg.ingest.max_file_chars,
    )
