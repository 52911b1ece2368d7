"""File embedding writer: summarize, embed, and persist a repository snapshot.

For each file, independently and through the shared ConcurrencyLimiter:
1. Summarize the (truncated) content via ``CodeSummarizer.summarize_file()``.
2. Embed the *summary* (not the raw code) via ``llm_client.embed()``.
3. After every file has settled, persist (summary, full raw content, path,
   embedding) as one ``SourceFileEmbedding`` row, sequentially.

A file whose summary is empty or whose embedding fails is skipped; it never
affects its siblings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from repoqa.concurrency import ConcurrencyLimiter, RetryExecutor, settle
from repoqa.db.models import SourceFileEmbedding
from repoqa.db.repository import Repository
from repoqa.db.vectors import check_dimensions
from repoqa.ingest.loader import RepositoryLoader, SourceFile
from repoqa.ingest.summarizer import CodeSummarizer
from repoqa.rag import llm_client

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "gemini/text-embedding-004"
    dimensions: int | None = 768
    replace_existing: bool = False


@dataclass
class IngestReport:
    """Outcome of a batch ingest: stored rows, skipped files, and which ones."""

    stored: int = 0
    skipped: int = 0
    failed_paths: list[str] = field(default_factory=list)


@dataclass
class _Embedded:
    summary: str
    embedding: list[float]


class FileEmbeddingWriter:
    """Embed a repository snapshot and persist one row per file.

    Args:
        repo:       Open Repository instance.
        summarizer: CodeSummarizer used for per-file summaries.
        limiter:    Shared ConcurrencyLimiter (caps in-flight LLM calls).
        executor:   RetryExecutor wrapping embedding calls.
        config:     Embedding configuration (model, dimensions, replace_existing).
    """

    def __init__(
        self,
        repo: Repository,
        summarizer: CodeSummarizer,
        limiter: ConcurrencyLimiter,
        executor: RetryExecutor | None = None,
        config: EmbeddingConfig | None = None,
    ) -> None:
        self._repo = repo
        self._summarizer = summarizer
        self._limiter = limiter
        self._executor = executor or RetryExecutor()
        self._config = config or EmbeddingConfig()

    async def write(
        self,
        project_id: str,
        files: list[SourceFile],
        on_progress: Callable[[int, int], None] | None = None,
    ) -> IngestReport:
        """Summarize + embed *files* concurrently, then persist the successes.

        Args:
            project_id:  Owning project.
            files:       Materialised snapshot from RepositoryLoader.
            on_progress: Optional callback ``(completed, total)`` fired as each
                         file finishes its LLM calls.

        Returns:
            IngestReport with stored/skipped counts.
        """
        total = len(files)
        completed = 0

        async def process(source: SourceFile) -> _Embedded | None:
            nonlocal completed
            try:
                return await self._embed_file(source)
            finally:
                completed += 1
                if on_progress is not None:
                    on_progress(completed, total)

        outcomes = await settle(
            self._limiter.submit(lambda f=f: process(f)) for f in files
        )

        report = IngestReport()
        # Re-associate by input index, never by completion order.
        for source, outcome in zip(files, outcomes):
            if not outcome.ok:
                logger.warning("Embedding failed for %s: %s", source.path, outcome.error)
                self._skip(report, source)
                continue
            if outcome.value is None:
                self._skip(report, source)
                continue
            if self._persist(project_id, source, outcome.value):
                report.stored += 1
            else:
                self._skip(report, source)

        logger.info(
            "Embedded %d of %d files (%d skipped)", report.stored, total, report.skipped
        )
        return report

    async def _embed_file(self, source: SourceFile) -> _Embedded | None:
        summary = await self._summarizer.summarize_file(source.path, source.content)
        if not summary:
            logger.info("No summary for %s, skipping", source.path)
            return None
        embedding = await self._executor.execute(
            lambda: llm_client.embed(self._config.model, summary)
        )
        check_dimensions(embedding, self._config.dimensions)
        return _Embedded(summary=summary, embedding=embedding)

    def _persist(self, project_id: str, source: SourceFile, embedded: _Embedded) -> bool:
        try:
            if self._config.replace_existing:
                self._repo.delete_embeddings_by_file(project_id, source.path)
            self._repo.add_embedding(
                SourceFileEmbedding(
                    project_id=project_id,
                    file_name=source.path,
                    source_code=source.content,
                    summary=embedded.summary,
                    embedding=embedded.embedding,
                    embedding_model=self._config.model,
                )
            )
        except Exception as exc:
            logger.error("Failed to store embedding for %s: %s", source.path, exc)
            return False
        return True

    @staticmethod
    def _skip(report: IngestReport, source: SourceFile) -> None:
        report.skipped += 1
        report.failed_paths.append(source.path)


async def ingest_repository_snapshot(
    project_id: str,
    github_url: str,
    loader: RepositoryLoader,
    writer: FileEmbeddingWriter,
    token: str | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> IngestReport:
    """Load the repository snapshot, then embed and store every file.

    A failed load propagates with no partial result; per-file failures are
    counted as skipped in the returned report.
    """
    files = await loader.load(github_url, token=token)
    return await writer.write(project_id, files, on_progress=on_progress)
