"""RepoQA ingest pipeline: commit summaries, repository loader, file embeddings."""

from repoqa.ingest.commits import CommitIngestor, ingest_commits
from repoqa.ingest.embedding_writer import (
    EmbeddingConfig,
    FileEmbeddingWriter,
    IngestReport,
    ingest_repository_snapshot,
)
from repoqa.ingest.loader import RepositoryLoader, SourceFile
from repoqa.ingest.summarizer import CodeSummarizer

__all__ = [
    "CodeSummarizer",
    "CommitIngestor",
    "EmbeddingConfig",
    "FileEmbeddingWriter",
    "IngestReport",
    "RepositoryLoader",
    "SourceFile",
    "ingest_commits",
    "ingest_repository_snapshot",
]
