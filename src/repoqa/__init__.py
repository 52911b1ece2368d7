"""repoqa: ask questions about a GitHub repository."""

from repoqa.ingest.commits import ingest_commits
from repoqa.ingest.embedding_writer import ingest_repository_snapshot
from repoqa.rag.answer import answer_question

__all__ = [
    "answer_question",
    "ingest_commits",
    "ingest_repository_snapshot",
]
