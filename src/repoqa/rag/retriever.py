"""Vector retriever: storage-side cosine similarity over a project's files.

    similarity(d) = 1 - cosine_distance(embedding(d), query)

Rows scoring at or below ``min_similarity`` are dropped; at most ``top_k``
rows are returned, best first. Scoring runs inside SQLite (sqlite-vec's
``vec_distance_cosine``) as one statement; it is a linear scan over the
project's rows, with no approximate-nearest-neighbour index.
"""

from __future__ import annotations

from dataclasses import dataclass

from repoqa.db.models import SourceFileEmbedding
from repoqa.db.repository import Repository
from repoqa.errors import EmbeddingModelMismatch


@dataclass
class RetrieverConfig:
    """Configuration for the vector retriever.

    Attributes:
        embedding_model: LiteLLM embedding model that produced the stored
            vectors; the query must be embedded with the same model.
        min_similarity: Exclusive lower bound on cosine similarity.
        top_k: Maximum number of files to return.
    """

    embedding_model: str = "gemini/text-embedding-004"
    min_similarity: float = 0.5
    top_k: int = 10


@dataclass
class ScoredFile:
    """A retrieved file together with its cosine similarity to the query."""

    record: SourceFileEmbedding
    similarity: float


def search(
    repo: Repository,
    query_embedding: list[float],
    project_id: str,
    config: RetrieverConfig,
) -> list[ScoredFile]:
    """Return the project's most similar files, best first. Pure read.

    Raises:
        EmbeddingModelMismatch: If the project's files were embedded only with
            other models (their vectors are not comparable to the query).
    """
    rows = repo.similarity_search(
        query_embedding,
        project_id,
        embedding_model=config.embedding_model,
        threshold=config.min_similarity,
        limit=config.top_k,
    )
    if not rows:
        _validate_model(repo, project_id, config.embedding_model)
    return [ScoredFile(record=record, similarity=score) for record, score in rows]


def _validate_model(repo: Repository, project_id: str, model: str) -> None:
    """Raise EmbeddingModelMismatch if *project_id* has vectors, none from *model*."""
    stored = repo.list_embedding_models(project_id)
    if stored and model not in stored:
        raise EmbeddingModelMismatch(stored, model)
