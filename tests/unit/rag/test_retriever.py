"""Tests for the vector retriever."""

from __future__ import annotations

import math

import pytest

from repoqa.db.models import SourceFileEmbedding
from repoqa.errors import EmbeddingModelMismatch
from repoqa.rag.retriever import RetrieverConfig, search

_MODEL = "gemini/text-embedding-004"


def _add(repo, project_id: str, name: str, similarity: float, model: str = _MODEL) -> None:
    repo.add_embedding(
        SourceFileEmbedding(
            project_id=project_id,
            file_name=name,
            source_code=f"code {name}",
            summary=f"summary {name}",
            embedding=[similarity, math.sqrt(1 - similarity**2)],
            embedding_model=model,
        )
    )


def test_search_ranks_above_threshold(repo, project):
    # The cutoff is strictly greater than 0.5 and a vector at exactly 0.5 does not
    # survive float32 storage reliably, so E2 sits just above the boundary.
    for name, s in [("E1", 0.9), ("E2", 0.51), ("E3", 0.3), ("E4", 0.6), ("E5", 0.2)]:
        _add(repo, project.id, name, s)

    results = search(repo, [1.0, 0.0], project.id, RetrieverConfig(embedding_model=_MODEL))

    assert [r.record.file_name for r in results] == ["E1", "E4", "E2"]
    assert results[0].similarity == pytest.approx(0.9, abs=1e-5)
    assert results[0].record.summary == "summary E1"
    assert results[0].record.source_code == "code E1"


def test_search_top_k(repo, project):
    for i in range(5):
        _add(repo, project.id, f"f{i}", 0.8 + i * 0.01)
    results = search(repo, [1.0, 0.0], project.id, RetrieverConfig(embedding_model=_MODEL, top_k=2))
    assert [r.record.file_name for r in results] == ["f4", "f3"]


def test_search_custom_threshold(repo, project):
    _add(repo, project.id, "a", 0.7)
    config = RetrieverConfig(embedding_model=_MODEL, min_similarity=0.75)
    assert search(repo, [1.0, 0.0], project.id, config) == []


def test_search_empty_project_returns_empty(repo, project):
    assert search(repo, [1.0, 0.0], project.id, RetrieverConfig(embedding_model=_MODEL)) == []


def test_search_other_model_only_raises(repo, project):
    _add(repo, project.id, "a", 0.9, model="openai/text-embedding-3-small")
    with pytest.raises(EmbeddingModelMismatch) as exc_info:
        search(repo, [1.0, 0.0], project.id, RetrieverConfig(embedding_model=_MODEL))
    assert exc_info.value.stored_models == ["openai/text-embedding-3-small"]


def test_search_no_match_with_right_model_is_not_a_mismatch(repo, project):
    _add(repo, project.id, "a", 0.1)
    assert search(repo, [1.0, 0.0], project.id, RetrieverConfig(embedding_model=_MODEL)) == []
