"""Tests for FileEmbeddingWriter and ingest_repository_snapshot."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from repoqa.concurrency import ConcurrencyLimiter
from repoqa.errors import PermanentFailure, RateLimited
from repoqa.ingest.embedding_writer import (
    EmbeddingConfig,
    FileEmbeddingWriter,
    ingest_repository_snapshot,
)
from repoqa.ingest.loader import SourceFile

_DIMS = 4


class _Summarizer:
    """Summarize every file as 'summary of <path>' unless told to fail."""

    def __init__(self, empty: set[str] = frozenset()) -> None:
        self.empty = set(empty)
        self.calls: list[str] = []

    async def summarize_file(self, file_name: str, content: str) -> str:
        self.calls.append(file_name)
        return "" if file_name in self.empty else f"summary of {file_name}"


def _writer(repo, summarizer=None, **config) -> FileEmbeddingWriter:
    return FileEmbeddingWriter(
        repo,
        summarizer or _Summarizer(),
        ConcurrencyLimiter(5),
        config=EmbeddingConfig(model="test/embed", dimensions=_DIMS, **config),
    )


def _files(*names: str) -> list[SourceFile]:
    return [SourceFile(path=n, content=f"content of {n}") for n in names]


def _mock_embed(**kwargs):
    kwargs.setdefault("return_value", [0.1, 0.2, 0.3, 0.4])
    return patch("repoqa.rag.llm_client.embed", new_callable=AsyncMock, **kwargs)


# ------------------------------------------------------------------
# write()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_write_stores_summary_code_and_vector(repo, project):
    with _mock_embed() as mock_e:
        report = await _writer(repo).write(project.id, _files("a.py", "b.py"))

    assert report.stored == 2
    assert report.skipped == 0
    rows = repo.list_embeddings(project.id)
    assert [r.file_name for r in rows] == ["a.py", "b.py"]
    assert rows[0].source_code == "content of a.py"
    assert rows[0].summary == "summary of a.py"
    assert rows[0].embedding_model == "test/embed"
    assert rows[0].embedding == pytest.approx([0.1, 0.2, 0.3, 0.4])
    # The summary is embedded, not the raw code.
    embedded_texts = sorted(call.args[1] for call in mock_e.call_args_list)
    assert embedded_texts == ["summary of a.py", "summary of b.py"]


@pytest.mark.asyncio
async def test_empty_summary_skips_file(repo, project):
    summarizer = _Summarizer(empty={"b.py"})
    with _mock_embed() as mock_e:
        report = await _writer(repo, summarizer).write(project.id, _files("a.py", "b.py", "c.py"))

    assert report.stored == 2
    assert report.failed_paths == ["b.py"]
    assert mock_e.await_count == 2


@pytest.mark.asyncio
async def test_one_failing_embedding_does_not_affect_siblings(repo, project):
    async def embed(model: str, text: str) -> list[float]:
        if "c.py" in text:
            raise PermanentFailure("boom")
        return [0.1, 0.2, 0.3, 0.4]

    with _mock_embed(side_effect=embed):
        report = await _writer(repo).write(project.id, _files("a.py", "b.py", "c.py", "d.py", "e.py"))

    assert report.stored == 4
    assert report.failed_paths == ["c.py"]
    assert sorted(r.file_name for r in repo.list_embeddings(project.id)) == [
        "a.py", "b.py", "d.py", "e.py",
    ]


@pytest.mark.asyncio
async def test_wrong_dimensions_skips_file(repo, project):
    with _mock_embed(return_value=[0.1, 0.2]):
        report = await _writer(repo).write(project.id, _files("a.py"))
    assert report.stored == 0
    assert report.failed_paths == ["a.py"]


@pytest.mark.asyncio
async def test_rate_limited_embedding_is_retried(repo, project, fake_sleep):
    from repoqa.concurrency import RetryExecutor

    writer = FileEmbeddingWriter(
        repo,
        _Summarizer(),
        ConcurrencyLimiter(5),
        RetryExecutor(sleep=fake_sleep),
        EmbeddingConfig(model="test/embed", dimensions=_DIMS),
    )
    with _mock_embed(side_effect=[RateLimited("429"), [0.1, 0.2, 0.3, 0.4]]):
        report = await writer.write(project.id, _files("a.py"))
    assert report.stored == 1
    assert fake_sleep.calls == [1.0]


@pytest.mark.asyncio
async def test_reindex_appends_by_default(repo, project):
    with _mock_embed():
        await _writer(repo).write(project.id, _files("a.py"))
        await _writer(repo).write(project.id, _files("a.py"))
    assert repo.count_embeddings(project.id) == 2


@pytest.mark.asyncio
async def test_replace_existing_keeps_one_row_per_file(repo, project):
    with _mock_embed():
        await _writer(repo, replace_existing=True).write(project.id, _files("a.py"))
        await _writer(repo, replace_existing=True).write(project.id, _files("a.py"))
    assert repo.count_embeddings(project.id) == 1


@pytest.mark.asyncio
async def test_progress_callback_reaches_total(repo, project):
    progress: list[tuple[int, int]] = []
    with _mock_embed():
        await _writer(repo).write(
            project.id, _files("a.py", "b.py", "c.py"), on_progress=lambda d, t: progress.append((d, t))
        )
    assert progress[-1] == (3, 3)
    assert len(progress) == 3


@pytest.mark.asyncio
async def test_fan_out_stays_within_shared_limiter(repo, project):
    limiter = ConcurrencyLimiter(5)

    async def slow_embed(model: str, text: str) -> list[float]:
        await asyncio.sleep(0.01)
        return [0.1, 0.2, 0.3, 0.4]

    writer = FileEmbeddingWriter(
        repo,
        _Summarizer(),
        limiter,
        config=EmbeddingConfig(model="test/embed", dimensions=_DIMS),
    )
    names = [f"m{i}.py" for i in range(12)]
    with _mock_embed(side_effect=slow_embed):
        report = await writer.write(project.id, _files(*names))

    assert report.stored == 12
    assert limiter.peak == 5
    assert limiter.active == 0


# ------------------------------------------------------------------
# ingest_repository_snapshot()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_snapshot_loads_then_writes(repo, project):
    loader = MagicMock()
    loader.load = AsyncMock(return_value=_files("a.py"))
    with _mock_embed():
        report = await ingest_repository_snapshot(
            project.id, project.github_url, loader, _writer(repo), token="ghp_x"
        )
    loader.load.assert_awaited_once_with(project.github_url, token="ghp_x")
    assert report.stored == 1


@pytest.mark.asyncio
async def test_snapshot_load_failure_propagates(repo, project):
    loader = MagicMock()
    loader.load = AsyncMock(side_effect=RateLimited("provide a token"))
    with pytest.raises(RateLimited):
        await ingest_repository_snapshot(project.id, project.github_url, loader, _writer(repo))
    assert repo.count_embeddings(project.id) == 0
