"""Tests for commit ingestion: idempotence, uniqueness, fault isolation, batching."""

from __future__ import annotations

import asyncio

import pytest

from repoqa.concurrency import ConcurrencyLimiter, RetryExecutor
from repoqa.errors import NotFound, ProjectNotFound, RateLimited
from repoqa.github.client import CommitInfo
from repoqa.ingest.commits import (
    EMPTY_SUMMARY,
    FAILED_SUMMARY,
    CommitIngestor,
    ingest_commits,
    sort_newest_first,
)


def _info(sha: str, day: int) -> CommitInfo:
    return CommitInfo(
        hash=sha,
        message=f"commit {sha}",
        author_name="Ada",
        author_avatar=None,
        date=f"2024-05-{day:02d}T12:00:00Z",
    )


class _FakeGitHub:
    def __init__(self, commits: list[CommitInfo], failing: set[str] = frozenset()) -> None:
        self.commits = commits
        self.failing = set(failing)
        self.diff_calls: list[str] = []
        self.list_limits: list[int] = []

    async def list_recent_commits(self, owner: str, repo: str, limit: int = 10):
        self.list_limits.append(limit)
        return list(self.commits[:limit])

    async def fetch_commit_diff(self, repo_url: str, sha: str) -> str:
        self.diff_calls.append(sha)
        if sha in self.failing:
            raise NotFound(f"commit {sha}")
        return f"diff for {sha}"


class _FakeSummarizer:
    def __init__(self, empty: set[str] = frozenset()) -> None:
        self.empty = set(empty)

    async def summarize_diff(self, diff: str) -> str:
        sha = diff.rsplit(" ", 1)[-1]
        return "" if sha in self.empty else f"summary of {sha}"


def _ingestor(repo, github, summarizer=None, sleep=None, **kwargs) -> CommitIngestor:
    return CommitIngestor(
        repo,
        github,
        summarizer or _FakeSummarizer(),
        ConcurrencyLimiter(5),
        RetryExecutor(sleep=sleep),
        sleep=sleep,
        **kwargs,
    )


# ------------------------------------------------------------------
# sort_newest_first
# ------------------------------------------------------------------


def test_sort_newest_first():
    commits = [_info("a", 1), _info("c", 3), _info("b", 2)]
    assert [c.hash for c in sort_newest_first(commits)] == ["c", "b", "a"]


def test_sort_unparseable_dates_last():
    bad = CommitInfo(hash="x", message="", author_name="", author_avatar=None, date="")
    assert [c.hash for c in sort_newest_first([bad, _info("a", 1)])] == ["a", "x"]


# ------------------------------------------------------------------
# ingest()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ingest_stores_new_commits_newest_first(repo, project, fake_sleep):
    github = _FakeGitHub([_info("a", 1), _info("b", 2)])
    stored = await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)

    assert [r.commit_hash for r in stored] == ["b", "a"]
    assert stored[0].summary == "summary of b"
    assert stored[0].author_name == "Ada"
    assert repo.list_commit_hashes(project.id) == {"a", "b"}


@pytest.mark.asyncio
async def test_ingest_is_idempotent(repo, project, fake_sleep):
    github = _FakeGitHub([_info("a", 1), _info("b", 2), _info("c", 3)])
    first = await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)
    calls_after_first = len(github.diff_calls)
    second = await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)

    assert len(first) == 3
    assert second == []
    assert len(github.diff_calls) == calls_after_first
    assert repo.count_commits(project.id) == 3


@pytest.mark.asyncio
async def test_ingest_only_processes_unseen(repo, project, fake_sleep):
    github = _FakeGitHub([_info("a", 1), _info("b", 2)])
    await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)

    github.commits.append(_info("c", 3))
    github.diff_calls.clear()
    stored = await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)

    assert [r.commit_hash for r in stored] == ["c"]
    assert github.diff_calls == ["c"]
    assert repo.count_commits(project.id) == 3


@pytest.mark.asyncio
async def test_one_failing_commit_among_five(repo, project, fake_sleep):
    github = _FakeGitHub([_info(s, d) for d, s in enumerate("abcde", start=1)], failing={"c"})
    stored = await _ingestor(repo, github, sleep=fake_sleep).ingest(project.id)

    assert len(stored) == 5
    summaries = {r.commit_hash: r.summary for r in repo.list_commits(project.id)}
    assert summaries["c"] == FAILED_SUMMARY
    assert all(summaries[s] == f"summary of {s}" for s in "abde")


@pytest.mark.asyncio
async def test_empty_summary_uses_placeholder(repo, project, fake_sleep):
    github = _FakeGitHub([_info("a", 1)])
    stored = await _ingestor(
        repo, github, _FakeSummarizer(empty={"a"}), sleep=fake_sleep
    ).ingest(project.id)
    assert stored[0].summary == EMPTY_SUMMARY


@pytest.mark.asyncio
async def test_batches_pause_between_but_not_after(repo, project, fake_sleep):
    github = _FakeGitHub([_info(str(i), i) for i in range(1, 8)])
    await _ingestor(repo, github, sleep=fake_sleep, batch_size=3, batch_pause=0.5).ingest(project.id)

    # 7 commits in batches of 3 → 3 batches, 2 pauses
    assert fake_sleep.calls == [0.5, 0.5]
    assert repo.count_commits(project.id) == 7


@pytest.mark.asyncio
async def test_commit_limit_passed_to_listing(repo, project, fake_sleep):
    github = _FakeGitHub([_info(str(i), i) for i in range(1, 20)])
    stored = await _ingestor(repo, github, sleep=fake_sleep, commit_limit=10).ingest(project.id)
    assert github.list_limits == [10]
    assert len(stored) == 10


@pytest.mark.asyncio
async def test_unknown_project_raises(repo, fake_sleep):
    with pytest.raises(ProjectNotFound, match="Project with ID nope not found"):
        await _ingestor(repo, _FakeGitHub([]), sleep=fake_sleep).ingest("nope")


@pytest.mark.asyncio
async def test_listing_failure_propagates(repo, project, fake_sleep):
    class _Limited(_FakeGitHub):
        async def list_recent_commits(self, owner, repo, limit=10):
            raise RateLimited("429")

    with pytest.raises(RateLimited):
        await _ingestor(repo, _Limited([]), sleep=fake_sleep).ingest(project.id)
    # four backoff waits before giving up
    assert fake_sleep.calls == [1.0, 2.0, 4.0, 8.0]
    assert repo.count_commits(project.id) == 0


@pytest.mark.asyncio
async def test_uniqueness_under_concurrent_runs(repo, project, fake_sleep):
    import asyncio

    github = _FakeGitHub([_info("a", 1), _info("b", 2)])
    await asyncio.gather(
        _ingestor(repo, github, sleep=fake_sleep).ingest(project.id),
        _ingestor(repo, github, sleep=fake_sleep).ingest(project.id),
    )
    assert repo.count_commits(project.id) == 2


@pytest.mark.asyncio
async def test_ingest_commits_wrapper(repo, project, fake_sleep):
    github = _FakeGitHub([_info("a", 1)])
    stored = await ingest_commits(
        project.id,
        repo,
        github,
        _FakeSummarizer(),
        ConcurrencyLimiter(5),
        RetryExecutor(sleep=fake_sleep),
        sleep=fake_sleep,
    )
    assert [r.commit_hash for r in stored] == ["a"]


@pytest.mark.asyncio
async def test_summaries_stay_within_shared_limiter(repo, project, fake_sleep):
    class _SlowSummarizer(_FakeSummarizer):
        async def summarize_diff(self, diff: str) -> str:
            await asyncio.sleep(0.01)
            return await super().summarize_diff(diff)

    limiter = ConcurrencyLimiter(5)
    github = _FakeGitHub([_info(f"c{i}", i + 1) for i in range(9)])
    ingestor = CommitIngestor(
        repo,
        github,
        _SlowSummarizer(),
        limiter,
        RetryExecutor(sleep=fake_sleep),
        sleep=fake_sleep,
    )

    stored = await ingestor.ingest(project.id)

    assert len(stored) == 9
    assert limiter.peak == 5
    assert limiter.active == 0
