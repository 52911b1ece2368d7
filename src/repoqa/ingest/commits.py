"""Commit ingestion: summarize the newest unprocessed commits of a project.

Pipeline per call:
  1. Resolve the project's GitHub URL (ProjectNotFound if unknown).
  2. List recent commits (RetryExecutor), newest author date first.
  3. Drop commits whose hash is already stored for the project.
  4. Fetch + summarize each remaining diff through the shared limiter; a
     failure becomes the sentinel summary, never an aborted batch.
  5. Persist sequentially in small batches with a pause between batches.

Running twice with no new upstream commits stores nothing the second time.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from repoqa.concurrency import ConcurrencyLimiter, RetryExecutor, Sleep, settle
from repoqa.db.models import CommitRecord
from repoqa.db.repository import Repository
from repoqa.errors import ProjectNotFound
from repoqa.github.client import CommitInfo, GitHubClient, parse_repo_url
from repoqa.ingest.summarizer import CodeSummarizer

logger = logging.getLogger(__name__)

FAILED_SUMMARY = "Error generating summary"
EMPTY_SUMMARY = "No summary available"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _commit_sort_key(commit: CommitInfo) -> datetime:
    """Parse the ISO-8601 author date; unparseable dates sort last."""
    try:
        parsed = datetime.fromisoformat(commit.date.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_newest_first(commits: list[CommitInfo]) -> list[CommitInfo]:
    """Sort by author date, newest first; equal dates keep their listed order."""
    return sorted(commits, key=_commit_sort_key, reverse=True)


class CommitIngestor:
    """Summarize and store new commits for a project.

    Args:
        repo:         Open Repository instance.
        github:       Open GitHubClient.
        summarizer:   CodeSummarizer (diff prompt).
        limiter:      Shared ConcurrencyLimiter.
        executor:     RetryExecutor wrapping GitHub calls.
        commit_limit: Number of recent commits listed per call.
        batch_size:   Rows written per batch.
        batch_pause:  Pause (seconds) between batches.
        sleep:        Awaitable sleep (injectable for tests).
    """

    def __init__(
        self,
        repo: Repository,
        github: GitHubClient,
        summarizer: CodeSummarizer,
        limiter: ConcurrencyLimiter,
        executor: RetryExecutor | None = None,
        commit_limit: int = 10,
        batch_size: int = 3,
        batch_pause: float = 0.5,
        sleep: Sleep | None = None,
    ) -> None:
        self._repo = repo
        self._github = github
        self._summarizer = summarizer
        self._limiter = limiter
        self._executor = executor or RetryExecutor()
        self._commit_limit = commit_limit
        self._batch_size = max(1, batch_size)
        self._batch_pause = batch_pause
        self._sleep = sleep or asyncio.sleep

    async def ingest(self, project_id: str) -> list[CommitRecord]:
        """Process unseen commits for *project_id*. Returns the stored records.

        Raises:
            ProjectNotFound: Unknown project id.
            RepoQAError: The commit listing itself failed (no partial result).
        """
        project = self._repo.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)

        commits = await self.list_commits(project.github_url)
        seen = self._repo.list_commit_hashes(project_id)
        pending = [c for c in commits if c.hash not in seen]

        if not pending:
            logger.info("No new commits to process")
            return []

        logger.info("Processing %d commits...", len(pending))
        outcomes = await settle(
            self._limiter.submit(lambda c=c: self._summarize(project.github_url, c))
            for c in pending
        )
        # _summarize never raises; an unexpected error still maps to the sentinel.
        summaries = [o.value if o.ok else FAILED_SUMMARY for o in outcomes]

        records = [
            CommitRecord(
                project_id=project_id,
                commit_hash=c.hash,
                commit_message=c.message,
                author_name=c.author_name,
                author_avatar=c.author_avatar,
                commit_date=c.date,
                summary=summary,
            )
            for c, summary in zip(pending, summaries)
        ]
        return await self._persist(records)

    async def list_commits(self, github_url: str) -> list[CommitInfo]:
        """List the most recent commits, sorted newest first."""
        owner, name = parse_repo_url(github_url)
        commits = await self._executor.execute(
            lambda: self._github.list_recent_commits(owner, name, self._commit_limit)
        )
        return sort_newest_first(commits)

    async def _summarize(self, github_url: str, commit: CommitInfo) -> str:
        try:
            diff = await self._executor.execute(
                lambda: self._github.fetch_commit_diff(github_url, commit.hash)
            )
            summary = await self._summarizer.summarize_diff(diff)
        except Exception as exc:
            logger.error("Error getting commit summary for %s: %s", commit.hash, exc)
            return FAILED_SUMMARY
        if not summary:
            return EMPTY_SUMMARY
        logger.info("Successfully processed commit %s", commit.hash)
        return summary

    async def _persist(self, records: list[CommitRecord]) -> list[CommitRecord]:
        stored: list[CommitRecord] = []
        for start in range(0, len(records), self._batch_size):
            if start:
                await self._sleep(self._batch_pause)
            for record in records[start : start + self._batch_size]:
                try:
                    stored.append(self._repo.add_commit(record))
                except Exception as exc:
                    logger.error("Failed to store commit %s: %s", record.commit_hash, exc)
                    continue
                logger.debug("Stored commit %s", record.commit_hash)
        return stored


async def ingest_commits(
    project_id: str,
    repo: Repository,
    github: GitHubClient,
    summarizer: CodeSummarizer,
    limiter: ConcurrencyLimiter,
    executor: RetryExecutor | None = None,
    **options,
) -> list[CommitRecord]:
    """Run one commit ingestion for *project_id* (see CommitIngestor)."""
    ingestor = CommitIngestor(repo, github, summarizer, limiter, executor, **options)
    return await ingestor.ingest(project_id)
