"""Repository snapshot loader: every text file on a branch, fully materialised.

The tree is listed once, ignored paths are dropped, then file contents are
fetched with a small dedicated concurrency cap (separate from the pipeline's
shared limiter) to stay under GitHub's rate limits. A rate limit anywhere in
the load restarts the whole load with exponential backoff.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from repoqa.concurrency import Sleep, backoff_delays
from repoqa.config import DEFAULT_IGNORE
from repoqa.errors import RateLimited, is_rate_limited
from repoqa.github.client import GitHubClient, parse_repo_url

logger = logging.getLogger(__name__)

_TOKEN_HINT = (
    "GitHub API rate limit exceeded. To increase your rate limit, please provide "
    "a GitHub token. You can create one at https://github.com/settings/tokens"
)


@dataclass
class SourceFile:
    """One file of a repository snapshot."""

    path: str
    content: str


def is_ignored(path: str, patterns: Iterable[str]) -> bool:
    """Return True if *path* or any of its segments matches an ignore pattern."""
    segments = path.split("/")
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern):
            return True
        if any(fnmatch.fnmatch(segment, pattern) for segment in segments):
            return True
    return False


class RepositoryLoader:
    """Load a repository snapshot as ``(path, content)`` pairs.

    Args:
        branch:          Branch to enumerate.
        ignore:          fnmatch patterns for excluded paths.
        max_concurrency: Concurrent file-content fetches.
        max_attempts:    Whole-load attempts when rate limited.
        backoff_seed:    First wait (seconds) between attempts; doubles each time.
        backoff_cap:     Upper bound for a single wait.
        client_factory:  Builds a GitHubClient from a token (injectable).
        sleep:           Awaitable sleep function (injectable for tests).
    """

    def __init__(
        self,
        branch: str = "main",
        ignore: Iterable[str] = DEFAULT_IGNORE,
        max_concurrency: int = 2,
        max_attempts: int = 3,
        backoff_seed: float = 1.0,
        backoff_cap: float = 10.0,
        client_factory: Callable[[str | None], GitHubClient] | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.branch = branch
        self.ignore = list(ignore)
        self.max_concurrency = max_concurrency
        self.max_attempts = max_attempts
        self._delays = backoff_delays(backoff_seed, max_attempts - 1, cap=backoff_cap)
        self._client_factory = client_factory or (lambda token: GitHubClient(token=token))
        self._sleep = sleep or asyncio.sleep

    async def load(self, repo_url: str, token: str | None = None) -> list[SourceFile]:
        """Return every non-ignored text file on the branch.

        Raises:
            RateLimited: Still rate limited after ``max_attempts`` loads; the
                message recommends providing a GitHub token.
            NotFound / PermanentFailure / TransientIO: Propagated unchanged.
        """
        if not token:
            logger.warning(
                "No GitHub token provided. This will subject you to stricter API rate limits."
            )
        owner, repo = parse_repo_url(repo_url)

        for attempt in range(1, self.max_attempts + 1):
            try:
                files = await self._load_once(owner, repo, token)
            except Exception as exc:
                if not is_rate_limited(exc):
                    raise
                if attempt == self.max_attempts:
                    raise RateLimited(_TOKEN_HINT) from exc
                delay = self._delays[attempt - 1]
                logger.warning(
                    "Rate limit hit. Waiting %.1f seconds before retry...", delay
                )
                await self._sleep(delay)
                continue
            logger.info("Successfully loaded %d documents from %s", len(files), repo_url)
            return files

        raise AssertionError("unreachable")

    async def _load_once(self, owner: str, repo: str, token: str | None) -> list[SourceFile]:
        async with self._client_factory(token) as client:
            paths = [
                p for p in await client.list_tree(owner, repo, self.branch)
                if not is_ignored(p, self.ignore)
            ]
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def fetch(path: str) -> SourceFile | None:
                async with semaphore:
                    raw = await client.fetch_file(owner, repo, path, self.branch)
                try:
                    return SourceFile(path=path, content=raw.decode("utf-8"))
                except UnicodeDecodeError:
                    logger.warning("Skipping non-text file %s", path)
                    return None

            tasks = [asyncio.ensure_future(fetch(p)) for p in paths]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # The client closes on exit; stop sibling fetches first.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        return [f for f in results if f is not None]
