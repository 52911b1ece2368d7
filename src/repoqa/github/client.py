"""Async GitHub REST client: recent commits, commit diffs, repository trees.

HTTP status codes are mapped onto the repoqa error taxonomy so that the
RetryExecutor can tell a rate limit (retry with backoff) from everything else
(fail fast):

    429, or 403 with an exhausted rate limit  → RateLimited
    404                                       → NotFound
    401                                       → AuthenticationFailed
    403 / other 4xx                           → PermanentFailure
    5xx, connection errors, timeouts          → TransientIO

The token is sent as a bearer header; it is never placed in URLs, logs, or
exception messages.
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass

import httpx

from repoqa.errors import (
    AuthenticationFailed,
    NotFound,
    PermanentFailure,
    RateLimited,
    TransientIO,
)

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = {"https", "http"}
_API_VERSION = "2022-11-28"
_JSON = "application/vnd.github+json"
_DIFF = "application/vnd.github.v3.diff"
_RAW = "application/vnd.github.raw"


@dataclass
class CommitInfo:
    """One entry of the recent-commits listing."""

    hash: str
    message: str
    author_name: str
    author_avatar: str | None
    date: str


def parse_repo_url(url: str) -> tuple[str, str]:
    """Return ``(owner, repo)`` for a GitHub repository URL.

    Accepts ``https://github.com/owner/repo`` with an optional ``.git`` suffix
    or trailing slash.

    Raises:
        PermanentFailure: If the URL scheme is not http(s) or the path does not
            name an owner and a repository.
    """
    parsed = urllib.parse.urlparse(url.strip())
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise PermanentFailure(
            f"Invalid GitHub URL '{url}': unsupported scheme '{parsed.scheme}'. "
            "Allowed: https://, http://"
        )
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise PermanentFailure(f"Invalid GitHub URL '{url}': expected https://github.com/<owner>/<repo>")
    owner, repo = parts[-2], parts[-1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        raise PermanentFailure(f"Invalid GitHub URL '{url}'")
    return owner, repo


class GitHubClient:
    """Thin async wrapper over the GitHub REST API.

    Use as an async context manager; the underlying ``httpx.AsyncClient`` is
    opened on enter and closed on exit.

    Args:
        token:     Personal access token (optional; unauthenticated calls get
                   much stricter rate limits).
        api_url:   REST API base URL.
        timeout:   Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token or None
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self._headers = {
            "Accept": _JSON,
            "X-GitHub-Api-Version": _API_VERSION,
            "User-Agent": "repoqa",
        }
        if self.token:
            self._headers["Authorization"] = f"Bearer {self.token}"

    async def __aenter__(self) -> GitHubClient:
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def list_recent_commits(self, owner: str, repo: str, limit: int = 10) -> list[CommitInfo]:
        """Return up to *limit* most recent commits of the default branch."""
        response = await self._get(
            f"/repos/{owner}/{repo}/commits",
            params={"per_page": limit},
            what=f"repository {owner}/{repo}",
        )
        return [_to_commit_info(item) for item in response.json()]

    async def fetch_commit_diff(self, repo_url: str, commit_hash: str) -> str:
        """Return the unified diff text of *commit_hash*, untruncated.

        Raises:
            PermanentFailure: If GitHub returns an empty diff.
        """
        owner, repo = parse_repo_url(repo_url)
        response = await self._get(
            f"/repos/{owner}/{repo}/commits/{commit_hash}",
            accept=_DIFF,
            what=f"commit {commit_hash[:12]} in {owner}/{repo}",
        )
        if not response.text:
            raise PermanentFailure(f"No diff data received for commit {commit_hash[:12]}")
        return response.text

    # ------------------------------------------------------------------
    # Trees + contents
    # ------------------------------------------------------------------

    async def list_tree(self, owner: str, repo: str, branch: str) -> list[str]:
        """Return every blob path on *branch*, recursively."""
        response = await self._get(
            f"/repos/{owner}/{repo}/git/trees/{urllib.parse.quote(branch, safe='')}",
            params={"recursive": "1"},
            what=f"branch '{branch}' of {owner}/{repo}",
        )
        data = response.json()
        if data.get("truncated"):
            logger.warning(
                "Tree listing for %s/%s@%s was truncated by GitHub; some files are missing",
                owner, repo, branch,
            )
        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]

    async def fetch_file(self, owner: str, repo: str, path: str, ref: str) -> bytes:
        """Return the raw bytes of *path* at *ref*."""
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{urllib.parse.quote(path)}",
            params={"ref": ref},
            accept=_RAW,
            what=f"file '{path}' in {owner}/{repo}",
        )
        return response.content

    # ------------------------------------------------------------------
    # HTTP + status mapping
    # ------------------------------------------------------------------

    async def _get(
        self,
        url: str,
        *,
        what: str,
        params: dict | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("GitHubClient must be used as an async context manager")
        headers = {"Accept": accept} if accept else None
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientIO(f"GitHub request timed out for {what}") from exc
        except httpx.RequestError as exc:
            raise TransientIO(f"Failed to connect to GitHub for {what}: {type(exc).__name__}") from exc
        _raise_for_status(response, what)
        return response


def _raise_for_status(response: httpx.Response, what: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == 429 or (status == 403 and _rate_limit_exhausted(response)):
        raise RateLimited(
            "GitHub API rate limit exceeded. Set GITHUB_TOKEN for higher limits."
        )
    if status == 404:
        raise NotFound(f"Not found on GitHub: {what}")
    if status == 401:
        raise AuthenticationFailed(
            "GitHub authentication failed. Check the GITHUB_TOKEN environment variable."
        )
    if status == 403:
        raise PermanentFailure(f"Access denied to {what}. For private repos, set GITHUB_TOKEN.")
    if status >= 500:
        raise TransientIO(f"GitHub API error {status} for {what}")
    raise PermanentFailure(f"GitHub API error {status} for {what}")


def _rate_limit_exhausted(response: httpx.Response) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in response.text.lower()


def _to_commit_info(item: dict) -> CommitInfo:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    account = item.get("author") or {}
    return CommitInfo(
        hash=item["sha"],
        message=commit.get("message") or "",
        author_name=author.get("name") or "",
        author_avatar=account.get("avatar_url") or None,
        date=author.get("date") or "",
    )
