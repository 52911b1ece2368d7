"""Tests for the async GitHub client (httpx.MockTransport)."""

from __future__ import annotations

import httpx
import pytest

from repoqa.errors import (
    AuthenticationFailed,
    NotFound,
    PermanentFailure,
    RateLimited,
    TransientIO,
)
from repoqa.github.client import GitHubClient, parse_repo_url


def _client(handler, token: str | None = None) -> GitHubClient:
    return GitHubClient(token=token, transport=httpx.MockTransport(handler))


# ------------------------------------------------------------------
# parse_repo_url
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/acme/demo",
        "https://github.com/acme/demo.git",
        "https://github.com/acme/demo/",
        "http://github.com/acme/demo",
    ],
)
def test_parse_repo_url(url):
    assert parse_repo_url(url) == ("acme", "demo")


@pytest.mark.parametrize("url", ["git@github.com:acme/demo.git", "https://github.com/acme", "ftp://x/a/b"])
def test_parse_repo_url_rejects(url):
    with pytest.raises(PermanentFailure):
        parse_repo_url(url)


# ------------------------------------------------------------------
# Commits
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_recent_commits_parses_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["per_page"] = request.url.params["per_page"]
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(
            200,
            json=[
                {
                    "sha": "abc123",
                    "commit": {
                        "message": "Fix bug",
                        "author": {"name": "Ada", "date": "2024-05-01T10:00:00Z"},
                    },
                    "author": {"avatar_url": "https://avatars/ada.png"},
                },
                {"sha": "def456", "commit": {"message": "", "author": None}, "author": None},
            ],
        )

    async with _client(handler, token="ghp_test") as gh:
        commits = await gh.list_recent_commits("acme", "demo", limit=10)

    assert seen == {"path": "/repos/acme/demo/commits", "per_page": "10", "auth": "Bearer ghp_test"}
    assert commits[0].hash == "abc123"
    assert commits[0].author_name == "Ada"
    assert commits[0].author_avatar == "https://avatars/ada.png"
    assert commits[0].date == "2024-05-01T10:00:00Z"
    assert commits[1].author_avatar is None
    assert commits[1].date == ""


@pytest.mark.asyncio
async def test_fetch_commit_diff_uses_diff_media_type():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "application/vnd.github.v3.diff"
        assert request.url.path == "/repos/acme/demo/commits/abc123"
        return httpx.Response(200, text="diff --git a/x b/x\n+new line\n")

    async with _client(handler) as gh:
        diff = await gh.fetch_commit_diff("https://github.com/acme/demo", "abc123")
    assert diff.startswith("diff --git")


@pytest.mark.asyncio
async def test_fetch_commit_diff_empty_is_permanent():
    async with _client(lambda r: httpx.Response(200, text="")) as gh:
        with pytest.raises(PermanentFailure, match="No diff data"):
            await gh.fetch_commit_diff("https://github.com/acme/demo", "abc123")


# ------------------------------------------------------------------
# Trees + contents
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_tree_returns_blobs_only():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/demo/git/trees/main"
        assert request.url.params["recursive"] == "1"
        return httpx.Response(
            200,
            json={
                "tree": [
                    {"path": "src", "type": "tree"},
                    {"path": "src/app.py", "type": "blob"},
                    {"path": "README.md", "type": "blob"},
                ],
                "truncated": False,
            },
        )

    async with _client(handler) as gh:
        assert await gh.list_tree("acme", "demo", "main") == ["src/app.py", "README.md"]


@pytest.mark.asyncio
async def test_fetch_file_returns_raw_bytes():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/demo/contents/src/app.py"
        assert request.url.params["ref"] == "main"
        return httpx.Response(200, content=b"print('hi')\n")

    async with _client(handler) as gh:
        assert await gh.fetch_file("acme", "demo", "src/app.py", "main") == b"print('hi')\n"


# ------------------------------------------------------------------
# Status mapping
# ------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, error",
    [
        (httpx.Response(429), RateLimited),
        (httpx.Response(403, headers={"x-ratelimit-remaining": "0"}), RateLimited),
        (httpx.Response(403, text="API rate limit exceeded"), RateLimited),
        (httpx.Response(403, text="forbidden"), PermanentFailure),
        (httpx.Response(401), AuthenticationFailed),
        (httpx.Response(404), NotFound),
        (httpx.Response(422), PermanentFailure),
        (httpx.Response(502), TransientIO),
    ],
)
async def test_status_mapping(response, error):
    async with _client(lambda r: response) as gh:
        with pytest.raises(error):
            await gh.list_recent_commits("acme", "demo")


@pytest.mark.asyncio
async def test_connection_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as gh:
        with pytest.raises(TransientIO):
            await gh.list_recent_commits("acme", "demo")


@pytest.mark.asyncio
async def test_token_never_in_error_message():
    async with _client(lambda r: httpx.Response(401), token="ghp_secret") as gh:
        with pytest.raises(PermanentFailure) as exc_info:
            await gh.list_recent_commits("acme", "demo")
    assert "ghp_secret" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_use_outside_context_manager_raises():
    gh = GitHubClient()
    with pytest.raises(RuntimeError):
        await gh.list_recent_commits("acme", "demo")
