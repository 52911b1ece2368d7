"""GitHub repository provider."""

from repoqa.github.client import CommitInfo, GitHubClient, parse_repo_url

__all__ = ["CommitInfo", "GitHubClient", "parse_repo_url"]
