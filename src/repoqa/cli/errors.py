"""repoqa rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from repoqa.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("gemini"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from repoqa.rag.llm_client import _PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'gemini'. Set:  export GEMINI_API_KEY=...
    """
    env_var = _PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_db(db_path: str = ".repoqa.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  repoqa project add --name <name> --url <github-url>"
    )


def err_project_not_found(project_id: str) -> str:
    """Unknown project id."""
    return (
        f"[red]Error:[/] Project with ID {project_id} not found.\n"
        "  Run:  repoqa project list  to see registered projects."
    )


def err_rate_limited(detail: str = "") -> str:
    """GitHub rate limit exhausted; recommend a token."""
    lines = ["[red]Error:[/] GitHub API rate limit exceeded."]
    if detail:
        lines.append(f"  {detail}")
    lines.append("  Create a token at https://github.com/settings/tokens and set:")
    lines.append("    export GITHUB_TOKEN=ghp_...")
    return "\n".join(lines)


def err_github_auth(detail: str = "") -> str:
    """GitHub rejected the token."""
    lines = ["[red]Error:[/] GitHub authentication failed."]
    if detail:
        lines.append(f"  {detail}")
    lines.append("  Check GITHUB_TOKEN or --token. Create a new token at:")
    lines.append("    https://github.com/settings/tokens")
    return "\n".join(lines)


def err_repository_not_found(url: str, detail: str = "") -> str:
    """Repository, branch, or commit not found on GitHub."""
    msg = f"[red]Error:[/] Repository not found or not accessible: '{url}'"
    if detail:
        msg += f"\n  {detail}"
    return (
        msg + "\n  Check the URL and branch; private repositories need GITHUB_TOKEN."
    )


def err_invalid_repo_url(url: str) -> str:
    """URL is not a GitHub repository URL."""
    return (
        f"[red]Error:[/] Not a GitHub repository URL: '{url}'\n"
        "  Example:  https://github.com/owner/repo"
    )


def err_embedding_model_mismatch(db_models: list[str], config_model: str) -> str:
    """Stored embeddings come from a different model than the configured one."""
    return (
        f"[red]Error:[/] Embedding model mismatch.\n"
        f"  Database uses:  {', '.join(db_models)}\n"
        f"  Config has:     {config_model}\n"
        "  Re-index the project or set embedding.model in repoqa.yaml to match."
    )


def err_config(detail: str) -> str:
    """Config file is invalid or contains a forbidden key."""
    return f"[red]Error:[/] {detail}"


def err_stream_failed(detail: str) -> str:
    """Answer generation failed partway through."""
    return (
        f"[red]Error:[/] Answer generation failed: {detail}\n"
        "  The answer above may be incomplete. Retry the question."
    )


def err_no_context() -> str:
    """No indexed files matched the question."""
    return (
        "[yellow]No relevant files found.[/] The answer will have no code context.\n"
        "  Run:  repoqa index --project <id>  if the project has not been indexed."
    )
