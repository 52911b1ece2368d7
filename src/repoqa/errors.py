"""Error taxonomy shared by the ingest and answering pipelines.

Pipeline-level failures propagate as these exceptions. Per-item failures inside
a fan-out (one commit, one file) are converted to sentinels or skips by the
pipelines themselves and never reach the caller.
"""

from __future__ import annotations


class RepoQAError(Exception):
    """Base class for all repoqa errors."""


class RateLimited(RepoQAError):
    """The provider rejected the call because of rate limiting (HTTP 429)."""

    status_code = 429


class NotFound(RepoQAError):
    """A repository, branch, or commit does not exist. Never retried."""


class ProjectNotFound(NotFound):
    """No project with the given id is registered."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project with ID {project_id} not found.")
        self.project_id = project_id


class TransientIO(RepoQAError):
    """Network or storage blip (connection reset, timeout)."""


class PermanentFailure(RepoQAError):
    """Malformed input or authentication failure; surfaced immediately."""


class AuthenticationFailed(PermanentFailure):
    """GitHub rejected the credentials (HTTP 401)."""


class EmbeddingModelMismatch(PermanentFailure):
    """Stored embeddings were produced by a different embedding model."""

    def __init__(self, stored_models: list[str], requested: str) -> None:
        super().__init__(
            f"Embeddings for this project were produced by {', '.join(stored_models)}, "
            f"not {requested}."
        )
        self.stored_models = stored_models
        self.requested = requested


class StreamFailed(RepoQAError):
    """Terminal error on an answer stream. ``__cause__`` holds the provider error."""


def is_rate_limited(exc: BaseException) -> bool:
    """Return True if *exc* signals a rate limit.

    Recognises :class:`RateLimited` and any exception carrying a 429
    ``status_code`` or ``status`` attribute (``litellm.RateLimitError``,
    provider SDK errors).
    """
    if isinstance(exc, RateLimited):
        return True
    for attr in ("status_code", "status"):
        if getattr(exc, attr, None) == 429:
            return True
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None) == 429
