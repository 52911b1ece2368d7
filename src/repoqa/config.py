"""repoqa configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (REPOQA_GENERATION_MODEL, REPOQA_SUMMARY_MODEL,
                             REPOQA_EMBEDDING_MODEL)
  3. Per-project repoqa.yaml  (current working directory)
  4. Global ~/.repoqa/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Config files must never contain API keys or GitHub tokens; use environment
variables instead (OPENAI_API_KEY, GEMINI_API_KEY, GITHUB_TOKEN, ...).
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".repoqa"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "repoqa.yaml"

# Fields that suggest a credential: forbidden in config files.
# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # my_secret, client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections: unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "ingest", "github"]
)

DEFAULT_IGNORE: tuple[str, ...] = (
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lockb",
    ".git",
    "node_modules",
    "dist",
    "build",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (repoqa.yaml: embedding:).

    The same model must be used for ingestion and for embedding questions;
    vectors from different models are not comparable.
    """

    model: str = "gemini/text-embedding-004"
    dimensions: int | None = 768


@dataclass
class GenerationCfg:
    """LLM configuration (repoqa.yaml: generation:)."""

    model: str = "gemini/gemini-1.5-flash"
    summary_model: str = "gemini/gemini-1.5-flash"
    max_tokens: int = 2048


@dataclass
class RetrievalCfg:
    """Vector retrieval configuration (repoqa.yaml: retrieval:)."""

    min_similarity: float = 0.5
    top_k: int = 10


@dataclass
class IngestCfg:
    """Ingestion pipeline configuration (repoqa.yaml: ingest:).

    Attributes:
        max_concurrency: Ceiling on in-flight summarize/embed/diff calls.
        retry_delays: Backoff (seconds) before each retry on a rate limit.
        call_timeout: Per-call deadline in seconds (None disables it).
        commit_limit: Number of recent commits listed per poll.
        commit_batch_size: Commit rows written per batch.
        batch_pause: Pause (seconds) between commit write batches.
        max_file_chars: Content truncation before file summarization.
        branch: Branch enumerated by the snapshot loader.
        loader_concurrency: Ceiling on concurrent file-content fetches.
        loader_attempts: Whole-load attempts on a rate limit.
        ignore: fnmatch patterns excluded from the snapshot.
        replace_existing: Replace rows keyed by (project, file) instead of appending.
    """

    max_concurrency: int = 5
    retry_delays: list[float] = field(default_factory=lambda: [1.0, 2.0, 4.0, 8.0])
    call_timeout: float | None = 120.0
    commit_limit: int = 10
    commit_batch_size: int = 3
    batch_pause: float = 0.5
    max_file_chars: int = 10_000
    branch: str = "main"
    loader_concurrency: int = 2
    loader_attempts: int = 3
    ignore: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))
    replace_existing: bool = False


@dataclass
class GitHubCfg:
    """GitHub REST API configuration (repoqa.yaml: github:)."""

    api_url: str = "https://api.github.com"
    timeout: float = 30.0


@dataclass
class RepoQAConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    github: GitHubCfg = field(default_factory=GitHubCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RepoQAConfig) -> None:
    """Raise ConfigError for values the pipelines cannot run with."""
    if cfg.ingest.max_concurrency < 1:
        raise ConfigError("ingest.max_concurrency must be >= 1")
    if cfg.ingest.loader_concurrency < 1:
        raise ConfigError("ingest.loader_concurrency must be >= 1")
    if cfg.ingest.loader_attempts < 1:
        raise ConfigError("ingest.loader_attempts must be >= 1")
    if cfg.ingest.commit_batch_size < 1:
        raise ConfigError("ingest.commit_batch_size must be >= 1")
    if any(d < 0 for d in cfg.ingest.retry_delays):
        raise ConfigError("ingest.retry_delays must be non-negative")
    if not 0.0 <= cfg.retrieval.min_similarity < 1.0:
        raise ConfigError("retrieval.min_similarity must be in [0.0, 1.0)")
    if cfg.retrieval.top_k < 1:
        raise ConfigError("retrieval.top_k must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _cfg_from_dict(data: dict[str, Any]) -> RepoQAConfig:
    """Build a *RepoQAConfig* from a merged raw YAML dict."""
    cfg = RepoQAConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=_optional_int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            summary_model=str(g.get("summary_model", cfg.generation.summary_model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            min_similarity=float(r.get("min_similarity", cfg.retrieval.min_similarity)),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
        )

    if "ingest" in data:
        i = data["ingest"] or {}
        d = cfg.ingest
        cfg.ingest = IngestCfg(
            max_concurrency=int(i.get("max_concurrency", d.max_concurrency)),
            retry_delays=[float(x) for x in i.get("retry_delays", d.retry_delays)],
            call_timeout=_optional_float(i.get("call_timeout", d.call_timeout)),
            commit_limit=int(i.get("commit_limit", d.commit_limit)),
            commit_batch_size=int(i.get("commit_batch_size", d.commit_batch_size)),
            batch_pause=float(i.get("batch_pause", d.batch_pause)),
            max_file_chars=int(i.get("max_file_chars", d.max_file_chars)),
            branch=str(i.get("branch", d.branch)),
            loader_concurrency=int(i.get("loader_concurrency", d.loader_concurrency)),
            loader_attempts=int(i.get("loader_attempts", d.loader_attempts)),
            ignore=[str(p) for p in i.get("ignore", d.ignore)],
            replace_existing=bool(i.get("replace_existing", d.replace_existing)),
        )

    if "github" in data:
        gh = data["github"] or {}
        cfg.github = GitHubCfg(
            api_url=str(gh.get("api_url", cfg.github.api_url)).rstrip("/"),
            timeout=float(gh.get("timeout", cfg.github.timeout)),
        )

    return cfg


def _apply_env_overrides(cfg: RepoQAConfig) -> RepoQAConfig:
    """Apply REPOQA_* environment variable overrides (layer 2)."""
    if model := os.environ.get("REPOQA_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("REPOQA_SUMMARY_MODEL"):
        cfg.generation.summary_model = model
    if model := os.environ.get("REPOQA_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RepoQAConfig:
    """Load and return a merged *RepoQAConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *repoqa.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RepoQAConfig* with env var overrides applied.

    Raises:
        ConfigError: If a config file contains API-key-like fields or a value
            the pipelines cannot run with.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.repoqa/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# repoqa global configuration: model defaults only.\n"
            "# NEVER store API keys or tokens here; use environment variables:\n"
            "#   export GEMINI_API_KEY=...\n"
            "#   export GITHUB_TOKEN=ghp_...\n"
            "\n"
            "embedding:\n"
            "  model: gemini/text-embedding-004\n"
            "  dimensions: 768\n"
            "\n"
            "generation:\n"
            "  model: gemini/gemini-1.5-flash\n"
            "  summary_model: gemini/gemini-1.5-flash\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
