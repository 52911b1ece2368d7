"""Domain models for the repoqa database layer."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Project:
    id: str
    name: str
    github_url: str
    created_at: str | None = None


@dataclass
class CommitRecord:
    project_id: str
    commit_hash: str
    commit_message: str
    author_name: str
    commit_date: str
    summary: str = ""
    author_avatar: str | None = None
    id: str | None = None  # set after insert
    created_at: str | None = None


@dataclass
class SourceFileEmbedding:
    project_id: str
    file_name: str
    source_code: str
    summary: str
    embedding: list[float] = field(default_factory=list)
    embedding_model: str = ""
    id: str | None = None  # set after insert
    created_at: str | None = None
