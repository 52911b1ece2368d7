"""Repository pattern for all repoqa database operations.

Single interface for: projects, commit records, source-file embeddings and the
storage-side cosine similarity search.
"""

from __future__ import annotations

import sqlite3
import uuid

from repoqa.db.models import CommitRecord, Project, SourceFileEmbedding
from repoqa.db.vectors import from_blob, to_blob

_EMBEDDING_COLUMNS = (
    "id, project_id, file_name, source_code, summary, embedding_model, created_at"
)


class Repository:
    """Data access layer for all repoqa database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use. Every write is a single-row insert scoped by
    project and committed immediately; no transaction spans several rows.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see repoqa.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def add_project(self, name: str, github_url: str) -> Project:
        """Register a project and return it with its generated id."""
        project_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO projects (id, name, github_url) VALUES (?, ?, ?)",
            (project_id, name, github_url),
        )
        self._conn.commit()
        return self.get_project(project_id)  # type: ignore[return-value]

    def get_project(self, project_id: str) -> Project | None:
        """Return a project by id, or None if not found."""
        row = self._conn.execute(
            "SELECT id, name, github_url, created_at FROM projects WHERE id = ?",
            (project_id,),
        ).fetchone()
        return _row_to_project(row) if row else None

    def list_projects(self) -> list[Project]:
        """Return all projects ordered by creation time (oldest first)."""
        rows = self._conn.execute(
            "SELECT id, name, github_url, created_at FROM projects ORDER BY created_at, rowid"
        ).fetchall()
        return [_row_to_project(r) for r in rows]

    def delete_project(self, project_id: str) -> None:
        """Delete a project; commits and embeddings cascade via foreign keys."""
        self._conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def list_commit_hashes(self, project_id: str) -> set[str]:
        """Return the set of already-persisted commit hashes for *project_id*."""
        rows = self._conn.execute(
            "SELECT commit_hash FROM commits WHERE project_id = ?", (project_id,)
        ).fetchall()
        return {r["commit_hash"] for r in rows}

    def add_commit(self, record: CommitRecord) -> CommitRecord:
        """Insert a commit record and return it with ``id`` set.

        Raises:
            sqlite3.IntegrityError: If (project_id, commit_hash) already exists.
        """
        record.id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO commits (
                id, project_id, commit_hash, commit_message, author_name,
                author_avatar, commit_date, summary
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.project_id,
                record.commit_hash,
                record.commit_message,
                record.author_name,
                record.author_avatar,
                record.commit_date,
                record.summary,
            ),
        )
        self._conn.commit()
        return record

    def list_commits(self, project_id: str, limit: int | None = None) -> list[CommitRecord]:
        """Return commit records for *project_id*, newest commit date first."""
        sql = (
            "SELECT id, project_id, commit_hash, commit_message, author_name, author_avatar, "
            "commit_date, summary, created_at FROM commits WHERE project_id = ? "
            "ORDER BY commit_date DESC"
        )
        params: tuple = (project_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (project_id, limit)
        return [_row_to_commit(r) for r in self._conn.execute(sql, params).fetchall()]

    def count_commits(self, project_id: str) -> int:
        """Return the number of commit records stored for *project_id*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM commits WHERE project_id = ?", (project_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Source-file embeddings
    # ------------------------------------------------------------------

    def add_embedding(self, record: SourceFileEmbedding) -> str:
        """Insert a source-file embedding row. Returns the new id."""
        record.id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO source_file_embeddings (
                id, project_id, file_name, source_code, summary, embedding, embedding_model
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.project_id,
                record.file_name,
                record.source_code,
                record.summary,
                to_blob(record.embedding),
                record.embedding_model,
            ),
        )
        self._conn.commit()
        return record.id

    def list_embeddings(self, project_id: str) -> list[SourceFileEmbedding]:
        """Return all embedding rows for *project_id* (vectors included)."""
        rows = self._conn.execute(
            f"SELECT {_EMBEDDING_COLUMNS}, embedding FROM source_file_embeddings "
            "WHERE project_id = ? ORDER BY created_at, rowid",
            (project_id,),
        ).fetchall()
        return [_row_to_embedding(r, with_vector=True) for r in rows]

    def count_embeddings(self, project_id: str) -> int:
        """Return the number of embedding rows stored for *project_id*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM source_file_embeddings WHERE project_id = ?",
            (project_id,),
        ).fetchone()[0]

    def list_embedding_models(self, project_id: str) -> list[str]:
        """Return the distinct embedding models used for *project_id*."""
        rows = self._conn.execute(
            "SELECT DISTINCT embedding_model FROM source_file_embeddings "
            "WHERE project_id = ? ORDER BY embedding_model",
            (project_id,),
        ).fetchall()
        return [r["embedding_model"] for r in rows]

    def delete_embeddings_by_file(self, project_id: str, file_name: str) -> int:
        """Delete every embedding row for (*project_id*, *file_name*). Returns count."""
        cur = self._conn.execute(
            "DELETE FROM source_file_embeddings WHERE project_id = ? AND file_name = ?",
            (project_id, file_name),
        )
        self._conn.commit()
        return cur.rowcount

    def similarity_search(
        self,
        query_embedding: list[float],
        project_id: str,
        embedding_model: str,
        threshold: float = 0.5,
        limit: int = 10,
    ) -> list[tuple[SourceFileEmbedding, float]]:
        """Rank the project's rows by cosine similarity in one SQL statement.

        similarity = 1 - vec_distance_cosine(stored, query). Rows with
        similarity <= *threshold* are dropped; at most *limit* rows are
        returned, best first. Linear scan over the project's rows.
        """
        rows = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT {_EMBEDDING_COLUMNS},
                       1 - vec_distance_cosine(embedding, ?) AS similarity
                FROM source_file_embeddings
                WHERE project_id = ? AND embedding_model = ?
            )
            WHERE similarity > ?
            ORDER BY similarity DESC
            LIMIT ?
            """,
            (to_blob(query_embedding), project_id, embedding_model, threshold, limit),
        ).fetchall()
        return [(_row_to_embedding(r), r["similarity"]) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        github_url=row["github_url"],
        created_at=row["created_at"],
    )


def _row_to_commit(row: sqlite3.Row) -> CommitRecord:
    return CommitRecord(
        id=row["id"],
        project_id=row["project_id"],
        commit_hash=row["commit_hash"],
        commit_message=row["commit_message"],
        author_name=row["author_name"],
        author_avatar=row["author_avatar"],
        commit_date=row["commit_date"],
        summary=row["summary"],
        created_at=row["created_at"],
    )


def _row_to_embedding(row: sqlite3.Row, with_vector: bool = False) -> SourceFileEmbedding:
    return SourceFileEmbedding(
        id=row["id"],
        project_id=row["project_id"],
        file_name=row["file_name"],
        source_code=row["source_code"],
        summary=row["summary"],
        embedding=from_blob(row["embedding"]) if with_vector else [],
        embedding_model=row["embedding_model"],
        created_at=row["created_at"],
    )
