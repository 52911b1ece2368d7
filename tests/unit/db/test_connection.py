"""Tests for Database connection layer."""

from __future__ import annotations

import sqlite3

from repoqa.db.connection import Database


def test_connect_creates_file(tmp_path):
    db_path = tmp_path / ".repoqa.db"
    db = Database(db_path)
    conn = db.connect()
    conn.close()
    assert db_path.exists()


def test_sqlite_vec_loads(tmp_path):
    db = Database(tmp_path / ".repoqa.db")
    conn = db.connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    conn.close()
    assert version.startswith("v")


def test_foreign_keys_enabled(tmp_path):
    db = Database(tmp_path / ".repoqa.db")
    conn = db.connect()
    result = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    conn.close()
    assert result == 1


def test_wal_journal_mode(tmp_path):
    db = Database(tmp_path / ".repoqa.db")
    conn = db.connect()
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert mode == "wal"


def test_row_factory_is_row(tmp_path):
    db = Database(tmp_path / ".repoqa.db")
    conn = db.connect()
    assert conn.row_factory is sqlite3.Row
    conn.close()


def test_context_manager_closes(tmp_path):
    db = Database(tmp_path / ".repoqa.db")
    with db as conn:
        assert conn.execute("SELECT 1").fetchone()[0] == 1
    assert db._conn is None
