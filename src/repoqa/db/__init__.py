"""repoqa database layer."""

from repoqa.db.connection import Database
from repoqa.db.migrations import MIGRATIONS, run_migrations
from repoqa.db.repository import Repository
from repoqa.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]
