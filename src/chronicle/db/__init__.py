"""Chronicle corpus store."""

from chronicle.db.connection import DEFAULT_DB_PATH, Database
from chronicle.db.migrations import MIGRATIONS, run_migrations
from chronicle.db.repository import Repository
from chronicle.db.schema import initialize


def open_repository(db_path=DEFAULT_DB_PATH) -> Repository:
    """Open (or create) the corpus at *db_path*, migrate it, and wrap it."""
    conn = Database(db_path).connect()
    initialize(conn)
    return Repository(conn)


__all__ = [
    "DEFAULT_DB_PATH",
    "Database",
    "initialize",
    "open_repository",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
]
