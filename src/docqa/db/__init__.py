"""docqa database layer."""

from docqa.db.connection import Database
from docqa.db.migrations import MIGRATIONS, run_migrations
from docqa.db.repository import Repository
from docqa.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
