"""Folio database layer."""

from folio.db.connection import Database
from folio.db.migrations import MIGRATIONS, run_migrations
from folio.db.schema import initialize
from folio.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
