"""Database initialization: relational schema plus the per-model vec tables."""

from __future__ import annotations

import sqlite3

from folio.db.migrations import run_migrations
from folio.db.vectors import CORPORA, ensure_vec_table, model_to_slug


def initialize(
    conn: sqlite3.Connection,
    embedding_model: str | None = None,
    dimensions: int | None = None,
) -> None:
    """Run migrations and, when a model is given, create its vec tables (idempotent)."""
    run_migrations(conn)
    if embedding_model is not None and dimensions is not None:
        slug = model_to_slug(embedding_model)
        for corpus in CORPORA:
            ensure_vec_table(conn, corpus, slug, dimensions)
