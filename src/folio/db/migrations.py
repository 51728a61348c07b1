"""Forward-only migration runner for the context-store schema.

Vec tables (vec_*) are NOT migration-managed; use ensure_vec_table() instead.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS context_records (
    id              TEXT NOT NULL UNIQUE,
    content_type    TEXT NOT NULL,
    text_content    TEXT NOT NULL,
    sql_query       TEXT,
    metadata        TEXT NOT NULL DEFAULT '{}',
    source_name     TEXT UNIQUE,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_context_records_type ON context_records(content_type);

CREATE TABLE IF NOT EXISTS api_functions (
    function_code       TEXT NOT NULL UNIQUE,
    function_name       TEXT NOT NULL,
    category            TEXT NOT NULL DEFAULT '',
    description         TEXT NOT NULL,
    required_parameters TEXT NOT NULL DEFAULT '[]',
    optional_parameters TEXT NOT NULL DEFAULT '[]',
    return_data         TEXT NOT NULL DEFAULT '[]',
    priority            TEXT NOT NULL DEFAULT 'NORMAL',
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)
    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            conn.commit()
