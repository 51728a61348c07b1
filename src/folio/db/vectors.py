"""Per-model sqlite-vec virtual tables for each vector corpus.

Two corpora are indexed: ``context`` (context_records) and ``functions``
(api_functions). Each gets one cosine-distance vec0 table per embedding model,
keyed by the owning row's rowid.
"""

from __future__ import annotations

import logging
import re
import sqlite3

logger = logging.getLogger(__name__)

CORPORA: tuple[str, ...] = ("context", "functions")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "huggingface/intfloat/e5-large-v2" -> "huggingface_intfloat_e5_large_v2"
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(corpus: str, model_slug: str) -> str:
    """Return the vec table name for *corpus* embedded with *model_slug*."""
    if corpus not in CORPORA:
        raise ValueError(f"Unknown corpus '{corpus}', expected one of {CORPORA}")
    return f"vec_{corpus}_{model_slug}"


def ensure_vec_table(
    conn: sqlite3.Connection, corpus: str, model_slug: str, dimensions: int
) -> str:
    """Create the cosine vec0 table for (*corpus*, *model_slug*) if missing.

    Returns:
        The table name.

    Raises:
        ValueError: On an unsanitized slug or non-positive dimensions.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'; use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(corpus, model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING "
            f"vec0(embedding float[{dimensions}] distance_metric=cosine)"
        )
        conn.commit()

    return table


def table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared dimension of an existing vec table, or None."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None:
        return None
    match = re.search(r"float\[(\d+)\]", row[0])
    return int(match.group(1)) if match else None


def indexed_dimensions(conn: sqlite3.Connection, table: str, configured: int) -> int:
    """Dimension vectors must have to query *table*.

    An existing table wins over *configured*; a drift is logged, and callers
    reject mismatched vectors with ``EmbeddingDimensionMismatch``.
    """
    indexed = table_dimensions(conn, table)
    if indexed is None:
        return configured
    if indexed != configured:
        logger.warning(
            "%s is indexed at %d dimensions but %d are configured; run folio init --force",
            table,
            indexed,
            configured,
        )
    return indexed
