"""Context store: (text, embedding, metadata) records with cosine similarity search.

Holds both the curated knowledge base (business rules, join semantics) and the
dynamic question/answer cache written by the router. A record row and its
vector are always written in one transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from typing import Protocol

from folio.db.models import ContentType, ContextRecord, utc_timestamp
from folio.db.vectors import ensure_vec_table, indexed_dimensions, model_to_slug
from folio.errors import DuplicateKey, EmbeddingDimensionMismatch

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = "rowid, id, content_type, text_content, sql_query, metadata, source_name, created_at"

# Extra candidates pulled from the KNN index so threshold filtering and
# timestamp tie-breaking still leave *limit* results.
_OVERFETCH = 4


class TextEmbedder(Protocol):
    dimensions: int

    def embed(self, text: str) -> list[float]: ...


class ContextStore:
    """Data access for context_records and its vec table.

    The connection is owned by the caller and must be closed after use.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        embedder: TextEmbedder,
        embedding_model: str,
    ) -> None:
        """Bind to *conn* and make sure the context vec table exists.

        An existing table keeps the dimension it was created with; vectors of
        any other length raise ``EmbeddingDimensionMismatch`` instead of
        reaching sqlite-vec.

        Args:
            conn: Open connection with sqlite-vec loaded and schema initialised.
            embedder: Produces vectors for record text at write time.
            embedding_model: Model string; selects the per-model vec table.
        """
        self._conn = conn
        self._embedder = embedder
        self._table = ensure_vec_table(
            conn, "context", model_to_slug(embedding_model), embedder.dimensions
        )
        self.dimensions = indexed_dimensions(conn, self._table, embedder.dimensions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: ContextRecord, embedding: list[float] | None = None) -> ContextRecord:
        """Insert *record* with its embedding.

        Args:
            record: Record to persist. ``metadata.timestamp`` is filled if absent.
            embedding: Precomputed vector for ``record.text_content``; computed
                with the embedder when omitted.

        Raises:
            DuplicateKey: A record with the same source_name exists.
            EmbeddingDimensionMismatch: The vector does not fit the index.
            EmbeddingUnavailable: The embedder failed (nothing is written).
        """
        if record.source_name and self.get_by_source_name(record.source_name):
            raise DuplicateKey(f"Context record '{record.source_name}' already exists")

        vector = self._vector_for(record, embedding)
        record.metadata.setdefault("timestamp", utc_timestamp())

        try:
            with self._conn:
                cur = self._conn.execute(
                    """
                    INSERT INTO context_records
                        (id, content_type, text_content, sql_query, metadata, source_name)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        ContentType(record.content_type).value,
                        record.text_content,
                        record.sql_query,
                        record.metadata_json(),
                        record.source_name,
                    ),
                )
                rowid = cur.lastrowid
                self._conn.execute(
                    f"INSERT INTO {self._table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(vector)),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateKey(str(exc)) from exc

        record.rowid = rowid
        logger.debug("Inserted context record %s (%s)", record.id, record.content_type)
        return record

    def upsert_by_source_name(self, record: ContextRecord) -> ContextRecord:
        """Create or replace the record whose source_name matches *record*.

        Re-embeds the content on every call; exactly one row per source_name.
        """
        if not record.source_name:
            raise ValueError("upsert_by_source_name requires record.source_name")

        vector = self._vector_for(record, None)
        record.metadata.setdefault("timestamp", utc_timestamp())
        existing = self.get_by_source_name(record.source_name)

        if existing is None:
            return self.insert(record, embedding=vector)

        with self._conn:
            self._conn.execute(
                """
                UPDATE context_records
                SET content_type = ?, text_content = ?, sql_query = ?, metadata = ?
                WHERE rowid = ?
                """,
                (
                    ContentType(record.content_type).value,
                    record.text_content,
                    record.sql_query,
                    record.metadata_json(),
                    existing.rowid,
                ),
            )
            self._conn.execute(f"DELETE FROM {self._table} WHERE rowid = ?", (existing.rowid,))
            self._conn.execute(
                f"INSERT INTO {self._table}(rowid, embedding) VALUES (?, ?)",
                (existing.rowid, json.dumps(vector)),
            )

        record.id = existing.id
        record.rowid = existing.rowid
        logger.debug("Upserted context record '%s'", record.source_name)
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_similar(
        self, vector: Sequence[float], threshold: float, limit: int
    ) -> list[tuple[ContextRecord, float]]:
        """Return up to *limit* records with cosine similarity >= *threshold*.

        Sorted by similarity descending; equal similarities put the most recent
        ``metadata.timestamp`` first.
        """
        self._check_dimensions(vector)
        if limit < 1:
            return []

        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self._table} "
            "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(list(vector)), limit * _OVERFETCH),
        ).fetchall()

        hits: list[tuple[ContextRecord, float]] = []
        for vec_row in vec_rows:
            similarity = 1.0 - vec_row["distance"]
            if similarity < threshold:
                continue
            record = self._get_by_rowid(vec_row["rowid"])
            if record is not None:
                hits.append((record, similarity))

        hits.sort(key=lambda h: h[0].timestamp, reverse=True)
        hits.sort(key=lambda h: round(h[1], 9), reverse=True)
        return hits[:limit]

    def get(self, record_id: str) -> ContextRecord | None:
        row = self._conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM context_records WHERE id = ?", (record_id,)
        ).fetchone()
        return _row_to_record(row) if row else None

    def get_by_source_name(self, source_name: str) -> ContextRecord | None:
        row = self._conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM context_records WHERE source_name = ?",
            (source_name,),
        ).fetchone()
        return _row_to_record(row) if row else None

    def count(self, content_type: ContentType | str | None = None) -> int:
        if content_type is None:
            return self._conn.execute("SELECT COUNT(*) FROM context_records").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM context_records WHERE content_type = ?",
            (ContentType(content_type).value,),
        ).fetchone()[0]

    def count_by_content_type(self) -> dict[str, int]:
        rows = self._conn.execute(
            "SELECT content_type, COUNT(*) AS n FROM context_records GROUP BY content_type"
        ).fetchall()
        return {r["content_type"]: r["n"] for r in rows}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_by_rowid(self, rowid: int) -> ContextRecord | None:
        row = self._conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM context_records WHERE rowid = ?", (rowid,)
        ).fetchone()
        return _row_to_record(row) if row else None

    def _vector_for(self, record: ContextRecord, embedding: list[float] | None) -> list[float]:
        vector = embedding if embedding is not None else self._embedder.embed(record.text_content)
        self._check_dimensions(vector)
        return list(vector)

    def _check_dimensions(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimensions:
            raise EmbeddingDimensionMismatch(self.dimensions, len(vector))


def _row_to_record(row: sqlite3.Row) -> ContextRecord:
    return ContextRecord(
        rowid=row["rowid"],
        id=row["id"],
        content_type=ContentType(row["content_type"]),
        text_content=row["text_content"],
        sql_query=row["sql_query"],
        metadata=json.loads(row["metadata"] or "{}"),
        source_name=row["source_name"],
        created_at=row["created_at"],
    )
