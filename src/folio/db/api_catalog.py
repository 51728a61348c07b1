"""Vector-indexed store of market-data API function descriptions."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence

from folio.db.models import ApiFunctionDoc
from folio.db.vectors import ensure_vec_table, indexed_dimensions, model_to_slug
from folio.errors import EmbeddingDimensionMismatch

_DOC_COLUMNS = (
    "rowid, function_code, function_name, category, description, "
    "required_parameters, optional_parameters, return_data, priority"
)


class ApiCatalog:
    """Data access for api_functions and its vec table."""

    def __init__(self, conn: sqlite3.Connection, embedding_model: str, dimensions: int) -> None:
        self._conn = conn
        self._table = ensure_vec_table(
            conn, "functions", model_to_slug(embedding_model), dimensions
        )
        self.dimensions = indexed_dimensions(conn, self._table, dimensions)

    def upsert(self, doc: ApiFunctionDoc, embedding: Sequence[float]) -> None:
        """Create or replace *doc* (keyed by function_code) with its embedding."""
        self._check_dimensions(embedding)
        params = (
            doc.function_name or doc.function_code,
            doc.category,
            doc.description,
            json.dumps(doc.required_parameters),
            json.dumps(doc.optional_parameters),
            json.dumps(doc.return_data),
            doc.priority,
        )
        with self._conn:
            row = self._conn.execute(
                "SELECT rowid FROM api_functions WHERE function_code = ?", (doc.function_code,)
            ).fetchone()
            if row is None:
                cur = self._conn.execute(
                    """
                    INSERT INTO api_functions
                        (function_name, category, description, required_parameters,
                         optional_parameters, return_data, priority, function_code)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*params, doc.function_code),
                )
                rowid = cur.lastrowid
            else:
                rowid = row["rowid"]
                self._conn.execute(
                    """
                    UPDATE api_functions
                    SET function_name = ?, category = ?, description = ?,
                        required_parameters = ?, optional_parameters = ?,
                        return_data = ?, priority = ?, updated_at = datetime('now')
                    WHERE function_code = ?
                    """,
                    (*params, doc.function_code),
                )
                self._conn.execute(f"DELETE FROM {self._table} WHERE rowid = ?", (rowid,))
            self._conn.execute(
                f"INSERT INTO {self._table}(rowid, embedding) VALUES (?, ?)",
                (rowid, json.dumps(list(embedding))),
            )

    def get(self, function_code: str) -> ApiFunctionDoc | None:
        row = self._conn.execute(
            f"SELECT {_DOC_COLUMNS} FROM api_functions WHERE function_code = ?",
            (function_code,),
        ).fetchone()
        return _row_to_doc(row) if row else None

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM api_functions").fetchone()[0]

    def find_similar(
        self, vector: Sequence[float], threshold: float, limit: int
    ) -> list[tuple[ApiFunctionDoc, float]]:
        """Return up to *limit* functions with cosine similarity >= *threshold*, best first."""
        self._check_dimensions(vector)
        if limit < 1:
            return []
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self._table} "
            "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(list(vector)), limit),
        ).fetchall()

        hits: list[tuple[ApiFunctionDoc, float]] = []
        for vec_row in vec_rows:
            similarity = 1.0 - vec_row["distance"]
            if similarity < threshold:
                continue
            row = self._conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM api_functions WHERE rowid = ?", (vec_row["rowid"],)
            ).fetchone()
            if row is not None:
                hits.append((_row_to_doc(row), similarity))
        return hits

    def _check_dimensions(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimensions:
            raise EmbeddingDimensionMismatch(self.dimensions, len(vector))


def _row_to_doc(row: sqlite3.Row) -> ApiFunctionDoc:
    return ApiFunctionDoc(
        function_code=row["function_code"],
        function_name=row["function_name"],
        category=row["category"],
        description=row["description"],
        required_parameters=json.loads(row["required_parameters"]),
        optional_parameters=json.loads(row["optional_parameters"]),
        return_data=json.loads(row["return_data"]),
        priority=row["priority"],
    )
