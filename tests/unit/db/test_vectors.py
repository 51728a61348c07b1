"""Tests for per-model sqlite-vec tables."""

from __future__ import annotations

import json

import pytest

from folio.db.vectors import ensure_vec_table, model_to_slug, table_dimensions, vec_table_name


def test_model_to_slug():
    assert model_to_slug("huggingface/intfloat/e5-large-v2") == "huggingface_intfloat_e5_large_v2"
    assert model_to_slug("openai/text-embedding-3-small") == "openai_text_embedding_3_small"


def test_vec_table_name():
    assert vec_table_name("context", "m") == "vec_context_m"
    assert vec_table_name("functions", "m") == "vec_functions_m"


def test_vec_table_name_unknown_corpus():
    with pytest.raises(ValueError, match="corpus"):
        vec_table_name("chunks", "m")


def test_ensure_vec_table_creates_once(tmp_db):
    first = ensure_vec_table(tmp_db, "context", "some_model", 4)
    second = ensure_vec_table(tmp_db, "context", "some_model", 4)
    assert first == second == "vec_context_some_model"
    assert table_dimensions(tmp_db, first) == 4


def test_ensure_vec_table_rejects_unsanitized_slug(tmp_db):
    with pytest.raises(ValueError, match="model_to_slug"):
        ensure_vec_table(tmp_db, "context", "bad/slug", 4)


def test_ensure_vec_table_rejects_zero_dimensions(tmp_db):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, "context", "m", 0)


def test_table_dimensions_missing_table(tmp_db):
    assert table_dimensions(tmp_db, "vec_context_nope") is None


def test_cosine_distance_metric(tmp_db):
    table = ensure_vec_table(tmp_db, "functions", "cos_check", 2)
    tmp_db.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (1, ?)", (json.dumps([3.0, 0.0]),))
    row = tmp_db.execute(
        f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? ORDER BY distance LIMIT 1",
        (json.dumps([1.0, 0.0]),),
    ).fetchone()
    # Magnitude is ignored under cosine distance.
    assert row["distance"] == pytest.approx(0.0, abs=1e-6)
