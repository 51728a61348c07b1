"""Tests for the context store (records + cosine similarity search)."""

from __future__ import annotations

import pytest

from folio.db.context_store import ContextStore
from folio.db.models import ContentType, ContextRecord
from folio.errors import DuplicateKey, EmbeddingDimensionMismatch

from conftest import TEST_DIMS, TEST_MODEL


@pytest.fixture
def store(tmp_db, fake_embedder):
    return ContextStore(tmp_db, fake_embedder, TEST_MODEL)


def _record(text="What's my cash position?", source_name=None, **metadata):
    return ContextRecord(
        content_type=ContentType.DIRECT_ANSWER,
        text_content=text,
        source_name=source_name,
        metadata=dict(metadata),
    )


# ------------------------------------------------------------------
# insert
# ------------------------------------------------------------------


def test_insert_assigns_rowid_and_timestamp(store):
    rec = store.insert(_record())
    assert rec.rowid is not None
    assert rec.metadata["timestamp"]


def test_insert_then_get_round_trip(store):
    rec = store.insert(_record(answer="You hold $2,500.00 in cash."))
    loaded = store.get(rec.id)
    assert loaded is not None
    assert loaded.text_content == "What's my cash position?"
    assert loaded.content_type is ContentType.DIRECT_ANSWER
    assert loaded.answer == "You hold $2,500.00 in cash."


def test_insert_uses_precomputed_embedding(store, fake_embedder, vec):
    store.insert(_record(), embedding=vec(1.0))
    assert fake_embedder.calls == []


def test_insert_duplicate_source_name_raises(store):
    store.insert(_record(source_name="rule_a"))
    with pytest.raises(DuplicateKey):
        store.insert(_record(text="other", source_name="rule_a"))
    assert store.count() == 1


def test_insert_wrong_dimension_writes_nothing(store):
    with pytest.raises(EmbeddingDimensionMismatch) as exc_info:
        store.insert(_record(), embedding=[1.0, 0.0])
    assert exc_info.value.expected == store.dimensions
    assert exc_info.value.actual == 2
    assert store.count() == 0


def test_existing_index_dimension_wins_over_embedder(tmp_db, make_embedder):
    narrow = ContextStore(tmp_db, make_embedder(8), TEST_MODEL)
    assert narrow.dimensions == TEST_DIMS
    with pytest.raises(EmbeddingDimensionMismatch) as exc_info:
        narrow.find_similar([1.0] + [0.0] * 7, 0.0, 3)
    assert (exc_info.value.expected, exc_info.value.actual) == (TEST_DIMS, 8)
    with pytest.raises(EmbeddingDimensionMismatch):
        narrow.insert(_record())
    assert narrow.count() == 0


def test_get_missing_returns_none(store):
    assert store.get("nope") is None
    assert store.get_by_source_name("nope") is None


# ------------------------------------------------------------------
# upsert_by_source_name
# ------------------------------------------------------------------


def test_upsert_creates_then_replaces(store):
    first = store.upsert_by_source_name(
        ContextRecord(ContentType.BUSINESS_RULE, "old text", source_name="pnl_rules")
    )
    second = store.upsert_by_source_name(
        ContextRecord(ContentType.BUSINESS_RULE, "new text", source_name="pnl_rules")
    )
    assert store.count() == 1
    assert second.id == first.id
    assert second.rowid == first.rowid
    assert store.get_by_source_name("pnl_rules").text_content == "new text"


def test_upsert_replaces_vector(store, fake_embedder, vec):
    fake_embedder.vectors = {"old text": vec(1.0), "new text": vec(0.0, 1.0)}
    store.upsert_by_source_name(ContextRecord(ContentType.BUSINESS_RULE, "old text", source_name="r"))
    store.upsert_by_source_name(ContextRecord(ContentType.BUSINESS_RULE, "new text", source_name="r"))

    assert store.find_similar(vec(1.0), 0.9, 3) == []
    hits = store.find_similar(vec(0.0, 1.0), 0.9, 3)
    assert [r.source_name for r, _ in hits] == ["r"]


def test_upsert_requires_source_name(store):
    with pytest.raises(ValueError):
        store.upsert_by_source_name(_record())


# ------------------------------------------------------------------
# find_similar
# ------------------------------------------------------------------


def test_find_similar_filters_by_threshold(store, vec):
    store.insert(_record("close"), embedding=vec(1.0, 0.1))
    store.insert(_record("far"), embedding=vec(0.0, 1.0))
    hits = store.find_similar(vec(1.0), 0.7, 5)
    assert [r.text_content for r, _ in hits] == ["close"]
    assert hits[0][1] == pytest.approx(0.995, abs=0.01)


def test_find_similar_orders_by_similarity(store, vec):
    store.insert(_record("medium"), embedding=vec(1.0, 0.5))
    store.insert(_record("best"), embedding=vec(1.0))
    hits = store.find_similar(vec(1.0), 0.5, 5)
    assert [r.text_content for r, _ in hits] == ["best", "medium"]


def test_find_similar_ties_prefer_newest(store, vec):
    store.insert(_record("older", timestamp="2024-01-01T00:00:00+00:00"), embedding=vec(1.0))
    store.insert(_record("newer", timestamp="2024-06-01T00:00:00+00:00"), embedding=vec(1.0))
    hits = store.find_similar(vec(1.0), 0.9, 5)
    assert [r.text_content for r, _ in hits] == ["newer", "older"]


def test_find_similar_respects_limit(store, vec):
    for i in range(5):
        store.insert(_record(f"q{i}"), embedding=vec(1.0, 0.01 * i))
    assert len(store.find_similar(vec(1.0), 0.5, 2)) == 2


def test_find_similar_empty_store(store, vec):
    assert store.find_similar(vec(1.0), 0.0, 3) == []


def test_find_similar_wrong_dimension(store):
    with pytest.raises(EmbeddingDimensionMismatch):
        store.find_similar([1.0], 0.5, 3)


# ------------------------------------------------------------------
# counts
# ------------------------------------------------------------------


def test_count_by_content_type(store):
    store.insert(_record("a"))
    store.insert(ContextRecord(ContentType.SQL_QUERY, "b", sql_query="SELECT 1"))
    assert store.count() == 2
    assert store.count(ContentType.SQL_QUERY) == 1
    assert store.count_by_content_type() == {"direct_answer": 1, "sql_query": 1}
