"""Tests for the vector-indexed market-data function catalog."""

from __future__ import annotations

import pytest

from folio.db.api_catalog import ApiCatalog
from folio.db.models import ApiFunctionDoc
from folio.errors import EmbeddingDimensionMismatch

from conftest import TEST_DIMS, TEST_MODEL


@pytest.fixture
def catalog(tmp_db):
    return ApiCatalog(tmp_db, TEST_MODEL, TEST_DIMS)


def _doc(code="OVERVIEW", description="Company information and financial ratios", **kw):
    return ApiFunctionDoc(
        function_code=code,
        description=description,
        required_parameters=kw.pop("required", ["symbol"]),
        **kw,
    )


def test_upsert_and_get(catalog, vec):
    catalog.upsert(_doc(return_data=["PERatio", "EPS"], priority="HIGH"), vec(1.0))
    doc = catalog.get("OVERVIEW")
    assert doc is not None
    assert doc.required_parameters == ["symbol"]
    assert doc.return_data == ["PERatio", "EPS"]
    assert doc.priority == "HIGH"
    assert doc.function_name == "OVERVIEW"


def test_upsert_replaces_existing(catalog, vec):
    catalog.upsert(_doc(description="old"), vec(1.0))
    catalog.upsert(_doc(description="new"), vec(0.0, 1.0))
    assert catalog.count() == 1
    assert catalog.get("OVERVIEW").description == "new"
    assert catalog.find_similar(vec(1.0), 0.9, 3) == []
    assert [d.function_code for d, _ in catalog.find_similar(vec(0.0, 1.0), 0.9, 3)] == ["OVERVIEW"]


def test_find_similar_best_first_with_threshold(catalog, vec):
    catalog.upsert(_doc("OVERVIEW"), vec(1.0, 0.3))
    catalog.upsert(_doc("GLOBAL_QUOTE"), vec(1.0))
    catalog.upsert(_doc("WTI", required=[]), vec(0.0, 0.0, 1.0))

    hits = catalog.find_similar(vec(1.0), 0.7, 3)
    assert [d.function_code for d, _ in hits] == ["GLOBAL_QUOTE", "OVERVIEW"]
    assert hits[0][1] >= hits[1][1]


def test_get_missing(catalog):
    assert catalog.get("NOPE") is None


def test_dimension_mismatch(catalog):
    with pytest.raises(EmbeddingDimensionMismatch):
        catalog.upsert(_doc(), [1.0, 0.0])
    with pytest.raises(EmbeddingDimensionMismatch):
        catalog.find_similar([1.0], 0.5, 3)


def test_existing_index_dimension_wins_over_config(tmp_db, catalog):
    drifted = ApiCatalog(tmp_db, TEST_MODEL, 8)
    assert drifted.dimensions == TEST_DIMS
    with pytest.raises(EmbeddingDimensionMismatch):
        drifted.find_similar([1.0] + [0.0] * 7, 0.0, 3)
