"""Tests for the shipped market-data function catalog."""

from __future__ import annotations

import pytest

from folio.db.api_catalog import ApiCatalog
from folio.market.catalog import HIGH_PRIORITY_FUNCTIONS, index_catalog, load_catalog, takes_symbol

from conftest import TEST_DIMS, TEST_MODEL


def test_load_catalog_entries_well_formed():
    catalog = load_catalog()
    assert len(catalog) >= 30
    for code, doc in catalog.items():
        assert doc.function_code == code
        assert doc.description
        assert doc.return_data, code
        assert doc.priority in ("HIGH", "LOW")


def test_load_catalog_priorities():
    catalog = load_catalog()
    assert catalog["OVERVIEW"].priority == "HIGH"
    assert catalog["WTI"].priority == "LOW"
    assert HIGH_PRIORITY_FUNCTIONS <= set(catalog)


def test_currency_exchange_requires_both_currencies():
    doc = load_catalog()["CURRENCY_EXCHANGE_RATE"]
    assert doc.required_parameters == ["from_currency", "to_currency"]


@pytest.mark.parametrize(
    "code, expected",
    [
        ("OVERVIEW", True),
        ("GLOBAL_QUOTE", True),
        ("CURRENCY_EXCHANGE_RATE", False),
        ("FX_DAILY", False),
        ("DIGITAL_CURRENCY_DAILY", False),
        ("REAL_GDP", False),
        ("SYMBOL_SEARCH", False),
    ],
)
def test_takes_symbol(code, expected):
    assert takes_symbol(code) is expected


def test_index_catalog_embeds_every_entry(tmp_db, fake_embedder):
    store = ApiCatalog(tmp_db, TEST_MODEL, TEST_DIMS)
    n = index_catalog(store, fake_embedder)
    assert n == len(load_catalog()) == store.count()
    assert load_catalog()["OVERVIEW"].embedding_text in fake_embedder.calls


def test_index_catalog_is_idempotent(tmp_db, fake_embedder):
    store = ApiCatalog(tmp_db, TEST_MODEL, TEST_DIMS)
    index_catalog(store, fake_embedder)
    index_catalog(store, fake_embedder)
    assert store.count() == len(load_catalog())
