"""Tests for seeding curated business rules."""

from __future__ import annotations

import pytest

from folio.db.context_store import ContextStore
from folio.db.models import ContentType
from folio.rag.seeding import DEFAULT_RULES, SeedRule, seed_rules

from conftest import TEST_MODEL


@pytest.fixture
def store(tmp_db, fake_embedder):
    return ContextStore(tmp_db, fake_embedder, TEST_MODEL)


def test_seed_rules_writes_every_rule(store):
    assert seed_rules(store) == len(DEFAULT_RULES)
    assert store.count() == len(DEFAULT_RULES)
    rec = store.get_by_source_name("pnl_calculation_rules")
    assert rec.content_type is ContentType.BUSINESS_RULE
    assert rec.metadata["origin"] == "seed"
    assert rec.answer is None


def test_seed_rules_is_idempotent(store):
    seed_rules(store)
    ids = {r.source_name: store.get_by_source_name(r.source_name).id for r in DEFAULT_RULES}
    seed_rules(store)
    assert store.count() == len(DEFAULT_RULES)
    assert {r.source_name: store.get_by_source_name(r.source_name).id for r in DEFAULT_RULES} == ids


def test_seed_rules_updates_text(store):
    seed_rules(store, (SeedRule("cash_rule", ContentType.BUSINESS_RULE, "v1"),))
    seed_rules(store, (SeedRule("cash_rule", ContentType.BUSINESS_RULE, "v2"),))
    assert store.get_by_source_name("cash_rule").text_content == "v2"


def test_default_rule_names_unique():
    names = [r.source_name for r in DEFAULT_RULES]
    assert len(names) == len(set(names))
