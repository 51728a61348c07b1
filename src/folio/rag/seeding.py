"""Curated business rules and join semantics for the context store.

Seeded with ``upsert_by_source_name`` so re-running the seed replaces each rule
in place instead of duplicating it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from folio.db.context_store import ContextStore
from folio.db.models import ContentType, ContextRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedRule:
    source_name: str
    content_type: ContentType
    text: str


DEFAULT_RULES: tuple[SeedRule, ...] = (
    SeedRule(
        "portfolio_summary_definition",
        ContentType.PORTFOLIO_SUMMARY,
        "The portfolio_summary table holds one row per holding: ticker, company_name, "
        "total_quantity (shares owned), average_cost_basis, current_price, "
        "total_cost_basis_value, market_value, pnl_dollar, pnl_percent, portfolio_percent "
        "and type ('stock', 'etf' or 'cash'). Cash is a row with type = 'cash'.",
    ),
    SeedRule(
        "portfolio_value_rules",
        ContentType.BUSINESS_RULE,
        "Portfolio value rules: market_value = total_quantity * current_price. Total "
        "portfolio value is SUM(market_value) over all rows including cash. "
        "portfolio_percent is each holding's share of that total, already a percentage.",
    ),
    SeedRule(
        "pnl_calculation_rules",
        ContentType.BUSINESS_RULE,
        "P&L rules: pnl_dollar = market_value - total_cost_basis_value. pnl_percent is "
        "already a percentage, never multiply it by 100. Overall P&L percentage is "
        "SUM(pnl_dollar) / SUM(total_cost_basis_value) * 100, not AVG(pnl_percent). Best "
        "performers sort by pnl_dollar DESC, worst performers by pnl_dollar ASC.",
    ),
    SeedRule(
        "holding_lookup_rules",
        ContentType.RELATIONSHIP,
        "Holding lookup: a 2-5 letter uppercase token is a ticker and matches the ticker "
        "column exactly. Anything else is a company name and matches company_name with a "
        "case-insensitive LIKE '%name%'. Asset classes use exact matches on type.",
    ),
    SeedRule(
        "asset_allocation_rules",
        ContentType.BUSINESS_RULE,
        "Asset allocation: group by type and SUM(market_value) to compare stocks, ETFs and "
        "cash. Concentration questions sort holdings by portfolio_percent DESC.",
    ),
)


def seed_rules(store: ContextStore, rules: tuple[SeedRule, ...] = DEFAULT_RULES) -> int:
    """Upsert *rules* into *store*. Returns the number written."""
    for rule in rules:
        store.upsert_by_source_name(
            ContextRecord(
                content_type=rule.content_type,
                text_content=rule.text,
                source_name=rule.source_name,
                metadata={"origin": "seed"},
            )
        )
        logger.debug("Seeded rule %s", rule.source_name)
    logger.info("Seeded %d context rules", len(rules))
    return len(rules)
