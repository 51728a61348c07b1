"""Static catalog of market-data API functions shipped as package data.

The catalog is the allow-list for fetches: a function absent from it is never
called. ``index_catalog`` embeds every entry into the vector-indexed
``ApiCatalog`` so the resolver can find candidates by similarity.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from importlib import resources

from folio.db.api_catalog import ApiCatalog
from folio.db.models import ApiFunctionDoc
from folio.rag.embedder import Embedder

logger = logging.getLogger(__name__)

HIGH_PRIORITY_FUNCTIONS: frozenset[str] = frozenset(
    [
        "TIME_SERIES_DAILY",
        "NEWS_SENTIMENT",
        "OVERVIEW",
        "DIVIDENDS",
        "CASH_FLOW",
        "INCOME_STATEMENT",
        "BALANCE_SHEET",
        "CURRENCY_EXCHANGE_RATE",
    ]
)

# Functions that never take a user's stock symbol even when one was resolved.
_NO_SYMBOL_FUNCTIONS: frozenset[str] = frozenset(
    [
        "MARKET_STATUS",
        "SYMBOL_SEARCH",
        "CURRENCY_EXCHANGE_RATE",
        "TOP_GAINERS_LOSERS",
        "EARNINGS_CALENDAR",
        "IPO_CALENDAR",
        "REAL_GDP",
        "CPI",
        "INFLATION",
        "RETAIL_SALES",
        "DURABLES",
        "UNEMPLOYMENT",
        "NONFARM_PAYROLL",
        "TREASURY_YIELD",
        "FEDERAL_FUNDS_RATE",
        "ALL_COMMODITIES",
        "WTI",
        "BRENT",
        "NATURAL_GAS",
        "COPPER",
        "ALUMINUM",
        "WHEAT",
        "CORN",
        "COTTON",
        "SUGAR",
        "COFFEE",
    ]
)


def takes_symbol(function_code: str) -> bool:
    """True when a resolved stock ticker should be injected as ``symbol``."""
    return not (
        function_code in _NO_SYMBOL_FUNCTIONS
        or function_code.startswith("FX_")
        or function_code.startswith("DIGITAL_CURRENCY_")
    )


@lru_cache(maxsize=1)
def load_catalog() -> dict[str, ApiFunctionDoc]:
    """Return the shipped catalog keyed by function_code."""
    raw = json.loads(
        resources.files("folio.market").joinpath("functions.json").read_text(encoding="utf-8")
    )
    catalog: dict[str, ApiFunctionDoc] = {}
    for entry in raw:
        code = entry["function_code"]
        catalog[code] = ApiFunctionDoc(
            function_code=code,
            function_name=entry.get("function_name", code),
            category=entry.get("category", ""),
            description=entry["description"],
            required_parameters=list(entry.get("required_parameters", [])),
            optional_parameters=list(entry.get("optional_parameters", [])),
            return_data=list(entry.get("return_data", [])),
            priority="HIGH" if code in HIGH_PRIORITY_FUNCTIONS else "LOW",
        )
    return catalog


def index_catalog(store: ApiCatalog, embedder: Embedder) -> int:
    """Embed and upsert every catalog entry. Returns the number indexed.

    Stops at the first embedding failure; entries already written stay.
    """
    docs = load_catalog()
    for doc in docs.values():
        store.upsert(doc, embedder.embed(doc.embedding_text))
        logger.debug("Indexed %s (%s)", doc.function_code, doc.priority)
    logger.info("Indexed %d market-data functions", len(docs))
    return len(docs)
