"""SQL synthesis: natural-language question → constrained SELECT on portfolio_summary.

The LLM is told the relation, its column semantics and the ranking/matching
conventions. Its output is cleaned (code fences, one trailing semicolon) and
must be a single SELECT or the exact sentinel ``UNANSWERABLE``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from folio.db.portfolio import PortfolioStore, is_select_only
from folio.errors import ExecutionRejected, NoData, SynthesisRejected
from folio.rag.llm_client import LlmClient

logger = logging.getLogger(__name__)

UNANSWERABLE = "UNANSWERABLE"

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")

_SYSTEM_PROMPT = """\
You are an expert SQL generator for portfolio analysis. Translate the user's question \
into one SQL SELECT query for a single table.

Database Schema:
Table Name: {relation}
Columns:
- ticker: TEXT (Stock ticker symbol)
- company_name: TEXT (Name of the company)
- total_quantity: NUMERIC (Number of shares owned)
- average_cost_basis: NUMERIC (Average purchase price per share)
- current_price: NUMERIC (Latest market price per share)
- total_cost_basis_value: NUMERIC (total_quantity * average_cost_basis)
- market_value: NUMERIC (total_quantity * current_price)
- pnl_dollar: NUMERIC (market_value - total_cost_basis_value)
- pnl_percent: NUMERIC (already a percentage, do not multiply by 100)
- portfolio_percent: NUMERIC (market_value / total portfolio value, as a percentage)
- type: TEXT (asset type: 'stock', 'etf' or 'cash')
- last_updated: TIMESTAMP (when the row was last refreshed)

Constraints:
1. ONLY generate a SELECT query. Never INSERT, UPDATE, DELETE, DROP or any other statement.
2. ONLY query the '{relation}' table. Do not refer to any other table.
3. The SQL must be valid for SQLite.
4. If the question cannot be answered with a SELECT on '{relation}', respond ONLY with \
the exact text {sentinel}
5. For "how many" shares of a holding, select total_quantity. Do not use COUNT(*).
6. For losses or worst performing holdings use ORDER BY pnl_dollar ASC.
7. For gains or best performing holdings use ORDER BY pnl_dollar DESC.
8. When the user refers to a specific company:
   a. If it is a ticker symbol (2-5 uppercase letters, e.g. AAPL, MSFT) use an exact \
match on ticker.
   b. Otherwise (e.g. Apple, Microsoft) use company_name LIKE '%name%' (case-insensitive).
9. For asset types (stocks, ETFs, cash) use exact matches on type.

Respond with the SQL only: no explanation, no markdown.

Examples:
- "What's the overall performance of my stocks?" ->
SELECT SUM(market_value) AS total_market_value, SUM(pnl_dollar) AS total_pnl_dollar, \
AVG(pnl_percent) AS avg_pnl_percent, COUNT(*) AS num_holdings FROM {relation} WHERE type = 'stock'
- "Tell me about my ETF investments" ->
SELECT ticker, company_name, market_value, pnl_dollar, pnl_percent, portfolio_percent \
FROM {relation} WHERE type = 'etf' ORDER BY market_value DESC
- "What's my cash position?" ->
SELECT ticker, company_name, market_value, pnl_dollar, pnl_percent, portfolio_percent \
FROM {relation} WHERE type = 'cash'
"""


def clean_sql(text: str) -> str:
    """Strip code fences, surrounding whitespace and one trailing semicolon."""
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1].rstrip()
    return cleaned


class SqlSynthesizer:
    """Generates and executes portfolio SELECTs."""

    def __init__(self, llm: LlmClient, store: PortfolioStore) -> None:
        self._llm = llm
        self._store = store
        self._system_prompt = _SYSTEM_PROMPT.format(
            relation=store.relation, sentinel=UNANSWERABLE
        )

    def synthesize(self, user_query: str) -> str:
        """Return a single SELECT statement or the ``UNANSWERABLE`` sentinel.

        Raises:
            SynthesisRejected: The LLM call failed or produced anything else.
        """
        try:
            raw = self._llm.ask(self._system_prompt, user_query, temperature=0.1)
        except Exception as exc:
            raise SynthesisRejected(f"SQL generation call failed: {exc}") from exc

        sql = clean_sql(raw)
        if sql.strip("'\"`.").upper() == UNANSWERABLE:
            return UNANSWERABLE
        if not is_select_only(sql):
            raise SynthesisRejected(f"Generated text is not a single SELECT: {sql[:200]!r}")
        logger.debug("Synthesized SQL for %r: %s", user_query, sql)
        return sql

    def execute(self, sql: str) -> list[dict[str, Any]]:
        """Run *sql* and return its rows.

        Raises:
            ExecutionRejected: *sql* fails the SELECT-only check.
            QueryFailed: The datastore raised.
            NoData: The query returned zero rows.
        """
        if sql == UNANSWERABLE or not is_select_only(sql):
            raise ExecutionRejected(f"Refusing to execute: {sql[:200]!r}")
        rows = self._store.execute_sql(sql)
        if not rows:
            raise NoData(sql)
        return rows
