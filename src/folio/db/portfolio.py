"""Read-only access to the portfolio_summary relation.

The relation is maintained by an external loader. The pipeline only reaches it
through ``PortfolioStore.execute_sql``, which re-checks that the statement is a
single SELECT and runs it on a read-only connection whose authorizer denies
everything except reads of the configured relation.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from folio.db.models import PortfolioPosition
from folio.errors import ExecutionRejected, QueryFailed

logger = logging.getLogger(__name__)

PORTFOLIO_COLUMNS: tuple[str, ...] = (
    "ticker",
    "company_name",
    "total_quantity",
    "average_cost_basis",
    "current_price",
    "total_cost_basis_value",
    "market_value",
    "pnl_dollar",
    "pnl_percent",
    "portfolio_percent",
    "type",
    "last_updated",
)

PORTFOLIO_DDL = """
CREATE TABLE IF NOT EXISTS portfolio_summary (
    ticker                  TEXT NOT NULL,
    company_name            TEXT NOT NULL,
    total_quantity          REAL NOT NULL,
    average_cost_basis      REAL NOT NULL,
    current_price           REAL NOT NULL,
    total_cost_basis_value  REAL NOT NULL,
    market_value            REAL NOT NULL,
    pnl_dollar              REAL NOT NULL,
    pnl_percent             REAL NOT NULL,
    portfolio_percent       REAL NOT NULL,
    type                    TEXT NOT NULL CHECK (type IN ('stock', 'etf', 'cash')),
    last_updated            DATETIME
)
"""

_SELECT_RE = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_LINE_COMMENT_RE = re.compile(r"--[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")


def is_select_only(sql: str) -> bool:
    """True when *sql* is exactly one SELECT statement (one trailing ``;`` allowed)."""
    stripped = _BLOCK_COMMENT_RE.sub(" ", _LINE_COMMENT_RE.sub(" ", sql)).strip()
    if stripped.endswith(";"):
        stripped = stripped[:-1].rstrip()
    if not _SELECT_RE.match(stripped):
        return False
    # Separators inside string literals don't start a new statement.
    return ";" not in _STRING_LITERAL_RE.sub("''", stripped)


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


class PortfolioStore:
    """Executes validated SELECT statements against the portfolio database."""

    def __init__(self, db_path: Path | str, relation: str = "portfolio_summary") -> None:
        self.db_path = Path(db_path)
        self.relation = relation

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(f"file:{self.db_path.as_posix()}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        conn.set_authorizer(self._authorize)
        return conn

    def _authorize(self, action: int, arg1: str | None, arg2: str | None, *_: object) -> int:
        if action == sqlite3.SQLITE_SELECT:
            return sqlite3.SQLITE_OK
        if action == sqlite3.SQLITE_FUNCTION:
            return sqlite3.SQLITE_OK
        if action == sqlite3.SQLITE_READ and arg1 == self.relation:
            return sqlite3.SQLITE_OK
        return sqlite3.SQLITE_DENY

    def execute_sql(self, sql: str) -> list[dict[str, Any]]:
        """Run *sql* and return its rows as dicts (possibly empty).

        Raises:
            ExecutionRejected: *sql* is not a single SELECT.
            QueryFailed: The datastore raised (bad column, denied relation, ...).
        """
        if not is_select_only(sql):
            raise ExecutionRejected(f"Only single SELECT statements may run: {sql!r}")

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise QueryFailed(f"Cannot open portfolio database: {exc}") from exc
        try:
            rows = conn.execute(sql).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Portfolio query failed: %s (sql=%s)", exc, sql)
            raise QueryFailed(str(exc)) from exc
        finally:
            conn.close()
        return [dict(r) for r in rows]


# ------------------------------------------------------------------
# Fixture helpers (the pipeline never writes positions)
# ------------------------------------------------------------------


def make_position(
    ticker: str,
    company_name: str,
    total_quantity: float,
    average_cost_basis: float,
    current_price: float,
    type: str = "stock",
    portfolio_percent: float = 0.0,
    last_updated: str | None = None,
) -> PortfolioPosition:
    """Build a position whose derived fields satisfy the relation's invariants."""
    market_value = round(total_quantity * current_price, 2)
    cost_value = round(total_quantity * average_cost_basis, 2)
    pnl_dollar = round(market_value - cost_value, 2)
    pnl_percent = round(pnl_dollar / cost_value * 100, 2) if cost_value else 0.0
    return PortfolioPosition(
        ticker=ticker,
        company_name=company_name,
        total_quantity=total_quantity,
        average_cost_basis=average_cost_basis,
        current_price=current_price,
        total_cost_basis_value=cost_value,
        market_value=market_value,
        pnl_dollar=pnl_dollar,
        pnl_percent=pnl_percent,
        portfolio_percent=portfolio_percent,
        type=type,
        last_updated=last_updated,
    )


def create_portfolio_db(db_path: Path | str, positions: Iterable[PortfolioPosition]) -> None:
    """Create (or replace the contents of) a portfolio database file."""
    conn = sqlite3.connect(db_path)
    try:
        with conn:
            conn.execute(PORTFOLIO_DDL)
            conn.execute("DELETE FROM portfolio_summary")
            placeholders = ", ".join("?" * len(PORTFOLIO_COLUMNS))
            conn.executemany(
                f"INSERT INTO portfolio_summary ({', '.join(PORTFOLIO_COLUMNS)}) "
                f"VALUES ({placeholders})",
                [tuple(getattr(p, c) for c in PORTFOLIO_COLUMNS) for p in positions],
            )
    finally:
        conn.close()
