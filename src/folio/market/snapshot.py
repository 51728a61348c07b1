"""Quote + overview snapshot for one ticker, used to ground generic answers."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from folio.formatting import (
    format_billions,
    format_currency,
    format_percent,
    format_ratio_as_percent,
)
from folio.market.client import OUTCOME_ERROR, FetchOutcome, MarketDataClient
from folio.rag.resolution import CancelToken, checkpoint

logger = logging.getLogger(__name__)

_DESCRIPTION_CHARS = 200


def _present(value: object) -> bool:
    return value is not None and str(value).strip() not in ("", "None", "-")


def quote_lines(ticker: str, outcome: FetchOutcome) -> list[str]:
    if outcome.kind == OUTCOME_ERROR:
        reason = outcome.error.message if outcome.error else "unknown error"
        return [f"Error fetching price for {ticker}: {reason}"]
    quote = outcome.payload.get("Global Quote") or {}
    if not quote:
        if outcome.advisory_text:
            return [f"Could not fetch price for {ticker}: {outcome.advisory_text}"]
        return [f"Price data not found for {ticker}."]

    symbol = quote.get("01. symbol", ticker)
    lines = []
    if _present(quote.get("05. price")):
        lines.append(f"Current price for {symbol}: {format_currency(quote['05. price'])}")
    if _present(quote.get("08. previous close")):
        lines.append(f"Previous close: {format_currency(quote['08. previous close'])}")
    if _present(quote.get("10. change percent")):
        lines.append(f"Change percent: {format_percent(quote['10. change percent'])}")
    return lines or [f"Price data not found for {ticker}."]


def overview_lines(ticker: str, outcome: FetchOutcome) -> list[str]:
    if outcome.kind == OUTCOME_ERROR:
        reason = outcome.error.message if outcome.error else "unknown error"
        return [f"Error fetching overview for {ticker}: {reason}"]
    data = outcome.payload
    if not data.get("Symbol"):
        if outcome.advisory_text:
            return [f"Could not fetch overview for {ticker}: {outcome.advisory_text}"]
        return [f"Overview data not found for {ticker}."]

    lines = [f"Company: {data.get('Name', ticker)} ({data['Symbol']})"]
    if _present(data.get("PERatio")):
        lines.append(f"P/E ratio: {data['PERatio']}")
    if _present(data.get("MarketCapitalization")):
        lines.append(f"Market cap: {format_billions(data['MarketCapitalization'])}")
    if _present(data.get("EPS")):
        lines.append(f"EPS: {data['EPS']}")
    if _present(data.get("DividendYield")):
        lines.append(f"Dividend yield: {format_ratio_as_percent(data['DividendYield'])}")
    if _present(data.get("52WeekHigh")) and _present(data.get("52WeekLow")):
        lines.append(f"52-week range: {data['52WeekLow']} - {data['52WeekHigh']}")
    if _present(data.get("Description")):
        description = str(data["Description"])
        if len(description) > _DESCRIPTION_CHARS:
            description = description[:_DESCRIPTION_CHARS] + "..."
        lines.append(f"Description: {description}")
    return lines


def fetch_snapshot(
    client: MarketDataClient, ticker: str, cancel: CancelToken | None = None
) -> list[str]:
    """Fetch GLOBAL_QUOTE and OVERVIEW concurrently and render snapshot lines.

    Each sub-fetch reports its own error or note line; neither failure hides
    the other's data.
    """
    checkpoint(cancel, "snapshot fetch")
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="snapshot") as pool:
        quote_future = pool.submit(client.fetch, "GLOBAL_QUOTE", {"symbol": ticker})
        overview_future = pool.submit(client.fetch, "OVERVIEW", {"symbol": ticker})
        quote, overview = quote_future.result(), overview_future.result()
    checkpoint(cancel, "snapshot fetch")

    lines = quote_lines(ticker, quote) + overview_lines(ticker, overview)
    logger.debug("Snapshot for %s: %d lines", ticker, len(lines))
    return lines
