"""Ticker extraction strategies.

Two interchangeable strategies sit behind ``TickerResolver``:

- ``RegexTickerExtractor``: free, but treats any short uppercase token as a
  ticker (``PE``, ``CEO``, ``ETF``).
- ``LlmTickerResolver``: maps company names to tickers and rejects
  acronyms that are not companies, at the cost of one LLM call.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from folio.rag.llm_client import LlmClient

logger = logging.getLogger(__name__)

_TICKER_TOKEN_RE = re.compile(r"\b[A-Z]{2,5}\b")
_VALID_TICKER_RE = re.compile(r"[A-Z]{1,5}")

_LLM_SYSTEM_PROMPT = (
    "You are an assistant that extracts stock ticker symbols from user financial "
    "queries. Respond with only the ticker symbol (e.g., AAPL, MSFT, TSLA). If a "
    "company name is given, provide its most common stock ticker. If no ticker or "
    'company is found, or if an acronym like "PE" or "CEO" is mentioned but is not a '
    "company/ticker in context, respond with NULL."
)


def is_valid_ticker(term: str) -> bool:
    """A 1-5 letter uppercase symbol, safe to send to the market-data API."""
    return _VALID_TICKER_RE.fullmatch(term) is not None


class TickerResolver(Protocol):
    def resolve(self, user_query: str) -> str | None: ...


class RegexTickerExtractor:
    """First 2-5 letter uppercase token in the query."""

    def __init__(self, stopwords: frozenset[str] = frozenset()) -> None:
        self._stopwords = stopwords

    def resolve(self, user_query: str) -> str | None:
        for match in _TICKER_TOKEN_RE.finditer(user_query):
            token = match.group(0)
            if token not in self._stopwords:
                return token
        return None


class LlmTickerResolver:
    """Asks the LLM for a ticker; answers ``NULL`` when none is meant."""

    def __init__(self, llm: LlmClient) -> None:
        self._llm = llm

    def resolve(self, user_query: str) -> str | None:
        try:
            raw = self._llm.ask(_LLM_SYSTEM_PROMPT, user_query, temperature=0.0, max_tokens=10)
        except Exception as exc:
            # Ticker resolution is best effort; callers proceed without one.
            logger.warning("Ticker resolution failed for %r: %s", user_query, exc)
            return None

        candidate = raw.strip().strip(".'\"`").upper()
        if candidate == "NULL" or not is_valid_ticker(candidate):
            return None
        logger.debug("Resolved ticker %s for %r", candidate, user_query)
        return candidate


def build_ticker_resolver(strategy: str, llm: LlmClient) -> TickerResolver:
    if strategy == "regex":
        return RegexTickerExtractor()
    if strategy == "llm":
        return LlmTickerResolver(llm)
    raise ValueError(f"Unknown ticker strategy '{strategy}', expected 'llm' or 'regex'")
