"""Query router: SQL → retrieval → external market data → generic answer.

A question is embedded once. The embedding keys the response cache, drives
context retrieval and finds candidate market-data functions. The first path
that produces a formatted answer wins; every other outcome (unanswerable SQL,
zero rows, no retrieval hit, no matching function, phase failure) falls
through to the next path.

Answers are persisted as question/answer context records unless a near
duplicate (cache threshold) already exists, in which case the stored answer
may be served instead. Failed attempts and error explanations are never
persisted.

Known limitation: cached answers go stale. The cache is checked before the
SQL path runs and entries carry no expiry, so a repeated question keeps
returning the stored answer after the portfolio or market data has changed.
Set ``retrieval.reuse_cached_answers: false`` to always answer fresh.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import Literal

from pydantic import BaseModel

from folio.config import FolioConfig, RetrievalCfg
from folio.db.api_catalog import ApiCatalog
from folio.db.context_store import ContextStore
from folio.db.models import ContentType, ContextRecord, utc_timestamp
from folio.db.portfolio import PortfolioStore
from folio.errors import (
    DuplicateKey,
    EmbeddingDimensionMismatch,
    EmbeddingUnavailable,
    ExecutionRejected,
    FormattingFailed,
    NoData,
    NoFunctionDetermined,
    ParseError,
    QueryFailed,
    SynthesisRejected,
)
from folio.market.client import MarketDataClient, api_key_from_env
from folio.market.resolver import MarketDataResolver
from folio.market.snapshot import fetch_snapshot
from folio.rag import messages
from folio.rag.answer_formatter import (
    SOURCE_RETRIEVAL,
    SOURCE_SQL,
    AnswerFormatter,
    to_plain_text,
)
from folio.rag.embedder import Embedder
from folio.rag.llm_client import LlmClient, parse_llm_json
from folio.rag.resolution import CancelToken, QueryResolution, ResolutionPath, checkpoint
from folio.rag.sql_synthesis import UNANSWERABLE, SqlSynthesizer
from folio.rag.tickers import TickerResolver, build_ticker_resolver, is_valid_ticker

__all__ = ["CancelToken", "QueryRouter", "build_router"]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Generic path prompts
# ------------------------------------------------------------------


class IntentClassification(BaseModel):
    intent: Literal["generic_finance_explanation", "specific_data_lookup", "unknown_or_general_chat"]
    ticker: str | None = None
    data_type: Literal["price", "pe_ratio", "market_cap", "overview"] | None = None


_UNKNOWN_INTENT = IntentClassification(intent="unknown_or_general_chat")

_INTENT_PROMPT = """\
You are an AI assistant that analyzes user queries about finance. Classify the user's \
intent and extract the ticker if the query is about specific stock data.
Respond ONLY with a JSON object in one of these forms:
- General finance question (e.g. "what is a PE ratio?", "explain inflation"):
  {"intent": "generic_finance_explanation"}
- Specific data about a stock (e.g. "price of AAPL", "market cap for GOOG"):
  {"intent": "specific_data_lookup", "ticker": "TICKER", "data_type": "price|pe_ratio|market_cap|overview"}
- Anything else, or when the ticker is ambiguous:
  {"intent": "unknown_or_general_chat"}
For "what is the PE ratio of Apple?" the ticker is "AAPL". If you cannot confidently \
identify a standard ticker for a data lookup, use "unknown_or_general_chat"."""

_GENERIC_PROMPT = """\
You are a helpful AI assistant and also act as a financial analyst when asked about \
market topics. The user's question was NOT answerable from their personal portfolio data.

IMPORTANT LIMITATION: You DO NOT have access to real-time data (current prices, live \
ratios, today's news) beyond the snapshot below.

Market data snapshot (if any):
---
{snapshot}
---

If the snapshot answers the query, present it clearly. If it shows an error, an API limit \
or missing data, acknowledge that limitation and give general context instead. For general \
questions (e.g. "explain what a PE ratio is") give a concise, expert explanation.
Do not use markdown or HTML. Start list lines with "* "."""

_NO_SNAPSHOT = "No market data was retrieved for this query."


class QueryRouter:
    """Resolves one question at a time through the fallback chain."""

    def __init__(
        self,
        *,
        embedder: Embedder,
        context_store: ContextStore,
        sql: SqlSynthesizer,
        formatter: AnswerFormatter,
        llm: LlmClient,
        market: MarketDataResolver | None = None,
        snapshot_client: MarketDataClient | None = None,
        retrieval: RetrievalCfg | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = context_store
        self._sql = sql
        self._formatter = formatter
        self._llm = llm
        self._market = market
        self._snapshot_client = snapshot_client
        self._cfg = retrieval or RetrievalCfg()

    def ask(self, user_query: str, cancel: CancelToken | None = None) -> QueryResolution:
        """Resolve *user_query* and return the final resolution.

        Raises:
            QueryCancelled: *cancel* fired; nothing was persisted.
        """
        query = user_query.strip()
        if not query:
            return QueryResolution(user_query=user_query, final_answer=messages.EMPTY_QUERY_MESSAGE)

        res = QueryResolution(user_query=query)
        res = self._embed(res, cancel)

        cached = self._cached_answer(res)
        if cached is not None:
            return cached

        cacheable = True
        res = self._try_sql(res, cancel)
        if not res.is_answered:
            res = self._try_retrieval(res, cancel)
        if not res.is_answered:
            res, cacheable = self._try_external(res, cancel)
        if not res.is_answered:
            res, cacheable = self._generic(res, cancel)

        checkpoint(cancel, "persist")
        if cacheable:
            res = self._persist(res)
        return res

    # ------------------------------------------------------------------
    # Embedding + cache
    # ------------------------------------------------------------------

    def _embed(self, res: QueryResolution, cancel: CancelToken | None) -> QueryResolution:
        checkpoint(cancel, "embedding")
        try:
            vector = self._embedder.embed(res.user_query)
        except (EmbeddingUnavailable, EmbeddingDimensionMismatch) as exc:
            logger.warning("Embedding failed for %r: %s", res.user_query, exc)
            return res.with_error("embedding", str(exc))
        checkpoint(cancel, "embedding")
        if len(vector) != self._store.dimensions:
            # Index built for another size: cache, retrieval and market data are unusable.
            exc = EmbeddingDimensionMismatch(self._store.dimensions, len(vector))
            logger.warning("Embedding does not fit the context index for %r: %s", res.user_query, exc)
            return res.with_error("embedding", str(exc))
        return replace(res, query_embedding=vector)

    def _find_cached(self, res: QueryResolution) -> ContextRecord | None:
        if res.query_embedding is None:
            return None
        hits = self._store.find_similar(
            res.query_embedding, self._cfg.cache_threshold, max(self._cfg.limit, 1)
        )
        # Seeded rules carry no answer and never count as cache entries.
        for record, _ in hits:
            if record.answer is not None:
                return record
        return None

    def _cached_answer(self, res: QueryResolution) -> QueryResolution | None:
        if not self._cfg.reuse_cached_answers:
            return None
        record = self._find_cached(res)
        if record is None:
            return None
        logger.info("Serving cached answer for %r (record %s)", res.user_query, record.id)
        return res.answered(
            _path_of(record),
            record.answer,
            cached=True,
            sql_query=record.sql_query,
        )

    def _persist(self, res: QueryResolution) -> QueryResolution:
        if res.query_embedding is None or res.final_answer is None or res.path is None:
            return res

        existing = self._find_cached(res)
        if existing is not None:
            logger.debug("Near-duplicate of %s exists; not persisting", existing.id)
            if self._cfg.reuse_cached_answers and existing.answer:
                return replace(res, final_answer=existing.answer, cached=True)
            return res

        metadata: dict = {
            "answer": res.final_answer,
            "path": res.path.value,
            "timestamp": utc_timestamp(),
        }
        if isinstance(res.raw_result, list):
            metadata["result_count"] = len(res.raw_result)
        if res.matched_function:
            metadata["function"] = res.matched_function

        record = ContextRecord(
            content_type=ContentType.SQL_QUERY if res.sql_query else ContentType.DIRECT_ANSWER,
            text_content=res.user_query,
            sql_query=res.sql_query,
            metadata=metadata,
        )
        try:
            self._store.insert(record, embedding=res.query_embedding)
        except (DuplicateKey, EmbeddingDimensionMismatch, sqlite3.Error) as exc:
            logger.warning("Could not persist answer for %r: %s", res.user_query, exc)
            return res.with_error("persist", str(exc))
        return replace(res, persisted=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _try_sql(self, res: QueryResolution, cancel: CancelToken | None) -> QueryResolution:
        checkpoint(cancel, "sql synthesis")
        try:
            sql = self._sql.synthesize(res.user_query)
            checkpoint(cancel, "sql synthesis")
            if sql == UNANSWERABLE:
                logger.debug("SQL path: unanswerable for %r", res.user_query)
                return res
            rows = self._sql.execute(sql)
            checkpoint(cancel, "sql formatting")
            answer = self._formatter.format(res.user_query, rows, SOURCE_SQL)
            checkpoint(cancel, "sql formatting")
        except NoData:
            logger.debug("SQL path: no rows for %r", res.user_query)
            return res
        except (SynthesisRejected, ExecutionRejected, QueryFailed, FormattingFailed) as exc:
            logger.warning("SQL path failed for %r: %s", res.user_query, exc)
            return res.with_error("sql", str(exc))
        return res.answered(ResolutionPath.SQL, answer, sql_query=sql, raw_result=rows)

    def _try_retrieval(self, res: QueryResolution, cancel: CancelToken | None) -> QueryResolution:
        if res.query_embedding is None:
            return res
        hits = self._store.find_similar(
            res.query_embedding, self._cfg.threshold, self._cfg.limit
        )
        if not hits:
            logger.debug("Retrieval path: no hit above %.2f for %r", self._cfg.threshold, res.user_query)
            return res
        checkpoint(cancel, "retrieval formatting")
        try:
            answer = self._formatter.format(res.user_query, hits, SOURCE_RETRIEVAL)
        except FormattingFailed as exc:
            return res.with_error("retrieval", str(exc))
        checkpoint(cancel, "retrieval formatting")
        return res.answered(ResolutionPath.VECTOR_RETRIEVAL, answer, raw_result=hits)

    def _try_external(
        self, res: QueryResolution, cancel: CancelToken | None
    ) -> tuple[QueryResolution, bool]:
        if self._market is None or res.query_embedding is None:
            return res, False
        try:
            result = self._market.resolve(res.user_query, res.query_embedding, cancel)
        except (NoFunctionDetermined, FormattingFailed, EmbeddingDimensionMismatch) as exc:
            logger.warning("External path failed for %r: %s", res.user_query, exc)
            return res.with_error("external-api", str(exc)), False
        res = res.answered(
            ResolutionPath.EXTERNAL_API,
            result.answer,
            matched_function=result.function_code,
            extracted_parameters=result.parameters,
            raw_result=result.outcome.payload if result.outcome else None,
        )
        return res, result.cacheable

    def _generic(
        self, res: QueryResolution, cancel: CancelToken | None
    ) -> tuple[QueryResolution, bool]:
        intent = self._classify(res.user_query, cancel)
        ticker = (intent.ticker or "").strip().upper()
        snapshot = _NO_SNAPSHOT
        if (
            intent.intent == "specific_data_lookup"
            and is_valid_ticker(ticker)
            and self._snapshot_client is not None
        ):
            snapshot = "\n".join(fetch_snapshot(self._snapshot_client, ticker, cancel))
        elif ticker:
            logger.debug("Ignoring ticker %r from intent classification", intent.ticker)

        checkpoint(cancel, "generic answer")
        try:
            raw = self._llm.ask(
                _GENERIC_PROMPT.format(snapshot=snapshot), res.user_query, temperature=0.5
            )
        except Exception as exc:
            logger.error("Generic answer failed for %r", res.user_query, exc_info=exc)
            res = res.with_error("generic", str(exc))
            return res.answered(ResolutionPath.GENERIC, messages.CONNECTION_MESSAGE), False
        checkpoint(cancel, "generic answer")

        answer = to_plain_text(raw)
        if not answer:
            return res.answered(ResolutionPath.GENERIC, messages.NOT_FOUND_MESSAGE), False
        return res.answered(ResolutionPath.GENERIC, answer, raw_result=snapshot), True

    def _classify(self, user_query: str, cancel: CancelToken | None) -> IntentClassification:
        checkpoint(cancel, "intent classification")
        try:
            raw = self._llm.ask(_INTENT_PROMPT, user_query, temperature=0.1, max_tokens=150)
            intent = parse_llm_json(raw, IntentClassification)
        except ParseError as exc:
            logger.debug("Intent unparsable for %r: %s", user_query, exc)
            intent = _UNKNOWN_INTENT
        except Exception as exc:
            logger.warning("Intent classification failed for %r: %s", user_query, exc)
            intent = _UNKNOWN_INTENT
        checkpoint(cancel, "intent classification")
        return intent


def _path_of(record: ContextRecord) -> ResolutionPath:
    try:
        return ResolutionPath(record.metadata.get("path", ResolutionPath.GENERIC.value))
    except ValueError:
        return ResolutionPath.GENERIC


# ------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------


def build_router(
    cfg: FolioConfig,
    conn: sqlite3.Connection,
    *,
    ticker_strategy: str = "llm",
) -> QueryRouter:
    """Construct every collaborator from *cfg* around an open context-store connection.

    The market-data path and the generic snapshot are enabled only when
    ALPHA_VANTAGE_API_KEY is set.
    """
    llm = LlmClient(cfg.llm.model, temperature=cfg.llm.temperature, max_tokens=cfg.llm.max_tokens)
    embedder = Embedder(cfg.embedding.model, cfg.embedding.dimensions)
    store = ContextStore(conn, embedder, cfg.embedding.model)
    portfolio = PortfolioStore(cfg.database.portfolio_path, relation=cfg.sql.relation)
    formatter = AnswerFormatter(
        llm, max_rows=cfg.sql.max_rows, max_payload_chars=cfg.market_data.max_payload_chars
    )
    tickers: TickerResolver = build_ticker_resolver(ticker_strategy, llm)

    market: MarketDataResolver | None = None
    client: MarketDataClient | None = None
    if api_key := api_key_from_env():
        client = MarketDataClient(
            api_key, cfg.market_data.base_url, timeout=cfg.market_data.timeout
        )
        catalog = ApiCatalog(conn, cfg.embedding.model, cfg.embedding.dimensions)
        market = MarketDataResolver(llm, catalog, client, formatter, tickers, cfg.market_data)
    else:
        logger.info("ALPHA_VANTAGE_API_KEY not set; market-data path disabled")

    return QueryRouter(
        embedder=embedder,
        context_store=store,
        sql=SqlSynthesizer(llm, portfolio),
        formatter=formatter,
        llm=llm,
        market=market,
        snapshot_client=client,
        retrieval=cfg.retrieval,
    )
