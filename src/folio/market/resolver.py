"""External market-data resolution: pick a function, extract parameters, fetch, summarize.

State machine::

    ResolveFunction ──ok──────────────► ExtractParameters ─► Fetch ─► Format ─► Answered
          │ parse/LLM error, unknown
          │ function, oversized context
          ▼
    BestSemanticMatch (top hit + narrow parameter call) ─► ExtractParameters ...
          │ no hit at all
          ▼
        Failed (NoFunctionDetermined)

API errors and rate-limit notes are data: the Format step turns them into an
explanation without calling the LLM, and such answers are never cached.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, RootModel

from folio.config import MarketDataCfg
from folio.db.api_catalog import ApiCatalog
from folio.db.models import ApiFunctionDoc
from folio.errors import NoFunctionDetermined, ParseError
from folio.market.catalog import load_catalog, takes_symbol
from folio.market.client import OUTCOME_DATA, OUTCOME_ERROR, FetchOutcome, MarketDataClient
from folio.rag import messages
from folio.rag.answer_formatter import SOURCE_EXTERNAL, AnswerFormatter
from folio.rag.llm_client import LlmClient, parse_llm_json
from folio.rag.resolution import CancelToken, checkpoint
from folio.rag.tickers import TickerResolver

logger = logging.getLogger(__name__)

_MAX_FUNCTION_DESCRIPTION = 1000

ParamValue = Union[str, int, float, bool, None]


class FunctionSelection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    determined_function: str | None
    parameters: dict[str, ParamValue] = {}


class ExtractedParameters(RootModel[dict[str, ParamValue]]):
    pass


_SELECTION_SYSTEM = (
    "You are an AI assistant that selects the single most suitable market-data API "
    "function for a user query and extracts its parameters. Respond only in JSON."
)

_SELECTION_PROMPT = """\
User Query: "{query}"

Candidate API functions (closest matches from the documentation):
{candidates}
{ticker_hint}
Task:
1. Choose the SINGLE MOST SUITABLE function from the candidates above.
2. Extract the parameters for THAT function from the user query. Only use parameter \
names listed for the chosen function.
   - If a company name is mentioned (e.g. "Apple Inc."), infer its common ticker for 'symbol'.
   - For currency exchange, extract 'from_currency' and 'to_currency'.
   - For SYMBOL_SEARCH, extract 'keywords'. For NEWS_SENTIMENT, 'tickers' and 'topics'.
   - For fundamentals such as PE ratio, EPS or market cap, prefer OVERVIEW.

Return ONLY a JSON object:
{{"determined_function": "FUNCTION_CODE", "parameters": {{"param": "value"}}}}
If no candidate fits, return {{"determined_function": null, "parameters": {{}}}}

Example: {{"determined_function": "CASH_FLOW", "parameters": {{"symbol": "AAPL"}}}}
Example: {{"determined_function": "CURRENCY_EXCHANGE_RATE", "parameters": \
{{"from_currency": "USD", "to_currency": "JPY"}}}}"""

_EXTRACTION_SYSTEM = (
    "You are an AI assistant that extracts parameter values for a given API function "
    "from a user query. Respond only in JSON format as specified."
)

_EXTRACTION_PROMPT = """\
User Query: "{query}"
API Function: "{function}"
Function Description: "{description}"
Parameters: {parameters}
{ticker_hint}
Extract values for these parameters from the user query. Omit any parameter whose \
value is not in the query. For functions without user-derived parameters return {{}}.

Respond ONLY with a JSON object where keys are parameter names and values are the \
extracted values.
Example for TIME_SERIES_INTRADAY: {{"symbol": "AAPL", "interval": "5min"}}
Example for SYMBOL_SEARCH: {{"keywords": "Apple"}}
Example for NEWS_SENTIMENT: {{"tickers": "MSFT", "topics": "technology"}}

JSON Response:"""


@dataclass(frozen=True)
class MarketAnswer:
    """Terminal state of a market-data resolution.

    ``cacheable`` is True only for answers summarized from real data.
    """

    answer: str
    function_code: str
    parameters: dict[str, str] = field(default_factory=dict)
    outcome: FetchOutcome | None = None
    cacheable: bool = False


def _ticker_hint(ticker: str | None) -> str:
    if not ticker:
        return ""
    return (
        f'A stock ticker "{ticker}" has been pre-identified from the query. If the '
        "function takes a stock symbol ('symbol' or 'tickers'), use this ticker.\n"
    )


def _describe(doc: ApiFunctionDoc) -> str:
    description = doc.description
    if len(description) > _MAX_FUNCTION_DESCRIPTION:
        description = description[:_MAX_FUNCTION_DESCRIPTION] + "... (description truncated)"
    return description


def _stringify(params: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name, value in params.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        text = str(value).strip()
        if text:
            out[name] = text
    return out


class MarketDataResolver:
    """Answers a query from the external market-data API."""

    def __init__(
        self,
        llm: LlmClient,
        catalog: ApiCatalog,
        client: MarketDataClient,
        formatter: AnswerFormatter,
        ticker_resolver: TickerResolver,
        cfg: MarketDataCfg | None = None,
    ) -> None:
        self._llm = llm
        self._catalog = catalog
        self._client = client
        self._formatter = formatter
        self._tickers = ticker_resolver
        self._cfg = cfg or MarketDataCfg()

    def resolve(
        self,
        user_query: str,
        query_embedding: list[float],
        cancel: CancelToken | None = None,
    ) -> MarketAnswer:
        """Run the full state machine for *user_query*.

        Raises:
            NoFunctionDetermined: No candidate function or required parameters missing.
            FormattingFailed: The summarizing LLM call failed.
            QueryCancelled: *cancel* fired between network calls.
        """
        checkpoint(cancel, "ticker resolution")
        ticker = self._tickers.resolve(user_query)
        checkpoint(cancel, "ticker resolution")

        candidates = self._catalog.find_similar(
            query_embedding,
            self._cfg.function_match_threshold,
            self._cfg.function_match_count,
        )
        if not candidates:
            raise NoFunctionDetermined(f"No market-data function matches {user_query!r}")

        doc, params = self._select(user_query, candidates, ticker, cancel)
        params = self.finalize_parameters(user_query, doc, params, ticker)

        checkpoint(cancel, "market data fetch")
        outcome = self._client.fetch(doc.function_code, params)
        checkpoint(cancel, "market data fetch")

        return self._format(user_query, doc, params, outcome, cancel)

    # ------------------------------------------------------------------
    # ResolveFunction / BestSemanticMatch
    # ------------------------------------------------------------------

    def _select(
        self,
        user_query: str,
        candidates: list[tuple[ApiFunctionDoc, float]],
        ticker: str | None,
        cancel: CancelToken | None,
    ) -> tuple[ApiFunctionDoc, dict[str, Any]]:
        by_code = {doc.function_code: doc for doc, _ in candidates}
        context = "\n".join(
            f"- {doc.function_code} ({doc.function_name}, similarity {sim:.2f}): "
            f"{_describe(doc)} Required: {', '.join(doc.required_parameters) or 'none'}. "
            f"Optional: {', '.join(doc.optional_parameters) or 'none'}."
            for doc, sim in candidates
        )
        prompt = _SELECTION_PROMPT.format(
            query=user_query, candidates=context, ticker_hint=_ticker_hint(ticker)
        )

        if len(prompt) > self._cfg.max_selection_context_chars:
            logger.warning(
                "Selection context too large (%d chars) for %r; using best semantic match",
                len(prompt),
                user_query,
            )
        else:
            checkpoint(cancel, "function selection")
            try:
                raw = self._llm.ask(_SELECTION_SYSTEM, prompt, temperature=0.0)
                selection = parse_llm_json(raw, FunctionSelection)
            except ParseError as exc:
                logger.warning("Function selection unparsable for %r: %s", user_query, exc)
            except Exception as exc:
                logger.warning("Function selection call failed for %r: %s", user_query, exc)
            else:
                checkpoint(cancel, "function selection")
                code = (selection.determined_function or "").strip().upper()
                if code in by_code:
                    logger.debug("LLM selected %s for %r", code, user_query)
                    return by_code[code], dict(selection.parameters)
                logger.warning(
                    "LLM selected unknown function %r for %r; using best semantic match",
                    selection.determined_function,
                    user_query,
                )

        best = candidates[0][0]
        return best, self._extract_parameters(user_query, best, ticker, cancel)

    def _extract_parameters(
        self,
        user_query: str,
        doc: ApiFunctionDoc,
        ticker: str | None,
        cancel: CancelToken | None,
    ) -> dict[str, Any]:
        if not doc.parameter_names:
            return {}
        prompt = _EXTRACTION_PROMPT.format(
            query=user_query,
            function=doc.function_code,
            description=_describe(doc),
            parameters=json.dumps(doc.parameter_names),
            ticker_hint=_ticker_hint(ticker),
        )
        checkpoint(cancel, "parameter extraction")
        try:
            raw = self._llm.ask(_EXTRACTION_SYSTEM, prompt, temperature=0.0)
            extracted = parse_llm_json(raw, ExtractedParameters).root
        except Exception as exc:
            # Missing required parameters are caught by finalize_parameters().
            logger.warning("Parameter extraction failed for %s: %s", doc.function_code, exc)
            extracted = {}
        checkpoint(cancel, "parameter extraction")
        return extracted

    # ------------------------------------------------------------------
    # ExtractParameters
    # ------------------------------------------------------------------

    def finalize_parameters(
        self,
        user_query: str,
        doc: ApiFunctionDoc,
        params: dict[str, Any],
        ticker: str | None,
    ) -> dict[str, str]:
        """Restrict *params* to the function's declared names and inject the ticker.

        Raises:
            NoFunctionDetermined: The function is not in the static catalog or a
                required parameter has no value.
        """
        if doc.function_code not in load_catalog():
            raise NoFunctionDetermined(f"Function {doc.function_code} is not in the catalog")

        allowed = set(doc.parameter_names)
        clean = {k: v for k, v in _stringify(params).items() if k in allowed}

        if ticker:
            if doc.function_code == "NEWS_SENTIMENT":
                tickers = [t.strip() for t in clean.get("tickers", "").split(",") if t.strip()]
                if ticker not in tickers:
                    tickers.append(ticker)
                clean["tickers"] = ",".join(tickers)
                clean.pop("symbol", None)
            elif takes_symbol(doc.function_code) and "symbol" in allowed:
                clean["symbol"] = ticker

        if doc.function_code == "SYMBOL_SEARCH" and not clean.get("keywords"):
            clean["keywords"] = user_query

        missing = [p for p in doc.required_parameters if not clean.get(p)]
        if missing:
            raise NoFunctionDetermined(
                f"Missing required parameter(s) {', '.join(missing)} for {doc.function_code}"
            )
        return clean

    # ------------------------------------------------------------------
    # Format
    # ------------------------------------------------------------------

    def _format(
        self,
        user_query: str,
        doc: ApiFunctionDoc,
        params: dict[str, str],
        outcome: FetchOutcome,
        cancel: CancelToken | None,
    ) -> MarketAnswer:
        base = {"function_code": doc.function_code, "parameters": params, "outcome": outcome}

        if outcome.kind == OUTCOME_ERROR and outcome.error is not None:
            if outcome.error.status == 429:
                return MarketAnswer(messages.RATE_LIMITED_MESSAGE, **base)
            if outcome.error.is_connection_error:
                return MarketAnswer(messages.CONNECTION_MESSAGE, **base)
            return MarketAnswer(messages.api_error_message(outcome.error.message), **base)

        if not outcome.has_substantive_data:
            information = outcome.payload.get("Information")
            note = outcome.payload.get("Note")
            if note:
                return MarketAnswer(messages.note_message(str(note)), **base)
            if information:
                return MarketAnswer(messages.information_message(str(information)), **base)
            return MarketAnswer(messages.NO_DATA_MESSAGE, **base)

        checkpoint(cancel, "answer formatting")
        answer = self._formatter.format(
            user_query,
            outcome.payload,
            SOURCE_EXTERNAL,
            function_code=doc.function_code,
            parameters=params,
            service_note=outcome.advisory_text,
        )
        checkpoint(cancel, "answer formatting")
        return MarketAnswer(answer, cacheable=outcome.kind == OUTCOME_DATA, **base)
