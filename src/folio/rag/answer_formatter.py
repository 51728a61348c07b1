"""Answer formatting: structured results → final plain-text answer.

One entry point for every path. The payload shape depends on the source:

- ``sql``: list of row dicts
- ``vector-retrieval``: list of ``(ContextRecord, similarity)`` hits
- ``external-api``: the market-data JSON payload (dict)

Answers are plain text for a chat surface: no HTML or markdown, list lines
start with ``* ``, P&L literals keep their sign.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from folio.db.models import ContextRecord
from folio.errors import FormattingFailed
from folio.rag.llm_client import LlmClient
from folio.rag.messages import NO_DATA_MESSAGE

logger = logging.getLogger(__name__)

SOURCE_SQL = "sql"
SOURCE_RETRIEVAL = "vector-retrieval"
SOURCE_EXTERNAL = "external-api"

TRUNCATION_MARKER = "\n... (data truncated due to length)"

# ------------------------------------------------------------------
# Prompts
# ------------------------------------------------------------------

_STYLE_RULES = """\
Formatting rules:
1. DO NOT use any HTML tags or markdown formatting (no **bold**, no # headers).
2. Write P&L values directly with their sign (e.g. "-$1,234.56" or "+12.34%").
3. Use bullet points by starting each line with an asterisk and a space ("* ").
4. Be direct and clear. Mention company names where appropriate."""

_SQL_PROMPT = f"""\
You are an AI assistant that provides clear and concise natural language answers based \
on database query results. Given a user's question and the rows returned for it, \
formulate a helpful text response. The answer is displayed in a chat window, so keep it \
readable.

{_STYLE_RULES}"""

_RETRIEVAL_PROMPT = f"""\
You are a portfolio assistant. Answer the user's question using ONLY the context \
snippets provided. Earlier answers to similar questions may be included; reuse them only \
if they still answer the question. If the snippets do not answer the question, say so.

{_STYLE_RULES}"""

_EXTERNAL_PROMPT = f"""\
You are a helpful financial assistant. Answer the user's question based *only* on the \
provided data from the market-data API. Be concise and clear. If the data is complex \
(e.g. a time series), summarize the key points relevant to the question. If the data does \
not directly answer the question, state what you found and that it might not fully \
address the query. Do not make up information or use external knowledge.
The data comes from the function '{{function}}' called with parameters {{parameters}}.

{_STYLE_RULES}"""

# ------------------------------------------------------------------
# Post-processing
# ------------------------------------------------------------------

_EMPHASIS_RE = re.compile(r"(\*\*|__)(.+?)\1")
_HEADER_RE = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_BULLET_RE = re.compile(r"^(\s*)(?:[-•]|\*(?!\*))\s+", re.MULTILINE)
_HTML_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")


def to_plain_text(text: str) -> str:
    """Strip markdown emphasis, headers and HTML; normalize bullets to ``* ``."""
    text = _HTML_TAG_RE.sub("", text)
    text = _EMPHASIS_RE.sub(r"\2", text)
    text = _HEADER_RE.sub("", text)
    text = _BULLET_RE.sub(r"\1* ", text)
    return text.strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def _is_empty(payload: Any) -> bool:
    return payload is None or (hasattr(payload, "__len__") and len(payload) == 0)


class AnswerFormatter:
    """Turns a path's raw result into the final answer with one LLM call."""

    def __init__(self, llm: LlmClient, max_rows: int = 100, max_payload_chars: int = 30_000) -> None:
        self._llm = llm
        self.max_rows = max_rows
        self.max_payload_chars = max_payload_chars

    def format(
        self,
        user_query: str,
        payload: Any,
        source: str,
        *,
        function_code: str | None = None,
        parameters: dict[str, str] | None = None,
        service_note: str | None = None,
    ) -> str:
        """Return the final answer for *payload* produced by *source*.

        Empty payloads return ``NO_DATA_MESSAGE`` without calling the LLM.
        *service_note* (a market-data ``Note``/``Information``) is quoted after
        the payload so it survives truncation and the answer mentions it.

        Raises:
            FormattingFailed: The LLM call failed or returned nothing usable.
            ValueError: Unknown *source*.
        """
        if _is_empty(payload):
            return NO_DATA_MESSAGE

        if source == SOURCE_SQL:
            system, user = _SQL_PROMPT, self._sql_user_message(user_query, payload)
        elif source == SOURCE_RETRIEVAL:
            system, user = _RETRIEVAL_PROMPT, self._retrieval_user_message(user_query, payload)
        elif source == SOURCE_EXTERNAL:
            system = _EXTERNAL_PROMPT.format(
                function=function_code or "unknown",
                parameters=json.dumps(parameters or {}),
            )
            user = self._external_user_message(user_query, payload, service_note)
        else:
            raise ValueError(f"Unknown answer source '{source}'")

        try:
            raw = self._llm.ask(system, user, temperature=0.3)
        except Exception as exc:
            logger.warning("Answer formatting failed (source=%s): %s", source, exc)
            raise FormattingFailed(str(exc)) from exc

        answer = to_plain_text(raw)
        if not answer:
            raise FormattingFailed(f"Empty answer from formatting model (source={source})")
        return answer

    # ------------------------------------------------------------------
    # User messages per source
    # ------------------------------------------------------------------

    def _sql_user_message(self, user_query: str, rows: list[dict[str, Any]]) -> str:
        sample = rows[: self.max_rows]
        note = ""
        if len(rows) > len(sample):
            note = f"\n(Showing {len(sample)} of {len(rows)} rows.)"
        body = json.dumps(sample, indent=2, default=str)
        return f'Original Question: "{user_query}"\n\nDatabase Results:\n{body}{note}'

    def _retrieval_user_message(
        self, user_query: str, hits: list[tuple[ContextRecord, float]]
    ) -> str:
        blocks = []
        for i, (record, similarity) in enumerate(hits, start=1):
            lines = [f"[{i}] ({record.content_type.value}, similarity {similarity:.2f})"]
            lines.append(record.text_content)
            if record.answer:
                lines.append(f"Previous answer: {record.answer}")
            blocks.append("\n".join(lines))
        return f'User question: "{user_query}"\n\nContext:\n' + "\n\n".join(blocks)

    def _external_user_message(
        self, user_query: str, payload: dict[str, Any], service_note: str | None = None
    ) -> str:
        body = truncate(json.dumps(payload, indent=2, default=str), self.max_payload_chars)
        note = ""
        if service_note:
            note = (
                f'Service note from the market-data API: "{service_note}"\n'
                "The data may be partial. Mention this limitation in your answer.\n\n"
            )
        return (
            f'User question: "{user_query}"\n\nMarket-data API response:\n{body}\n\n{note}'
            "Based ONLY on this data, please provide a response to the user's question."
        )
