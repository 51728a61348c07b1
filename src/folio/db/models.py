"""Domain models for the folio database layer."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ContentType(str, Enum):
    PORTFOLIO_SUMMARY = "portfolio_summary"
    STOCK_DETAILS = "stock_details"
    BUSINESS_RULE = "business_rule"
    SQL_QUERY = "sql_query"
    DIRECT_ANSWER = "direct_answer"
    RELATIONSHIP = "relationship"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string, the format stored in metadata."""
    return datetime.now(timezone.utc).isoformat()


def new_record_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ContextRecord:
    """A persisted (question-or-fact, embedding, metadata) unit.

    The embedding itself lives in the vec table keyed by ``rowid``; it is never
    loaded back into this object.
    """

    content_type: ContentType
    text_content: str
    sql_query: str | None = None
    metadata: dict = field(default_factory=dict)
    source_name: str | None = None
    id: str = field(default_factory=new_record_id)
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved records

    @property
    def answer(self) -> str | None:
        """Prior answer text stored with a question/answer pair, if any."""
        value = self.metadata.get("answer")
        return str(value) if value else None

    @property
    def timestamp(self) -> str:
        return str(self.metadata.get("timestamp") or self.created_at or "")

    def metadata_json(self) -> str:
        return json.dumps(self.metadata, default=str)


@dataclass
class ApiFunctionDoc:
    """Description of one market-data API function, as embedded in the catalog."""

    function_code: str
    description: str
    required_parameters: list[str] = field(default_factory=list)
    optional_parameters: list[str] = field(default_factory=list)
    function_name: str = ""
    category: str = ""
    return_data: list[str] = field(default_factory=list)
    priority: str = "NORMAL"

    @property
    def parameter_names(self) -> list[str]:
        return [*self.required_parameters, *self.optional_parameters]

    @property
    def embedding_text(self) -> str:
        return f"{self.description}. Return Data Fields: {', '.join(self.return_data)}"


@dataclass
class PortfolioPosition:
    """One row of the portfolio_summary relation (read-only to the pipeline)."""

    ticker: str
    company_name: str
    total_quantity: float
    average_cost_basis: float
    current_price: float
    total_cost_basis_value: float
    market_value: float
    pnl_dollar: float
    pnl_percent: float
    portfolio_percent: float
    type: str
    last_updated: str | None = None
