"""HTTP client for the Alpha Vantage compatible market-data API.

Every outcome is returned as data: a successful payload, an advisory payload
(``Note`` / ``Information``, typically rate limiting) or an ``ExternalApiError``.
Nothing here raises on a bad response.
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from folio.errors import ExternalApiError

logger = logging.getLogger(__name__)

API_KEY_ENV = "ALPHA_VANTAGE_API_KEY"
_USER_AGENT = "folio/0.1 (portfolio assistant)"

OUTCOME_DATA = "data"
OUTCOME_ADVISORY = "advisory"
OUTCOME_ERROR = "error"

_ADVISORY_KEYS = ("Note", "Information")


@dataclass(frozen=True)
class FetchOutcome:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    error: ExternalApiError | None = None

    @property
    def advisory_text(self) -> str | None:
        for key in _ADVISORY_KEYS:
            if self.payload.get(key):
                return str(self.payload[key])
        return None

    @property
    def has_substantive_data(self) -> bool:
        return any(k not in (*_ADVISORY_KEYS, "Error Message") for k in self.payload)


def _is_csv(text: str, content_type: str) -> bool:
    if "csv" in content_type.lower():
        return bool(text.strip())
    first_line = text.lstrip().split("\n", 1)[0]
    return bool(first_line) and first_line[0] not in "{[<" and "," in first_line


def api_key_from_env() -> str | None:
    return os.environ.get(API_KEY_ENV) or None


class MarketDataClient:
    """GET ``base_url?function=...&<params>&apikey=...`` and classify the response."""

    def __init__(self, api_key: str, base_url: str, timeout: float = 30.0) -> None:
        self._api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    def build_url(self, function_code: str, params: dict[str, str]) -> str:
        query: dict[str, str] = {"function": function_code}
        for name, value in params.items():
            if value is not None and str(value).strip():
                query[name] = str(value)
        query["apikey"] = self._api_key
        return f"{self.base_url}?{urllib.parse.urlencode(query)}"

    def fetch(self, function_code: str, params: dict[str, str]) -> FetchOutcome:
        url = self.build_url(function_code, params)
        request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        logger.debug("Fetching %s with %s", function_code, params)

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()
                content_type = str(response.headers.get("Content-Type") or "")
        except urllib.error.HTTPError as exc:
            logger.warning("Market data HTTP %s for %s", exc.code, function_code)
            return FetchOutcome(
                OUTCOME_ERROR, error=ExternalApiError(f"HTTP {exc.code}: {exc.reason}", exc.code)
            )
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            logger.warning("Market data fetch failed for %s: %s", function_code, exc)
            return FetchOutcome(OUTCOME_ERROR, error=ExternalApiError(f"Fetch error: {exc}"))

        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            return FetchOutcome(
                OUTCOME_ERROR, error=ExternalApiError(f"Malformed response: {exc}", 200)
            )
        if _is_csv(text, content_type):
            # Calendar endpoints (EARNINGS_CALENDAR, IPO_CALENDAR) only answer in CSV.
            return FetchOutcome(OUTCOME_DATA, payload={"csv": text.strip()})

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            return FetchOutcome(
                OUTCOME_ERROR, error=ExternalApiError(f"Malformed response: {exc}", 200)
            )
        if not isinstance(payload, dict):
            return FetchOutcome(OUTCOME_DATA, payload={"data": payload})

        if payload.get("Error Message"):
            return FetchOutcome(
                OUTCOME_ERROR, payload, ExternalApiError(str(payload["Error Message"]), 200)
            )
        if any(payload.get(k) for k in _ADVISORY_KEYS):
            logger.info("Market data advisory for %s: %s", function_code, payload)
            return FetchOutcome(OUTCOME_ADVISORY, payload)
        return FetchOutcome(OUTCOME_DATA, payload)
