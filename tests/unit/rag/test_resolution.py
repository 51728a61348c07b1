"""Tests for per-request resolution state and cancellation."""

from __future__ import annotations

import pytest

from folio.errors import QueryCancelled
from folio.rag import messages
from folio.rag.resolution import CancelToken, QueryResolution, ResolutionPath, checkpoint


def test_resolution_is_immutable_and_threaded():
    res = QueryResolution(user_query="q")
    answered = res.answered(ResolutionPath.SQL, "a", sql_query="SELECT 1")
    assert res.final_answer is None and not res.is_answered
    assert answered.is_answered
    assert answered.path is ResolutionPath.SQL
    assert answered.sql_query == "SELECT 1"


def test_with_error_accumulates():
    res = QueryResolution(user_query="q").with_error("sql", "boom").with_error("generic", "down")
    assert res.errors == (("sql", "boom"), ("generic", "down"))


def test_cancel_token():
    token = CancelToken()
    token.check("anything")
    assert not token.cancelled
    token.cancel()
    assert token.cancelled
    with pytest.raises(QueryCancelled, match="during fetch"):
        token.check("fetch")


def test_checkpoint_without_token_is_noop():
    checkpoint(None, "x")


def test_api_error_message_hints_at_symbol():
    msg = messages.api_error_message("Invalid API call. Please retry or visit the documentation for symbol")
    assert "symbol or search keywords" in msg
    assert messages.api_error_message("HTTP 500: boom") == "There was an issue fetching market data: HTTP 500: boom"


def test_note_and_information_messages_quote_the_service():
    assert "API limit" in messages.note_message("Thank you for using Alpha Vantage! Our standard API rate limit is 25 requests per day.")
    assert '"premium endpoint"' in messages.information_message("premium endpoint")
