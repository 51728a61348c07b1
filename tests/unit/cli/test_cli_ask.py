"""Tests for folio ask."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from folio.cli.main import app
from folio.db.connection import Database
from folio.errors import QueryCancelled
from folio.rag.resolution import QueryResolution, ResolutionPath

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("folio.config._GLOBAL_CONFIG_PATH", tmp_path / "global.yaml")
    for var in ("FOLIO_LLM_MODEL", "FOLIO_EMBEDDING_MODEL", "FOLIO_DB", "FOLIO_PORTFOLIO_DB"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    monkeypatch.setenv("HUGGINGFACE_API_KEY", "hf-test")
    db = tmp_path / ".folio.db"
    Database(db).connect().close()
    return tmp_path


@pytest.fixture
def router(monkeypatch):
    fake = MagicMock()
    fake.ask.return_value = QueryResolution(
        user_query="What's my cash position?",
        final_answer="You hold $2,500.00 in cash.",
        path=ResolutionPath.SQL,
    )
    build = MagicMock(return_value=fake)
    monkeypatch.setattr("folio.cli.ask.build_router", build)
    return fake, build


def _ask(portfolio_db, *extra):
    return runner.invoke(app, ["ask", "What's my cash position?", "--portfolio-db", str(portfolio_db), *extra])


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_ask_prints_answer(env, router, portfolio_db):
    result = _ask(portfolio_db)
    assert result.exit_code == 0, result.output
    assert "You hold $2,500.00 in cash." in result.output
    assert "path:" not in result.output
    router[0].ask.assert_called_once()
    assert router[0].ask.call_args.args[0] == "What's my cash position?"


def test_ask_show_path(env, router, portfolio_db):
    result = _ask(portfolio_db, "--show-path")
    assert "path: sql" in result.output


def test_ask_passes_ticker_strategy_and_model(env, router, portfolio_db):
    result = _ask(portfolio_db, "--ticker-strategy", "regex", "--model", "groq/mixtral-8x7b")
    assert result.exit_code == 0, result.output
    cfg = router[1].call_args.args[0]
    assert cfg.llm.model == "groq/mixtral-8x7b"
    assert cfg.database.portfolio_path == str(portfolio_db)
    assert router[1].call_args.kwargs["ticker_strategy"] == "regex"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_ask_unknown_ticker_strategy(env, router, portfolio_db):
    result = _ask(portfolio_db, "--ticker-strategy", "psychic")
    assert result.exit_code == 1
    assert "ticker-strategy" in result.output


def test_ask_missing_api_key(env, router, portfolio_db, monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY")
    result = _ask(portfolio_db)
    assert result.exit_code == 1
    assert "GROQ_API_KEY" in result.output
    router[0].ask.assert_not_called()


def test_ask_missing_portfolio_db(env, router):
    result = _ask(env / "nope.db")
    assert result.exit_code == 1
    assert "portfolio database" in result.output


def test_ask_missing_context_db(env, router, portfolio_db):
    (env / ".folio.db").unlink()
    result = _ask(portfolio_db)
    assert result.exit_code == 1
    assert "folio init" in result.output


def test_ask_invalid_config(env, router, portfolio_db):
    (env / "folio.yaml").write_text("retrieval:\n  threshold: 3\n", encoding="utf-8")
    result = _ask(portfolio_db)
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_ask_cancelled(env, router, portfolio_db):
    router[0].ask.side_effect = QueryCancelled("Query cancelled")
    result = _ask(portfolio_db)
    assert result.exit_code == 130
    assert "Cancelled" in result.output
