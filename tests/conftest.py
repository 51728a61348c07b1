"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from folio.db.connection import Database
from folio.db.portfolio import create_portfolio_db, make_position
from folio.db.schema import initialize

TEST_MODEL = "test/fake-embedder"
TEST_DIMS = 16


class FakeEmbedder:
    """Deterministic embedder: identical text → identical vector.

    Texts listed in *vectors* get that vector; every other distinct text gets
    the next one-hot vector counting down from the last dimension, so unrelated
    texts have cosine similarity 0 and never collide with hand-built vectors
    that use the leading dimensions.
    """

    def __init__(self, dimensions: int = TEST_DIMS, vectors: dict[str, list[float]] | None = None):
        self.dimensions = dimensions
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []
        self._assigned: dict[str, list[float]] = {}

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        if text not in self._assigned:
            vec = [0.0] * self.dimensions
            vec[self.dimensions - 1 - len(self._assigned) % self.dimensions] = 1.0
            self._assigned[text] = vec
        return list(self._assigned[text])


class ScriptedLlm:
    """LlmClient double answering by the first rule whose marker occurs in the system prompt.

    Rules are ``(marker, reply)``; *reply* is a string, an exception instance
    (raised), or a callable ``(system, user) -> str``.
    """

    def __init__(self, rules: list[tuple[str, object]] | None = None, default: str = ""):
        self.rules = list(rules or [])
        self.default = default
        self.calls: list[tuple[str, str, dict]] = []

    def ask(self, system: str, user: str, **kwargs) -> str:
        self.calls.append((system, user, kwargs))
        for marker, reply in self.rules:
            if marker in system:
                if isinstance(reply, BaseException):
                    raise reply
                if callable(reply):
                    return reply(system, user)
                return reply
        return self.default

    def calls_matching(self, marker: str) -> list[tuple[str, str, dict]]:
        return [c for c in self.calls if marker in c[0]]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema and test vec tables, closed after test."""
    db = Database(tmp_path / ".folio.db")
    conn = db.connect()
    initialize(conn, TEST_MODEL, TEST_DIMS)
    yield conn
    conn.close()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def portfolio_db(tmp_path):
    """Portfolio database with two stocks, one ETF and a cash row."""
    path = tmp_path / "portfolio.db"
    create_portfolio_db(
        path,
        [
            make_position("AAPL", "Apple Inc.", 50, 150.0, 190.0, portfolio_percent=40.0),
            make_position("MSFT", "Microsoft Corporation", 20, 400.0, 350.0, portfolio_percent=30.0),
            make_position("VOO", "Vanguard S&P 500 ETF", 5, 400.0, 450.0, type="etf", portfolio_percent=20.0),
            make_position("CASH", "Cash", 2500, 1.0, 1.0, type="cash", portfolio_percent=10.0),
        ],
    )
    return path


@pytest.fixture
def empty_portfolio_db(tmp_path):
    path = tmp_path / "empty_portfolio.db"
    create_portfolio_db(path, [])
    return path


@pytest.fixture
def make_embedder():
    """Factory for FakeEmbedder with explicit vectors."""
    return FakeEmbedder


@pytest.fixture
def make_llm():
    """Factory for ScriptedLlm."""
    return ScriptedLlm


def unit(dims: int, *weights: float) -> list[float]:
    """Vector with the leading components set to *weights*, zero elsewhere."""
    vec = [0.0] * dims
    for i, w in enumerate(weights):
        vec[i] = w
    return vec


@pytest.fixture
def vec():
    """Build a TEST_DIMS vector from leading weights: vec(1.0, 0.2)."""
    return lambda *weights: unit(TEST_DIMS, *weights)
