"""Tests for the folio config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from folio.config import ConfigError, ensure_global_config, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("FOLIO_LLM_MODEL", "FOLIO_EMBEDDING_MODEL", "FOLIO_DB", "FOLIO_PORTFOLIO_DB"):
        monkeypatch.delenv(var, raising=False)


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_cfg: Path | None = None):
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_cfg or tmp_path / "nonexistent" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)
    assert cfg.embedding.model == "huggingface/intfloat/e5-large-v2"
    assert cfg.embedding.dimensions == 1024
    assert cfg.llm.model == "groq/llama3-70b-8192"
    assert cfg.retrieval.threshold == 0.70
    assert cfg.retrieval.limit == 3
    assert cfg.retrieval.cache_threshold == 0.85
    assert cfg.retrieval.reuse_cached_answers is True
    assert cfg.market_data.function_match_threshold == 0.70
    assert cfg.market_data.function_match_count == 3
    assert cfg.market_data.max_selection_context_chars == 35_000
    assert cfg.sql.relation == "portfolio_summary"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"llm": {"model": "openai/gpt-4o-mini"}})
    cfg = _load(tmp_path, global_cfg)
    assert cfg.llm.model == "openai/gpt-4o-mini"
    assert cfg.llm.temperature == 0.1


def test_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"retrieval": {"threshold": 0.6, "limit": 5}})
    _write_yaml(tmp_path / "folio.yaml", {"retrieval": {"threshold": 0.8}})
    cfg = _load(tmp_path, global_cfg)
    assert cfg.retrieval.threshold == 0.8
    assert cfg.retrieval.limit == 5


def test_env_overrides_files(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"database": {"path": "from-yaml.db"}})
    monkeypatch.setenv("FOLIO_DB", "from-env.db")
    monkeypatch.setenv("FOLIO_LLM_MODEL", "ollama/llama3")
    cfg = _load(tmp_path)
    assert cfg.database.path == "from-env.db"
    assert cfg.llm.model == "ollama/llama3"


def test_empty_files_give_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")
    (tmp_path / "folio.yaml").write_text("", encoding="utf-8")
    assert _load(tmp_path, global_cfg).llm.model == "groq/llama3-70b-8192"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["api_key", "groq_api_key", "token", "password"])
def test_global_config_rejects_credentials(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"llm": {key: "secret"}})
    with pytest.raises(ConfigError, match="environment variables"):
        _load(tmp_path, global_cfg)


def test_max_tokens_is_not_a_credential(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"llm": {"max_tokens": 512}})
    assert _load(tmp_path, global_cfg).llm.max_tokens == 512


@pytest.mark.parametrize(
    "data",
    [
        {"retrieval": {"threshold": 1.5}},
        {"retrieval": {"cache_threshold": -0.1}},
        {"market_data": {"function_match_threshold": 2}},
        {"embedding": {"dimensions": 0}},
    ],
)
def test_out_of_range_values_rejected(tmp_path: Path, data: dict) -> None:
    _write_yaml(tmp_path / "folio.yaml", data)
    with pytest.raises(ConfigError):
        _load(tmp_path)


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


def test_unknown_section_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "folio.yaml", {"chunkers": {"size": 1}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path)
    assert any("chunkers" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path: Path) -> None:
    target = tmp_path / ".folio" / "config.yaml"
    assert ensure_global_config(target) == target
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["dimensions"] == 1024
    # Comments mention key env vars; the parsed content must pass the credential scan.
    assert load_config(project_dir=tmp_path, global_config_path=target).embedding.dimensions == 1024


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("llm:\n  model: ollama/llama3\n", encoding="utf-8")
    ensure_global_config(target)
    assert "ollama/llama3" in target.read_text(encoding="utf-8")
