"""Folio configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (FOLIO_LLM_MODEL, FOLIO_EMBEDDING_MODEL, FOLIO_DB,
                             FOLIO_PORTFOLIO_DB)
  3. Per-project folio.yaml  (current working directory)
  4. Global ~/.folio/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from folio.errors import ConfigError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".folio"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "folio.yaml"

# Key names that suggest a credential; forbidden in global config.
# Does NOT match legitimate keys like max_tokens or max_payload_chars.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "llm", "database", "sql", "retrieval", "market_data", "logging"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (folio.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Vector size of the deployed index. Fixed for the life of
            the database; changing it requires re-embedding every record.
    """

    model: str = "huggingface/intfloat/e5-large-v2"
    dimensions: int = 1024


@dataclass
class LlmCfg:
    """Chat completion configuration (folio.yaml: llm:)."""

    model: str = "groq/llama3-70b-8192"
    temperature: float = 0.1
    max_tokens: int = 1024


@dataclass
class DatabaseCfg:
    """Storage locations (folio.yaml: database:).

    Attributes:
        path: SQLite file holding the context store and the API catalog.
        portfolio_path: SQLite file holding the portfolio_summary relation.
            Owned by an external loader; opened read-only by the pipeline.
    """

    path: str = ".folio.db"
    portfolio_path: str = "portfolio.db"


@dataclass
class SqlCfg:
    """SQL synthesis configuration (folio.yaml: sql:)."""

    relation: str = "portfolio_summary"
    max_rows: int = 100


@dataclass
class RetrievalCfg:
    """Vector retrieval and response cache thresholds (folio.yaml: retrieval:)."""

    threshold: float = 0.70
    limit: int = 3
    cache_threshold: float = 0.85
    reuse_cached_answers: bool = True


@dataclass
class MarketDataCfg:
    """External market-data API configuration (folio.yaml: market_data:)."""

    base_url: str = "https://www.alphavantage.co/query"
    function_match_threshold: float = 0.70
    function_match_count: int = 3
    max_selection_context_chars: int = 35_000
    max_payload_chars: int = 30_000
    timeout: float = 30.0


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class FolioConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    llm: LlmCfg = field(default_factory=LlmCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    sql: SqlCfg = field(default_factory=SqlCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    market_data: MarketDataCfg = field(default_factory=MarketDataCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate_thresholds(cfg: FolioConfig) -> None:
    for name in ("threshold", "cache_threshold"):
        value = getattr(cfg.retrieval, name)
        if not 0.0 <= value <= 1.0:
            raise ConfigError(f"retrieval.{name} must be between 0 and 1, got {value}")
    if not 0.0 <= cfg.market_data.function_match_threshold <= 1.0:
        raise ConfigError(
            "market_data.function_match_threshold must be between 0 and 1, "
            f"got {cfg.market_data.function_match_threshold}"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> FolioConfig:
    """Build a *FolioConfig* from a merged raw YAML dict."""
    cfg = FolioConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "llm" in data:
        lm = data["llm"]
        cfg.llm = LlmCfg(
            model=str(lm.get("model", cfg.llm.model)),
            temperature=float(lm.get("temperature", cfg.llm.temperature)),
            max_tokens=int(lm.get("max_tokens", cfg.llm.max_tokens)),
        )

    if "database" in data:
        d = data["database"]
        cfg.database = DatabaseCfg(
            path=str(d.get("path", cfg.database.path)),
            portfolio_path=str(d.get("portfolio_path", cfg.database.portfolio_path)),
        )

    if "sql" in data:
        s = data["sql"]
        cfg.sql = SqlCfg(
            relation=str(s.get("relation", cfg.sql.relation)),
            max_rows=int(s.get("max_rows", cfg.sql.max_rows)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            threshold=float(r.get("threshold", cfg.retrieval.threshold)),
            limit=int(r.get("limit", cfg.retrieval.limit)),
            cache_threshold=float(r.get("cache_threshold", cfg.retrieval.cache_threshold)),
            reuse_cached_answers=bool(
                r.get("reuse_cached_answers", cfg.retrieval.reuse_cached_answers)
            ),
        )

    if "market_data" in data:
        m = data["market_data"]
        md = cfg.market_data
        cfg.market_data = MarketDataCfg(
            base_url=str(m.get("base_url", md.base_url)),
            function_match_threshold=float(
                m.get("function_match_threshold", md.function_match_threshold)
            ),
            function_match_count=int(m.get("function_match_count", md.function_match_count)),
            max_selection_context_chars=int(
                m.get("max_selection_context_chars", md.max_selection_context_chars)
            ),
            max_payload_chars=int(m.get("max_payload_chars", md.max_payload_chars)),
            timeout=float(m.get("timeout", md.timeout)),
        )

    if "logging" in data:
        cfg.logging = LoggingCfg(level=str(data["logging"].get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: FolioConfig) -> FolioConfig:
    """Apply FOLIO_* environment variable overrides."""
    if model := os.environ.get("FOLIO_LLM_MODEL"):
        cfg.llm.model = model
    if model := os.environ.get("FOLIO_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if path := os.environ.get("FOLIO_DB"):
        cfg.database.path = path
    if path := os.environ.get("FOLIO_PORTFOLIO_DB"):
        cfg.database.portfolio_path = path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> FolioConfig:
    """Load and return a merged *FolioConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *folio.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or a
            threshold is outside [0, 1].
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate_thresholds(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.folio/config.yaml`` with model defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the file with mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        defaults = FolioConfig()
        content = (
            "# Folio global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables:\n"
            "#   export GROQ_API_KEY=...\n"
            "#   export HUGGINGFACE_API_KEY=...\n"
            "#   export ALPHA_VANTAGE_API_KEY=...\n"
            "\n"
            "embedding:\n"
            f"  model: {defaults.embedding.model}\n"
            f"  dimensions: {defaults.embedding.dimensions}\n"
            "\n"
            "llm:\n"
            f"  model: {defaults.llm.model}\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
