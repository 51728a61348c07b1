"""Config + database bootstrapping shared by the folio commands."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from folio.cli.errors import err_config, err_no_db
from folio.config import FolioConfig, load_config
from folio.db.connection import Database
from folio.db.schema import initialize
from folio.errors import ConfigError
from folio.log import init_logging


def load_cfg_or_exit(
    console: Console,
    *,
    db: Path | None = None,
    portfolio_db: Path | None = None,
    model: str | None = None,
    verbose: bool = False,
) -> FolioConfig:
    """Load layered config, apply CLI flag overrides, and start logging."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    if db is not None:
        cfg.database.path = str(db)
    if portfolio_db is not None:
        cfg.database.portfolio_path = str(portfolio_db)
    if model is not None:
        cfg.llm.model = model

    init_logging("DEBUG" if verbose else cfg.logging.level)
    return cfg


def open_db_or_exit(console: Console, cfg: FolioConfig) -> sqlite3.Connection:
    """Open the context-store database and make sure schema + vec tables exist."""
    db_path = Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn, cfg.embedding.model, cfg.embedding.dimensions)
    return conn
