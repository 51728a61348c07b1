"""folio seed: index curated business rules and the market-data function catalog."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from folio.cli.common import load_cfg_or_exit, open_db_or_exit
from folio.cli.errors import (
    err_dimension_mismatch,
    err_embedding_unavailable,
    err_no_api_key,
    warn_market_data_disabled,
)
from folio.db.api_catalog import ApiCatalog
from folio.db.context_store import ContextStore
from folio.errors import EmbeddingDimensionMismatch, EmbeddingUnavailable
from folio.market.catalog import index_catalog
from folio.market.client import api_key_from_env
from folio.rag.embedder import Embedder
from folio.rag.llm_client import validate_api_key
from folio.rag.seeding import seed_rules

console = Console()


def seed_cmd(
    rules: Annotated[
        bool, typer.Option("--rules/--no-rules", help="Upsert curated business rules.")
    ] = True,
    catalog: Annotated[
        bool, typer.Option("--catalog/--no-catalog", help="Embed the market-data function catalog.")
    ] = True,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .folio.db.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Seed the context store. Safe to re-run: every entry is upserted by name."""
    cfg = load_cfg_or_exit(console, db=db, verbose=verbose)

    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(err_no_api_key(cfg.embedding.model.split("/")[0]))
        raise typer.Exit(1)

    conn = open_db_or_exit(console, cfg)
    embedder = Embedder(cfg.embedding.model, cfg.embedding.dimensions)
    try:
        if rules:
            n = seed_rules(ContextStore(conn, embedder, cfg.embedding.model))
            console.print(f"  [green]✓[/] {n} business rules")
        if catalog:
            if api_key_from_env() is None:
                console.print(warn_market_data_disabled())
            else:
                store = ApiCatalog(conn, cfg.embedding.model, cfg.embedding.dimensions)
                n = index_catalog(store, embedder)
                console.print(f"  [green]✓[/] {n} market-data functions")
    except EmbeddingUnavailable as exc:
        console.print(err_embedding_unavailable(cfg.embedding.model, str(exc)))
        raise typer.Exit(1)
    except EmbeddingDimensionMismatch as exc:
        console.print(err_dimension_mismatch(exc.expected, exc.actual, cfg.embedding.model))
        raise typer.Exit(1)
    finally:
        conn.close()
