"""folio init: create the context-store database and a project config.

Creates:
  .folio.db               schema + per-model vec tables for the configured embedding
  folio.yaml              project config with the defaults spelled out
  ~/.folio/config.yaml    global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from folio.config import FolioConfig, ensure_global_config, load_config
from folio.db.connection import Database
from folio.db.schema import initialize
from folio.errors import ConfigError
from folio.cli.errors import err_config

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def _project_yaml(cfg: FolioConfig) -> str:
    return (
        "# Folio project configuration. API keys come from the environment only.\n"
        "\n"
        "embedding:\n"
        f"  model: {cfg.embedding.model}\n"
        f"  dimensions: {cfg.embedding.dimensions}\n"
        "\n"
        "llm:\n"
        f"  model: {cfg.llm.model}\n"
        f"  temperature: {cfg.llm.temperature}\n"
        "\n"
        "database:\n"
        f"  path: {cfg.database.path}\n"
        f"  portfolio_path: {cfg.database.portfolio_path}\n"
        "\n"
        "retrieval:\n"
        f"  threshold: {cfg.retrieval.threshold}\n"
        f"  limit: {cfg.retrieval.limit}\n"
        f"  cache_threshold: {cfg.retrieval.cache_threshold}\n"
        f"  reuse_cached_answers: {str(cfg.retrieval.reuse_cached_answers).lower()}\n"
    )


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-initialize without asking. Existing data is preserved."),
    ] = False,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.folio/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Initialize a folio project: database, folio.yaml and global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    try:
        cfg = load_config(project_dir, global_config_path=global_config)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    db_path = Path(cfg.database.path)
    if not db_path.is_absolute():
        db_path = project_dir / db_path

    if db_path.exists() and not force:
        console.print(f"[yellow]⚠[/]  {db_path} already exists.")
        if not typer.confirm("Re-initialize? Existing data is preserved.", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    with Database(db_path) as conn:
        initialize(conn, cfg.embedding.model, cfg.embedding.dimensions)
    console.print(f"  [green]✓[/] {db_path.name}")

    yaml_path = project_dir / "folio.yaml"
    if not yaml_path.exists():
        yaml_path.write_text(_project_yaml(cfg), encoding="utf-8")
        console.print("  [green]✓[/] folio.yaml")

    cfg_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\n[bold green]✓ Folio project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. folio seed                 (index business rules + market-data catalog)")
    console.print('  2. folio ask "<question>"     (ask about your portfolio)')
