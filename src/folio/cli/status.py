"""folio status: configuration and context-store overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from folio.cli.common import load_cfg_or_exit
from folio.db.connection import Database
from folio.db.migrations import current_version
from folio.db.vectors import model_to_slug, table_dimensions, vec_table_name
from folio.market.client import api_key_from_env

console = Console()


def status_cmd(
    db: Annotated[Path | None, typer.Option("--db", help="Path to .folio.db.")] = None,
) -> None:
    """Show configuration, stored records and market-data catalog size."""
    cfg = load_cfg_or_exit(console, db=db)

    overview = Table.grid(padding=(0, 2))
    overview.add_row("Database", cfg.database.path)
    overview.add_row("Portfolio", cfg.database.portfolio_path)
    overview.add_row("LLM", cfg.llm.model)
    overview.add_row("Embedding", f"{cfg.embedding.model} ({cfg.embedding.dimensions}d)")
    overview.add_row("Market data", "enabled" if api_key_from_env() else "[yellow]disabled[/]")
    console.print(Panel(overview, title="[bold]Folio[/]", expand=False))

    db_path = Path(cfg.database.path)
    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n  Run:  folio init",
                title="[bold]Context Store[/]",
                expand=False,
            )
        )
        return

    with Database(db_path) as conn:
        slug = model_to_slug(cfg.embedding.model)
        table = Table(show_header=True, header_style="bold")
        table.add_column("Content type")
        table.add_column("Records", justify="right")
        rows = conn.execute(
            "SELECT content_type, COUNT(*) AS n FROM context_records GROUP BY content_type ORDER BY content_type"
        ).fetchall()
        for row in rows:
            table.add_row(row["content_type"], str(row["n"]))
        if not rows:
            table.add_row("[dim](empty)[/]", "0")
        console.print(table)

        functions = conn.execute("SELECT COUNT(*) FROM api_functions").fetchone()[0]
        console.print(f"Market-data functions indexed: {functions}")
        console.print(f"Schema version: {current_version(conn)}")

        indexed_dims = table_dimensions(conn, vec_table_name("context", slug))
        if indexed_dims is not None and indexed_dims != cfg.embedding.dimensions:
            console.print(
                f"[red]⚠[/] Vector index has {indexed_dims} dimensions, config says "
                f"{cfg.embedding.dimensions}. Run:  folio init --force"
            )
