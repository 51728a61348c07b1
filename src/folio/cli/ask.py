"""folio ask: answer one question about the portfolio."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from folio.cli.common import load_cfg_or_exit, open_db_or_exit
from folio.cli.errors import err_no_api_key, err_no_portfolio_db
from folio.errors import QueryCancelled
from folio.rag.llm_client import validate_api_key
from folio.rag.router import CancelToken, build_router

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Natural-language question.")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to .folio.db.")] = None,
    portfolio_db: Annotated[
        Path | None,
        typer.Option("--portfolio-db", help="SQLite file with the portfolio_summary table."),
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", help="LiteLLM chat model (overrides config).")
    ] = None,
    ticker_strategy: Annotated[
        str,
        typer.Option("--ticker-strategy", help="Ticker extraction: 'llm' or 'regex'."),
    ] = "llm",
    show_path: Annotated[
        bool, typer.Option("--show-path", help="Print which path answered the question.")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Ask a question: SQL over holdings, stored context, market data, or a general answer."""
    if ticker_strategy not in ("llm", "regex"):
        console.print(
            f"[red]Error:[/] Unknown --ticker-strategy '{ticker_strategy}'. Use 'llm' or 'regex'."
        )
        raise typer.Exit(1)

    cfg = load_cfg_or_exit(
        console, db=db, portfolio_db=portfolio_db, model=model, verbose=verbose
    )

    for m in (cfg.llm.model, cfg.embedding.model):
        try:
            validate_api_key(m)
        except EnvironmentError:
            console.print(err_no_api_key(m.split("/")[0] if "/" in m else "openai"))
            raise typer.Exit(1)

    if not Path(cfg.database.portfolio_path).exists():
        console.print(err_no_portfolio_db(cfg.database.portfolio_path))
        raise typer.Exit(1)

    conn = open_db_or_exit(console, cfg)
    cancel = CancelToken()
    try:
        router = build_router(cfg, conn, ticker_strategy=ticker_strategy)
        with console.status("Thinking…"):
            res = router.ask(question, cancel)
    except KeyboardInterrupt:
        cancel.cancel()
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(130)
    except QueryCancelled:
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(130)
    finally:
        conn.close()

    console.print(res.final_answer or "", markup=False, highlight=False)
    if show_path:
        path = res.path.value if res.path else "none"
        flags = " (cached)" if res.cached else ""
        console.print(f"[dim]path: {path}{flags}[/]")
