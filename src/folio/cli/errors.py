"""Folio rich error messages with actionable feedback.

Every error shown to the user states what went wrong and the exact action
that fixes it.

Usage:
    from folio.cli.errors import err_no_api_key
    console.print(err_no_api_key("groq"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'groq'. Set:  export GROQ_API_KEY=...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "groq": "GROQ_API_KEY",
        "huggingface": "HUGGINGFACE_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_db(db_path: str = ".folio.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  folio init"
    )


def err_no_portfolio_db(db_path: str) -> str:
    return (
        f"[red]Error:[/] No portfolio database found at '{db_path}'.\n"
        "  Point database.portfolio_path in folio.yaml (or FOLIO_PORTFOLIO_DB) at the\n"
        "  SQLite file that holds the portfolio_summary table."
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_embedding_unavailable(model: str, detail: str) -> str:
    return (
        f"[red]Error:[/] Embedding model '{model}' is unavailable.\n"
        f"  {detail}\n"
        "  Check your network connection and the provider API key, then retry."
    )


def err_dimension_mismatch(expected: int, actual: int, model: str) -> str:
    """The embedding model's output does not fit the deployed index."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch for '{model}'.\n"
        f"  Index expects:  {expected}\n"
        f"  Model returned: {actual}\n"
        "  Set embedding.dimensions to match the model and re-run:  folio init --force"
    )


def warn_market_data_disabled() -> str:
    return (
        "[yellow]⚠[/] ALPHA_VANTAGE_API_KEY is not set; the market-data catalog is not indexed.\n"
        "  Set:  export ALPHA_VANTAGE_API_KEY=...  and re-run  folio seed"
    )
