"""User-facing strings for terminal outcomes of the pipeline."""

from __future__ import annotations

NO_DATA_MESSAGE = "I couldn't find any data matching your question."

NOT_FOUND_MESSAGE = (
    "I couldn't find relevant data for your question. Could you try rephrasing it "
    "or asking about a specific holding, stock or economic indicator?"
)

CONNECTION_MESSAGE = (
    "I'm having trouble reaching one of my data services right now. "
    "Please check your connection and try again."
)

RATE_LIMITED_MESSAGE = (
    "The market-data service is rate-limiting requests at the moment. "
    "Please try again in a minute."
)

EMPTY_QUERY_MESSAGE = "Please provide a query."


def api_error_message(error: str) -> str:
    """Explain a market-data API error, hinting at bad symbols/keywords where relevant."""
    lowered = error.lower()
    if "invalid api call" in lowered and ("symbol" in lowered or "keywords" in lowered):
        return (
            f"There was an issue fetching market data: {error}. This often means the stock "
            "symbol or search keywords were not found or are not supported."
        )
    return f"There was an issue fetching market data: {error}"


def information_message(information: str) -> str:
    return (
        f'I received a message from the market-data service: "{information}". This might '
        "indicate an issue with the request, API limits, or an invalid symbol/parameter."
    )


def note_message(note: str) -> str:
    return (
        f'I received a note from the market-data service: "{note}". This often indicates '
        "an API limit was reached or there's an issue with the request, and I couldn't "
        "get detailed data."
    )
