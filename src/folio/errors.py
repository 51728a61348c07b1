"""Error taxonomy for the query resolution pipeline.

Every phase raises one of these at its boundary; the router converts them into
a fallback transition, a routing fall-through, or a user-facing message.
``NoData`` is a routing signal rather than a failure, and ``ExternalApiError``
is a value object carried through the market-data pipeline, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass


class FolioError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(FolioError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ------------------------------------------------------------------
# Embedding + context store
# ------------------------------------------------------------------


class EmbeddingUnavailable(FolioError):
    """The embedding model call failed or timed out (never retried in-request)."""


class EmbeddingDimensionMismatch(FolioError):
    """A computed vector does not match the dimension of the deployed index."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding has {actual} dimensions, index expects {expected}. "
            "Refusing to store a vector of the wrong size."
        )
        self.expected = expected
        self.actual = actual


class DuplicateKey(FolioError):
    """A record with the same natural key (source_name) already exists."""


# ------------------------------------------------------------------
# SQL path
# ------------------------------------------------------------------


class SynthesisRejected(FolioError):
    """The LLM produced non-SELECT or unparsable SQL output."""


class ExecutionRejected(FolioError):
    """The SELECT-only check failed again at the execution boundary."""


class QueryFailed(FolioError):
    """The portfolio datastore raised an error while executing a query."""


class NoData(Exception):
    """A valid query returned zero rows: this path did not answer the question."""


# ------------------------------------------------------------------
# Market data + formatting
# ------------------------------------------------------------------


class ParseError(FolioError):
    """LLM output did not conform to the expected JSON schema."""


class NoFunctionDetermined(FolioError):
    """Neither LLM selection nor the semantic fallback produced a function."""


class FormattingFailed(FolioError):
    """The answer-formatting LLM call failed or returned nothing."""


class QueryCancelled(FolioError):
    """The caller cancelled the request; partial state is discarded."""


@dataclass(frozen=True)
class ExternalApiError:
    """A hard market-data failure, captured as data for the formatting phase.

    Attributes:
        message: Human-readable cause (API error text or transport failure).
        status: HTTP status code when the server answered, else None.
    """

    message: str
    status: int | None = None

    @property
    def is_connection_error(self) -> bool:
        return self.status is None
