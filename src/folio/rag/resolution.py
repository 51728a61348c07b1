"""Per-request resolution state threaded through the pipeline phases.

Each phase takes a ``QueryResolution`` and returns a new one via
``dataclasses.replace``; nothing here outlives the request.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from folio.errors import QueryCancelled


class ResolutionPath(str, Enum):
    SQL = "sql"
    VECTOR_RETRIEVAL = "vector-retrieval"
    EXTERNAL_API = "external-api"
    GENERIC = "generic"


@dataclass(frozen=True)
class QueryResolution:
    user_query: str
    query_embedding: list[float] | None = None
    sql_query: str | None = None
    matched_function: str | None = None
    extracted_parameters: dict[str, str] = field(default_factory=dict)
    raw_result: Any = None
    final_answer: str | None = None
    path: ResolutionPath | None = None
    cached: bool = False
    persisted: bool = False
    errors: tuple[tuple[str, str], ...] = ()

    def with_error(self, phase: str, message: str) -> QueryResolution:
        return replace(self, errors=(*self.errors, (phase, message)))

    def answered(self, path: ResolutionPath, answer: str, **changes: Any) -> QueryResolution:
        return replace(self, path=path, final_answer=answer, **changes)

    @property
    def is_answered(self) -> bool:
        return self.final_answer is not None


class CancelToken:
    """Request-scoped cancellation flag, checked around every network call.

    In-flight blocking calls are not interrupted; their results are discarded
    at the next check.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, phase: str = "") -> None:
        if self._event.is_set():
            raise QueryCancelled(f"Query cancelled{f' during {phase}' if phase else ''}")


def checkpoint(cancel: CancelToken | None, phase: str = "") -> None:
    if cancel is not None:
        cancel.check(phase)
