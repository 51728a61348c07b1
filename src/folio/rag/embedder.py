"""Embedding client: text → fixed-length vector of the deployed index dimension."""

from __future__ import annotations

from folio.errors import EmbeddingDimensionMismatch
from folio.rag import llm_client


class Embedder:
    """Embeds text with one configured model and enforces its dimension.

    Single attempt per call. ``EmbeddingUnavailable`` propagates from the
    client; a vector of the wrong size raises ``EmbeddingDimensionMismatch``
    so that no write ever stores it.
    """

    def __init__(self, model: str, dimensions: int) -> None:
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> list[float]:
        vector = llm_client.embed(self.model, text, num_retries=0)
        if len(vector) != self.dimensions:
            raise EmbeddingDimensionMismatch(self.dimensions, len(vector))
        return vector
