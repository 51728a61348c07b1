"""LiteLLM client wrapper with API key validation.

All chat completions and embeddings in the pipeline route through this module.
Query-time calls use a single attempt: a failure surfaces immediately as a
phase error and the router falls through to the next path instead of waiting
on retries.
"""

from __future__ import annotations

import logging
import os
import re
from typing import TypeVar

import litellm
from pydantic import BaseModel, ValidationError

from folio.errors import EmbeddingUnavailable, ParseError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "huggingface": "HUGGINGFACE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, "OPENAI_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LlmClient:
    """Chat completion against one configured model.

    Transport and provider errors propagate as raised by litellm; each phase
    maps them onto its own error type.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.num_retries = num_retries

    def complete(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Call litellm.completion() and return the first choice's content ('' if None)."""
        response = litellm.completion(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            temperature=temperature if temperature is not None else self.temperature,
            num_retries=self.num_retries,
        )
        return response.choices[0].message.content or ""

    def ask(self, system: str, user: str, **kwargs: float | int | None) -> str:
        """Shorthand for a two-message (system, user) completion."""
        return self.complete(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            **kwargs,
        )


def embed(model: str, text: str, num_retries: int = 0) -> list[float]:
    """Call litellm.embedding() and return the vector, flattened one level.

    Some providers (HF feature-extraction) answer ``[[...]]`` for a single input.

    Raises:
        EmbeddingUnavailable: On any provider/transport failure or empty response.
    """
    try:
        response = litellm.embedding(model=model, input=[text], num_retries=num_retries)
    except Exception as exc:
        logger.warning("Embedding call failed for model %s: %s", model, exc)
        raise EmbeddingUnavailable(f"Embedding model '{model}' unavailable: {exc}") from exc

    try:
        vector = response.data[0]["embedding"]
    except (IndexError, KeyError, TypeError) as exc:
        raise EmbeddingUnavailable(f"Embedding model '{model}' returned no vector") from exc

    if vector and isinstance(vector[0], list):
        vector = vector[0]
    if not vector:
        raise EmbeddingUnavailable(f"Embedding model '{model}' returned an empty vector")
    return [float(v) for v in vector]


# ------------------------------------------------------------------
# Strict JSON responses
# ------------------------------------------------------------------

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_llm_json(raw: str, model: type[ModelT]) -> ModelT:
    """Validate the first JSON object in *raw* against *model*.

    Models tolerate surrounding prose and code fences, not schema drift.

    Raises:
        ParseError: No JSON object, malformed JSON, or a schema violation.
    """
    raw = raw or ""
    match = _JSON_OBJECT_RE.search(raw)
    if match is None:
        raise ParseError(f"No JSON object in model output: {raw[:200]!r}")
    try:
        return model.model_validate_json(match.group(0))
    except ValidationError as exc:
        raise ParseError(f"Model output does not match {model.__name__}: {exc}") from exc
