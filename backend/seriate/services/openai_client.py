"""Embedding provider contract and the OpenAI-backed implementation.

Classes:
    EmbeddingProvider: Protocol for turning ordered texts into ordered vectors.
    OpenAIEmbeddingProvider: Calls the OpenAI embeddings endpoint one batch at a time.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

import openai
from openai import AsyncOpenAI

from seriate.core.config import Settings, get_settings
from seriate.core.errors import ConfigurationError, ProviderError

_LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 100


@runtime_checkable
class EmbeddingProvider(Protocol):
    model_id: str

    async def compute(self, texts: Sequence[str], batch_limit: int = DEFAULT_BATCH_LIMIT) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        settings: Optional[Settings] = None,
        model: Optional[str] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.model_id = model or self._settings.openai_embedding_model
        if client is not None:
            self._client = client
            return

        api_key = (
            self._settings.openai_api_key.get_secret_value()
            if self._settings.openai_api_key
            else None
        )
        if not api_key:
            raise ConfigurationError("OpenAI API key not configured. Set OPENAI_API_KEY.", phase="configure")
        # No retries: a failed batch aborts the run and the caller decides what to do.
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self._settings.openai_base_url,
            timeout=self._settings.openai_timeout,
            max_retries=0,
        )

    async def compute(self, texts: Sequence[str], batch_limit: int = DEFAULT_BATCH_LIMIT) -> list[list[float]]:
        if batch_limit < 1:
            raise ConfigurationError(f"batch_limit must be positive, got {batch_limit}", phase="configure")

        docs = [self._truncate(text) for text in texts]
        vectors: list[list[float]] = []
        for batch_index, start in enumerate(range(0, len(docs), batch_limit)):
            chunk = docs[start : start + batch_limit]
            vectors.extend(await self._embed_batch(chunk, batch_index))
        return vectors

    def _truncate(self, text: str) -> str:
        return (text or "")[: self._settings.openai_input_max_chars]

    async def _embed_batch(self, chunk: list[str], batch_index: int) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(model=self.model_id, input=chunk)
        except openai.AuthenticationError as exc:
            raise ProviderError(
                f"OpenAI rejected the API key: {exc}",
                kind="authentication",
                status_code=exc.status_code,
                batch_index=batch_index,
            ) from exc
        except openai.RateLimitError as exc:
            raise ProviderError(
                f"OpenAI rate limit reached: {exc}",
                kind="rate_limit",
                status_code=exc.status_code,
                batch_index=batch_index,
            ) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                f"OpenAI API error {exc.status_code}: {exc}",
                kind="api",
                status_code=exc.status_code,
                batch_index=batch_index,
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(
                f"Could not reach OpenAI: {exc}",
                kind="connection",
                batch_index=batch_index,
            ) from exc
        except openai.APIResponseValidationError as exc:
            raise ProviderError(
                f"OpenAI returned an unreadable embeddings response: {exc}",
                kind="malformed",
                status_code=exc.status_code,
                batch_index=batch_index,
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(
                f"OpenAI request failed: {exc}",
                kind="api",
                batch_index=batch_index,
            ) from exc

        vectors = _reorder_by_index(getattr(response, "data", None), len(chunk), batch_index)
        _LOGGER.debug("Embedded batch %d (%d texts) with %s", batch_index, len(chunk), self.model_id)
        return vectors


def _reorder_by_index(data: Any, expected: int, batch_index: int) -> list[list[float]]:
    """Place each returned embedding at its input position, validating the whole batch."""

    def malformed(reason: str) -> ProviderError:
        return ProviderError(
            f"Malformed embeddings response: {reason}",
            kind="malformed",
            batch_index=batch_index,
        )

    if data is None:
        raise malformed("missing data")
    items = list(data)
    if len(items) != expected:
        raise malformed(f"expected {expected} embeddings, received {len(items)}")

    slots: list[list[float] | None] = [None] * expected
    dim: int | None = None
    for item in items:
        index = getattr(item, "index", None)
        if not isinstance(index, int) or not 0 <= index < expected:
            raise malformed(f"invalid index {index!r}")
        if slots[index] is not None:
            raise malformed(f"duplicate index {index}")

        raw = getattr(item, "embedding", None)
        if not isinstance(raw, (list, tuple)) or not raw:
            raise malformed(f"empty embedding at index {index}")
        try:
            vector = [float(value) for value in raw]
        except (TypeError, ValueError) as exc:
            raise malformed(f"non-numeric embedding at index {index}") from exc
        if not all(math.isfinite(value) for value in vector):
            raise malformed(f"non-finite embedding at index {index}")
        if dim is None:
            dim = len(vector)
        elif len(vector) != dim:
            raise malformed(f"inconsistent dimensionality at index {index}")
        slots[index] = vector

    return [vector for vector in slots if vector is not None]
