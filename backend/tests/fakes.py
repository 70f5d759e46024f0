from __future__ import annotations

from types import SimpleNamespace
from typing import Optional, Sequence

from seriate.core.errors import ProviderError, StorageError
from seriate.services.embedding_store import CacheEntry


def text_vector(text: str) -> list[float]:
    return [float(len(text)), float(sum(map(ord, text)) % 97 + 1), 1.0]


class FakeProvider:
    """Embeds texts from a lookup table, recording every batch it receives."""

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        *,
        fail_on_call: Optional[int] = None,
        model_id: str = "fake-embedding",
    ) -> None:
        self.vectors = vectors or {}
        self.fail_on_call = fail_on_call
        self.model_id = model_id
        self.calls: list[list[str]] = []

    async def compute(self, texts: Sequence[str], batch_limit: int = 100) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise ProviderError("rate limited", kind="rate_limit", status_code=429)
        assert len(texts) <= batch_limit
        return [list(self.vectors.get(text, text_vector(text))) for text in texts]

    @property
    def texts(self) -> list[str]:
        return [text for call in self.calls for text in call]


class MemoryStore:
    def __init__(self, initial: Optional[dict[str, list[float]]] = None, *, fail_writes: bool = False) -> None:
        self.entries: dict[str, list[float]] = dict(initial or {})
        self.fail_writes = fail_writes
        self.writes: list[list[str]] = []

    async def get(self, item_id: str) -> list[float] | None:
        return self.entries.get(item_id)

    async def get_many(self, item_ids) -> dict[str, list[float]]:
        return {item_id: self.entries[item_id] for item_id in set(item_ids) if item_id in self.entries}

    async def put_many(self, entries: Sequence[CacheEntry]) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        self.writes.append([entry.item_id for entry in entries])
        for entry in entries:
            self.entries[entry.item_id] = list(entry.embedding)


class FakeEmbeddingsAPI:
    """Stands in for ``AsyncOpenAI().embeddings`` and returns data in reverse index order."""

    def __init__(self, *, error: Optional[Exception] = None, drop_last: bool = False) -> None:
        self.error = error
        self.drop_last = drop_last
        self.payloads: list[dict] = []

    async def create(self, **payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        inputs = payload["input"]
        data = [
            SimpleNamespace(index=index, embedding=text_vector(text), object="embedding")
            for index, text in enumerate(inputs)
        ]
        if self.drop_last:
            data = data[:-1]
        return SimpleNamespace(data=list(reversed(data)), model=payload["model"])


class FakeOpenAIClient:
    def __init__(self, **kwargs) -> None:
        self.embeddings = FakeEmbeddingsAPI(**kwargs)
