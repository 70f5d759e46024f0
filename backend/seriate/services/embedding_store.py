"""Persistent embedding cache keyed by item id.

Classes:
    CacheEntry: One item id and the embedding vector computed for it.
    EmbeddingStore: Protocol the orchestrator depends on.
    SQLEmbeddingStore: SQLModel-backed store scoped to a single embedding model.

Functions:
    serialize_vector(vector): Encode a vector as float64 bytes plus its norm.
    deserialize_vector(payload, dtype, dim): Decode a cached vector into a list of floats.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Protocol, Sequence, runtime_checkable

import numpy as np
from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from seriate.core.errors import InvalidInputError, StorageError
from seriate.models import EmbeddingCache

_LOGGER = logging.getLogger(__name__)

# Stays below SQLite's bound-parameter limit on older builds.
_LOOKUP_CHUNK = 500

_DTYPES = {
    "float16": np.float16,
    "float32": np.float32,
    "float64": np.float64,
}


@dataclass(slots=True, frozen=True)
class CacheEntry:
    item_id: str
    embedding: list[float]


@runtime_checkable
class EmbeddingStore(Protocol):
    async def get(self, item_id: str) -> list[float] | None: ...

    async def get_many(self, item_ids: Iterable[str]) -> dict[str, list[float]]: ...

    async def put_many(self, entries: Sequence[CacheEntry]) -> None: ...


def serialize_vector(vector: Sequence[float]) -> tuple[bytes, float, int]:
    arr = np.asarray(vector, dtype=np.float64)
    if arr.ndim != 1 or arr.size == 0:
        raise InvalidInputError("Embedding vectors must be non-empty one-dimensional sequences")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError("Embedding vectors must contain only finite values")
    return arr.tobytes(), float(np.linalg.norm(arr)), int(arr.size)


def deserialize_vector(payload: bytes, dtype: str | None, dim: int) -> list[float]:
    np_dtype = _DTYPES.get((dtype or "float64").lower())
    if np_dtype is None:
        raise StorageError(f"Unsupported cached vector dtype '{dtype}'")
    arr = np.frombuffer(payload, dtype=np_dtype)
    if arr.size != dim:
        raise StorageError(f"Cached vector has {arr.size} components, expected {dim}")
    return arr.astype(np.float64).tolist()


class SQLEmbeddingStore:
    """
    Embedding cache stored in the ``embedding_cache`` table.

    Each instance is scoped to one ``model_id`` so vectors from different
    embedding models never mix. Every ``put_many`` call is a single
    transaction and each vector lives in one binary column, so concurrent
    readers observe either the previous or the new vector for an id.
    """

    def __init__(self, session_factory: async_sessionmaker, *, model_id: str) -> None:
        if not model_id:
            raise InvalidInputError("An embedding model id is required to scope the cache")
        self._session_factory = session_factory
        self.model_id = model_id

    async def get(self, item_id: str) -> list[float] | None:
        found = await self.get_many([item_id])
        return found.get(item_id)

    async def get_many(self, item_ids: Iterable[str]) -> dict[str, list[float]]:
        wanted = sorted(set(item_ids))
        if not wanted:
            return {}

        results: dict[str, list[float]] = {}
        try:
            async with self._session_factory() as session:
                for start in range(0, len(wanted), _LOOKUP_CHUNK):
                    chunk = wanted[start : start + _LOOKUP_CHUNK]
                    stmt = select(EmbeddingCache).where(
                        EmbeddingCache.item_id.in_(chunk),
                        EmbeddingCache.model_id == self.model_id,
                    )
                    rows = await session.exec(stmt)
                    for record in rows.all():
                        results[record.item_id] = deserialize_vector(
                            record.vector, record.vector_dtype, record.dim
                        )
        except SQLAlchemyError as exc:
            raise StorageError(f"Embedding cache read failed: {exc}") from exc
        return results

    async def put_many(self, entries: Sequence[CacheEntry]) -> None:
        if not entries:
            return

        encoded: dict[str, tuple[bytes, float, int]] = {}
        for entry in entries:
            encoded[entry.item_id] = serialize_vector(entry.embedding)

        try:
            async with self._session_factory() as session:
                stmt = select(EmbeddingCache).where(
                    EmbeddingCache.item_id.in_(list(encoded)),
                    EmbeddingCache.model_id == self.model_id,
                )
                existing = {record.item_id: record for record in (await session.exec(stmt)).all()}

                now = datetime.now(timezone.utc)
                for item_id, (payload, norm, dim) in encoded.items():
                    cache_obj = existing.get(item_id)
                    if cache_obj is None:
                        cache_obj = EmbeddingCache(
                            item_id=item_id,
                            model_id=self.model_id,
                            vector=payload,
                            vector_dtype="float64",
                            vector_norm=norm,
                            dim=dim,
                        )
                    else:
                        cache_obj.vector = payload
                        cache_obj.vector_dtype = "float64"
                        cache_obj.vector_norm = norm
                        cache_obj.dim = dim
                        cache_obj.updated_at = now
                    session.add(cache_obj)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Embedding cache write failed: {exc}") from exc

        _LOGGER.debug("Persisted %d embeddings for model %s", len(encoded), self.model_id)

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                stmt = select(func.count()).select_from(EmbeddingCache).where(
                    EmbeddingCache.model_id == self.model_id
                )
                return int((await session.exec(stmt)).one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Embedding cache count failed: {exc}") from exc

    async def delete_model(self) -> int:
        """Remove every cached vector for this store's model and return how many were dropped."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(EmbeddingCache).where(EmbeddingCache.model_id == self.model_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Embedding cache invalidation failed: {exc}") from exc

        removed = int(result.rowcount or 0)
        _LOGGER.info("Cleared %d cached embeddings for model %s", removed, self.model_id)
        return removed
