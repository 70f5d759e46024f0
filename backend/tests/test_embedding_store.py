import numpy as np
import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from seriate.core.errors import InvalidInputError, StorageError
from seriate.models import EmbeddingCache
from seriate.services.embedding_store import (
    CacheEntry,
    SQLEmbeddingStore,
    deserialize_vector,
    serialize_vector,
)


@pytest.mark.asyncio
async def test_put_many_then_get_many_round_trips(store):
    entries = [
        CacheEntry("<b@example.com>", [0.25, -1.5, 3.0]),
        CacheEntry("<a@example.com>", [0.1, 0.2, 0.3]),
        CacheEntry("<c@example.com>", [1e-9, 42.0, -7.125]),
    ]
    await store.put_many(entries)

    found = await store.get_many([entry.item_id for entry in reversed(entries)])
    assert found == {entry.item_id: entry.embedding for entry in entries}


@pytest.mark.asyncio
async def test_get_many_skips_unknown_ids(store):
    await store.put_many([CacheEntry("A", [1.0, 0.0])])
    assert await store.get_many({"A", "missing"}) == {"A": [1.0, 0.0]}
    assert await store.get_many([]) == {}


@pytest.mark.asyncio
async def test_get_single_entry(store):
    await store.put_many([CacheEntry("A", [1.0, 2.0])])
    assert await store.get("A") == [1.0, 2.0]
    assert await store.get("B") is None


@pytest.mark.asyncio
async def test_put_many_is_idempotent_upsert(store):
    await store.put_many([CacheEntry("A", [1.0, 2.0])])
    await store.put_many([CacheEntry("A", [1.0, 2.0])])
    assert await store.count() == 1
    assert await store.get("A") == [1.0, 2.0]

    await store.put_many([CacheEntry("A", [5.0, 6.0, 7.0])])
    assert await store.count() == 1
    assert await store.get("A") == [5.0, 6.0, 7.0]


@pytest.mark.asyncio
async def test_entries_are_scoped_to_embedding_model(session_factory, store):
    other = SQLEmbeddingStore(session_factory, model_id="other-model")
    await store.put_many([CacheEntry("A", [1.0, 0.0])])
    await other.put_many([CacheEntry("A", [0.0, 1.0, 0.0])])

    assert await store.get("A") == [1.0, 0.0]
    assert await other.get("A") == [0.0, 1.0, 0.0]

    assert await other.delete_model() == 1
    assert await other.get("A") is None
    assert await store.get("A") == [1.0, 0.0]


@pytest.mark.asyncio
async def test_put_many_rejects_partial_vectors(store):
    with pytest.raises(InvalidInputError):
        await store.put_many([CacheEntry("A", [1.0, 2.0]), CacheEntry("B", [])])
    with pytest.raises(InvalidInputError):
        await store.put_many([CacheEntry("C", [1.0, float("inf")])])
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_records_metadata_for_cached_vectors(session_factory, store):
    await store.put_many([CacheEntry("A", [3.0, 4.0])])
    async with session_factory() as session:
        record = (await session.exec(select(EmbeddingCache))).one()
    assert record.dim == 2
    assert record.vector_dtype == "float64"
    assert record.vector_norm == pytest.approx(5.0)
    assert record.model_id == "fake-embedding"


@pytest.mark.asyncio
async def test_storage_failures_raise_storage_error(session_factory):
    store = SQLEmbeddingStore(session_factory, model_id="fake-embedding")

    class BrokenSession:
        async def __aenter__(self):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        async def __aexit__(self, *exc_info):
            return False

    store._session_factory = lambda: BrokenSession()
    with pytest.raises(StorageError):
        await store.get_many(["A"])
    with pytest.raises(StorageError):
        await store.put_many([CacheEntry("A", [1.0])])


def test_model_id_required():
    with pytest.raises(InvalidInputError):
        SQLEmbeddingStore(None, model_id="")


def test_legacy_float16_vectors_are_readable():
    payload = np.asarray([0.5, -2.0], dtype=np.float16).tobytes()
    assert deserialize_vector(payload, "float16", 2) == [0.5, -2.0]


def test_deserialize_rejects_truncated_vectors():
    payload, _, _ = serialize_vector([1.0, 2.0, 3.0])
    with pytest.raises(StorageError):
        deserialize_vector(payload[:-8], "float64", 3)


@pytest.mark.asyncio
async def test_upsert_refreshes_updated_at(session_factory, store):
    await store.put_many([CacheEntry("A", [1.0, 0.0])])
    await store.put_many([CacheEntry("A", [0.0, 1.0])])
    async with session_factory() as session:
        record = (await session.exec(select(EmbeddingCache))).one()
    assert record.updated_at >= record.created_at

    fresh = EmbeddingCache(item_id="B", model_id="m", vector=b"", dim=0)
    assert fresh.created_at.tzinfo is not None
