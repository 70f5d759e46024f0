"""Seriation run orchestration.

Classes:
    Item: Item identity plus optional embeddable text.
    ProgressEvent: Checkpoint emitted to the injected progress sink.
    CollectionRunRegistry: Guards against two concurrent runs for the same collection.
    SeriationService: Cache lookup, batched embedding fetch with per-batch persistence, and ranking.

Functions:
    ranks_from_order(ids, order): Convert an ordering into 1-based ranks keyed by item id.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence, Union

from seriate.core.errors import (
    EmptyInputError,
    InvalidInputError,
    ProviderError,
    RunCancelledError,
    RunInProgressError,
    RunProgress,
    SeriationError,
)
from seriate.services.embedding_store import CacheEntry, EmbeddingStore
from seriate.services.openai_client import DEFAULT_BATCH_LIMIT, EmbeddingProvider
from seriate.services.seriation import seriate

_LOGGER = logging.getLogger(__name__)

RankMap = dict[str, int]
TextExtractor = Callable[["Item"], Union[str, Awaitable[str]]]


@dataclass(slots=True, frozen=True)
class Item:
    id: str
    text: Optional[str] = None


@dataclass(slots=True)
class ProgressEvent:
    stage: str
    message: str
    percent: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)


ProgressSink = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class CollectionRunRegistry:
    """Tracks which collections have a run in flight."""

    def __init__(self) -> None:
        self._active: set[str] = set()

    def is_active(self, collection: str) -> bool:
        return collection in self._active

    @contextmanager
    def claim(self, collection: str) -> Iterator[None]:
        if collection in self._active:
            raise RunInProgressError(collection)
        self._active.add(collection)
        try:
            yield
        finally:
            self._active.discard(collection)


def ranks_from_order(ids: Sequence[str], order: Sequence[int]) -> RankMap:
    return {ids[original_index]: position + 1 for position, original_index in enumerate(order)}


async def _default_text(item: Item) -> str:
    if item.text is None:
        raise InvalidInputError(f"Item '{item.id}' has no text to embed")
    return item.text


class SeriationService:
    def __init__(
        self,
        *,
        provider: EmbeddingProvider,
        store: EmbeddingStore,
        batch_size: int = DEFAULT_BATCH_LIMIT,
        registry: Optional[CollectionRunRegistry] = None,
    ) -> None:
        if batch_size < 1:
            raise InvalidInputError(f"batch_size must be positive, got {batch_size}")
        self._provider = provider
        self._store = store
        self._batch_size = batch_size
        self._registry = registry or CollectionRunRegistry()

    async def run(
        self,
        items: Sequence[Item],
        *,
        collection: str = "default",
        text_extractor: Optional[TextExtractor] = None,
        progress: Optional[ProgressSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
        force_refresh: bool = False,
    ) -> RankMap:
        with self._registry.claim(collection):
            return await self._run(
                items,
                collection=collection,
                text_extractor=text_extractor or _default_text,
                progress=progress,
                cancel_event=cancel_event,
                force_refresh=force_refresh,
            )

    async def _run(
        self,
        items: Sequence[Item],
        *,
        collection: str,
        text_extractor: TextExtractor,
        progress: Optional[ProgressSink],
        cancel_event: Optional[asyncio.Event],
        force_refresh: bool,
    ) -> RankMap:
        started = time.perf_counter()
        phase = "validate"
        state = RunProgress(total=len(items))
        try:
            ids = self._validate(items)
            _LOGGER.info("Seriation run for %s started with %d items", collection, len(ids))

            phase = "cache-lookup"
            cached = {} if force_refresh else await self._store.get_many(ids)
            missing = [item for item in items if item.id not in cached]
            state = RunProgress(total=len(ids), cached=len(cached))
            _LOGGER.info("Cache lookup for %s: %d cached, %d missing", collection, len(cached), len(missing))
            await _emit(
                progress,
                ProgressEvent(
                    stage="cache-lookup",
                    message=f"{len(cached)} cached, {len(missing)} need embedding.",
                    percent=0.0,
                    metadata={"cached": len(cached), "missing": len(missing), "total": len(ids)},
                ),
            )

            phase = "fetch"
            fetched: dict[str, list[float]] = {}
            batches = [
                missing[start : start + self._batch_size]
                for start in range(0, len(missing), self._batch_size)
            ]
            for batch_index, batch in enumerate(batches):
                _check_cancelled(cancel_event)
                texts = [await _extract(text_extractor, item) for item in batch]
                vectors = await self._provider.compute(texts, self._batch_size)
                if len(vectors) != len(batch):
                    raise ProviderError(
                        f"Provider returned {len(vectors)} embeddings for {len(batch)} texts",
                        kind="malformed",
                        batch_index=batch_index,
                    )

                phase = "persist"
                entries = [CacheEntry(item.id, vector) for item, vector in zip(batch, vectors)]
                await self._store.put_many(entries)
                for entry in entries:
                    fetched[entry.item_id] = entry.embedding
                state = RunProgress(total=len(ids), cached=len(cached), persisted=len(fetched))
                _LOGGER.info(
                    "Persisted embedding batch %d/%d for %s (%d items)",
                    batch_index + 1,
                    len(batches),
                    collection,
                    len(entries),
                )
                await _emit(
                    progress,
                    ProgressEvent(
                        stage="fetch",
                        message=f"Embedded {len(fetched)}/{len(missing)} items.",
                        percent=len(fetched) / len(missing),
                        metadata={**state.to_dict(), "batch": batch_index + 1, "batches": len(batches)},
                    ),
                )
                phase = "fetch"

            phase = "seriate"
            _check_cancelled(cancel_event)
            await _emit(
                progress,
                ProgressEvent(stage="seriate", message="Running seriation...", percent=1.0, metadata=state.to_dict()),
            )
            merged = {**cached, **fetched}
            vectors_in_order = [merged[item_id] for item_id in ids]
            order = await asyncio.to_thread(seriate, vectors_in_order)
            ranks = ranks_from_order(ids, order)
        except SeriationError as exc:
            exc.phase = exc.phase or phase
            exc.progress = exc.progress or state
            _LOGGER.warning(
                "Seriation run for %s failed during %s: %s (%s)",
                collection,
                exc.phase,
                exc.message,
                exc.progress.to_dict(),
            )
            raise

        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        await _emit(
            progress,
            ProgressEvent(
                stage="completed",
                message=f"Done. Seriated {len(ranks)} items.",
                percent=1.0,
                metadata={**state.to_dict(), "count": len(ranks), "processing_time_ms": elapsed_ms},
            ),
        )
        _LOGGER.info("Seriation run for %s finished in %.1f ms", collection, elapsed_ms)
        return ranks

    @staticmethod
    def _validate(items: Sequence[Item]) -> list[str]:
        if not items:
            raise EmptyInputError("No items submitted for seriation")
        ids = [item.id for item in items]
        duplicates = sorted(item_id for item_id, count in Counter(ids).items() if count > 1)
        if duplicates:
            raise InvalidInputError(f"Duplicate item ids: {', '.join(duplicates)}")
        return ids


def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelledError("Seriation run cancelled")


async def _extract(extractor: TextExtractor, item: Item) -> str:
    text = extractor(item)
    if inspect.isawaitable(text):
        text = await text
    return text


async def _emit(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
    if sink is None:
        return
    result = sink(event)
    if inspect.isawaitable(result):
        await result
