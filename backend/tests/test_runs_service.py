import asyncio

import pytest

from seriate.models import RunStatus, SeriationRun
from seriate.services.orchestrator import CollectionRunRegistry, Item, SeriationService
from seriate.services.runs import RunService

from .fakes import FakeProvider


def _run_service(session_factory, store, provider) -> RunService:
    registry = CollectionRunRegistry()
    seriation = SeriationService(provider=provider, store=store, batch_size=2, registry=registry)
    return RunService(session_factory, seriation, embedding_model=store.model_id, registry=registry)


async def _load(session_factory, run_id) -> SeriationRun:
    async with session_factory() as session:
        return await session.get(SeriationRun, run_id)


@pytest.mark.asyncio
async def test_completed_run_records_ranks_and_timestamps(session_factory, store):
    service = _run_service(session_factory, store, FakeProvider())
    run = await service.create_run("Inbox", 2)

    outcome = await service.execute(run, [Item("A", "alpha"), Item("B", "beta")])

    stored = await _load(session_factory, run.id)
    assert stored.status == RunStatus.COMPLETED
    assert stored.fetched_count == 2
    assert stored.created_at is not None
    assert stored.updated_at >= stored.created_at
    assert sorted(outcome.ranks.values()) == [1, 2]


def test_new_rows_carry_timezone_aware_timestamps():
    run = SeriationRun(collection="Inbox", embedding_model="fake-embedding", item_count=1)
    assert run.created_at.tzinfo is not None
    assert run.updated_at.tzinfo is not None


@pytest.mark.asyncio
async def test_unexpected_provider_failure_marks_run_failed(session_factory, store):
    class BrokenProvider(FakeProvider):
        async def compute(self, texts, batch_limit=100):
            raise RuntimeError("socket closed")

    service = _run_service(session_factory, store, BrokenProvider())
    run = await service.create_run("Inbox", 1)

    with pytest.raises(RuntimeError):
        await service.execute(run, [Item("A", "alpha")])

    stored = await _load(session_factory, run.id)
    assert stored.status == RunStatus.FAILED
    assert stored.error_message == "socket closed"
    assert stored.error_phase == "cache-lookup"
    assert stored.processing_time_ms is not None


@pytest.mark.asyncio
async def test_task_cancellation_marks_run_cancelled(session_factory, store):
    entered = asyncio.Event()

    class HangingProvider(FakeProvider):
        async def compute(self, texts, batch_limit=100):
            entered.set()
            await asyncio.Event().wait()

    service = _run_service(session_factory, store, HangingProvider())
    run = await service.create_run("Inbox", 1)

    task = asyncio.create_task(service.execute(run, [Item("A", "alpha")]))
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    stored = await _load(session_factory, run.id)
    assert stored.status == RunStatus.CANCELLED
    assert stored.error_phase == "cache-lookup"
