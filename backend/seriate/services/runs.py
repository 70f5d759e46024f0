"""Persisted seriation runs.

Classes:
    RunProgressRecorder: Progress sink that writes each checkpoint onto the run row.
    RunOutcome: Ranks and cache counts produced by a completed run.
    RunService: Creates run rows, drives the SeriationService, and records success or failure.

Functions:
    to_run_resource(run): Convert a SeriationRun ORM instance into its response schema.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from seriate.core.errors import RunCancelledError, RunInProgressError, SeriationError, StorageError
from seriate.models import RunStatus, SeriationRun
from seriate.schemas import RunResource
from seriate.services.orchestrator import (
    CollectionRunRegistry,
    Item,
    ProgressEvent,
    RankMap,
    SeriationService,
    TextExtractor,
)

_LOGGER = logging.getLogger(__name__)


class RunProgressRecorder:
    def __init__(self, session_factory: async_sessionmaker, run_id: UUID) -> None:
        self._session_factory = session_factory
        self._run_id = run_id
        self.cached = 0
        self.persisted = 0
        self.events: list[ProgressEvent] = []

    async def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)
        self.cached = int(event.metadata.get("cached", self.cached))
        self.persisted = int(event.metadata.get("persisted", self.persisted))
        await _update_run(
            self._session_factory,
            self._run_id,
            progress_stage=event.stage,
            progress_message=event.message,
            progress_percent=event.percent,
            progress_metadata=json.dumps(event.metadata) if event.metadata else None,
        )


@dataclass(slots=True)
class RunOutcome:
    run_id: UUID
    ranks: RankMap
    cached: int
    fetched: int
    processing_time_ms: float


class RunService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        seriation_service: SeriationService,
        *,
        embedding_model: str,
        registry: CollectionRunRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._seriation = seriation_service
        self._embedding_model = embedding_model
        self._registry = registry

    async def create_run(self, collection: str, item_count: int, *, force_refresh: bool = False) -> SeriationRun:
        if self._registry.is_active(collection):
            raise RunInProgressError(collection)

        run = SeriationRun(
            collection=collection,
            embedding_model=self._embedding_model,
            item_count=item_count,
            force_refresh=force_refresh,
            status=RunStatus.RUNNING,
            progress_stage="queued",
            progress_message=f"Queued seriation of {item_count} items",
            progress_percent=0.0,
        )
        try:
            async with self._session_factory() as session:
                session.add(run)
                await session.commit()
                await session.refresh(run)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not record seriation run: {exc}", phase="queue") from exc
        return run

    async def execute(
        self,
        run: SeriationRun,
        items: Sequence[Item],
        *,
        text_extractor: Optional[TextExtractor] = None,
    ) -> RunOutcome:
        recorder = RunProgressRecorder(self._session_factory, run.id)
        started = time.perf_counter()
        try:
            ranks = await self._seriation.run(
                items,
                collection=run.collection,
                text_extractor=text_extractor,
                progress=recorder,
                force_refresh=run.force_refresh,
            )
        except SeriationError as exc:
            status = RunStatus.CANCELLED if isinstance(exc, RunCancelledError) else RunStatus.FAILED
            progress = exc.progress
            await _update_run(
                self._session_factory,
                run.id,
                status=status,
                error_phase=exc.phase,
                error_message=exc.message,
                cached_count=progress.cached if progress else recorder.cached,
                fetched_count=progress.persisted if progress else recorder.persisted,
                processing_time_ms=_elapsed_ms(started),
            )
            _LOGGER.info("Seriation run %s marked %s after %s", run.id, status, exc.phase)
            raise
        except BaseException as exc:
            cancelled = isinstance(exc, asyncio.CancelledError)
            status = RunStatus.CANCELLED if cancelled else RunStatus.FAILED
            phase = recorder.events[-1].stage if recorder.events else "validate"
            await _update_run(
                self._session_factory,
                run.id,
                status=status,
                error_phase=phase,
                error_message=str(exc) or exc.__class__.__name__,
                cached_count=recorder.cached,
                fetched_count=recorder.persisted,
                processing_time_ms=_elapsed_ms(started),
            )
            if cancelled:
                _LOGGER.info("Seriation run %s cancelled during %s", run.id, phase)
            else:
                _LOGGER.exception("Seriation run %s failed unexpectedly during %s", run.id, phase)
            raise

        elapsed = _elapsed_ms(started)
        await _update_run(
            self._session_factory,
            run.id,
            status=RunStatus.COMPLETED,
            cached_count=recorder.cached,
            fetched_count=recorder.persisted,
            ranks_json=json.dumps(ranks),
            processing_time_ms=elapsed,
        )
        return RunOutcome(
            run_id=run.id,
            ranks=ranks,
            cached=recorder.cached,
            fetched=recorder.persisted,
            processing_time_ms=elapsed,
        )


async def _update_run(session_factory: async_sessionmaker, run_id: UUID, **fields: Any) -> None:
    try:
        async with session_factory() as session:
            run = await session.get(SeriationRun, run_id)
            if run is None:
                raise StorageError(f"Seriation run {run_id} not found")
            for name, value in fields.items():
                setattr(run, name, value)
            run.updated_at = datetime.now(timezone.utc)
            session.add(run)
            await session.commit()
    except SQLAlchemyError as exc:
        raise StorageError(f"Could not update seriation run {run_id}: {exc}") from exc


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


def to_run_resource(run: SeriationRun) -> RunResource:
    return RunResource(
        id=run.id,
        collection=run.collection,
        embedding_model=run.embedding_model,
        status=run.status,
        item_count=run.item_count,
        cached_count=run.cached_count,
        fetched_count=run.fetched_count,
        force_refresh=run.force_refresh,
        progress_stage=run.progress_stage,
        progress_message=run.progress_message,
        progress_percent=run.progress_percent,
        progress_metadata=json.loads(run.progress_metadata) if run.progress_metadata else None,
        error_phase=run.error_phase,
        error_message=run.error_message,
        ranks=json.loads(run.ranks_json) if run.ranks_json else None,
        processing_time_ms=run.processing_time_ms,
        created_at=run.created_at,
        updated_at=run.updated_at,
    )
