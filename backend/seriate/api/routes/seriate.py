"""Seriation endpoints.

Endpoints:
    seriate_collection(payload, service, settings): Rank a collection's items so similar items sit together.
    get_run(run_id, session): Report persisted progress and outcome of a run.

Helpers:
    error_status(exc): Map a SeriationError onto an HTTP status code.
    _to_items(payload, settings): Convert request items into orchestrator Items.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from seriate.core.config import Settings, get_settings
from seriate.core.errors import (
    ConfigurationError,
    EmptyInputError,
    InvalidInputError,
    ProviderError,
    RunCancelledError,
    RunInProgressError,
    SeriationError,
)
from seriate.db.session import get_session
from seriate.dependencies import get_run_service
from seriate.models import SeriationRun
from seriate.schemas import RunResource, SeriateRequest, SeriateResponse
from seriate.services.orchestrator import Item
from seriate.services.runs import RunService, to_run_resource
from seriate.utils.text import compose_item_text

router = APIRouter(prefix="/seriate", tags=["seriate"])


def error_status(exc: SeriationError) -> int:
    if isinstance(exc, EmptyInputError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, InvalidInputError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, RunInProgressError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RunCancelledError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ConfigurationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ProviderError):
        if exc.kind == "rate_limit":
            return status.HTTP_429_TOO_MANY_REQUESTS
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _to_items(payload: SeriateRequest, settings: Settings) -> list[Item]:
    items: list[Item] = []
    for entry in payload.items:
        if entry.has_fields:
            text = compose_item_text(
                entry.subject,
                entry.author,
                entry.body,
                max_body_chars=settings.embedding_body_max_chars,
            )
        else:
            text = entry.text
        items.append(Item(id=entry.id, text=text))
    return items


@router.post("", response_model=SeriateResponse)
async def seriate_collection(
    payload: SeriateRequest,
    service: RunService = Depends(get_run_service),
    settings: Settings = Depends(get_settings),
) -> SeriateResponse:
    items = _to_items(payload, settings)
    try:
        run = await service.create_run(payload.collection, len(items), force_refresh=payload.force_refresh)
        outcome = await service.execute(run, items)
    except SeriationError as exc:
        raise HTTPException(status_code=error_status(exc), detail=exc.to_dict()) from exc

    return SeriateResponse(
        run_id=outcome.run_id,
        collection=run.collection,
        embedding_model=run.embedding_model,
        count=len(outcome.ranks),
        cached=outcome.cached,
        fetched=outcome.fetched,
        ranks=outcome.ranks,
        processing_time_ms=outcome.processing_time_ms,
    )


@router.get("/runs/{run_id}", response_model=RunResource)
async def get_run(run_id: UUID, session: AsyncSession = Depends(get_session)) -> RunResource:
    run = await session.get(SeriationRun, run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    return to_run_resource(run)
