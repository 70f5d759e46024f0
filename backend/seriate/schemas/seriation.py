"""Pydantic schemas for seriation requests, run status, and cache access.

Classes:
    ItemPayload: One item to rank, given as raw text or as message fields.
    SeriateRequest, SeriateResponse: Run a seriation over a collection and return ranks.
    RunResource: Persisted progress and outcome of a run.
    EmbeddingLookupResponse, EmbeddingInvalidationResponse: Cache access for the visualization.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ItemPayload(BaseModel):
    id: str = Field(min_length=1, max_length=998)
    text: Optional[str] = None
    subject: Optional[str] = None
    author: Optional[str] = None
    body: Optional[str] = None

    @model_validator(mode="after")
    def _reject_mixed_sources(self) -> "ItemPayload":
        if self.text is not None and any(
            value is not None for value in (self.subject, self.author, self.body)
        ):
            raise ValueError("Provide either text or subject/author/body, not both")
        return self

    @property
    def has_fields(self) -> bool:
        return any(value is not None for value in (self.subject, self.author, self.body))


class SeriateRequest(BaseModel):
    collection: str = Field(min_length=1, max_length=512)
    items: list[ItemPayload]
    force_refresh: bool = False


class SeriateResponse(BaseModel):
    run_id: UUID
    collection: str
    embedding_model: str
    count: int
    cached: int
    fetched: int
    ranks: dict[str, int]
    processing_time_ms: Optional[float] = None


class RunResource(BaseModel):
    id: UUID
    collection: str
    embedding_model: str
    status: str
    item_count: int
    cached_count: Optional[int] = None
    fetched_count: Optional[int] = None
    force_refresh: bool = False
    progress_stage: Optional[str] = None
    progress_message: Optional[str] = None
    progress_percent: Optional[float] = None
    progress_metadata: Optional[dict[str, Any]] = None
    error_phase: Optional[str] = None
    error_message: Optional[str] = None
    ranks: Optional[dict[str, int]] = None
    processing_time_ms: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class EmbeddingLookupResponse(BaseModel):
    model: str
    embeddings: dict[str, list[float]]
    missing: list[str] = Field(default_factory=list)


class EmbeddingInvalidationResponse(BaseModel):
    model: str
    removed: int
