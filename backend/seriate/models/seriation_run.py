"""Seriation run ORM model.

Classes:
    RunStatus: Simple enumeration of valid run lifecycle states.
    SeriationRun: Records the collection, progress checkpoints, and outcome of one seriation run.

Functions:
    set_updated_at(_, __, target): SQLAlchemy event hook that maintains the `updated_at` timestamp.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, Float, Text, event
from sqlmodel import Field, SQLModel


class RunStatus(str):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SeriationRun(SQLModel, table=True):
    __tablename__ = "seriation_runs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    collection: str = Field(index=True)
    embedding_model: str
    item_count: int
    cached_count: Optional[int] = None
    fetched_count: Optional[int] = None
    force_refresh: bool = Field(default=False)
    status: str = Field(default=RunStatus.RUNNING)
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    error_phase: Optional[str] = None
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    progress_stage: Optional[str] = Field(default=None, sa_column=Column(Text))
    progress_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    progress_percent: Optional[float] = Field(default=None, sa_column=Column(Float))
    progress_metadata: Optional[str] = Field(default=None, sa_column=Column(Text))
    ranks_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    processing_time_ms: Optional[float] = Field(default=None, sa_column=Column(Float))


@event.listens_for(SeriationRun, "before_update", propagate=True)
def set_updated_at(_, __, target):
    target.updated_at = _utcnow()
