"""Embedding cache model keyed by item identity and embedding model."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, Index, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingCache(SQLModel, table=True):
    __tablename__ = "embedding_cache"
    __table_args__ = (
        UniqueConstraint(
            "item_id",
            "model_id",
            name="uq_embedding_cache_item_model",
        ),
        Index("ix_embedding_cache_item_model", "item_id", "model_id"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    item_id: str = Field(index=True)
    model_id: str = Field(index=True)
    vector: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    vector_dtype: str = Field(default="float64")
    vector_norm: float | None = Field(default=None)
    dim: int
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
