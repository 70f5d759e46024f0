"""Embedding cache endpoints used by the visualization and for explicit invalidation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from seriate.core.errors import StorageError
from seriate.dependencies import get_embedding_store
from seriate.schemas import EmbeddingInvalidationResponse, EmbeddingLookupResponse
from seriate.services.embedding_store import SQLEmbeddingStore

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.get("", response_model=EmbeddingLookupResponse)
async def get_embeddings(
    ids: list[str] = Query(default_factory=list),
    store: SQLEmbeddingStore = Depends(get_embedding_store),
) -> EmbeddingLookupResponse:
    try:
        found = await store.get_many(ids)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_dict()) from exc
    missing = [item_id for item_id in dict.fromkeys(ids) if item_id not in found]
    return EmbeddingLookupResponse(model=store.model_id, embeddings=found, missing=missing)


@router.delete("", response_model=EmbeddingInvalidationResponse)
async def clear_embeddings(
    store: SQLEmbeddingStore = Depends(get_embedding_store),
) -> EmbeddingInvalidationResponse:
    try:
        removed = await store.delete_model()
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_dict()) from exc
    return EmbeddingInvalidationResponse(model=store.model_id, removed=removed)
