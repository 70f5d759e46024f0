"""FastAPI dependency providers for the cache store, embedding provider, and run service."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from seriate.core.config import Settings, get_settings
from seriate.core.errors import ConfigurationError
from seriate.db.session import SessionLocal
from seriate.services.embedding_store import SQLEmbeddingStore
from seriate.services.openai_client import EmbeddingProvider, OpenAIEmbeddingProvider
from seriate.services.orchestrator import CollectionRunRegistry, SeriationService
from seriate.services.runs import RunService

# One registry per process: collections are locked across requests.
_RUN_REGISTRY = CollectionRunRegistry()


def get_session_factory() -> async_sessionmaker:
    return SessionLocal


def get_run_registry() -> CollectionRunRegistry:
    return _RUN_REGISTRY


def get_embedding_store(
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> SQLEmbeddingStore:
    return SQLEmbeddingStore(session_factory, model_id=settings.openai_embedding_model)


def get_embedding_provider(settings: Settings = Depends(get_settings)) -> EmbeddingProvider:
    try:
        return OpenAIEmbeddingProvider(settings=settings)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_dict()) from exc


def get_run_service(
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    store: SQLEmbeddingStore = Depends(get_embedding_store),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    registry: CollectionRunRegistry = Depends(get_run_registry),
) -> RunService:
    seriation = SeriationService(
        provider=provider,
        store=store,
        batch_size=settings.embedding_batch_size,
        registry=registry,
    )
    return RunService(
        session_factory,
        seriation,
        embedding_model=store.model_id,
        registry=registry,
    )
