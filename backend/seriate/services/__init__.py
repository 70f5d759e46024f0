"""Service layer exports.

Expose the provider, cache store, seriation engine, and run orchestration for easy importing.
"""

from .embedding_store import CacheEntry, EmbeddingStore, SQLEmbeddingStore
from .openai_client import EmbeddingProvider, OpenAIEmbeddingProvider
from .orchestrator import CollectionRunRegistry, Item, ProgressEvent, SeriationService
from .runs import RunService
from .seriation import build_distance_matrix, cosine_distance, seriate

__all__ = [
    "CacheEntry",
    "EmbeddingStore",
    "SQLEmbeddingStore",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "CollectionRunRegistry",
    "Item",
    "ProgressEvent",
    "SeriationService",
    "RunService",
    "build_distance_matrix",
    "cosine_distance",
    "seriate",
]
