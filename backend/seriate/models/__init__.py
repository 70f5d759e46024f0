"""Convenience exports for ORM models.

Surface the SQLModel classes so calling code can import them from a single module.
"""

from .embedding_cache import EmbeddingCache
from .seriation_run import RunStatus, SeriationRun

__all__ = [
    "EmbeddingCache",
    "RunStatus",
    "SeriationRun",
]
