"""Convenience exports for API schemas.

Re-exports the pydantic models used across the backend so consumers can import from one module.
"""

from .seriation import (
    EmbeddingInvalidationResponse,
    EmbeddingLookupResponse,
    ItemPayload,
    RunResource,
    SeriateRequest,
    SeriateResponse,
)

__all__ = [
    "ItemPayload",
    "SeriateRequest",
    "SeriateResponse",
    "RunResource",
    "EmbeddingLookupResponse",
    "EmbeddingInvalidationResponse",
]
