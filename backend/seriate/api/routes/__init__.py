"""Route exports for the API layer.

Re-exports the seriation and embedding routers so callers can include all endpoints with a single import.
"""

from .embeddings import router as embeddings_router
from .seriate import router as seriate_router

__all__ = ["embeddings_router", "seriate_router"]
