"""Exception taxonomy for embedding, caching, and seriation runs.

Every error derives from ``SeriationError`` which records the pipeline phase that
failed and a ``RunProgress`` snapshot describing how much work was durably saved
before the failure. The orchestrator fills both in as errors pass through it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional


@dataclass(slots=True, frozen=True)
class RunProgress:
    """How far a run got: cached items plus items persisted during this run."""

    total: int
    cached: int = 0
    persisted: int = 0

    @property
    def remaining(self) -> int:
        return max(self.total - self.cached - self.persisted, 0)

    def to_dict(self) -> dict[str, int]:
        payload = asdict(self)
        payload["remaining"] = self.remaining
        return payload


class SeriationError(Exception):
    """Base exception for all seriation pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        phase: Optional[str] = None,
        progress: Optional[RunProgress] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.progress = progress

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "phase": self.phase,
            "progress": self.progress.to_dict() if self.progress else None,
        }


class ConfigurationError(SeriationError):
    """A required credential or parameter is missing."""


class InvalidInputError(SeriationError, ValueError):
    """Items or vectors handed to the pipeline are unusable."""


class EmptyInputError(InvalidInputError):
    """Zero items were submitted for seriation."""


class ProviderError(SeriationError):
    """
    The embedding provider failed for a batch.

    ``kind`` keeps the provider's classification: ``authentication``,
    ``rate_limit``, ``malformed``, ``connection`` or ``api``.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str = "api",
        status_code: Optional[int] = None,
        batch_index: Optional[int] = None,
        phase: Optional[str] = None,
        progress: Optional[RunProgress] = None,
    ) -> None:
        super().__init__(message, phase=phase, progress=progress)
        self.kind = kind
        self.status_code = status_code
        self.batch_index = batch_index

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update(kind=self.kind, status_code=self.status_code, batch_index=self.batch_index)
        return payload


class StorageError(SeriationError):
    """Reading from or writing to the embedding cache failed."""


class RunInProgressError(SeriationError):
    """Another run for the same collection is still active."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"A seriation run for collection '{collection}' is already in progress")
        self.collection = collection


class RunCancelledError(SeriationError):
    """The caller cancelled the run between phases."""
