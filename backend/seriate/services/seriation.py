"""Cosine distances and greedy nearest-neighbor seriation.

Functions:
    as_matrix(vectors): Validate a vector set and stack it into an ``(n, d)`` float array.
    cosine_distance(a, b): Cosine distance in ``[0, 2]``; zero-norm inputs yield ``1``.
    build_distance_matrix(vectors): Symmetric pairwise cosine-distance matrix with a zero diagonal.
    seriate(vectors): Order indices so that similar vectors sit next to each other.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import ArrayLike

from seriate.core.errors import InvalidInputError


def as_matrix(vectors: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    if isinstance(vectors, np.ndarray):
        if vectors.ndim != 2:
            raise InvalidInputError("Expected a two-dimensional array of embeddings")
        matrix = vectors.astype(np.float64, copy=False)
    else:
        if len(vectors) == 0:
            return np.zeros((0, 0), dtype=np.float64)
        dims = {len(vector) for vector in vectors}
        if len(dims) != 1:
            raise InvalidInputError(
                f"All embeddings must share one dimensionality, found {sorted(dims)}"
            )
        matrix = np.asarray(vectors, dtype=np.float64)
        if matrix.ndim != 2:
            matrix = matrix.reshape(len(vectors), -1)

    if not np.all(np.isfinite(matrix)):
        raise InvalidInputError("Embeddings must contain only finite values")
    return matrix


def _scale_rows(matrix: np.ndarray) -> np.ndarray:
    # Puts every component in [-1, 1] without changing cosine distances.
    peaks = np.max(np.abs(matrix), axis=-1, keepdims=True)
    return matrix / np.where(peaks == 0.0, 1.0, peaks)


def cosine_distance(a: ArrayLike, b: ArrayLike) -> float:
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise InvalidInputError(f"Cannot compare vectors of shape {left.shape} and {right.shape}")
    if left.size == 0:
        return 1.0
    left, right = _scale_rows(left), _scale_rows(right)

    dot = float(np.dot(left, right))
    # sqrt(|a|^2 * |b|^2) equals |a|^2 exactly when a == b, so identical vectors score 0.
    denom = math.sqrt(float(np.dot(left, left)) * float(np.dot(right, right)))
    if denom == 0.0:
        return 1.0
    return float(min(max(1.0 - dot / denom, 0.0), 2.0))


def build_distance_matrix(vectors: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    matrix = as_matrix(vectors)
    n = matrix.shape[0]
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    if matrix.shape[1] == 0:
        matrix = np.zeros((n, 1), dtype=np.float64)

    matrix = _scale_rows(matrix)
    gram = matrix @ matrix.T
    squared_norms = np.einsum("ij,ij->i", matrix, matrix)
    denom = np.sqrt(np.outer(squared_norms, squared_norms))
    degenerate = denom == 0.0
    with np.errstate(divide="ignore", invalid="ignore"):
        distances = 1.0 - gram / np.where(degenerate, 1.0, denom)
    distances[degenerate] = 1.0
    np.clip(distances, 0.0, 2.0, out=distances)

    upper = np.triu(distances, k=1)
    return upper + upper.T


def seriate(vectors: Sequence[Sequence[float]] | np.ndarray) -> list[int]:
    """
    Greedy nearest-neighbor ordering anchored at index 0.

    From the most recently placed item, the closest unvisited item is appended
    next; equal distances resolve to the smallest index. The result is always
    a permutation of ``range(n)`` and is identical for identical input.
    """

    matrix = as_matrix(vectors)
    n = matrix.shape[0]
    if n <= 1:
        return list(range(n))

    distances = build_distance_matrix(matrix)
    visited = np.zeros(n, dtype=bool)
    order = [0]
    visited[0] = True

    current = 0
    while len(order) < n:
        candidates = np.where(visited, np.inf, distances[current])
        # argmin returns the first minimum, which is the smallest tied index.
        current = int(np.argmin(candidates))
        visited[current] = True
        order.append(current)

    return order
