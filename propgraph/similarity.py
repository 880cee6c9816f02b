"""Cosine similarity and threshold-filtered ranking over entity embeddings."""

from __future__ import annotations

import logging
from numbers import Real
from typing import Any, Iterable, Optional, Sequence, TypeVar

import numpy as np

from .errors import DimensionError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_KEY = "embedding"
DEFAULT_THRESHOLD = 0.5
DEFAULT_LIMIT = 10

E = TypeVar("E")


def _is_number(value: Any) -> bool:
    return isinstance(value, (Real, np.number)) and not isinstance(value, (bool, np.bool_))


def is_vector(value: Any) -> bool:
    """True for list/tuple/ndarray values; the elements are not inspected."""
    return isinstance(value, (list, tuple, np.ndarray))


def _as_array(vec: Any, label: str) -> np.ndarray:
    if not is_vector(vec):
        raise DimensionError(f"{label} must be a sequence of numbers")
    if isinstance(vec, np.ndarray) and vec.ndim != 1:
        raise DimensionError(f"{label} must be one-dimensional")
    values = vec.tolist() if isinstance(vec, np.ndarray) else vec
    if not all(_is_number(v) for v in values):
        raise DimensionError(f"{label} contains non-numeric values")
    return np.asarray(values, dtype=np.float64)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Similarity in [-1, 1]. 0.0 when either vector has zero magnitude or
        both are empty.

    Raises:
        DimensionError: lengths differ or a vector is not numeric
    """
    a = _as_array(vec_a, "First vector")
    b = _as_array(vec_b, "Second vector")
    if a.shape != b.shape:
        raise DimensionError(f"Vectors must have the same length ({a.size} != {b.size})")
    if a.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(a, b)) / (norm_a * norm_b)
    # Clamp rounding error
    return max(-1.0, min(1.0, similarity))


def validate_query_embedding(query_embedding: Any) -> list[float]:
    """Reject empty or non-numeric query vectors with ValidationError."""
    if not is_vector(query_embedding) or len(query_embedding) == 0:
        raise ValidationError("Query embedding must be a non-empty sequence of numbers")
    try:
        return _as_array(query_embedding, "Query embedding").tolist()
    except DimensionError as err:
        raise ValidationError(str(err)) from err


def similarity_or_none(query: Sequence[float], candidate: Any) -> Optional[float]:
    """Best-effort similarity: None when `candidate` is not a usable vector."""
    if not is_vector(candidate):
        return None
    try:
        return cosine_similarity(query, candidate)
    except DimensionError as err:
        logger.debug(f"Skipping embedding: {err}")
        return None


def rank_by_cosine_similarity(
    entities: Iterable[E],
    query_embedding: Sequence[float],
    *,
    embedding_key: str = DEFAULT_EMBEDDING_KEY,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
) -> list[tuple[E, float]]:
    """Rank entities by similarity of `metadata[embedding_key]` to the query.

    Entities without a usable vector are skipped. Results at or above
    `threshold` are sorted by descending similarity (stable for ties) and
    truncated to `limit`.

    Example:
        >>> ranked = rank_by_cosine_similarity(nodes, [0.2, 0.1, 0.5], threshold=0.9)
        >>> for node, score in ranked:
        ...     print(f"{score:.3f} {node.name}")
    """
    query = validate_query_embedding(query_embedding)
    if limit < 0:
        raise ValidationError(f"limit must be >= 0, got {limit}")

    scored: list[tuple[E, float]] = []
    for entity in entities:
        similarity = similarity_or_none(query, entity.metadata.get(embedding_key))
        if similarity is not None and similarity >= threshold:
            scored.append((entity, similarity))

    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:limit]
