"""Distance metrics between feature vectors.

Every metric compares one query against a stack of references in a single
vectorised call, so classifying a query costs one pass over the training
features.  Smaller values always mean "more similar".
"""

from __future__ import annotations

import torch

from knn_classify.errors import DimensionMismatchError, UnknownMetricError
from knn_classify.types import DistanceFn

__all__ = [
    "METRICS",
    "cosine",
    "distance",
    "euclidean",
    "get_metric",
    "resolve_metric",
]

# Cosine distance lies in [0, 2]; zero-magnitude vectors sit at the far end.
_MAX_COSINE_DISTANCE = 2.0


def _prepare(query: torch.Tensor, references: torch.Tensor) -> torch.Tensor:
    """Validate shapes and cast the query to the references' dtype."""
    if query.dim() != 1:
        raise DimensionMismatchError(
            f"Query must be a 1-D feature vector, got shape {tuple(query.shape)}"
        )
    if references.dim() != 2 or references.shape[1] != query.shape[0]:
        raise DimensionMismatchError(
            f"Cannot compare a vector of length {query.shape[0]} "
            f"with references of shape {tuple(references.shape)}"
        )
    return query.to(references.dtype)


def euclidean(query: torch.Tensor, references: torch.Tensor) -> torch.Tensor:
    """Euclidean distance ``sqrt(sum((a - b) ** 2))`` to each reference row."""
    query = _prepare(query, references)
    # The matmul expansion loses exact zeros and ties; compute differences directly
    return torch.cdist(
        query.unsqueeze(0),
        references,
        p=2.0,
        compute_mode="donot_use_mm_for_euclid_dist",
    )[0]


def cosine(query: torch.Tensor, references: torch.Tensor) -> torch.Tensor:
    """Cosine distance ``1 - a.b / (|a| |b|)`` to each reference row.

    If either vector has zero magnitude the angle is undefined and the pair is
    placed at the maximal distance (2.0) instead of producing NaN.
    """
    query = _prepare(query, references)
    dots = references @ query
    ref_norms = torch.linalg.vector_norm(references, dim=1)
    norms = ref_norms * torch.linalg.vector_norm(query)
    degenerate = norms == 0
    dist = 1.0 - dots / torch.where(degenerate, torch.ones_like(norms), norms)
    dist = dist.clamp(min=0.0, max=_MAX_COSINE_DISTANCE)
    return torch.where(
        degenerate, torch.full_like(dist, _MAX_COSINE_DISTANCE), dist
    )


METRICS: dict[str, DistanceFn] = {
    "euclidean": euclidean,
    "cosine": cosine,
}


def resolve_metric(name: str) -> str:
    """Return the canonical metric name that ``name`` is a prefix of.

    Raises:
        UnknownMetricError: ``name`` is empty, matches no metric, or matches
            more than one.
    """
    matches = [m for m in METRICS if name and m.startswith(name)]
    if len(matches) != 1:
        known = ", ".join(METRICS)
        if matches:
            raise UnknownMetricError(
                f"Ambiguous distance metric '{name}' (matches {', '.join(matches)})"
            )
        raise UnknownMetricError(
            f"Unknown distance metric '{name}' (expected a prefix of: {known})"
        )
    return matches[0]


def get_metric(name: str) -> DistanceFn:
    """Look up a metric function by name or unique prefix."""
    return METRICS[resolve_metric(name)]


def distance(
    a: torch.Tensor, b: torch.Tensor, metric: DistanceFn = euclidean
) -> float:
    """Distance between a single pair of vectors, computed in float64."""
    return float(metric(a.double(), b.double().unsqueeze(0))[0])
