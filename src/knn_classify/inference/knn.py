"""k-nearest-neighbour classification engine.

Neighbour selection and voting are fully deterministic:

* Equal distances are ordered by training-set index, lower first.
* An exact vote tie goes to the tied label whose closest member ranks first
  among the selected neighbours.
"""

from __future__ import annotations

from collections import Counter

import torch

from knn_classify.data.dataset import ImageDataset
from knn_classify.distance import euclidean
from knn_classify.errors import DimensionMismatchError, InvalidKError
from knn_classify.types import DistanceFn

__all__ = [
    "KNNClassifier",
    "check_compatible",
    "classify",
    "majority_vote",
    "select_neighbors",
]


def check_compatible(training: ImageDataset, testing: ImageDataset, k: int) -> None:
    """Validate a run's configuration against both datasets.

    Raises:
        DimensionMismatchError: The datasets have different feature lengths.
        InvalidKError: ``k`` is below 1 or exceeds the training set size.
    """
    if training.feature_dim != testing.feature_dim:
        raise DimensionMismatchError(
            f"Training feature dimension {training.feature_dim} does not match "
            f"testing feature dimension {testing.feature_dim}"
        )
    _check_k(k, training.num_items)


def _check_k(k: int, num_candidates: int) -> None:
    if k < 1:
        raise InvalidKError(f"K must be >= 1, got {k}")
    if k > num_candidates:
        raise InvalidKError(
            f"K={k} exceeds the {num_candidates} available training items"
        )


def select_neighbors(distances: torch.Tensor, k: int) -> torch.Tensor:
    """Indices of the ``k`` smallest distances, nearest first.

    Only candidates at or below the k-th smallest distance are sorted, and the
    sort is stable, so equal distances keep ascending index order.
    """
    n = distances.shape[0]
    _check_k(k, n)
    if k < n:
        cutoff = torch.kthvalue(distances, k).values
        candidates = torch.nonzero(distances <= cutoff).squeeze(1)
    else:
        candidates = torch.arange(n)
    order = torch.sort(distances[candidates], stable=True).indices
    return candidates[order[:k]]


def majority_vote(labels: list[int]) -> int:
    """Most frequent label among ``labels`` (ordered nearest first).

    Ties go to the label that appears earliest, i.e. the one owning the
    nearest neighbour among the tied labels.
    """
    if not labels:
        raise ValueError("Cannot vote over an empty neighbour set")
    counts = Counter(labels)
    best = max(counts.values())
    return next(label for label in labels if counts[label] == best)


class KNNClassifier:
    """Predict labels by majority vote over the K nearest training items.

    Args:
        training: Reference dataset. Never modified.
        k: Number of neighbours, ``1 <= k <= training.num_items``.
        metric: Distance function, see :mod:`knn_classify.distance`.
    """

    def __init__(
        self,
        training: ImageDataset,
        k: int = 1,
        metric: DistanceFn = euclidean,
    ) -> None:
        _check_k(k, training.num_items)
        self.training = training
        self.k = k
        self.metric = metric

    def neighbors(
        self, query: torch.Tensor, exclude: int | None = None
    ) -> torch.Tensor:
        """Training indices of the K nearest items to ``query``.

        ``exclude`` drops one training index from the candidates, for
        leave-one-out evaluation of a training item against its own set.
        """
        if query.shape != (self.training.feature_dim,):
            raise DimensionMismatchError(
                f"Query shape {tuple(query.shape)} does not match training "
                f"feature dimension {self.training.feature_dim}"
            )
        distances = self.metric(query, self.training.features)
        if exclude is None:
            return select_neighbors(distances, self.k)
        keep = torch.ones_like(distances, dtype=torch.bool)
        keep[exclude] = False
        kept = torch.nonzero(keep).squeeze(1)
        return kept[select_neighbors(distances[kept], self.k)]

    def predict(self, query: torch.Tensor, exclude: int | None = None) -> int:
        idx = self.neighbors(query, exclude=exclude)
        return majority_vote(self.training.labels[idx].tolist())

    def predict_many(self, queries: torch.Tensor) -> list[int]:
        """Predict a label for each row of ``queries`` (shape (B, D))."""
        return [self.predict(q) for q in queries]


def classify(
    query: torch.Tensor,
    training: ImageDataset,
    k: int = 1,
    metric: DistanceFn = euclidean,
    exclude: int | None = None,
) -> int:
    """Predicted label for a single query vector."""
    return KNNClassifier(training, k=k, metric=metric).predict(query, exclude=exclude)
