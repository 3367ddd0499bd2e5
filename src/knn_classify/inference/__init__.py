"""kNN classification engine."""

from knn_classify.inference.knn import (
    KNNClassifier,
    check_compatible,
    classify,
    majority_vote,
    select_neighbors,
)

__all__ = [
    "KNNClassifier",
    "check_compatible",
    "classify",
    "majority_vote",
    "select_neighbors",
]
