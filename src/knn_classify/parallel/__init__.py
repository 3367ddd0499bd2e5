"""Work distribution across worker processes."""

from knn_classify.parallel.coordinator import Coordinator, default_start_method
from knn_classify.parallel.partition import partition
from knn_classify.parallel.worker import count_correct, run_worker

__all__ = [
    "Coordinator",
    "count_correct",
    "default_start_method",
    "partition",
    "run_worker",
]
