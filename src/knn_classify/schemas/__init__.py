"""Work distribution and reporting schemas."""

from knn_classify.schemas.assignment import PartitionResult, WorkAssignment
from knn_classify.schemas.report import RunReport

__all__ = [
    "PartitionResult",
    "RunReport",
    "WorkAssignment",
]
