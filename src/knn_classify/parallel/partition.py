"""Split the testing set into contiguous per-worker slices."""

from __future__ import annotations

import math

from knn_classify.schemas.assignment import WorkAssignment


def partition(num_items: int, num_workers: int) -> list[WorkAssignment]:
    """Assign ``[0, num_items)`` to ``num_workers`` workers in order.

    Every slice holds ``ceil(num_items / num_workers)`` items except where
    fewer remain: the first short slice takes the remainder and any slices
    after it are empty. Slices are contiguous, disjoint and cover every index
    exactly once, e.g. 5 items on 2 workers gives slices of 3 and 2.
    """
    if num_workers < 1:
        raise ValueError(f"num_workers must be >= 1, got {num_workers}")
    if num_items < 0:
        raise ValueError(f"num_items must be >= 0, got {num_items}")

    base = math.ceil(num_items / num_workers)
    assignments: list[WorkAssignment] = []
    start = 0
    for _ in range(num_workers):
        count = min(base, num_items - start)
        assignments.append(WorkAssignment(start_index=start, count=count))
        start += count
    return assignments
