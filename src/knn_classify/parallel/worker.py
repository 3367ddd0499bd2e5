"""Worker side of the classification protocol.

A worker receives one :class:`WorkAssignment`, classifies its slice of the
testing set against the full training set and answers with a single count.
Both datasets are only ever read.
"""

from __future__ import annotations

import sys
from multiprocessing.connection import Connection

import torch
from loguru import logger

from knn_classify.data.dataset import ImageDataset
from knn_classify.errors import ProtocolError
from knn_classify.inference.knn import KNNClassifier
from knn_classify.parallel.protocol import decode_assignment, encode_result
from knn_classify.schemas.assignment import WorkAssignment
from knn_classify.types import DistanceFn


def count_correct(
    assignment: WorkAssignment,
    training: ImageDataset,
    testing: ImageDataset,
    k: int,
    metric: DistanceFn,
) -> int:
    """Number of testing items in ``assignment`` whose label is predicted."""
    if assignment.count == 0:
        return 0
    if assignment.stop > testing.num_items:
        raise ProtocolError(
            f"Assignment [{assignment.start_index}, {assignment.stop}) exceeds "
            f"the {testing.num_items} testing items"
        )
    classifier = KNNClassifier(training, k=k, metric=metric)
    correct = 0
    for idx in range(assignment.start_index, assignment.stop):
        label, features = testing[idx]
        if classifier.predict(features) == label:
            correct += 1
    return correct


def run_worker(
    conn: Connection,
    training: ImageDataset,
    testing: ImageDataset,
    k: int,
    metric: DistanceFn,
    log_level: str | None = None,
) -> None:
    """Process entry point: read one assignment, send back one count.

    Errors propagate so the process exits non-zero without sending anything;
    the coordinator treats the closed channel as a failed partition.
    """
    if log_level is not None:
        logger.remove()
        logger.add(sys.stderr, level=log_level)
    # P workers already saturate the cores
    torch.set_num_threads(1)
    try:
        assignment = decode_assignment(conn.recv_bytes())
        logger.debug(
            f"Worker received [{assignment.start_index}, {assignment.stop})"
        )
        correct = count_correct(assignment, training, testing, k, metric)
        conn.send_bytes(encode_result(correct))
    finally:
        conn.close()
