"""Coordinator: partition the testing set, run one process per slice, sum.

Every worker gets its own duplex pipe carrying exactly one request and one
response.  The coordinator blocks until every worker has reported; a worker
that exits, crashes or closes its pipe without reporting fails the whole run
instead of counting as zero.  On any failure all started workers are
terminated and all pipe ends closed before the error propagates.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from multiprocessing.connection import Connection, wait
from multiprocessing.process import BaseProcess
from typing import Any

import psutil  # type: ignore[import-untyped]
import torch.multiprocessing as mp
from loguru import logger
from tqdm import tqdm

from knn_classify.config import ClassifyConfig
from knn_classify.data.dataset import ImageDataset, load_dataset
from knn_classify.distance import METRICS, resolve_metric
from knn_classify.errors import (
    ConfigurationError,
    ProtocolError,
    WorkerCommunicationError,
    WorkerFailedError,
    WorkerSpawnError,
    WorkerTimeoutError,
)
from knn_classify.inference.knn import check_compatible
from knn_classify.parallel.partition import partition
from knn_classify.parallel.protocol import decode_result, encode_assignment
from knn_classify.parallel.worker import run_worker
from knn_classify.schemas.assignment import PartitionResult, WorkAssignment
from knn_classify.schemas.report import RunReport

__all__ = ["Coordinator", "default_start_method"]

# Seconds to wait for a process to exit once its pipe has closed or after
# it has been terminated.
_EXIT_GRACE = 5.0


def default_start_method() -> str:
    """``fork`` where available so workers share the datasets copy-on-write."""
    return "fork" if "fork" in mp.get_all_start_methods() else "spawn"


@dataclass
class _WorkerHandle:
    worker_id: int
    assignment: WorkAssignment
    process: BaseProcess
    conn: Connection

    @property
    def started(self) -> bool:
        return self.process.pid is not None


class Coordinator:
    """Distribute kNN classification of a testing set over worker processes.

    Args:
        training: Reference dataset, shared read-only with every worker.
        testing: Dataset to classify, shared read-only with every worker.
        k: Number of neighbours.
        metric: Metric name or unique prefix.
        num_workers: Number of worker processes, at least 1.
        timeout: Overall seconds to wait for all results; ``None`` waits
            indefinitely.
        start_method: multiprocessing start method, defaults to
            :func:`default_start_method`.
        target: Worker entry point, called with
            ``(conn, training, testing, k, metric_fn, log_level)``.
        log_level: loguru level workers log at; ``None`` leaves the sink
            inherited from the coordinator untouched.
        show_progress: Show a tqdm bar over worker completion.
    """

    def __init__(
        self,
        training: ImageDataset,
        testing: ImageDataset,
        k: int = 1,
        metric: str = "euclidean",
        num_workers: int = 1,
        timeout: float | None = None,
        start_method: str | None = None,
        target: Callable[..., Any] = run_worker,
        log_level: str | None = None,
        show_progress: bool = False,
    ) -> None:
        if num_workers < 1:
            raise ConfigurationError(
                f"Number of workers must be >= 1, got {num_workers}"
            )
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {timeout}")
        self.training = training
        self.testing = testing
        self.k = k
        self.metric_name = resolve_metric(metric)
        self.num_workers = num_workers
        self.timeout = timeout
        self.start_method = start_method or default_start_method()
        self.target = target
        self.log_level = log_level
        self.show_progress = show_progress
        self._handles: list[_WorkerHandle] = []

    @classmethod
    def from_config(
        cls, config: ClassifyConfig, log_level: str | None = None
    ) -> Coordinator:
        """Load both datasets named by ``config`` and build a coordinator."""
        training = load_dataset(config.training_file)
        testing = load_dataset(config.testing_file)
        return cls(
            training,
            testing,
            k=config.k,
            metric=config.metric,
            num_workers=config.num_procs,
            timeout=config.timeout,
            log_level=log_level,
            show_progress=config.verbose,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> RunReport:
        """Classify the whole testing set and return the aggregated report."""
        check_compatible(self.training, self.testing, self.k)
        assignments = partition(self.testing.num_items, self.num_workers)

        cpus = psutil.cpu_count(logical=True)
        if cpus and self.num_workers > cpus:
            logger.warning(
                f"Running {self.num_workers} workers on {cpus} logical CPUs"
            )

        started = time.monotonic()
        deadline = None if self.timeout is None else started + self.timeout
        try:
            self._spawn(assignments)
            self._dispatch()
            results = self._collect(deadline)
            self._join()
        except BaseException:
            self._abort()
            raise
        finally:
            self._close()
        elapsed = time.monotonic() - started

        report = RunReport(
            training_file=_source(self.training),
            testing_file=_source(self.testing),
            k=self.k,
            metric=self.metric_name,
            num_workers=self.num_workers,
            num_tests=self.testing.num_items,
            partitions=sorted(results, key=lambda r: r.worker_id),
            elapsed_seconds=elapsed,
        )
        logger.debug(
            f"{report.total_correct}/{report.num_tests} correct "
            f"({report.accuracy:.2%}) in {elapsed:.2f}s"
        )
        return report

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------
    def _spawn(self, assignments: list[WorkAssignment]) -> None:
        ctx = mp.get_context(self.start_method)
        metric_fn = METRICS[self.metric_name]
        logger.debug(
            f"Spawning {len(assignments)} worker(s) "
            f"(start_method={self.start_method})"
        )
        for worker_id, assignment in enumerate(assignments):
            try:
                parent_conn, child_conn = ctx.Pipe(duplex=True)
            except OSError as e:
                raise WorkerSpawnError(
                    f"Failed to create channel for worker {worker_id}: {e}"
                ) from e
            process = ctx.Process(
                target=self.target,
                args=(
                    child_conn,
                    self.training,
                    self.testing,
                    self.k,
                    metric_fn,
                    self.log_level,
                ),
                name=f"knn-worker-{worker_id}",
                daemon=True,
            )
            self._handles.append(
                _WorkerHandle(worker_id, assignment, process, parent_conn)
            )
            try:
                process.start()
            except Exception as e:
                raise WorkerSpawnError(
                    f"Failed to start worker {worker_id}: {e}"
                ) from e
            finally:
                # The worker holds its own copy; later forks must not inherit it.
                child_conn.close()

    def _dispatch(self) -> None:
        for handle in self._handles:
            a = handle.assignment
            logger.debug(
                f"Worker {handle.worker_id}: [{a.start_index}, {a.stop}) "
                f"({a.count} item(s))"
            )
            try:
                handle.conn.send_bytes(encode_assignment(a))
            except OSError as e:
                raise WorkerCommunicationError(
                    f"Failed to send assignment to worker {handle.worker_id}: {e}"
                ) from e

    def _collect(self, deadline: float | None) -> list[PartitionResult]:
        """Receive one result per worker, in whatever order they finish."""
        pending = {handle.conn: handle for handle in self._handles}
        results: list[PartitionResult] = []
        with tqdm(
            total=len(pending),
            desc="Workers",
            unit="worker",
            disable=not self.show_progress,
        ) as bar:
            while pending:
                remaining = _remaining(deadline)
                ready = wait(list(pending), timeout=remaining)
                if not ready:
                    raise WorkerTimeoutError(
                        f"{len(pending)} worker(s) did not report within "
                        f"{self.timeout}s"
                    )
                for conn in ready:
                    handle = pending.pop(conn)  # type: ignore[arg-type]
                    results.append(self._receive(handle))
                    bar.update(1)
        return results

    def _receive(self, handle: _WorkerHandle) -> PartitionResult:
        try:
            payload = handle.conn.recv_bytes()
        except EOFError as e:
            handle.process.join(_EXIT_GRACE)
            raise WorkerFailedError(
                f"Worker {handle.worker_id} exited without reporting a result "
                f"(exit code {handle.process.exitcode})"
            ) from e
        except OSError as e:
            raise WorkerCommunicationError(
                f"Failed to read result from worker {handle.worker_id}: {e}"
            ) from e

        correct = decode_result(payload)
        if correct > handle.assignment.count:
            raise ProtocolError(
                f"Worker {handle.worker_id} reported {correct} correct "
                f"out of {handle.assignment.count}"
            )
        logger.debug(f"Worker {handle.worker_id} reported {correct} correct")
        return PartitionResult(
            worker_id=handle.worker_id,
            start_index=handle.assignment.start_index,
            count=handle.assignment.count,
            correct=correct,
        )

    def _join(self) -> None:
        for handle in self._handles:
            handle.process.join(_EXIT_GRACE)
            code = handle.process.exitcode
            if code is None:
                raise WorkerTimeoutError(
                    f"Worker {handle.worker_id} did not exit after reporting"
                )
            if code != 0:
                raise WorkerFailedError(
                    f"Worker {handle.worker_id} exited with code {code}"
                )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    def _abort(self) -> None:
        for handle in self._handles:
            if handle.started and handle.process.is_alive():
                logger.debug(f"Terminating worker {handle.worker_id}")
                handle.process.terminate()
        for handle in self._handles:
            if handle.started:
                handle.process.join(_EXIT_GRACE)

    def _close(self) -> None:
        for handle in self._handles:
            handle.conn.close()
        self._handles = []


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(deadline - time.monotonic(), 0.0)


def _source(dataset: ImageDataset) -> str | None:
    return str(dataset.source) if dataset.source is not None else None
