"""Exception hierarchy for knn_classify.

Every error is fatal for a run.  The command line catches
:class:`KNNClassifyError` once, logs it and exits with status 1.
"""

from __future__ import annotations


class KNNClassifyError(Exception):
    """Base class for all knn_classify errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class ConfigurationError(KNNClassifyError):
    """Invalid run settings, detected before any worker is spawned."""


class UnknownMetricError(ConfigurationError):
    """Metric name matches zero or several supported metrics."""


class InvalidKError(ConfigurationError):
    """K is below 1 or larger than the training set."""


class DimensionMismatchError(ConfigurationError):
    """Feature vectors of different lengths were compared."""


# ---------------------------------------------------------------------------
# Dataset loading
# ---------------------------------------------------------------------------
class DatasetError(KNNClassifyError):
    """A dataset file could not be loaded."""


class DatasetNotFoundError(DatasetError):
    """The dataset file does not exist."""


class DatasetFormatError(DatasetError):
    """The dataset file is not a well-formed binary dataset."""


# ---------------------------------------------------------------------------
# Worker pool
# ---------------------------------------------------------------------------
class WorkerError(KNNClassifyError):
    """A worker could not be started or did not deliver its result."""


class WorkerSpawnError(WorkerError):
    """Creating a channel or starting a worker process failed."""


class WorkerCommunicationError(WorkerError):
    """A channel to a worker broke before the exchange completed."""


class ProtocolError(WorkerCommunicationError):
    """A message on a worker channel had the wrong size or content."""


class WorkerFailedError(WorkerError):
    """A worker exited without reporting, or exited abnormally."""


class WorkerTimeoutError(WorkerError):
    """Workers did not all report before the deadline."""
