"""Labelled feature-vector datasets and their binary on-disk format.

File layout (all integers little-endian)::

    magic        4 bytes   b"KNN1"
    num_items    int32
    feature_dim  int32
    num_items records, each:
        label      int32
        features   feature_dim x float32

Features are widened to float64 in memory so distance sums accumulate in
double precision.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import torch
from loguru import logger
from torch.utils.data import Dataset

from knn_classify.errors import DatasetError, DatasetFormatError, DatasetNotFoundError
from knn_classify.types import LabeledImage

__all__ = ["MAGIC", "ImageDataset", "load_dataset", "write_dataset"]

MAGIC = b"KNN1"
_HEADER = struct.Struct("<4sii")
_LABEL_BYTES = 4
_FEATURE_BYTES = 4


def _record_dtype(feature_dim: int) -> np.dtype:  # type: ignore[type-arg]
    return np.dtype([("label", "<i4"), ("features", "<f4", (feature_dim,))])


class ImageDataset(Dataset[LabeledImage]):
    """An ordered, read-only collection of labelled feature vectors.

    Args:
        labels: Integer tensor of shape (N,).
        features: Numeric tensor of shape (N, D). Every item shares ``D``.
        source: File the dataset was loaded from, if any.
    """

    def __init__(
        self,
        labels: torch.Tensor,
        features: torch.Tensor,
        source: Path | None = None,
    ) -> None:
        if features.dim() != 2:
            raise ValueError(
                f"features must have shape (N, D), got {tuple(features.shape)}"
            )
        if labels.shape != (features.shape[0],):
            raise ValueError(
                f"labels shape {tuple(labels.shape)} does not match "
                f"{features.shape[0]} feature rows"
            )
        self.labels = labels.to(torch.int64)
        self.features = features.to(torch.float64)
        self.source = source

    @classmethod
    def from_items(
        cls,
        items: Sequence[tuple[int, Sequence[float]]],
        feature_dim: int | None = None,
    ) -> ImageDataset:
        """Build a dataset from ``(label, features)`` pairs.

        ``feature_dim`` is only needed when ``items`` is empty.
        """
        if not items:
            if feature_dim is None:
                raise ValueError("feature_dim is required for an empty dataset")
            return cls(
                torch.zeros(0, dtype=torch.int64),
                torch.zeros(0, feature_dim, dtype=torch.float64),
            )
        labels = torch.tensor([label for label, _ in items], dtype=torch.int64)
        features = torch.tensor([list(f) for _, f in items], dtype=torch.float64)
        return cls(labels, features)

    @property
    def num_items(self) -> int:
        return int(self.features.shape[0])

    @property
    def feature_dim(self) -> int:
        return int(self.features.shape[1])

    def __len__(self) -> int:
        return self.num_items

    def __getitem__(self, idx: int) -> LabeledImage:
        return LabeledImage(int(self.labels[idx]), self.features[idx])

    def __repr__(self) -> str:
        return (
            f"ImageDataset(num_items={self.num_items}, "
            f"feature_dim={self.feature_dim}, source={self.source})"
        )


def load_dataset(path: str | Path) -> ImageDataset:
    """Read a binary dataset file.

    Raises:
        DatasetNotFoundError: ``path`` does not exist.
        DatasetError: ``path`` could not be read.
        DatasetFormatError: The header or record payload is malformed.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise DatasetNotFoundError(f"Dataset file not found: {path}") from e
    except OSError as e:
        raise DatasetError(f"Could not read dataset {path}: {e}") from e

    if len(raw) < _HEADER.size:
        raise DatasetFormatError(
            f"{path}: file is {len(raw)} bytes, shorter than the "
            f"{_HEADER.size}-byte header"
        )
    magic, num_items, feature_dim = _HEADER.unpack_from(raw)
    if magic != MAGIC:
        raise DatasetFormatError(f"{path}: bad magic {magic!r}, expected {MAGIC!r}")
    if num_items < 0:
        raise DatasetFormatError(f"{path}: negative item count {num_items}")
    if feature_dim < 1:
        raise DatasetFormatError(f"{path}: feature dimension must be >= 1")

    # Sized in Python ints so a corrupt header cannot overflow numpy's dtype
    expected = num_items * (_LABEL_BYTES + _FEATURE_BYTES * feature_dim)
    payload = len(raw) - _HEADER.size
    if payload != expected:
        kind = "truncated" if payload < expected else "has trailing bytes"
        raise DatasetFormatError(
            f"{path}: record payload {kind} ({payload} bytes, expected {expected} "
            f"for {num_items} items of dimension {feature_dim})"
        )

    try:
        dtype = _record_dtype(feature_dim)
    except ValueError as e:
        raise DatasetFormatError(
            f"{path}: unsupported feature dimension {feature_dim}: {e}"
        ) from e
    if num_items == 0:
        records = np.zeros(0, dtype=dtype)
    else:
        records = np.frombuffer(raw, dtype=dtype, count=num_items, offset=_HEADER.size)
    # astype copies out of the read-only bytes buffer
    labels = torch.from_numpy(records["label"].astype(np.int64))
    features = torch.from_numpy(records["features"].astype(np.float64))

    logger.debug(
        f"Loaded {num_items} items of dimension {feature_dim} from {path}"
    )
    return ImageDataset(labels, features, source=path)


def write_dataset(dataset: ImageDataset, path: str | Path) -> Path:
    """Write ``dataset`` in the binary format read by :func:`load_dataset`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    records = np.empty(dataset.num_items, dtype=_record_dtype(dataset.feature_dim))
    records["label"] = dataset.labels.numpy()
    records["features"] = dataset.features.numpy()
    with open(path, "wb") as f:
        f.write(_HEADER.pack(MAGIC, dataset.num_items, dataset.feature_dim))
        f.write(records.tobytes())
    logger.debug(f"Wrote {dataset.num_items} items to {path}")
    return path
