"""Build an ImageDataset from a folder of JSONL-annotated images.

Each ``annotations.jsonl`` found under the root holds one record per line::

    {"image": "img_0001.png", "suffix": "7"}

Image paths are resolved relative to the annotation file's directory, so
several annotated sub-folders can live under one root.  Every image is
converted to grayscale, resized to a square, scaled to ``[0, 1]`` and
flattened into one feature vector.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import torch
from loguru import logger
from PIL import Image

from knn_classify.data.dataset import ImageDataset
from knn_classify.errors import DatasetError

__all__ = ["build_class_to_idx", "find_annotation_files", "images_to_dataset"]


def find_annotation_files(root: Path) -> list[Path]:
    """Recursively find ``.jsonl`` files under ``root``, sorted by path."""
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == ".jsonl"
    )


def _read_records(root: Path) -> list[tuple[Path, str]]:
    records: list[tuple[Path, str]] = []
    for ann_path in find_annotation_files(root):
        ann_dir = ann_path.parent
        with open(ann_path) as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    image, label = record["image"], record["suffix"]
                except json.JSONDecodeError as e:
                    raise DatasetError(f"{ann_path}:{lineno}: invalid JSON: {e}") from e
                except (KeyError, TypeError) as e:
                    raise DatasetError(
                        f"{ann_path}:{lineno}: record needs 'image' and 'suffix' keys"
                    ) from e
                records.append((ann_dir / image, str(label)))
    return records


def build_class_to_idx(root: Path) -> dict[str, int]:
    """Alphabetically ordered mapping from label string to integer id."""
    labels = sorted({label for _, label in _read_records(root)})
    return {label: idx for idx, label in enumerate(labels)}


def _image_features(path: Path, size: int) -> np.ndarray:  # type: ignore[type-arg]
    with Image.open(path) as img:
        gray = img.convert("L").resize((size, size))
        pixels = np.asarray(gray, dtype=np.float64) / 255.0
    return pixels.reshape(-1)


def images_to_dataset(
    root: str | Path,
    class_to_idx: dict[str, int] | None = None,
    image_size: int = 28,
) -> ImageDataset:
    """Convert every annotated image under ``root`` into a dataset item.

    Args:
        root: Directory searched recursively for ``.jsonl`` annotation files.
        class_to_idx: Label string to id mapping. Build it from the training
            split and reuse it for the testing split so ids agree. Defaults to
            the alphabetical mapping of the labels found under ``root``.
        image_size: Side length images are resized to; ``D = image_size**2``.

    Raises:
        DatasetError: ``root`` is missing, holds no annotations, or an
            annotated image cannot be opened.
    """
    root = Path(root)
    if not root.is_dir():
        raise DatasetError(f"Image root not found: {root}")
    if image_size < 1:
        raise ValueError(f"image_size must be >= 1, got {image_size}")

    records = _read_records(root)
    if not records:
        raise DatasetError(f"No annotations found under {root}")
    if class_to_idx is None:
        class_to_idx = build_class_to_idx(root)

    labels: list[int] = []
    rows: list[np.ndarray] = []  # type: ignore[type-arg]
    skipped = 0
    for img_path, label in records:
        if label not in class_to_idx:
            skipped += 1
            continue
        try:
            rows.append(_image_features(img_path, image_size))
        except OSError as e:
            raise DatasetError(f"Could not read image {img_path}: {e}") from e
        labels.append(class_to_idx[label])
    if skipped:
        logger.warning(
            f"Skipped {skipped} annotation(s) with unknown labels under {root}"
        )

    feature_dim = image_size * image_size
    features = (
        torch.from_numpy(np.stack(rows))
        if rows
        else torch.zeros(0, feature_dim, dtype=torch.float64)
    )
    logger.debug(f"Built {len(labels)} items of dimension {feature_dim} from {root}")
    return ImageDataset(torch.tensor(labels, dtype=torch.int64), features, source=root)
