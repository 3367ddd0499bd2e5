#!/usr/bin/env python3
"""Convert JSONL-annotated image folders into binary kNN datasets.

The label mapping is built from the training split and reused for the
testing split so both files share label ids.

Usage::

    python scripts/build_dataset.py \\
        --train-root /path/to/dataset/train \\
        --test-root /path/to/dataset/test \\
        --output-dir data/ \\
        --image-size 28
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import orjson
from loguru import logger

# Add project root to path so we can import knn_classify
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from knn_classify.data.dataset import write_dataset  # noqa: E402
from knn_classify.data.images import (  # noqa: E402
    build_class_to_idx,
    images_to_dataset,
)
from knn_classify.errors import DatasetError  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Build binary training/testing datasets from image folders"
    )
    parser.add_argument(
        "--train-root",
        type=Path,
        required=True,
        help="Directory with the training split annotations",
    )
    parser.add_argument(
        "--test-root",
        type=Path,
        required=True,
        help="Directory with the testing split annotations",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("data"),
        help="Directory to write training.bin, testing.bin and labels.json",
    )
    parser.add_argument(
        "--image-size",
        type=int,
        default=28,
        help="Side length images are resized to (default: 28)",
    )
    args = parser.parse_args()

    for root in (args.train_root, args.test_root):
        if not root.is_dir():
            logger.error(f"Split not found: {root}")
            sys.exit(1)

    output_dir: Path = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        class_to_idx = build_class_to_idx(args.train_root)
        logger.info(f"Found {len(class_to_idx)} classes under {args.train_root}")
        training = images_to_dataset(args.train_root, class_to_idx, args.image_size)
        testing = images_to_dataset(args.test_root, class_to_idx, args.image_size)
    except DatasetError as e:
        logger.error(str(e))
        sys.exit(1)

    train_path = write_dataset(training, output_dir / "training.bin")
    test_path = write_dataset(testing, output_dir / "testing.bin")
    labels_path = output_dir / "labels.json"
    labels_path.write_bytes(
        orjson.dumps(
            {"class_to_idx": class_to_idx, "image_size": args.image_size},
            option=orjson.OPT_INDENT_2,
        )
    )

    logger.info(f"Training: {training.num_items} items -> {train_path}")
    logger.info(f"Testing: {testing.num_items} items -> {test_path}")
    logger.info(f"Labels: {labels_path}")


if __name__ == "__main__":
    main()
