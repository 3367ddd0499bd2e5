"""Shared pytest fixtures for knn_classify tests."""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
import torch
from loguru import logger

from knn_classify.data.dataset import ImageDataset, write_dataset

# Labels of the three-item example: A = 0, B = 1.
LABEL_A = 0
LABEL_B = 1


@pytest.fixture(autouse=True)
def _reset_logger() -> Iterator[None]:
    """The CLI replaces loguru sinks; restore the default after each test."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture()
def tiny_training() -> ImageDataset:
    """Three 2-D points: one of class A near the origin, two of class B."""
    return ImageDataset.from_items(
        [
            (LABEL_A, [0.0, 0.0]),
            (LABEL_B, [10.0, 10.0]),
            (LABEL_B, [10.0, 11.0]),
        ]
    )


@pytest.fixture()
def tiny_testing() -> ImageDataset:
    return ImageDataset.from_items([(LABEL_A, [1.0, 1.0])])


@pytest.fixture()
def clustered() -> tuple[ImageDataset, ImageDataset]:
    """Well-separated 3-class clusters in 8-D: 30 training and 11 testing items.

    Every testing item sits close to its own class centre, except the last one
    which is deliberately labelled with the wrong class.
    """
    gen = torch.Generator().manual_seed(1234)
    centres = torch.eye(3, 8) * 20.0

    def _make(per_class: int) -> tuple[torch.Tensor, torch.Tensor]:
        labels = torch.arange(3).repeat_interleave(per_class)
        noise = torch.rand(labels.shape[0], 8, generator=gen)
        return labels, centres[labels] + noise

    train_labels, train_features = _make(10)
    test_labels, test_features = _make(4)
    test_labels, test_features = test_labels[:11].clone(), test_features[:11]
    test_labels[-1] = (test_labels[-1] + 1) % 3
    return (
        ImageDataset(train_labels, train_features),
        ImageDataset(test_labels, test_features),
    )


@pytest.fixture()
def dataset_files(
    tmp_path: Path, tiny_training: ImageDataset, tiny_testing: ImageDataset
) -> tuple[Path, Path]:
    """The three-item example written to binary training/testing files."""
    train = write_dataset(tiny_training, tmp_path / "training.bin")
    test = write_dataset(tiny_testing, tmp_path / "testing.bin")
    return train, test
