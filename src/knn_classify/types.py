"""Type aliases and records for knn_classify inter-module contracts."""

from collections.abc import Callable
from typing import NamedTuple

import torch

# query of shape (D,) against references of shape (N, D) -> distances (N,)
DistanceFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


class LabeledImage(NamedTuple):
    """A single item of an ImageDataset.

    label: Integer category id.
    features: Float tensor of shape (D,). A view into the owning dataset;
        callers must not write to it.
    """

    label: int
    features: torch.Tensor
