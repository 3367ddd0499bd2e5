"""Dataset model, binary file format and image-folder conversion."""

from knn_classify.data.dataset import ImageDataset, load_dataset, write_dataset
from knn_classify.data.images import build_class_to_idx, images_to_dataset

__all__ = [
    "ImageDataset",
    "build_class_to_idx",
    "images_to_dataset",
    "load_dataset",
    "write_dataset",
]
