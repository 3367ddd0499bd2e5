"""Parallel k-nearest-neighbour image classification."""

__version__ = "0.0.1"
