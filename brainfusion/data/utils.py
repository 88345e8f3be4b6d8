"""Utility helpers for data sources."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence

import numpy as np

from ..core.types import Batch

SPLIT_OFFSETS = {"train": 0, "val": 1, "test": 2}


def seed_everything(seed: int) -> np.random.Generator:
    """Seed Python and NumPy RNGs and return a generator."""

    random.seed(seed)
    np.random.seed(seed % (2**32 - 1))
    return np.random.default_rng(seed)


@dataclass(frozen=True)
class SplitIndices:
    """Indices for train/validation/test partitions."""

    train: np.ndarray
    val: np.ndarray
    test: np.ndarray

    @property
    def sizes(self) -> Mapping[str, int]:
        return {
            "train": int(self.train.size),
            "val": int(self.val.size),
            "test": int(self.test.size),
        }


def deterministic_split(
    n_samples: int,
    *,
    val_split: float = 0.1,
    test_split: float = 0.2,
    seed: int = 0,
) -> SplitIndices:
    """Return deterministic indices for the requested split ratios."""

    if not 0 <= val_split < 1:
        raise ValueError("val_split must be in [0, 1)")
    if not 0 <= test_split < 1:
        raise ValueError("test_split must be in [0, 1)")
    if val_split + test_split >= 1:
        raise ValueError("val_split + test_split must be < 1")

    rng = np.random.default_rng(seed)
    indices = np.arange(n_samples)
    rng.shuffle(indices)

    test_size = int(round(n_samples * test_split))
    val_size = int(round(n_samples * val_split))
    # At least one sample per requested split when possible
    test_size = min(max(test_size, 1 if test_split > 0 else 0), n_samples)
    remaining = n_samples - test_size
    val_size = min(max(val_size, 1 if val_split > 0 else 0), remaining)
    train_size = n_samples - val_size - test_size
    if train_size <= 0:
        raise ValueError("Not enough samples for the requested splits")

    test_idx = indices[:test_size]
    val_idx = indices[test_size : test_size + val_size]
    train_idx = indices[test_size + val_size :]

    return SplitIndices(train=train_idx, val=val_idx, test=test_idx)


def sequential_batches(
    features: np.ndarray,
    targets: np.ndarray,
    indices: Sequence[int],
    *,
    batch_size: int,
    seed: int | None = None,
) -> Iterator[Batch]:
    """Cycle through ``indices`` forever, one full pass at a time.

    With a ``seed`` every pass is reshuffled; without one the order is fixed.
    """

    index_array = np.asarray(indices, dtype=np.int64)
    if index_array.size == 0:
        raise ValueError("Cannot iterate over an empty split")
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")
    rng = np.random.default_rng(seed) if seed is not None else None
    order = index_array.copy()
    pos = order.size
    while True:
        rows: list[int] = []
        while len(rows) < batch_size:
            if pos >= order.size:
                order = rng.permutation(index_array) if rng is not None else index_array.copy()
                pos = 0
            take = min(batch_size - len(rows), order.size - pos)
            rows.extend(order[pos : pos + take].tolist())
            pos += take
        yield Batch(inputs=features[rows], targets=targets[rows])


def standardize(
    array: np.ndarray,
    *,
    mean: np.ndarray | None = None,
    std: np.ndarray | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Apply standard scaling returning the scaled array and parameters."""

    if mean is None or std is None:
        mean = array.mean(axis=0, keepdims=True)
        std = array.std(axis=0, keepdims=True)
        std = np.where(std == 0, 1.0, std)
    scaled = (array - mean) / std
    return scaled.astype(np.float64), mean.astype(np.float64), std.astype(np.float64)


def split_loader(
    features: np.ndarray,
    targets: np.ndarray,
    splits: SplitIndices,
    seed: int,
):
    """Build the ``loader(split, batch_size)`` callable used by ``DatasetSpec``."""

    def loader(split: str, batch_size: int) -> Iterator[Batch]:
        if split not in SPLIT_OFFSETS:
            raise ValueError(f"Unsupported split: {split}")
        indices = getattr(splits, split)
        shuffle_seed = seed + SPLIT_OFFSETS[split] if split == "train" else None
        return sequential_batches(
            features, targets, indices, batch_size=batch_size, seed=shuffle_seed
        )

    return loader


__all__ = [
    "SplitIndices",
    "deterministic_split",
    "seed_everything",
    "sequential_batches",
    "split_loader",
    "standardize",
]
