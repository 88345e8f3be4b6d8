"""Pure in-memory sine regression scaled into the sigmoid range."""

from __future__ import annotations

import numpy as np

from .registry import DataSpec, DatasetSpec, register_dataset
from .utils import deterministic_split, split_loader


def _make_dataset(
    freq: float, n_points: int, amplitude: float, noise: float, seed: int
) -> tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    x = np.linspace(-1.0, 1.0, n_points, dtype=np.float64).reshape(-1, 1)
    y = 0.5 + amplitude * np.sin(freq * np.pi * x)
    if noise > 0:
        y = y + noise * rng.standard_normal(size=y.shape)
    return x, np.clip(y, 0.0, 1.0)


@register_dataset("sine")
def make_sine(
    *,
    freq: float = 1.0,
    n_points: int = 128,
    amplitude: float = 0.4,
    noise: float = 0.02,
    seed: int = 0,
    val_split: float = 0.1,
    test_split: float = 0.2,
    **_: object,
) -> DatasetSpec:
    """Targets live in ``[0, 1]`` so a sigmoid output layer can fit them."""

    x, y = _make_dataset(freq, n_points, amplitude, noise, seed)
    splits = deterministic_split(x.shape[0], val_split=val_split, test_split=test_split, seed=seed)

    provenance = {
        "type": "sine",
        "freq": freq,
        "n_points": n_points,
        "amplitude": amplitude,
        "noise": noise,
        "seed": seed,
        "val_split": val_split,
        "test_split": test_split,
    }

    return DatasetSpec(
        name="sine",
        loader=split_loader(x, y, splits, seed),
        data_spec=DataSpec(d_in=1, d_out=1, task_type="regression"),
        provenance=provenance,
        splits={k: int(v) for k, v in splits.sizes.items()},
    )


__all__ = ["make_sine"]
