"""CSV-backed sources for dense training data and spiking stimuli."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

from ..core.types import Batch
from .registry import DatasetSpec, DataSpec, register_dataset
from .utils import deterministic_split, sequential_batches, split_loader, standardize


def _read(path: str | Path | None) -> tuple[Path, pd.DataFrame]:
    if path is None:
        raise ValueError("csv_path is required for CSV data sources")
    path = Path(path)
    return path, pd.read_csv(path)


def _split_target(df: pd.DataFrame, target_col: str) -> tuple[np.ndarray, np.ndarray]:
    if target_col not in df.columns:
        raise KeyError(f"Target column {target_col!r} not found in CSV")
    y = df.pop(target_col).to_numpy()
    X = df.to_numpy(dtype=np.float64)
    return X, y


@register_dataset("csv_regression")
def load_csv_regression(
    *,
    csv_path: str | Path | None = None,
    target_col: str = "target",
    val_split: float = 0.1,
    test_split: float = 0.2,
    seed: int = 0,
    standardize_inputs: bool = True,
    **_: object,
) -> DatasetSpec:
    """Regression rows with targets min-max scaled into ``[0, 1]``."""

    path, df = _read(csv_path)
    X, y_raw = _split_target(df, target_col)
    y = np.asarray(y_raw, dtype=np.float64).reshape(-1, 1)

    normalization: dict[str, dict[str, list[float]]] = {}
    if standardize_inputs:
        X, mean, std = standardize(X)
        normalization["inputs"] = {"mean": mean.flatten().tolist(), "std": std.flatten().tolist()}
    lo, hi = float(y.min()), float(y.max())
    span = hi - lo if hi > lo else 1.0
    y = (y - lo) / span
    normalization["targets"] = {"min": [lo], "max": [hi]}

    splits = deterministic_split(X.shape[0], val_split=val_split, test_split=test_split, seed=seed)
    provenance = {
        "path": str(path),
        "val_split": val_split,
        "test_split": test_split,
        "seed": seed,
        "target_col": target_col,
        "standardize_inputs": standardize_inputs,
    }
    return DatasetSpec(
        name="csv_regression",
        loader=split_loader(X, y, splits, seed),
        data_spec=DataSpec(
            d_in=int(X.shape[1]),
            d_out=1,
            task_type="regression",
            normalization=normalization,
        ),
        provenance=provenance,
        splits={k: int(v) for k, v in splits.sizes.items()},
    )


@register_dataset("csv_classification")
def load_csv_classification(
    *,
    csv_path: str | Path | None = None,
    target_col: str = "target",
    val_split: float = 0.1,
    test_split: float = 0.2,
    seed: int = 0,
    standardize_inputs: bool = True,
    **_: object,
) -> DatasetSpec:
    """Labelled rows; two classes give one binary output, more give one-hot targets."""

    path, df = _read(csv_path)
    X, y_raw = _split_target(df, target_col)
    if standardize_inputs:
        X, _, _ = standardize(X)
    encoder = LabelEncoder()
    y_encoded = encoder.fit_transform(y_raw)
    num_classes = int(np.max(y_encoded)) + 1
    if num_classes <= 2:
        y = y_encoded.astype(np.float64).reshape(-1, 1)
        task_type = "binary"
    else:
        y = np.eye(num_classes, dtype=np.float64)[y_encoded]
        task_type = "multiclass"

    splits = deterministic_split(X.shape[0], val_split=val_split, test_split=test_split, seed=seed)
    provenance = {
        "path": str(path),
        "val_split": val_split,
        "test_split": test_split,
        "seed": seed,
        "target_col": target_col,
        "classes": [str(c) for c in encoder.classes_.tolist()],
    }
    return DatasetSpec(
        name="csv_classification",
        loader=split_loader(X, y, splits, seed),
        data_spec=DataSpec(
            d_in=int(X.shape[1]),
            d_out=int(y.shape[1]),
            task_type=task_type,
            num_classes=num_classes if task_type == "multiclass" else None,
        ),
        provenance=provenance,
        splits={k: int(v) for k, v in splits.sizes.items()},
    )


@register_dataset("csv_stimulus")
def load_csv_stimulus(
    *,
    csv_path: str | Path | None = None,
    columns: Sequence[str] | None = None,
    dt: float = 1.0,
    **_: object,
) -> DatasetSpec:
    """Each CSV row is one time step of input current, one column per neuron."""

    path, df = _read(csv_path)
    if columns is not None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise KeyError(f"Columns {missing} not found in CSV")
        df = df[list(columns)]
    currents = df.to_numpy(dtype=np.float64)
    steps, neuron_count = currents.shape
    if steps == 0:
        raise ValueError(f"{path} contains no rows")
    empty_targets = np.zeros((steps, 0), dtype=np.float64)

    def loader(split: str, batch_size: int) -> Iterator[Batch]:
        if split != "train":
            raise ValueError(f"Stimulus streams only provide a 'train' split, not {split!r}")
        return sequential_batches(currents, empty_targets, np.arange(steps), batch_size=batch_size)

    return DatasetSpec(
        name="csv_stimulus",
        loader=loader,
        data_spec=DataSpec(
            d_in=int(neuron_count),
            d_out=int(neuron_count),
            task_type="stimulus",
            extra={"dt": float(dt), "columns": [str(c) for c in df.columns]},
        ),
        provenance={"path": str(path), "steps": int(steps)},
        splits={"train": int(steps), "val": 0, "test": 0},
    )


__all__ = ["load_csv_classification", "load_csv_regression", "load_csv_stimulus"]
