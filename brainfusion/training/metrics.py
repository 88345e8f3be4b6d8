"""Metric helpers for training and simulation runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np

from ..core.types import Array


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def default_metrics(task_type: str) -> List[str]:
    if task_type == "regression":
        return ["mae", "rmse", "r2"]
    if task_type == "multiclass":
        return ["accuracy"]
    if task_type == "binary":
        return ["accuracy", "precision", "recall", "f1"]
    if task_type == "stimulus":
        return []
    raise ValueError(f"Unknown task type: {task_type}")


def _binary_counts(preds: Array, targs: Array) -> tuple[float, float, float]:
    pred_idx = (preds >= 0.5).astype(int)
    targ_idx = (targs >= 0.5).astype(int)
    tp = float(np.sum((pred_idx == 1) & (targ_idx == 1)))
    fp = float(np.sum((pred_idx == 1) & (targ_idx == 0)))
    fn = float(np.sum((pred_idx == 0) & (targ_idx == 1)))
    return tp, fp, fn


def compute_metric(name: str, predictions: Array, targets: Array, *, task_type: str) -> MetricResult:
    key = name.lower()
    preds = np.asarray(predictions, dtype=np.float64)
    targs = np.asarray(targets, dtype=np.float64)
    if key == "mae":
        value = float(np.mean(np.abs(preds - targs)))
    elif key == "rmse":
        value = float(np.sqrt(np.mean((preds - targs) ** 2)))
    elif key == "r2":
        mean = np.mean(targs, axis=0, keepdims=True)
        ss_res = float(np.sum((targs - preds) ** 2))
        ss_tot = float(np.sum((targs - mean) ** 2))
        value = 1.0 if ss_tot == 0 else float(1 - ss_res / (ss_tot + 1e-9))
    elif key == "accuracy":
        if task_type == "multiclass":
            value = float(np.mean(np.argmax(preds, axis=1) == np.argmax(targs, axis=1)))
        else:
            value = float(np.mean((preds >= 0.5) == (targs >= 0.5)))
    elif key in {"precision", "recall", "f1"}:
        tp, fp, fn = _binary_counts(preds, targs)
        precision = tp / (tp + fp + 1e-9)
        recall = tp / (tp + fn + 1e-9)
        if key == "precision":
            value = float(precision)
        elif key == "recall":
            value = float(recall)
        else:
            value = float(2 * precision * recall / (precision + recall + 1e-9))
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str],
    predictions: Array,
    targets: Array,
    *,
    task_type: str,
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, predictions, targets, task_type=task_type)
        results[metric.name] = metric.value
    return results


def spike_metrics(raster: Array, dt: float) -> Mapping[str, float]:
    """Summarise a ``(T, N)`` boolean spike raster.

    ``firing_rate`` is spikes per neuron per unit time; ``active_fraction`` is
    the share of neurons that fired at least once.
    """

    raster = np.asarray(raster, dtype=bool)
    if raster.ndim != 2 or raster.shape[0] == 0:
        return {"spike_count": 0.0, "firing_rate": 0.0, "active_fraction": 0.0}
    steps, neurons = raster.shape
    count = float(raster.sum())
    return {
        "spike_count": count,
        "firing_rate": count / (neurons * steps * dt),
        "active_fraction": float(np.mean(raster.any(axis=0))),
    }


__all__ = ["MetricResult", "compute_metrics", "default_metrics", "spike_metrics"]
