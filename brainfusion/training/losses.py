"""Evaluation losses on sigmoid outputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

import numpy as np

from ..core.types import Array

LossFn = Callable[[Array, Array], float]

_EPS = 1e-12


@dataclass(frozen=True)
class Loss:
    """Named scalar loss over a block of predictions."""

    name: str
    fn: LossFn

    def __call__(self, predictions: Array, targets: Array) -> float:
        return self.fn(predictions, targets)


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Loss] = {}

    def register(self, name: str, fn: LossFn) -> None:
        self._registry[name] = Loss(name, fn)

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, name: str, *, task_type: str) -> Loss:
        if name == "auto":
            # Backpropagation minimises squared error whatever the task.
            if task_type not in {"regression", "binary", "multiclass"}:
                raise ValueError(f"No default loss for task type {task_type!r}")
            name = "mse"
        if name not in self._registry:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
        return self._registry[name]


REGISTRY = LossRegistry()


def _mse(pred: Array, target: Array) -> float:
    return float(np.mean(np.square(pred - target)))


def _mae(pred: Array, target: Array) -> float:
    return float(np.mean(np.abs(pred - target)))


def _bce(prob: Array, target: Array) -> float:
    prob = np.clip(prob, _EPS, 1.0 - _EPS)
    return float(-np.mean(target * np.log(prob) + (1.0 - target) * np.log(1.0 - prob)))


REGISTRY.register("mse", _mse)
REGISTRY.register("mae", _mae)
REGISTRY.register("bce", _bce)

__all__ = ["Loss", "LossRegistry", "REGISTRY"]
