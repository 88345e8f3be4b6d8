"""Activation utilities for BrainFusion."""

from __future__ import annotations

import numpy as np

from .types import Array

# exp(500) is well inside float64 range.
_PRE_ACTIVATION_LIMIT = 500.0
_EPS = float(np.finfo(np.float64).eps)


def sigmoid(x: Array | float) -> Array | float:
    """Return the logistic sigmoid of ``x``.

    Saturated outputs are kept strictly inside ``(0, 1)``.
    """

    z = np.clip(np.asarray(x, dtype=np.float64), -_PRE_ACTIVATION_LIMIT, _PRE_ACTIVATION_LIMIT)
    y = np.clip(1.0 / (1.0 + np.exp(-z)), _EPS, 1.0 - _EPS)
    if np.ndim(x) == 0:
        return float(y)
    return y


def sigmoid_derivative(y: Array | float) -> Array | float:
    """Derivative of the sigmoid expressed through its output ``y``."""

    return y * (1.0 - y)


__all__ = ["sigmoid", "sigmoid_derivative"]
