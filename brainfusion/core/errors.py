"""Error taxonomy and argument guards shared by both networks."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np


class BrainFusionError(Exception):
    """Base class for every error raised by the numeric core."""


class ConfigurationError(BrainFusionError, ValueError):
    """Structural parameters are invalid (sizes, rates, step size)."""


class DimensionMismatchError(BrainFusionError, ValueError):
    """A vector's length disagrees with the network's fixed structure."""

    def __init__(self, name: str, expected: object, actual: object) -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"{name}: expected shape {expected}, got {actual}")


class NumericalInstabilityError(BrainFusionError, ArithmeticError):
    """Non-finite values appeared in parameters, potentials or inputs."""


def as_vector(values: Sequence[float] | np.ndarray, expected: int, name: str) -> np.ndarray:
    """Return ``values`` as a fresh 1-D float64 array of length ``expected``."""

    arr = np.array(values, dtype=np.float64)
    if arr.ndim != 1 or arr.shape[0] != expected:
        raise DimensionMismatchError(name, (expected,), arr.shape)
    if not np.all(np.isfinite(arr)):
        raise NumericalInstabilityError(f"{name} contains non-finite values")
    return arr


def require_positive(value: float, name: str) -> float:
    """Return ``value`` as float, or raise when it is not finite and > 0."""

    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a real number, got {value!r}") from exc
    if not math.isfinite(number) or number <= 0:
        raise ConfigurationError(f"{name} must be finite and > 0, got {value!r}")
    return number


def ensure_finite(context: str, *arrays: np.ndarray) -> None:
    for arr in arrays:
        if not np.all(np.isfinite(arr)):
            raise NumericalInstabilityError(f"Non-finite values produced by {context}")


__all__ = [
    "BrainFusionError",
    "ConfigurationError",
    "DimensionMismatchError",
    "NumericalInstabilityError",
    "as_vector",
    "ensure_finite",
    "require_positive",
]
