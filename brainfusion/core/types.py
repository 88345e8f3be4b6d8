"""Core typing contracts for BrainFusion."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np

from .errors import ConfigurationError

Array = np.ndarray


@dataclass(frozen=True)
class Batch:
    """A block of samples, one per row."""

    inputs: Array
    targets: Array


@dataclass(frozen=True)
class RunResult:
    """Summary returned by the training and simulation pipelines."""

    steps: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    checkpoint_path: str = ""


@runtime_checkable
class VectorModel(Protocol):
    """Fixed-length numeric input in, fixed-length output out."""

    @property
    def input_size(self) -> int:
        """Length of the vectors accepted by the model."""

    @property
    def output_size(self) -> int:
        """Length of the vectors produced by the model."""


@dataclass(frozen=True)
class LIFParameters:
    """Constants of the leaky integrate-and-fire dynamics.

    Attributes
    ----------
    threshold:
        Membrane potential at or above which a neuron spikes.
    leak_rate:
        Fraction of the potential lost per unit time (``1 / tau``).
    reset_potential:
        Potential a neuron is set to right after spiking. Also the resting value
        a fresh network starts from.
    refractory_period:
        Time after a spike during which the neuron is held at
        ``reset_potential`` and cannot fire. ``0`` disables it.
    """

    threshold: float = 1.0
    leak_rate: float = 0.05
    reset_potential: float = 0.0
    refractory_period: float = 0.0

    def __post_init__(self) -> None:
        for name in ("threshold", "leak_rate", "reset_potential", "refractory_period"):
            if not math.isfinite(float(getattr(self, name))):
                raise ConfigurationError(f"{name} must be finite")
        if self.threshold <= self.reset_potential:
            raise ConfigurationError(
                "threshold must be greater than reset_potential "
                f"(got {self.threshold} <= {self.reset_potential})"
            )
        if self.leak_rate < 0:
            raise ConfigurationError(f"leak_rate must be >= 0, got {self.leak_rate}")
        if self.refractory_period < 0:
            raise ConfigurationError(
                f"refractory_period must be >= 0, got {self.refractory_period}"
            )

    def as_array(self) -> Array:
        return np.array(
            [self.threshold, self.leak_rate, self.reset_potential, self.refractory_period],
            dtype=np.float64,
        )

    @classmethod
    def from_array(cls, values: Array) -> "LIFParameters":
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if values.shape != (4,):
            raise ConfigurationError(f"Expected 4 LIF constants, got {values.shape[0]}")
        return cls(*(float(v) for v in values))


__all__ = ["Array", "Batch", "LIFParameters", "RunResult", "VectorModel"]
