"""Plasticity rules for the recurrent weights of :class:`SpikingNet`."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Mapping, Protocol

import numpy as np

from .errors import ConfigurationError
from .types import Array


class PlasticityRule(Protocol):
    """Protocol implemented by synaptic update rules."""

    name: str

    def update(self, weights: Array, spikes: Array, last_spike_times: Array) -> Array:
        """Return a new weight matrix given this step's spikes.

        ``weights[i, j]`` is the connection from neuron ``j`` to neuron ``i``.
        ``last_spike_times`` holds each neuron's most recent spike time, NaN for
        neurons that never fired.
        """

    def describe(self) -> Mapping[str, float]:
        """Return the rule's constants for checkpoints and manifests."""


def _check_bounds(w_min: float | None, w_max: float | None) -> None:
    if w_min is not None and w_max is not None and w_min >= w_max:
        raise ConfigurationError(f"w_min must be < w_max, got {w_min} >= {w_max}")


def _clamp(previous: Array, updated: Array, w_min: float | None, w_max: float | None) -> Array:
    # Bounds stop a weight from crossing them, never pull one back inside.
    if w_min is not None:
        updated = np.maximum(updated, np.minimum(previous, w_min))
    if w_max is not None:
        updated = np.minimum(updated, np.maximum(previous, w_max))
    return updated


@dataclass(frozen=True)
class HebbianRule:
    """``w_ij += eta * s_i * s_j`` followed by optional decay and clamping.

    With ``decay == 0`` a co-active pair never loses weight, so the clamp is
    what bounds growth under repeated co-activation.
    """

    eta: float = 0.001
    decay: float = 0.0
    w_min: float | None = -1.0
    w_max: float | None = 1.0
    name: str = "hebbian"

    def __post_init__(self) -> None:
        if not math.isfinite(self.eta) or self.eta < 0:
            raise ConfigurationError(f"eta must be finite and >= 0, got {self.eta}")
        if not 0.0 <= self.decay < 1.0:
            raise ConfigurationError(f"decay must be in [0, 1), got {self.decay}")
        _check_bounds(self.w_min, self.w_max)

    def update(self, weights: Array, spikes: Array, last_spike_times: Array) -> Array:
        s = spikes.astype(np.float64)
        updated = weights + self.eta * np.outer(s, s)
        if self.decay:
            updated *= 1.0 - self.decay
        return _clamp(weights, updated, self.w_min, self.w_max)

    def describe(self) -> Mapping[str, float]:
        return {k: v for k, v in asdict(self).items() if k != "name"}


@dataclass(frozen=True)
class STDPRule:
    """Pair-based spike-timing-dependent plasticity.

    For a pair that has both fired, with ``delta = t_post - t_pre``:
    ``dw = a_plus * exp(-delta / tau_plus)`` when ``delta > 0`` and
    ``dw = a_minus * exp(delta / tau_minus)`` otherwise. Only pairs where at
    least one side fired on the current step are touched.
    """

    a_plus: float = 0.01
    a_minus: float = -0.012
    tau_plus: float = 20.0
    tau_minus: float = 20.0
    eta: float = 0.001
    w_min: float | None = -1.0
    w_max: float | None = 1.0
    name: str = "stdp"

    def __post_init__(self) -> None:
        if self.tau_plus <= 0 or self.tau_minus <= 0:
            raise ConfigurationError("tau_plus and tau_minus must be > 0")
        if not math.isfinite(self.eta) or self.eta < 0:
            raise ConfigurationError(f"eta must be finite and >= 0, got {self.eta}")
        _check_bounds(self.w_min, self.w_max)

    def update(self, weights: Array, spikes: Array, last_spike_times: Array) -> Array:
        seen = np.isfinite(last_spike_times)
        times = np.where(seen, last_spike_times, 0.0)
        delta = times[:, None] - times[None, :]
        potentiation = self.a_plus * np.exp(-np.maximum(delta, 0.0) / self.tau_plus)
        depression = self.a_minus * np.exp(np.minimum(delta, 0.0) / self.tau_minus)
        dw = np.where(delta > 0, potentiation, depression)
        fired = spikes.astype(bool)
        mask = (seen[:, None] & seen[None, :]) & (fired[:, None] | fired[None, :])
        updated = weights + self.eta * np.where(mask, dw, 0.0)
        return _clamp(weights, updated, self.w_min, self.w_max)

    def describe(self) -> Mapping[str, float]:
        return {k: v for k, v in asdict(self).items() if k != "name"}


_RULES: Dict[str, Callable[..., PlasticityRule]] = {
    "hebbian": HebbianRule,
    "stdp": STDPRule,
}


def build_rule(name: str, **options: object) -> PlasticityRule:
    """Instantiate the plasticity rule registered under ``name``."""

    try:
        factory = _RULES[name]
    except KeyError as exc:
        available = ", ".join(sorted(_RULES))
        raise ConfigurationError(
            f"Unknown plasticity rule {name!r}. Available rules: {available}"
        ) from exc
    try:
        return factory(**options)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid options for {name!r}: {exc}") from exc


def available_rules() -> list[str]:
    return sorted(_RULES)


__all__ = ["HebbianRule", "PlasticityRule", "STDPRule", "available_rules", "build_rule"]
