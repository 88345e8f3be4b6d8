"""Recurrent population of leaky integrate-and-fire neurons."""

from __future__ import annotations

import heapq
import itertools
import math
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence, Tuple

import numpy as np

from .errors import (
    BrainFusionError,
    ConfigurationError,
    DimensionMismatchError,
    as_vector,
    ensure_finite,
    require_positive,
)
from .plasticity import HebbianRule, PlasticityRule
from .types import Array, LIFParameters


def validate_neuron_count(neuron_count: int) -> int:
    try:
        valid = (
            not isinstance(neuron_count, bool)
            and int(neuron_count) == neuron_count
            and neuron_count > 0
        )
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise ConfigurationError(f"neuron_count must be a positive integer, got {neuron_count!r}")
    return int(neuron_count)


@dataclass(eq=False)
class SpikingNet:
    """LIF neurons coupled through a plastic recurrent weight matrix.

    Each :meth:`step` integrates ``v += dt * (-v * leak_rate + I + W @ s_prev)``
    with explicit Euler, emits a spike wherever ``v >= threshold`` (resetting
    those neurons to ``reset_potential``) and hands the new spike vector to the
    plasticity rule. ``synaptic_weights[i, j]`` is the connection from ``j`` to
    ``i``; initial weights are drawn from ``U(-init_scale, init_scale)``.
    """

    neuron_count: int
    params: LIFParameters = field(default_factory=LIFParameters)
    plasticity: PlasticityRule = field(default_factory=HebbianRule)
    seed: int | np.random.Generator | None = 0
    init_scale: float = 0.1

    def __post_init__(self) -> None:
        self.neuron_count = validate_neuron_count(self.neuron_count)
        if not math.isfinite(float(self.init_scale)) or self.init_scale < 0:
            raise ConfigurationError(f"init_scale must be finite and >= 0, got {self.init_scale}")
        self.reset_state()
        self.reset_weights(self.seed)

    # ------------------------------------------------------------------
    # Structure

    @property
    def input_size(self) -> int:
        return self.neuron_count

    @property
    def output_size(self) -> int:
        return self.neuron_count

    @property
    def membrane_potential(self) -> Array:
        return self._potential.copy()

    @property
    def synaptic_weights(self) -> Array:
        return self._weights.copy()

    @property
    def previous_spikes(self) -> Array:
        return self._spikes.copy()

    @property
    def last_spike_times(self) -> Array:
        return self._last_spike.copy()

    @property
    def time(self) -> float:
        return self._time

    @property
    def step_count(self) -> int:
        return self._steps

    def reset_weights(self, seed: int | np.random.Generator | None) -> None:
        n = self.neuron_count
        if self.init_scale == 0:
            self._weights = np.zeros((n, n), dtype=np.float64)
            return
        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        self._weights = rng.uniform(-self.init_scale, self.init_scale, size=(n, n))

    def reset_state(self) -> None:
        """Return every neuron to rest without touching the weights."""

        n = self.neuron_count
        self._potential = np.full(n, self.params.reset_potential, dtype=np.float64)
        self._spikes = np.zeros(n, dtype=bool)
        self._refractory = np.zeros(n, dtype=np.float64)
        self._last_spike = np.full(n, np.nan, dtype=np.float64)
        self._time = 0.0
        self._steps = 0

    # ------------------------------------------------------------------
    # Dynamics

    def step(self, inputs: Sequence[float] | Array, dt: float) -> Array:
        """Advance the population by ``dt`` and return this step's spikes."""

        current = as_vector(inputs, self.neuron_count, "inputs")
        dt = require_positive(dt, "dt")
        p = self.params

        synaptic = self._weights @ self._spikes.astype(np.float64)
        potential = self._potential + dt * (-self._potential * p.leak_rate + current + synaptic)

        refractory = np.maximum(self._refractory - dt, 0.0)
        held = refractory > 0.0
        potential = np.where(held, p.reset_potential, potential)

        spikes = (potential >= p.threshold) & ~held
        potential = np.where(spikes, p.reset_potential, potential)
        refractory = np.where(spikes, p.refractory_period, refractory)

        now = self._time + dt
        last_spike = np.where(spikes, now, self._last_spike)
        ensure_finite("membrane integration", potential)
        weights = self.plasticity.update(self._weights, spikes, last_spike)
        ensure_finite("plasticity update", weights)

        self._potential = potential
        self._weights = weights
        self._refractory = refractory
        self._last_spike = last_spike
        self._spikes = spikes
        self._time = now
        self._steps += 1
        return spikes.copy()

    def run(self, stimulus: Sequence[Sequence[float]] | Array, dt: float) -> Array:
        """Step through every row of ``stimulus``; returns the ``(T, N)`` raster."""

        rows = [self.step(row, dt) for row in stimulus]
        if not rows:
            return np.zeros((0, self.neuron_count), dtype=bool)
        return np.vstack(rows)

    # ------------------------------------------------------------------
    # State

    def state_dict(self) -> Mapping[str, Array]:
        return {
            "neuron_count": np.asarray([self.neuron_count], dtype=np.int64),
            "lif": self.params.as_array(),
            "membrane_potential": self._potential.copy(),
            "synaptic_weights": self._weights.copy(),
            "previous_spikes": self._spikes.copy(),
            "refractory_remaining": self._refractory.copy(),
            "last_spike_times": self._last_spike.copy(),
            "clock": np.asarray([self._time, float(self._steps)], dtype=np.float64),
        }

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        n = self.neuron_count
        required = ("membrane_potential", "synaptic_weights")
        for key in required:
            if key not in state:
                raise ConfigurationError(f"Missing {key} in state dict")
        if "neuron_count" in state:
            recorded = int(np.asarray(state["neuron_count"]).reshape(-1)[0])
            if recorded != n:
                raise DimensionMismatchError("neuron_count", n, recorded)
        if "lif" in state:
            recorded_params = LIFParameters.from_array(state["lif"])
            if recorded_params != self.params:
                raise ConfigurationError(
                    f"Recorded LIF constants {recorded_params} differ from {self.params}"
                )

        potential = self._load_array(state, "membrane_potential", (n,), np.float64)
        weights = self._load_array(state, "synaptic_weights", (n, n), np.float64)
        ensure_finite("load_state_dict", potential, weights)
        spikes = self._load_array(state, "previous_spikes", (n,), bool, default=np.zeros(n, bool))
        refractory = self._load_array(
            state, "refractory_remaining", (n,), np.float64, default=np.zeros(n)
        )
        last_spike = self._load_array(
            state, "last_spike_times", (n,), np.float64, default=np.full(n, np.nan)
        )
        clock = np.asarray(state.get("clock", [0.0, 0.0]), dtype=np.float64).reshape(-1)
        if clock.size == 0:
            raise ConfigurationError("clock must hold at least the simulated time")
        ensure_finite("load_state_dict", refractory, clock)
        if np.any(refractory < 0) or np.any(clock < 0):
            raise ConfigurationError("refractory_remaining and clock must be >= 0")

        self._potential = potential
        self._weights = weights
        self._spikes = spikes
        self._refractory = refractory
        self._last_spike = last_spike
        self._time = float(clock[0])
        self._steps = int(clock[1]) if clock.size > 1 else 0

    @staticmethod
    def _load_array(
        state: Mapping[str, Array],
        key: str,
        shape: Tuple[int, ...],
        dtype: type,
        default: Array | None = None,
    ) -> Array:
        if key not in state:
            return default  # type: ignore[return-value]
        arr = np.array(state[key], dtype=dtype)
        if arr.shape != shape:
            raise DimensionMismatchError(key, shape, arr.shape)
        return arr


class EventDrivenSpikingNet:
    """Queue timed input spikes and feed them to a :class:`SpikingNet`.

    Each injected event adds ``amplitude`` to its neuron's input current on the
    first :meth:`step_event` whose window ``(t, t + dt]`` reaches the event
    time. Events stamped in the past are delivered on the next step.
    """

    def __init__(self, neuron_count: int, **options: object) -> None:
        self.net = SpikingNet(neuron_count, **options)  # type: ignore[arg-type]
        self._pending: List[Tuple[float, int, int, float]] = []
        self._order = itertools.count()

    @property
    def input_size(self) -> int:
        return self.net.neuron_count

    @property
    def output_size(self) -> int:
        return self.net.neuron_count

    @property
    def pending_events(self) -> int:
        return len(self._pending)

    def inject_spike(self, neuron: int, time: float | None = None, amplitude: float = 1.0) -> None:
        n = self.net.neuron_count
        if isinstance(neuron, bool) or not isinstance(neuron, (int, np.integer)):
            raise DimensionMismatchError("neuron", f"index in [0, {n})", neuron)
        if not 0 <= int(neuron) < n:
            raise DimensionMismatchError("neuron", f"index in [0, {n})", int(neuron))
        when = self.net.time if time is None else float(time)
        if not math.isfinite(when) or when < 0:
            raise ConfigurationError(f"event time must be finite and >= 0, got {time!r}")
        if not math.isfinite(float(amplitude)):
            raise ConfigurationError(f"amplitude must be finite, got {amplitude!r}")
        heapq.heappush(self._pending, (when, next(self._order), int(neuron), float(amplitude)))

    def step_event(self, dt: float) -> Array:
        dt = require_positive(dt, "dt")
        horizon = self.net.time + dt
        inputs = np.zeros(self.net.neuron_count, dtype=np.float64)
        delivered: List[Tuple[float, int, int, float]] = []
        while self._pending and self._pending[0][0] <= horizon:
            event = heapq.heappop(self._pending)
            delivered.append(event)
            inputs[event[2]] += event[3]
        try:
            return self.net.step(inputs, dt)
        except BrainFusionError:
            for event in delivered:
                heapq.heappush(self._pending, event)
            raise


__all__ = ["EventDrivenSpikingNet", "SpikingNet", "validate_neuron_count"]
