"""Stepping loop that drives a spiking population over a stimulus stream."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Sequence

import numpy as np

from ..core.errors import ConfigurationError, require_positive
from ..core.spiking import EventDrivenSpikingNet, SpikingNet
from ..core.types import Array, Batch
from .metrics import spike_metrics


@dataclass
class SimulationResult:
    """Everything recorded while stepping a population."""

    raster: Array
    potentials: Array | None
    dt: float
    metrics: Mapping[str, float]

    @property
    def steps(self) -> int:
        return int(self.raster.shape[0])


def _rows(stimulus: Iterable[Batch] | Array) -> Iterator[Array]:
    if isinstance(stimulus, np.ndarray):
        yield from stimulus
        return
    for item in stimulus:
        if isinstance(item, Batch):
            yield from item.inputs
        else:
            yield np.asarray(item, dtype=np.float64)


def weight_stats(weights: Array) -> Mapping[str, float]:
    return {
        "mean_weight": float(np.mean(weights)),
        "max_weight": float(np.max(weights)),
        "min_weight": float(np.min(weights)),
    }


class Simulator:
    """Advance a network one ``dt`` at a time and report spike statistics.

    Metrics are emitted to loggers once per ``window`` steps, with the window
    index playing the role of an epoch. An :class:`EventDrivenSpikingNet`
    receives each stimulus row as injected events instead of direct current.
    """

    def __init__(
        self,
        network: SpikingNet | EventDrivenSpikingNet,
        dt: float,
        *,
        window: int = 50,
        record_potentials: bool = False,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        if window <= 0:
            raise ConfigurationError(f"window must be > 0, got {window}")
        self.network = network
        self.dt = require_positive(dt, "dt")
        self.window = int(window)
        self.record_potentials = record_potentials
        self.callbacks = list(callbacks or [])

    @property
    def population(self) -> SpikingNet:
        if isinstance(self.network, EventDrivenSpikingNet):
            return self.network.net
        return self.network

    def run(
        self,
        stimulus: Iterable[Batch] | Array,
        steps: int,
        *,
        split_loggers: Mapping[str, Sequence[object]] | None = None,
    ) -> SimulationResult:
        if steps <= 0:
            raise ConfigurationError(f"steps must be > 0, got {steps}")
        split_loggers = split_loggers or {}
        raster: list[Array] = []
        potentials: list[Array] = []
        window_start = 0
        window_idx = 0
        for row in _rows(stimulus):
            if len(raster) >= steps:
                break
            raster.append(self._advance(row))
            if self.record_potentials:
                potentials.append(self.population.membrane_potential)
            if len(raster) - window_start >= self.window:
                window_idx += 1
                self._emit(window_idx, np.vstack(raster[window_start:]), split_loggers)
                window_start = len(raster)
        if len(raster) < steps:
            raise ConfigurationError(
                f"stimulus ended after {len(raster)} steps, {steps} requested"
            )
        if window_start < len(raster):
            window_idx += 1
            self._emit(window_idx, np.vstack(raster[window_start:]), split_loggers)

        full = np.vstack(raster)
        metrics = dict(spike_metrics(full, self.dt))
        metrics.update(weight_stats(self.population.synaptic_weights))
        return SimulationResult(
            raster=full,
            potentials=np.vstack(potentials) if potentials else None,
            dt=self.dt,
            metrics=metrics,
        )

    def _advance(self, row: Array) -> Array:
        if isinstance(self.network, EventDrivenSpikingNet):
            now = self.network.net.time
            for neuron in np.flatnonzero(row):
                self.network.inject_spike(int(neuron), now, amplitude=float(row[neuron]))
            return self.network.step_event(self.dt)
        return self.network.step(row, self.dt)

    def _emit(
        self,
        window_idx: int,
        window: Array,
        loggers: Mapping[str, Sequence[object]],
    ) -> None:
        metrics = dict(spike_metrics(window, self.dt))
        metrics.update(weight_stats(self.population.synaptic_weights))
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(window_idx, metrics)  # type: ignore[attr-defined]
        for callback in loggers.get("train", []):
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(window_idx, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(window_idx, metrics)


__all__ = ["SimulationResult", "Simulator", "weight_stats"]
