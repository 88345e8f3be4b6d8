"""Input current streams for driving spiking populations."""

from __future__ import annotations

from typing import Callable, Iterator

import numpy as np

from ..core.types import Batch
from .registry import DataSpec, DatasetSpec, register_dataset
from .utils import sequential_batches


def constant_current(neuron_count: int, steps: int, amplitude: float | list, **_: object) -> np.ndarray:
    row = np.broadcast_to(np.asarray(amplitude, dtype=np.float64), (neuron_count,))
    return np.tile(row, (steps, 1))


def poisson_current(
    neuron_count: int,
    steps: int,
    amplitude: float,
    rate: float = 0.1,
    seed: int = 0,
    **_: object,
) -> np.ndarray:
    """Bernoulli pulses of height ``amplitude`` with per-step probability ``rate``."""

    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"rate must be in [0, 1], got {rate}")
    rng = np.random.default_rng(seed)
    pulses = rng.random((steps, neuron_count)) < rate
    return pulses.astype(np.float64) * amplitude


def step_current(
    neuron_count: int, steps: int, amplitude: float, onset: int = 0, **_: object
) -> np.ndarray:
    out = np.zeros((steps, neuron_count), dtype=np.float64)
    out[max(0, int(onset)) :] = amplitude
    return out


def _make_factory(name: str, generator: Callable[..., np.ndarray]):
    def _factory(
        *,
        neuron_count: int = 8,
        steps: int = 200,
        amplitude: float = 0.1,
        dt: float = 1.0,
        seed: int = 0,
        **options: object,
    ) -> DatasetSpec:
        if neuron_count <= 0 or steps <= 0:
            raise ValueError("neuron_count and steps must be > 0")
        currents = generator(neuron_count, steps, amplitude, seed=seed, **options)
        empty_targets = np.zeros((steps, 0), dtype=np.float64)
        timeline = np.arange(steps)

        def loader(split: str, batch_size: int) -> Iterator[Batch]:
            if split != "train":
                raise ValueError(f"Stimulus streams only provide a 'train' split, not {split!r}")
            return sequential_batches(currents, empty_targets, timeline, batch_size=batch_size)

        provenance = {
            "type": "stimulus",
            "generator": name,
            "neuron_count": neuron_count,
            "steps": steps,
            "amplitude": np.asarray(amplitude).tolist(),
            "seed": seed,
            **{k: v for k, v in options.items() if isinstance(v, (int, float, str))},
        }
        return DatasetSpec(
            name=name,
            loader=loader,
            data_spec=DataSpec(
                d_in=neuron_count,
                d_out=neuron_count,
                task_type="stimulus",
                extra={"dt": float(dt)},
            ),
            provenance=provenance,
            splits={"train": steps, "val": 0, "test": 0},
        )

    return _factory


register_dataset("constant_current", _make_factory("constant_current", constant_current))
register_dataset("poisson_current", _make_factory("poisson_current", poisson_current))
register_dataset("step_current", _make_factory("step_current", step_current))


__all__ = ["constant_current", "poisson_current", "step_current"]
