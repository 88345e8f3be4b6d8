from __future__ import annotations

from typing import Iterable, List, Mapping

import numpy as np
import pytest

from brainfusion.core.dense import BrainFusionNet
from brainfusion.core.errors import ConfigurationError
from brainfusion.core.plasticity import HebbianRule
from brainfusion.core.spiking import EventDrivenSpikingNet, SpikingNet
from brainfusion.core.types import Batch, LIFParameters
from brainfusion.data.logic import truth_table
from brainfusion.storage import load_checkpoint
from brainfusion.training.losses import REGISTRY as LOSS_REGISTRY
from brainfusion.training.metrics import compute_metrics, spike_metrics
from brainfusion.training.simulation import Simulator
from brainfusion.training.trainer import Trainer


class _LoopLoader:
    """Simple iterable that loops over a fixed batch sequence."""

    def __init__(self, batches: List[Batch]):
        self._batches = batches

    def __iter__(self) -> Iterable[Batch]:
        while True:
            for batch in self._batches:
                yield batch

    def __len__(self) -> int:
        return len(self._batches)


class _Capture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        self.history.append((epoch, {k: float(v) for k, v in metrics.items()}))


def _xor_loader() -> _LoopLoader:
    inputs, targets = truth_table("xor")
    return _LoopLoader([Batch(inputs=inputs, targets=targets)])


def test_xor_training_reaches_target_loss(tmp_path) -> None:
    capture = _Capture()
    model = BrainFusionNet([2, 4, 1], seed=1)
    trainer = Trainer(model, 0.5)
    result = trainer.run(
        _xor_loader(),
        epochs=8000,
        task_type="binary",
        split_loggers={"train": [capture]},
        target_loss=0.02,
        checkpoint_dir=tmp_path,
    )

    first = capture.history[0][1]["loss"]
    last = capture.history[-1][1]
    assert last["loss"] <= 0.02 < first
    assert result.steps == len(capture.history) * 1
    restored = load_checkpoint(result.checkpoint_path)
    inputs, _ = truth_table("xor")
    np.testing.assert_array_equal(restored.predict(inputs), model.predict(inputs))
    assert (tmp_path / "best.npz").exists()


def test_regression_training_improves_r2() -> None:
    x = np.linspace(-1.0, 1.0, 64).reshape(-1, 1)
    y = 0.5 + 0.4 * np.sin(0.5 * np.pi * x)
    batches = [Batch(inputs=x[i : i + 16], targets=y[i : i + 16]) for i in range(0, 64, 16)]
    capture = _Capture()
    trainer = Trainer(BrainFusionNet([1, 16, 1], seed=0), 0.5)
    trainer.run(
        _LoopLoader(batches),
        epochs=300,
        task_type="regression",
        val_loader=_LoopLoader(batches),
        val_steps=4,
        split_loggers={"val": [capture]},
    )
    assert capture.history[-1][1]["r2"] > capture.history[0][1]["r2"]
    assert capture.history[-1][1]["r2"] > 0.9


def test_early_stopping_respects_patience() -> None:
    capture = _Capture()
    batch = Batch(inputs=np.array([[0.0, 0.0]]), targets=np.array([[0.5]]))
    # Zero parameters already predict 0.5 exactly, so the loss never improves.
    trainer = Trainer(BrainFusionNet([2, 1], init_scale=0.0), 0.1, callbacks=[capture])
    trainer.run(_LoopLoader([batch]), epochs=50, early_stopping_patience=3)
    assert len(capture.history) == 4


def test_hebbian_rule_runs_without_targets_driving_updates() -> None:
    model = BrainFusionNet([2, 1], init_scale=0.0)
    trainer = Trainer(model, 0.01, rule="hebbian")
    capture = _Capture()
    trainer.run(_xor_loader(), epochs=3, task_type="binary", split_loggers={"train": [capture]})
    assert len(capture.history) == 3
    assert np.all(model.weights[0] >= 0.0) and np.any(model.weights[0] > 0.0)


def test_trainer_rejects_bad_configuration() -> None:
    with pytest.raises(ConfigurationError):
        Trainer(BrainFusionNet([2, 1]), 0.0)
    with pytest.raises(ConfigurationError):
        Trainer(BrainFusionNet([2, 1]), 0.1, rule="oja")


def test_losses_and_metrics() -> None:
    pred = np.array([[0.9], [0.2], [0.6], [0.4]])
    targ = np.array([[1.0], [0.0], [0.0], [1.0]])
    assert LOSS_REGISTRY.resolve("auto", task_type="binary").name == "mse"
    assert LOSS_REGISTRY.resolve("mae", task_type="binary")(pred, targ) == pytest.approx(0.375)
    with pytest.raises(ValueError):
        LOSS_REGISTRY.resolve("auto", task_type="stimulus")
    metrics = compute_metrics(["accuracy", "precision", "recall"], pred, targ, task_type="binary")
    assert metrics["accuracy"] == 0.5
    assert metrics["precision"] == pytest.approx(0.5)
    assert metrics["recall"] == pytest.approx(0.5)


def test_spike_metrics() -> None:
    raster = np.zeros((10, 4), dtype=bool)
    raster[:, 0] = True
    raster[3, 2] = True
    stats = spike_metrics(raster, dt=0.5)
    assert stats["spike_count"] == 11.0
    assert stats["firing_rate"] == pytest.approx(11.0 / (4 * 10 * 0.5))
    assert stats["active_fraction"] == 0.5


def test_simulator_emits_one_record_per_window() -> None:
    net = SpikingNet(4, params=LIFParameters(leak_rate=0.05), init_scale=0.0)
    capture = _Capture()
    stimulus = np.full((250, 4), 0.08)
    result = Simulator(net, 1.0, window=100, record_potentials=True).run(
        stimulus, 250, split_loggers={"train": [capture]}
    )
    assert [idx for idx, _ in capture.history] == [1, 2, 3]
    assert result.raster.shape == (250, 4)
    assert result.potentials.shape == (250, 4)
    assert result.steps == 250
    assert result.metrics["spike_count"] == float(result.raster.sum())
    assert result.metrics["spike_count"] > 0
    assert {"mean_weight", "max_weight", "min_weight"} <= set(capture.history[0][1])


def test_simulator_requires_enough_stimulus() -> None:
    sim = Simulator(SpikingNet(2), 1.0, window=5)
    with pytest.raises(ConfigurationError):
        sim.run(np.zeros((3, 2)), 10)
    with pytest.raises(ConfigurationError):
        Simulator(SpikingNet(2), 1.0, window=0)


def test_simulator_turns_stimulus_into_events_for_event_driven_nets() -> None:
    params = LIFParameters(threshold=1.0, leak_rate=0.0)
    clocked = SpikingNet(3, params=params, plasticity=HebbianRule(eta=0.0), init_scale=0.0)
    events = EventDrivenSpikingNet(
        3, params=params, plasticity=HebbianRule(eta=0.0), init_scale=0.0
    )
    stimulus = np.zeros((6, 3))
    stimulus[1, 0] = 1.0
    stimulus[4, 2] = 1.5
    direct = Simulator(clocked, 1.0, window=3).run(stimulus, 6)
    queued = Simulator(events, 1.0, window=3).run(stimulus, 6)
    np.testing.assert_array_equal(direct.raster, queued.raster)
    assert events.pending_events == 0
