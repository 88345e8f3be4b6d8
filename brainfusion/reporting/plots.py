"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import numpy as np


def _pyplot():
    import matplotlib

    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as plt  # imported lazily for headless safety

    return plt


class PlotAdapter:
    """Collect one metric per epoch and optionally render it with matplotlib."""

    def __init__(
        self,
        run_dir: str | Path,
        enable_plots: bool = False,
        *,
        metric: str = "loss",
        filename: str = "loss.png",
    ):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self.metric = metric
        self.filename = filename
        self._history: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_epoch(self, epoch: int, metrics) -> None:
        if not self.enable_plots or self.metric not in metrics:
            return
        self._history.append((epoch, float(metrics[self.metric])))

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        plt = _pyplot()
        steps, values = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(steps, values)
        ax.set_xlabel("Epoch")
        ax.set_ylabel(self.metric)
        ax.set_title("Training Curve")
        plot_path = self.run_dir / self.filename
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    __call__ = on_epoch


def plot_spike_raster(raster: np.ndarray, path: str | Path, *, dt: float = 1.0) -> Path:
    """Render a ``(T, N)`` boolean raster as a dot plot."""

    plt = _pyplot()
    raster = np.asarray(raster, dtype=bool)
    times, neurons = np.nonzero(raster)
    fig, ax = plt.subplots()
    ax.scatter(times * dt, neurons, s=4, marker="|")
    ax.set_xlabel("Time")
    ax.set_ylabel("Neuron")
    ax.set_ylim(-0.5, max(raster.shape[1], 1) - 0.5)
    ax.set_title("Spike Raster")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path)
    plt.close(fig)
    return path


__all__ = ["PlotAdapter", "plot_spike_raster"]
