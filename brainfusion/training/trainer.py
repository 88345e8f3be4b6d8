"""Deterministic online training loop for :class:`BrainFusionNet`."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

import numpy as np

from ..core.dense import BrainFusionNet
from ..core.errors import ConfigurationError, require_positive
from ..core.types import Array, Batch, RunResult
from ..data.utils import seed_everything
from ..storage import save_checkpoint
from .losses import REGISTRY as LOSS_REGISTRY
from .losses import Loss
from .metrics import compute_metrics, default_metrics

RULES = ("backprop", "hebbian")


class Trainer:
    """Run epochs of per-sample updates and report metrics per split.

    Every row of every batch is one call to ``backpropagate`` (or
    ``train_hebbian``), so a batch only groups samples for iteration and
    metrics; updates are never averaged.
    """

    def __init__(
        self,
        model: BrainFusionNet,
        learning_rate: float,
        *,
        rule: str = "backprop",
        callbacks: Sequence[object] | None = None,
    ) -> None:
        if rule not in RULES:
            raise ConfigurationError(f"rule must be one of {RULES}, got {rule!r}")
        self.model = model
        self.learning_rate = require_positive(learning_rate, "learning_rate")
        self.rule = rule
        self.callbacks = list(callbacks or [])

    def run(
        self,
        dataloader: Iterable[Batch] | Mapping[str, Iterable[Batch]],
        epochs: int,
        *,
        seed: int | None = None,
        steps_per_epoch: int | None = None,
        val_loader: Iterable[Batch] | None = None,
        test_loader: Iterable[Batch] | None = None,
        val_steps: int | None = None,
        test_steps: int | None = None,
        task_type: str = "regression",
        loss: str = "auto",
        metric_names: Sequence[str] | str = (),
        eval_every: int = 1,
        split_loggers: Mapping[str, Sequence[object]] | None = None,
        early_stopping_patience: int | None = None,
        target_loss: float | None = None,
        checkpoint_dir: str | Path | None = None,
    ) -> RunResult:
        if isinstance(dataloader, Mapping):
            train_loader = dataloader.get("train")
            if train_loader is None:
                raise ValueError("train loader missing from dataloader mapping")
            val_loader = val_loader or dataloader.get("val")
            test_loader = test_loader or dataloader.get("test")
        else:
            train_loader = dataloader

        if isinstance(metric_names, str):
            if metric_names == "default" or metric_names.strip() == "":
                metric_names = default_metrics(task_type)
            else:
                metric_names = [m.strip() for m in metric_names.split(",") if m.strip()]
        if not metric_names:
            metric_names = default_metrics(task_type)

        loss_fn = LOSS_REGISTRY.resolve(loss, task_type=task_type)
        if seed is not None:
            seed_everything(seed)
        train_steps = steps_per_epoch or self._infer_steps(train_loader)

        best_loss = float("inf")
        epochs_no_improve = 0
        total_steps = 0
        split_loggers = split_loggers or {}
        checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir is not None else None

        for epoch in range(1, epochs + 1):
            train_metrics = self._run_phase(
                train_loader, train_steps, loss_fn, metric_names, task_type, training=True
            )
            total_steps += train_steps
            self._emit_epoch("train", epoch, train_metrics, split_loggers)

            should_eval = epoch % max(1, eval_every) == 0
            val_metrics = None
            if should_eval and val_loader is not None and (val_steps or 0) > 0:
                val_metrics = self._run_phase(
                    val_loader, val_steps or 1, loss_fn, metric_names, task_type, training=False
                )
                self._emit_epoch("val", epoch, val_metrics, split_loggers)

            if should_eval and test_loader is not None and (test_steps or 0) > 0:
                test_metrics = self._run_phase(
                    test_loader, test_steps or 1, loss_fn, metric_names, task_type, training=False
                )
                self._emit_epoch("test", epoch, test_metrics, split_loggers)

            target_metrics = val_metrics or train_metrics
            current_loss = float(target_metrics.get("loss", 0.0))
            if current_loss < best_loss - 1e-12:
                best_loss = current_loss
                epochs_no_improve = 0
                if checkpoint_dir is not None:
                    save_checkpoint(checkpoint_dir / "best.npz", self.model)
            else:
                epochs_no_improve += 1
                if early_stopping_patience and epochs_no_improve >= early_stopping_patience:
                    break
            if target_loss is not None and current_loss <= target_loss:
                break

        checkpoint_path = ""
        if checkpoint_dir is not None:
            checkpoint_path = str(save_checkpoint(checkpoint_dir / "last.npz", self.model))
        return RunResult(
            steps=total_steps,
            metrics_path="",
            manifest_path="",
            summary_path="",
            checkpoint_path=checkpoint_path,
        )

    # ------------------------------------------------------------------
    # Internal helpers

    def _run_phase(
        self,
        loader: Iterable[Batch],
        steps: int,
        loss_fn: Loss,
        metric_names: Sequence[str],
        task_type: str,
        *,
        training: bool,
    ) -> Mapping[str, float]:
        iterator = iter(loader)
        preds_all: list[Array] = []
        targets_all: list[Array] = []
        objective: list[float] = []
        for _ in range(max(1, steps)):
            try:
                batch = next(iterator)
            except StopIteration:
                iterator = iter(loader)
                batch = next(iterator)
            preds_all.append(self.model.predict(batch.inputs))
            targets_all.append(np.asarray(batch.targets, dtype=np.float64))
            if training:
                objective.extend(self._update(batch))

        predictions = np.concatenate(preds_all, axis=0)
        targets = np.concatenate(targets_all, axis=0)
        if training and self.rule == "backprop":
            metrics = {"loss": float(np.mean(objective))}
        else:
            metrics = {"loss": loss_fn(predictions, targets)}
        metrics.update(compute_metrics(metric_names, predictions, targets, task_type=task_type))
        return metrics

    def _update(self, batch: Batch) -> list[float]:
        losses: list[float] = []
        for x, t in zip(batch.inputs, batch.targets):
            if self.rule == "backprop":
                losses.append(self.model.backpropagate(x, t, self.learning_rate))
            else:
                self.model.train_hebbian(x, self.learning_rate)
        return losses

    def _emit_epoch(
        self,
        split: str,
        epoch: int,
        metrics: Mapping[str, float],
        loggers: Mapping[str, Sequence[object]],
    ) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
        for callback in loggers.get(split, []):
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)

    @staticmethod
    def _infer_steps(dataloader: Iterable[Batch]) -> int:
        if hasattr(dataloader, "__len__"):
            return max(1, len(dataloader))  # type: ignore[arg-type]
        return 1


__all__ = ["RULES", "Trainer"]
