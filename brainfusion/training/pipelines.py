"""Pipeline assembly for BrainFusion training and simulation runs."""

from __future__ import annotations

import json
import math
import time
from copy import deepcopy
from itertools import product
from pathlib import Path
from typing import Dict, Iterator, List, Mapping

import numpy as np

from ..config import load_file
from ..core.dense import BrainFusionNet
from ..core.plasticity import build_rule
from ..core.spiking import EventDrivenSpikingNet, SpikingNet
from ..core.types import Batch, LIFParameters, RunResult
from ..data import registry
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter, plot_spike_raster
from ..reporting.summary import write_summary
from ..storage import save_checkpoint
from .simulation import Simulator
from .trainer import Trainer

_PRESETS: Dict[str, Mapping[str, object]] = {
    "xor-dense": {
        "data": {"name": "xor", "options": {"seed": 0}},
        "model": {"kind": "dense", "hidden": [3], "init_scale": 1.0},
        "train": {
            "epochs": 3000,
            "batch_size": 4,
            "steps_per_epoch": 1,
            "seed": 0,
            "lr": 0.5,
            "target_loss": 0.01,
            "run_dir": "runs/xor-dense",
            "enable_plots": False,
        },
    },
    "sine-dense": {
        "data": {"name": "sine", "options": {"freq": 1.0, "n_points": 128, "seed": 0}},
        "model": {"kind": "dense", "hidden": [16], "init_scale": 1.0},
        "train": {
            "epochs": 200,
            "batch_size": 16,
            "seed": 7,
            "lr": 0.5,
            "early_stopping_patience": 25,
            "run_dir": "runs/sine-dense",
            "enable_plots": False,
        },
    },
    "hebbian-dense": {
        "data": {"name": "or", "options": {"seed": 0}},
        "model": {"kind": "dense", "hidden": [4], "init_scale": 0.1},
        "train": {
            "epochs": 20,
            "batch_size": 4,
            "steps_per_epoch": 1,
            "seed": 1,
            "lr": 0.01,
            "rule": "hebbian",
            "run_dir": "runs/hebbian-dense",
            "enable_plots": False,
        },
    },
    "spiking-constant": {
        "data": {
            "name": "constant_current",
            "options": {"neuron_count": 8, "steps": 200, "amplitude": 0.08},
        },
        "model": {
            "kind": "spiking",
            "init_scale": 0.0,
            "lif": {"threshold": 1.0, "leak_rate": 0.05, "reset_potential": 0.0},
            "plasticity": {"name": "hebbian", "eta": 0.001},
        },
        "train": {"dt": 1.0, "window": 50, "seed": 0, "run_dir": "runs/spiking-constant"},
    },
    "spiking-poisson": {
        "data": {
            "name": "poisson_current",
            "options": {"neuron_count": 16, "steps": 400, "amplitude": 0.6, "rate": 0.2, "seed": 3},
        },
        "model": {
            "kind": "spiking",
            "init_scale": 0.1,
            "lif": {"threshold": 1.0, "leak_rate": 0.05, "refractory_period": 2.0},
            "plasticity": {"name": "hebbian", "eta": 0.002, "decay": 0.0005},
        },
        "train": {"dt": 1.0, "window": 50, "seed": 3, "run_dir": "runs/spiking-poisson"},
    },
    "spiking-events": {
        "data": {
            "name": "poisson_current",
            "options": {"neuron_count": 8, "steps": 300, "amplitude": 1.0, "rate": 0.05, "seed": 5},
        },
        "model": {
            "kind": "spiking",
            "event_driven": True,
            "init_scale": 0.05,
            "lif": {"threshold": 1.0, "leak_rate": 0.1},
            "plasticity": {"name": "stdp", "eta": 0.01},
        },
        "train": {"dt": 1.0, "window": 50, "seed": 5, "run_dir": "runs/spiking-events"},
    },
    "xor-lr-sweep": {
        "sweep": {"seeds": [0, 1], "lrs": [0.25, 0.5]},
        "data": {"name": "xor", "options": {"seed": 0}},
        "model": {"kind": "dense", "hidden": [3], "init_scale": 1.0},
        "train": {
            "epochs": 500,
            "batch_size": 4,
            "steps_per_epoch": 1,
            "enable_plots": False,
            "run_dir": "runs/xor-sweep",
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        found: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = load_file(file)
                missing = {"data", "model", "train"} - set(data)
                if missing:
                    missing_str = ", ".join(sorted(missing))
                    raise KeyError(f"Preset {file.name} is missing required sections: {missing_str}")
                found[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = found
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Dict[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return dict(file_overrides[name])
    try:
        return deepcopy(dict(_PRESETS[name]))
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def run_pipeline(config: Mapping[str, object]) -> RunResult | List[RunResult]:
    if "sweep" in config:
        return _run_sweep(config)
    kind = str(dict(config.get("model", {})).get("kind", "dense"))
    if kind == "dense":
        return _train_dense(config)
    if kind == "spiking":
        return _simulate_spiking(config)
    raise ValueError(f"Unknown model kind: {kind}")


class _SplitLoader:
    """Re-iterable view over one continuing split iterator.

    Every ``iter()`` resumes where the previous phase stopped, so shuffling
    advances from epoch to epoch instead of replaying the first pass.
    """

    def __init__(self, spec: registry.DatasetSpec, split: str, batch_size: int, steps: int) -> None:
        self.spec = spec
        self.split = split
        self.batch_size = batch_size
        self.steps = steps
        self._iterator: Iterator[Batch] | None = None

    def __iter__(self) -> Iterator[Batch]:
        if self._iterator is None:
            self._iterator = self.spec.iter_split(self.split, self.batch_size)
        return self._iterator

    def __len__(self) -> int:
        return max(1, self.steps)


class _MetricsCapture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []
        self.last: Mapping[str, float] = {}

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        payload = {k: float(v) for k, v in metrics.items()}
        self.history.append((int(epoch), payload))
        self.last = payload


def _run_sweep(config: Mapping[str, object]) -> List[RunResult]:
    sweep_cfg = dict(config["sweep"])
    base_train = dict(config.get("train", {}))
    seeds = list(sweep_cfg.get("seeds", [base_train.get("seed", 0)]))
    lrs = list(sweep_cfg.get("lrs", [base_train.get("lr", 0.1)]))
    base_dir = Path(str(base_train.get("run_dir") or "runs/sweep"))
    results: List[RunResult] = []
    for seed, lr in product(seeds, lrs):
        cfg = deepcopy(dict(config))
        cfg.pop("sweep", None)
        train_cfg = cfg.setdefault("train", {})
        train_cfg.update({"seed": int(seed), "lr": float(lr)})
        train_cfg["run_dir"] = str(base_dir / f"seed{seed}_lr{lr}")
        results.append(run_pipeline(cfg))  # type: ignore[arg-type]
    return results


def _train_dense(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    train_cfg = dict(config["train"])

    dataset = registry.get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options", {})))
    data_spec = dataset.data_spec
    if data_spec.task_type == "stimulus":
        raise ValueError(f"Dataset {dataset.name!r} is a stimulus stream; use a spiking model")

    seed = int(train_cfg.get("seed", 0))
    batch_size = int(train_cfg.get("batch_size", 1))
    eval_every = int(train_cfg.get("eval_every", 1))
    early_stopping = train_cfg.get("early_stopping_patience")
    early_stopping = int(early_stopping) if early_stopping is not None else None
    target_loss = train_cfg.get("target_loss")
    target_loss = float(target_loss) if target_loss is not None else None
    loss_name = str(train_cfg.get("loss", "auto"))
    metrics_cfg = train_cfg.get("metrics", "default")
    metrics_list = metrics_cfg if isinstance(metrics_cfg, str) else ",".join(map(str, metrics_cfg))
    rule = str(train_cfg.get("rule", "backprop"))

    d_in = int(model_cfg.get("d_in", data_spec.d_in))
    d_out = int(model_cfg.get("d_out", data_spec.d_out))
    if d_in != data_spec.d_in:
        raise ValueError(f"Configured d_in={d_in} but dataset provides {data_spec.d_in}")
    if d_out != data_spec.d_out:
        raise ValueError(f"Configured d_out={d_out} but dataset provides {data_spec.d_out}")
    hidden = [int(h) for h in model_cfg.get("hidden", [])]
    dims = [d_in, *hidden, d_out]

    split_sizes = dict(dataset.splits)
    steps_per_epoch, val_steps, test_steps = _resolve_steps(split_sizes, batch_size, train_cfg)
    train_loader = _SplitLoader(dataset, "train", batch_size, steps_per_epoch)
    val_loader = _SplitLoader(dataset, "val", batch_size, val_steps) if val_steps else None
    test_loader = _SplitLoader(dataset, "test", batch_size, test_steps) if test_steps else None

    run_dir = _resolve_run_dir(train_cfg, dataset.name, "dense")
    run_dir.mkdir(parents=True, exist_ok=True)

    model = BrainFusionNet(dims, seed=seed, init_scale=float(model_cfg.get("init_scale", 1.0)))
    _print_startup_summary(
        dataset_name=dataset.name,
        model=f"dense {dims}",
        details={
            "Update rule": rule,
            "Learning rate": train_cfg.get("lr", 0.1),
            "Metrics": metrics_list,
            "Parameters": model.parameter_count(),
        },
    )

    sinks = {
        split: (
            JsonlSink(run_dir / f"metrics_{split}.jsonl", split=split, seed=seed),
            CsvSink(run_dir / f"metrics_{split}.csv", split=split),
            _MetricsCapture(),
        )
        for split in ("train", "val", "test")
    }
    plotter = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    trainer = Trainer(model, float(train_cfg.get("lr", 0.1)), rule=rule)
    result = trainer.run(
        train_loader,
        epochs=int(train_cfg.get("epochs", 1)),
        seed=seed,
        steps_per_epoch=steps_per_epoch,
        val_loader=val_loader,
        test_loader=test_loader,
        val_steps=val_steps,
        test_steps=test_steps,
        task_type=data_spec.task_type,
        loss=loss_name,
        metric_names=metrics_list,
        eval_every=eval_every,
        split_loggers={
            "train": [*sinks["train"], plotter],
            "val": list(sinks["val"]),
            "test": list(sinks["test"]),
        },
        early_stopping_patience=early_stopping,
        target_loss=target_loss,
        checkpoint_dir=run_dir,
    )
    plotter.close()

    test_metrics_final = sinks["test"][2].last or {}
    (run_dir / "metrics_test.json").write_text(json.dumps(test_metrics_final, indent=2))

    train_jsonl = sinks["train"][0]
    return _finish_run(
        config,
        run_dir,
        steps=result.steps,
        metrics_path=train_jsonl.path,
        dataset=dataset,
        model_info={"kind": "dense", "layer_sizes": dims, "parameters": model.parameter_count()},
        summary_tail=int(train_cfg.get("summary_tail", 32)),
        extra={},
        checkpoint_path=result.checkpoint_path,
    )


def _simulate_spiking(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    train_cfg = dict(config["train"])

    dataset = registry.get_dataset(str(data_cfg["name"]), **dict(data_cfg.get("options", {})))
    data_spec = dataset.data_spec
    if data_spec.task_type != "stimulus":
        raise ValueError(f"Spiking models need a stimulus stream, got {data_spec.task_type!r}")

    neuron_count = int(model_cfg.get("neuron_count", data_spec.d_in))
    if neuron_count != data_spec.d_in:
        raise ValueError(
            f"Configured neuron_count={neuron_count} but stimulus drives {data_spec.d_in} neurons"
        )
    seed = int(train_cfg.get("seed", 0))
    dt = float(train_cfg.get("dt", data_spec.extra.get("dt", 1.0)))
    steps = int(train_cfg.get("steps", dataset.splits.get("train", 1)))
    window = int(train_cfg.get("window", 50))

    params = LIFParameters(**dict(model_cfg.get("lif", {})))
    plasticity_cfg = dict(model_cfg.get("plasticity", {"name": "hebbian"}))
    rule = build_rule(str(plasticity_cfg.pop("name", "hebbian")), **plasticity_cfg)
    options = {
        "params": params,
        "plasticity": rule,
        "seed": seed,
        "init_scale": float(model_cfg.get("init_scale", 0.1)),
    }
    event_driven = bool(model_cfg.get("event_driven", False))
    network = (
        EventDrivenSpikingNet(neuron_count, **options)
        if event_driven
        else SpikingNet(neuron_count, **options)
    )

    run_dir = _resolve_run_dir(train_cfg, dataset.name, "spiking")
    run_dir.mkdir(parents=True, exist_ok=True)
    _print_startup_summary(
        dataset_name=dataset.name,
        model=f"spiking n={neuron_count}{' (event-driven)' if event_driven else ''}",
        details={
            "Plasticity": rule.name,
            "dt": dt,
            "Steps": steps,
            "LIF": params,
        },
    )

    jsonl = JsonlSink(run_dir / "metrics_train.jsonl", split="train", seed=seed, index_name="window")
    csv_sink = CsvSink(run_dir / "metrics_train.csv", split="train", index_name="window")
    enable_plots = bool(train_cfg.get("enable_plots", False))
    plotter = PlotAdapter(
        run_dir, enable_plots=enable_plots, metric="firing_rate", filename="firing_rate.png"
    )

    simulator = Simulator(
        network,
        dt,
        window=window,
        record_potentials=bool(train_cfg.get("record_potentials", False)),
    )
    stimulus = dataset.iter_split("train", window)
    result = simulator.run(stimulus, steps, split_loggers={"train": [jsonl, csv_sink, plotter]})
    plotter.close()

    recording = {"raster": result.raster}
    if result.potentials is not None:
        recording["potentials"] = result.potentials
    with (run_dir / "recording.npz").open("wb") as handle:
        np.savez_compressed(handle, **recording)
    if enable_plots:
        plot_spike_raster(result.raster, run_dir / "raster.png", dt=dt)

    checkpoint = save_checkpoint(run_dir / "last.npz", simulator.population)
    return _finish_run(
        config,
        run_dir,
        steps=result.steps,
        metrics_path=jsonl.path,
        dataset=dataset,
        model_info={
            "kind": "spiking",
            "neuron_count": neuron_count,
            "event_driven": event_driven,
            "plasticity": {"name": rule.name, **rule.describe()},
        },
        summary_tail=int(train_cfg.get("summary_tail", 32)),
        extra=result.metrics,
        checkpoint_path=str(checkpoint),
    )


def _finish_run(
    config: Mapping[str, object],
    run_dir: Path,
    *,
    steps: int,
    metrics_path: Path,
    dataset: registry.DatasetSpec,
    model_info: Mapping[str, object],
    summary_tail: int,
    extra: Mapping[str, float],
    checkpoint_path: str,
) -> RunResult:
    safe_config = json.loads(json.dumps(config))
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        dataset_provenance=dataset.provenance,
        model=model_info,
    )
    summary_path = write_summary(metrics_path, run_dir / "summary.json", tail=summary_tail, extra=extra)
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))
    if metrics_path.exists():
        (run_dir / "metrics.jsonl").write_text(metrics_path.read_text())
    return RunResult(
        steps=steps,
        metrics_path=str(metrics_path),
        manifest_path=manifest,
        summary_path=summary_path,
        checkpoint_path=checkpoint_path,
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str, kind: str) -> Path:
    if train_cfg.get("run_dir"):
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset / kind


def _resolve_steps(
    split_sizes: Mapping[str, int],
    batch_size: int,
    train_cfg: Mapping[str, object],
) -> tuple[int, int, int]:
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")
    if "steps_per_epoch" in train_cfg:
        train_steps = int(train_cfg["steps_per_epoch"])
    else:
        train_steps = max(1, math.ceil(split_sizes.get("train", 1) / batch_size))
    val_steps = math.ceil(split_sizes.get("val", 0) / batch_size)
    test_steps = math.ceil(split_sizes.get("test", 0) / batch_size)
    return train_steps, val_steps, test_steps


def _print_startup_summary(*, dataset_name: str, model: str, details: Mapping[str, object]) -> None:
    print("=== BrainFusion run ===")
    print(f"{'Dataset':<14}: {dataset_name}")
    print(f"{'Model':<14}: {model}")
    for key, value in details.items():
        print(f"{key:<14}: {value}")
    print("=======================")


__all__ = ["load_preset", "presets", "run_pipeline"]
