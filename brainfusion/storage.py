"""Checkpoint persistence for both network types."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping, Union

import numpy as np

from .core.dense import BrainFusionNet
from .core.errors import ConfigurationError, DimensionMismatchError
from .core.plasticity import build_rule
from .core.spiking import SpikingNet
from .core.types import Array, LIFParameters

FORMAT_VERSION = 1

Network = Union[BrainFusionNet, SpikingNet]


def _plasticity_payload(net: SpikingNet) -> str:
    rule = net.plasticity
    return json.dumps({"name": rule.name, "options": dict(rule.describe())}, sort_keys=True)


def save_checkpoint(path: str | Path, network: Network) -> Path:
    """Write ``network`` to ``path`` as a compressed ``.npz`` archive."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload: dict[str, Array] = {
        "format_version": np.asarray([FORMAT_VERSION], dtype=np.int64),
    }
    if isinstance(network, BrainFusionNet):
        payload["kind"] = np.asarray("dense")
    elif isinstance(network, SpikingNet):
        payload["kind"] = np.asarray("spiking")
        payload["plasticity"] = np.asarray(_plasticity_payload(network))
    else:
        raise TypeError(f"Cannot checkpoint object of type {type(network).__name__}")
    payload.update(network.state_dict())
    with path.open("wb") as handle:
        np.savez_compressed(handle, **payload)
    return path


def load_checkpoint(path: str | Path) -> Network:
    """Rebuild the network stored at ``path``.

    Raises ``ConfigurationError`` for unknown kinds or versions and
    ``DimensionMismatchError`` when recorded sizes disagree with the arrays.
    """

    with np.load(Path(path), allow_pickle=False) as archive:
        state = {key: archive[key] for key in archive.files}

    version = int(np.asarray(state.get("format_version", [0])).reshape(-1)[0])
    if version != FORMAT_VERSION:
        raise ConfigurationError(f"Unsupported checkpoint format version {version}")
    kind = str(state.get("kind", ""))
    if kind == "dense":
        return _load_dense(state)
    if kind == "spiking":
        return _load_spiking(state)
    raise ConfigurationError(f"Unknown checkpoint kind {kind!r}")


def _load_dense(state: Mapping[str, Array]) -> BrainFusionNet:
    if "layer_sizes" not in state:
        raise ConfigurationError("Dense checkpoint is missing layer_sizes")
    sizes = [int(v) for v in np.asarray(state["layer_sizes"]).reshape(-1)]
    net = BrainFusionNet(sizes, seed=0, init_scale=0.0)
    extra = sorted(
        key for key in state if key[:1] in {"W", "b"} and key[1:].isdigit()
        and int(key[1:]) >= len(sizes) - 1
    )
    if extra:
        raise DimensionMismatchError("parameters", f"{len(sizes) - 1} layers", extra)
    net.load_state_dict(state)
    return net


def _load_spiking(state: Mapping[str, Array]) -> SpikingNet:
    for key in ("neuron_count", "lif", "plasticity"):
        if key not in state:
            raise ConfigurationError(f"Spiking checkpoint is missing {key}")
    neuron_count = int(np.asarray(state["neuron_count"]).reshape(-1)[0])
    params = LIFParameters.from_array(state["lif"])
    rule_cfg = json.loads(str(state["plasticity"]))
    rule = build_rule(rule_cfg["name"], **rule_cfg.get("options", {}))
    net = SpikingNet(neuron_count, params=params, plasticity=rule, seed=0, init_scale=0.0)
    net.load_state_dict(state)
    return net


__all__ = ["FORMAT_VERSION", "load_checkpoint", "save_checkpoint"]
