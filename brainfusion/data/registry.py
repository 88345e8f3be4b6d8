"""Named data sources for dense training and spiking simulation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, MutableMapping

import numpy as np

from ..core.types import Batch

TASK_TYPES = frozenset({"regression", "binary", "multiclass", "stimulus"})


@dataclass(frozen=True)
class DataSpec:
    """Shape and task of a source.

    For ``"stimulus"`` sources ``d_in == d_out`` is the population size and
    batches carry no meaningful targets. ``normalization`` and ``extra`` are
    copied into manifests as-is; ``extra["dt"]`` is the step a stimulus was
    sampled at.
    """

    d_in: int
    d_out: int
    task_type: str
    num_classes: int | None = None
    normalization: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DatasetSpec:
    name: str
    loader: Callable[[str, int], Iterator[Batch]]
    data_spec: DataSpec
    provenance: Dict[str, Any]
    splits: Dict[str, int]

    def iter_split(self, split: str, batch_size: int) -> Iterator[Batch]:
        return self.loader(split, batch_size)


SourceFactory = Callable[..., DatasetSpec]

_SOURCES: MutableMapping[str, SourceFactory] = {}


def register_dataset(
    name: str, factory: SourceFactory | None = None
) -> Callable[[SourceFactory], SourceFactory] | SourceFactory:
    """Register ``factory`` under ``name``; without a factory, act as a decorator."""

    def _add(func: SourceFactory) -> SourceFactory:
        _SOURCES[name] = func
        return func

    return _add(factory) if factory is not None else _add


def get_dataset(name: str, **options: Any) -> DatasetSpec:
    """Build the source ``name`` with ``options`` and check its metadata."""

    try:
        factory = _SOURCES[name]
    except KeyError as exc:
        available = ", ".join(sorted(_SOURCES))
        raise KeyError(f"Unknown dataset {name!r}. Available datasets: {available}") from exc
    spec = factory(**options)
    info = spec.data_spec
    if info.task_type not in TASK_TYPES:
        raise ValueError(f"Invalid task type: {info.task_type}")
    if info.task_type == "multiclass" and info.num_classes is None:
        raise ValueError("Multiclass datasets must define num_classes")
    if info.task_type == "stimulus" and info.d_in != info.d_out:
        raise ValueError("Stimulus sources must have d_in == d_out")
    negative = {k: v for k, v in spec.splits.items() if v < 0}
    if negative:
        raise ValueError(f"Negative split sizes: {negative}")
    return spec


def available_datasets() -> List[str]:
    return sorted(_SOURCES)


def collect(spec: DatasetSpec, split: str) -> Batch:
    """Materialise exactly ``spec.splits[split]`` rows of ``split`` as one batch."""

    size = int(spec.splits.get(split, 0))
    if size == 0:
        empty = np.zeros((0, spec.data_spec.d_in))
        return Batch(inputs=empty, targets=np.zeros((0, spec.data_spec.d_out)))
    return next(spec.iter_split(split, size))


__all__ = [
    "Batch",
    "DataSpec",
    "DatasetSpec",
    "TASK_TYPES",
    "available_datasets",
    "collect",
    "get_dataset",
    "register_dataset",
]
