"""Two-input boolean truth tables (XOR and friends)."""

from __future__ import annotations

import numpy as np

from .registry import DataSpec, DatasetSpec, register_dataset
from .utils import SplitIndices, split_loader

_INPUTS = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]], dtype=np.float64)

GATES = {
    "xor": [0.0, 1.0, 1.0, 0.0],
    "and": [0.0, 0.0, 0.0, 1.0],
    "or": [0.0, 1.0, 1.0, 1.0],
    "nand": [1.0, 1.0, 1.0, 0.0],
}


def truth_table(gate: str) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(inputs, targets)`` for ``gate``, four rows each."""

    try:
        outputs = GATES[gate]
    except KeyError as exc:
        raise KeyError(f"Unknown gate {gate!r}; expected one of {sorted(GATES)}") from exc
    return _INPUTS.copy(), np.asarray(outputs, dtype=np.float64).reshape(-1, 1)


def _make_factory(gate: str):
    def _factory(*, seed: int = 0, **_: object) -> DatasetSpec:
        inputs, targets = truth_table(gate)
        everything = np.arange(inputs.shape[0])
        # A truth table is its own test set.
        splits = SplitIndices(train=everything, val=everything[:0], test=everything)
        return DatasetSpec(
            name=gate,
            loader=split_loader(inputs, targets, splits, seed),
            data_spec=DataSpec(d_in=2, d_out=1, task_type="binary"),
            provenance={"type": "logic", "gate": gate, "seed": seed},
            splits={k: int(v) for k, v in splits.sizes.items()},
        )

    return _factory


for _gate in GATES:
    register_dataset(_gate, _make_factory(_gate))


__all__ = ["GATES", "truth_table"]
