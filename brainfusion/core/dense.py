"""Feed-forward sigmoid network trained by online backpropagation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence, Tuple

import numpy as np

from .activations import sigmoid, sigmoid_derivative
from .errors import (
    ConfigurationError,
    DimensionMismatchError,
    as_vector,
    ensure_finite,
    require_positive,
)
from .types import Array


def validate_layer_sizes(layer_sizes: Sequence[int]) -> Tuple[int, ...]:
    """Return ``layer_sizes`` as a tuple of ints or raise ``ConfigurationError``."""

    try:
        sizes = list(layer_sizes)
    except TypeError as exc:
        raise ConfigurationError("layer_sizes must be a sequence of integers") from exc
    if len(sizes) < 2:
        raise ConfigurationError(
            f"layer_sizes needs at least an input and an output layer, got {sizes}"
        )
    out: list[int] = []
    for size in sizes:
        try:
            valid = not isinstance(size, bool) and int(size) == size and size > 0
        except (TypeError, ValueError):
            valid = False
        if not valid:
            raise ConfigurationError(f"layer sizes must be positive integers, got {sizes}")
        out.append(int(size))
    return tuple(out)


@dataclass(eq=False)
class BrainFusionNet:
    """Dense network with sigmoid units in every non-input layer.

    ``weights[i]`` has shape ``(layer_sizes[i + 1], layer_sizes[i])`` and
    ``biases[i]`` has length ``layer_sizes[i + 1]``. Weights are drawn from
    ``U(-init_scale, init_scale)`` using ``seed`` (an int or a
    ``numpy.random.Generator``); biases start at zero.
    """

    layer_sizes: Sequence[int]
    seed: int | np.random.Generator | None = 0
    init_scale: float = 1.0
    weights: List[Array] = field(init=False, repr=False)
    biases: List[Array] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.layer_sizes = validate_layer_sizes(self.layer_sizes)
        if not math.isfinite(float(self.init_scale)) or self.init_scale < 0:
            raise ConfigurationError(f"init_scale must be finite and >= 0, got {self.init_scale}")
        # One buffer per layer, input layer included; rewritten by every forward pass.
        self._activations: List[Array] = [np.zeros(n, dtype=np.float64) for n in self.layer_sizes]
        self.reset(self.seed)

    @classmethod
    def from_parameters(
        cls, weights: Sequence[Array], biases: Sequence[Array]
    ) -> "BrainFusionNet":
        """Build a network whose parameters are copies of ``weights``/``biases``."""

        if not weights:
            raise ConfigurationError("at least one weight matrix is required")
        shapes = [np.shape(W) for W in weights]
        if any(len(shape) != 2 for shape in shapes):
            raise ConfigurationError(f"weight matrices must be 2-D, got shapes {shapes}")
        sizes = [shapes[0][1]] + [shape[0] for shape in shapes]
        net = cls(sizes, seed=0, init_scale=0.0)
        state = {f"W{idx}": W for idx, W in enumerate(weights)}
        state.update({f"b{idx}": b for idx, b in enumerate(biases)})
        net.load_state_dict(state)
        return net

    # ------------------------------------------------------------------
    # Structure

    @property
    def input_size(self) -> int:
        return self.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.layer_sizes[-1]

    def parameter_count(self) -> int:
        return int(sum(W.size + b.size for W, b in zip(self.weights, self.biases)))

    def reset(self, seed: int | np.random.Generator | None) -> None:
        rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
        weights: list[Array] = []
        biases: list[Array] = []
        for in_dim, out_dim in zip(self.layer_sizes[:-1], self.layer_sizes[1:]):
            if self.init_scale == 0:
                W = np.zeros((out_dim, in_dim), dtype=np.float64)
            else:
                W = rng.uniform(-self.init_scale, self.init_scale, size=(out_dim, in_dim))
            weights.append(W)
            biases.append(np.zeros(out_dim, dtype=np.float64))
        self.weights = weights
        self.biases = biases

    # ------------------------------------------------------------------
    # Numerics

    def forward(self, inputs: Sequence[float] | Array) -> Array:
        """Return the output layer activations for one input vector."""

        x = as_vector(inputs, self.input_size, "inputs")
        return self._forward(x).copy()

    def predict(self, inputs: Array) -> Array:
        """Row-wise forward pass over a 2-D block; leaves the cache untouched."""

        X = np.asarray(inputs, dtype=np.float64)
        if X.ndim != 2 or X.shape[1] != self.input_size:
            raise DimensionMismatchError("inputs", ("n", self.input_size), X.shape)
        out = X
        for W, b in zip(self.weights, self.biases):
            out = sigmoid(out @ W.T + b)
        return np.asarray(out)

    def backpropagate(
        self,
        inputs: Sequence[float] | Array,
        targets: Sequence[float] | Array,
        learning_rate: float,
    ) -> float:
        """Take one online gradient step on the squared error and return the loss.

        The returned loss is the mean squared error of the outputs computed
        before the update.
        """

        x = as_vector(inputs, self.input_size, "inputs")
        t = as_vector(targets, self.output_size, "targets")
        lr = require_positive(learning_rate, "learning_rate")

        output = self._forward(x)
        diff = output - t
        loss = float(np.mean(np.square(diff)))

        cache = self._activations
        n_layers = len(self.weights)
        new_weights: list[Array] = [None] * n_layers  # type: ignore[list-item]
        new_biases: list[Array] = [None] * n_layers  # type: ignore[list-item]
        delta = diff * sigmoid_derivative(output)
        for idx in reversed(range(n_layers)):
            new_weights[idx] = self.weights[idx] - lr * np.outer(delta, cache[idx])
            new_biases[idx] = self.biases[idx] - lr * delta
            if idx > 0:
                delta = (self.weights[idx].T @ delta) * sigmoid_derivative(cache[idx])

        ensure_finite("backpropagate", *new_weights, *new_biases)
        self._commit(new_weights, new_biases)
        return loss

    def train_hebbian(self, inputs: Sequence[float] | Array, learning_rate: float) -> Array:
        """Unsupervised update strengthening weights between co-active units."""

        x = as_vector(inputs, self.input_size, "inputs")
        lr = require_positive(learning_rate, "learning_rate")
        output = self._forward(x).copy()
        cache = self._activations
        new_weights = [
            W + lr * np.outer(cache[idx + 1], cache[idx]) for idx, W in enumerate(self.weights)
        ]
        new_biases = [b + lr * cache[idx + 1] for idx, b in enumerate(self.biases)]
        ensure_finite("train_hebbian", *new_weights, *new_biases)
        self._commit(new_weights, new_biases)
        return output

    def last_activations(self) -> Tuple[Array, ...]:
        """Copies of the per-layer activations from the latest forward pass."""

        return tuple(a.copy() for a in self._activations)

    def _forward(self, x: Array) -> Array:
        cache = self._activations
        np.copyto(cache[0], x)
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            cache[idx + 1][...] = sigmoid(W @ cache[idx] + b)
        return cache[-1]

    def _commit(self, weights: Sequence[Array], biases: Sequence[Array]) -> None:
        for current, new in zip(self.weights, weights):
            np.copyto(current, new)
        for current, new in zip(self.biases, biases):
            np.copyto(current, new)

    # ------------------------------------------------------------------
    # State

    def state_dict(self) -> Mapping[str, Array]:
        state: dict[str, Array] = {"layer_sizes": np.asarray(self.layer_sizes, dtype=np.int64)}
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            state[f"W{idx}"] = W.copy()
            state[f"b{idx}"] = b.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        if "layer_sizes" in state:
            recorded = tuple(int(v) for v in np.asarray(state["layer_sizes"]).reshape(-1))
            if recorded != tuple(self.layer_sizes):
                raise DimensionMismatchError("layer_sizes", tuple(self.layer_sizes), recorded)
        weights: list[Array] = []
        biases: list[Array] = []
        for idx, (W, b) in enumerate(zip(self.weights, self.biases)):
            for key in (f"W{idx}", f"b{idx}"):
                if key not in state:
                    raise ConfigurationError(f"Missing parameter {key} in state dict")
            new_W = np.asarray(state[f"W{idx}"], dtype=np.float64)
            new_b = np.asarray(state[f"b{idx}"], dtype=np.float64)
            if new_W.shape != W.shape:
                raise DimensionMismatchError(f"W{idx}", W.shape, new_W.shape)
            if new_b.shape != b.shape:
                raise DimensionMismatchError(f"b{idx}", b.shape, new_b.shape)
            weights.append(new_W)
            biases.append(new_b)
        ensure_finite("load_state_dict", *weights, *biases)
        self._commit(weights, biases)


__all__ = ["BrainFusionNet", "validate_layer_sizes"]
