import numpy as np
import pytest

from brainfusion.core.dense import BrainFusionNet
from brainfusion.core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    NumericalInstabilityError,
)
from brainfusion.core.types import VectorModel
from brainfusion.data.logic import truth_table


def _snapshot(net):
    return [W.copy() for W in net.weights], [b.copy() for b in net.biases]


def _assert_unchanged(net, snapshot):
    weights, biases = snapshot
    for before, after in zip(weights, net.weights):
        np.testing.assert_array_equal(before, after)
    for before, after in zip(biases, net.biases):
        np.testing.assert_array_equal(before, after)


@pytest.mark.parametrize("sizes", [[], [3], [2, 0, 1], [2, -1], [2, 1.5], "ab", None, [True, 2]])
def test_invalid_layer_sizes_raise_configuration_error(sizes):
    with pytest.raises(ConfigurationError):
        BrainFusionNet(sizes)


def test_shapes_and_zero_biases():
    net = BrainFusionNet([4, 5, 3], seed=1, init_scale=0.5)
    assert [W.shape for W in net.weights] == [(5, 4), (3, 5)]
    assert all(np.all(b == 0.0) for b in net.biases)
    assert all(np.all(np.abs(W) <= 0.5) for W in net.weights)
    assert net.parameter_count() == 5 * 4 + 5 + 3 * 5 + 3
    assert isinstance(net, VectorModel)
    assert (net.input_size, net.output_size) == (4, 3)


def test_seeded_initialisation_is_reproducible():
    a = BrainFusionNet([2, 3, 1], seed=42)
    b = BrainFusionNet([2, 3, 1], seed=np.random.default_rng(42))
    c = BrainFusionNet([2, 3, 1], seed=43)
    for Wa, Wb in zip(a.weights, b.weights):
        np.testing.assert_array_equal(Wa, Wb)
    assert not np.array_equal(a.weights[0], c.weights[0])


def test_zero_parameters_give_one_half_everywhere():
    net = BrainFusionNet([2, 3, 1], init_scale=0.0)
    out = net.forward([0.5, 0.3])
    np.testing.assert_array_equal(out, [0.5])
    inputs, hidden, output = net.last_activations()
    np.testing.assert_array_equal(inputs, [0.5, 0.3])
    np.testing.assert_array_equal(hidden, [0.5, 0.5, 0.5])
    np.testing.assert_array_equal(output, [0.5])


def test_forward_outputs_stay_in_open_unit_interval():
    rng = np.random.default_rng(0)
    net = BrainFusionNet([3, 8, 4], seed=3, init_scale=50.0)
    for _ in range(50):
        out = net.forward(rng.normal(scale=100.0, size=3))
        assert out.shape == (4,)
        assert np.all(out > 0.0) and np.all(out < 1.0)


def test_forward_does_not_mutate_parameters_and_returns_copy():
    net = BrainFusionNet([2, 3, 1], seed=0)
    snap = _snapshot(net)
    out = net.forward([1.0, 0.0])
    out[:] = 123.0
    _assert_unchanged(net, snap)
    assert net.last_activations()[-1][0] != 123.0


def test_predict_matches_forward_row_by_row():
    net = BrainFusionNet([2, 4, 2], seed=5)
    X = np.array([[0.0, 1.0], [0.3, -0.2], [1.0, 1.0]])
    expected = np.vstack([net.forward(row) for row in X])
    np.testing.assert_allclose(net.predict(X), expected)
    with pytest.raises(DimensionMismatchError):
        net.predict(np.zeros((3, 3)))


@pytest.mark.parametrize("bad", [[1.0], [1.0, 2.0, 3.0], [[1.0, 2.0]], []])
def test_forward_wrong_length_fails_without_mutation(bad):
    net = BrainFusionNet([2, 3, 1], seed=0)
    snap = _snapshot(net)
    with pytest.raises(DimensionMismatchError) as info:
        net.forward(bad)
    assert info.value.expected == (2,)
    _assert_unchanged(net, snap)


def test_backpropagate_validates_arguments_without_mutation():
    net = BrainFusionNet([2, 3, 1], seed=0)
    snap = _snapshot(net)
    with pytest.raises(DimensionMismatchError):
        net.backpropagate([1.0, 0.0, 0.0], [1.0], 0.1)
    with pytest.raises(DimensionMismatchError):
        net.backpropagate([1.0, 0.0], [1.0, 0.0], 0.1)
    for lr in (0.0, -0.1, float("nan"), float("inf")):
        with pytest.raises(ConfigurationError):
            net.backpropagate([1.0, 0.0], [1.0], lr)
    with pytest.raises(NumericalInstabilityError):
        net.backpropagate([float("nan"), 0.0], [1.0], 0.1)
    _assert_unchanged(net, snap)


def test_backpropagate_returns_loss_before_update():
    net = BrainFusionNet([2, 3, 1], seed=2)
    x, t = [0.2, 0.9], [1.0]
    expected = float(np.mean((net.forward(x) - t) ** 2))
    assert net.backpropagate(x, t, 0.1) == pytest.approx(expected)


def test_backpropagate_matches_hand_computed_gradient():
    W0 = np.array([[0.1, -0.2], [0.3, 0.4]])
    W1 = np.array([[0.5, -0.6]])
    b0 = np.array([0.01, -0.02])
    b1 = np.array([0.03])
    net = BrainFusionNet.from_parameters([W0, W1], [b0, b1])
    x = np.array([1.0, 0.5])
    t = np.array([0.0])
    lr = 0.5

    h = 1.0 / (1.0 + np.exp(-(W0 @ x + b0)))
    y = 1.0 / (1.0 + np.exp(-(W1 @ h + b1)))
    d1 = (y - t) * y * (1 - y)
    d0 = (W1.T @ d1) * h * (1 - h)

    net.backpropagate(x, t, lr)
    np.testing.assert_allclose(net.weights[1], W1 - lr * np.outer(d1, h))
    np.testing.assert_allclose(net.biases[1], b1 - lr * d1)
    np.testing.assert_allclose(net.weights[0], W0 - lr * np.outer(d0, x))
    np.testing.assert_allclose(net.biases[0], b0 - lr * d0)


def test_repeated_steps_on_fixed_pair_reduce_loss():
    net = BrainFusionNet([2, 3, 1], seed=0)
    first = net.backpropagate([1.0, 0.0], [1.0], 0.1)
    for _ in range(200):
        last = net.backpropagate([1.0, 0.0], [1.0], 0.1)
    assert last < first


def test_xor_converges_with_online_backprop():
    inputs, targets = truth_table("xor")

    def train(seed):
        net = BrainFusionNet([2, 3, 1], seed=seed)
        for epoch in range(1, 60_001):
            for x, t in zip(inputs, targets):
                net.backpropagate(x, t, 0.1)
            if epoch >= 500 and epoch % 500 == 0:
                mse = float(np.mean((net.predict(inputs) - targets) ** 2))
                if mse < 0.05:
                    return mse
        return mse

    results = []
    for seed in (0, 1, 2, 3):
        results.append(train(seed))
        if results[-1] < 0.05:
            break
    assert min(results) < 0.05, results


def test_non_finite_update_is_rejected_atomically():
    net = BrainFusionNet([1, 1], init_scale=0.0)
    snap = _snapshot(net)
    with pytest.raises(NumericalInstabilityError):
        net.backpropagate([1e300], [1.0], 1e10)
    _assert_unchanged(net, snap)


def test_train_hebbian_strengthens_co_active_units():
    net = BrainFusionNet([2, 2], init_scale=0.0)
    out = net.train_hebbian([1.0, 0.0], 0.1)
    np.testing.assert_array_equal(out, [0.5, 0.5])
    np.testing.assert_allclose(net.weights[0], [[0.05, 0.0], [0.05, 0.0]])
    np.testing.assert_allclose(net.biases[0], [0.05, 0.05])


def test_state_dict_round_trip_and_validation():
    net = BrainFusionNet([3, 4, 2], seed=9)
    state = net.state_dict()
    other = BrainFusionNet([3, 4, 2], seed=10)
    other.load_state_dict(state)
    for a, b in zip(net.weights, other.weights):
        np.testing.assert_array_equal(a, b)

    state["W0"][:] = 99.0
    assert not np.any(net.weights[0] == 99.0)

    missing = {k: v for k, v in net.state_dict().items() if k != "b1"}
    with pytest.raises(ConfigurationError):
        other.load_state_dict(missing)

    wrong = dict(net.state_dict())
    wrong["W1"] = np.zeros((3, 4))
    with pytest.raises(DimensionMismatchError):
        other.load_state_dict(wrong)

    with pytest.raises(DimensionMismatchError):
        BrainFusionNet([3, 5, 2]).load_state_dict(net.state_dict())
