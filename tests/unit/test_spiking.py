import numpy as np
import pytest

from brainfusion.core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    NumericalInstabilityError,
)
from brainfusion.core.plasticity import HebbianRule, STDPRule
from brainfusion.core.spiking import EventDrivenSpikingNet, SpikingNet
from brainfusion.core.types import LIFParameters, VectorModel


def _state(net):
    return net.membrane_potential, net.synaptic_weights, net.previous_spikes


@pytest.mark.parametrize("count", [0, -3, 2.5, "4", None, True])
def test_invalid_neuron_count(count):
    with pytest.raises(ConfigurationError):
        SpikingNet(count)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"threshold": 0.0},
        {"threshold": 1.0, "reset_potential": 1.0},
        {"leak_rate": -0.1},
        {"refractory_period": -1.0},
        {"threshold": float("inf")},
    ],
)
def test_invalid_lif_parameters(kwargs):
    with pytest.raises(ConfigurationError):
        LIFParameters(**kwargs)


def test_construction_defaults():
    net = SpikingNet(5)
    assert isinstance(net, VectorModel)
    assert net.params == LIFParameters(1.0, 0.05, 0.0, 0.0)
    np.testing.assert_array_equal(net.membrane_potential, np.zeros(5))
    assert net.synaptic_weights.shape == (5, 5)
    assert np.all(np.abs(net.synaptic_weights) <= 0.1)
    assert not net.previous_spikes.any()
    assert net.time == 0.0 and net.step_count == 0


def test_first_step_follows_closed_form_integration():
    inputs = np.array([0.1, 0.2, 0.0, 0.3, 0.1])
    net = SpikingNet(5)
    spikes = net.step(inputs, dt=1.0)
    # v = 0 + dt * (-0 * leak + I + 0)
    np.testing.assert_array_equal(spikes, inputs >= 1.0)
    assert not spikes.any()
    np.testing.assert_allclose(net.membrane_potential, inputs)

    params = LIFParameters(threshold=0.15, leak_rate=0.05)
    net = SpikingNet(5, params=params)
    spikes = net.step(inputs, dt=1.0)
    np.testing.assert_array_equal(spikes, [False, True, False, True, False])
    np.testing.assert_allclose(net.membrane_potential, [0.1, 0.0, 0.0, 0.0, 0.1])


def test_leak_and_recurrent_drive_on_second_step():
    params = LIFParameters(threshold=1.0, leak_rate=0.1)
    net = SpikingNet(2, params=params, plasticity=HebbianRule(eta=0.0), init_scale=0.0)
    weights = np.array([[0.0, 0.5], [0.0, 0.0]])
    state = dict(net.state_dict())
    state["synaptic_weights"] = weights
    net.load_state_dict(state)

    net.step([0.0, 2.0], dt=0.5)  # neuron 1 reaches 1.0 and fires
    assert net.previous_spikes.tolist() == [False, True]
    v0 = net.membrane_potential[0]
    net.step([0.2, 0.0], dt=0.5)
    expected = v0 + 0.5 * (-v0 * 0.1 + 0.2 + 0.5)
    assert net.membrane_potential[0] == pytest.approx(expected)


def test_reset_and_threshold_invariants_hold_for_random_drive():
    rng = np.random.default_rng(0)
    params = LIFParameters(threshold=1.0, leak_rate=0.05, reset_potential=-0.2)
    net = SpikingNet(16, params=params, seed=1)
    for _ in range(300):
        spikes = net.step(rng.uniform(0.0, 0.6, size=16), dt=1.0)
        v = net.membrane_potential
        assert np.all(v[spikes] == params.reset_potential)
        assert np.all(v[~spikes] < params.threshold)


def test_hebbian_never_weakens_co_active_pairs():
    rng = np.random.default_rng(4)
    net = SpikingNet(10, seed=2)
    for _ in range(200):
        before = net.synaptic_weights
        spikes = net.step(rng.uniform(0.0, 1.5, size=10), dt=1.0)
        after = net.synaptic_weights
        pairs = np.outer(spikes, spikes)
        assert np.all(after[pairs] >= before[pairs])


def test_hebbian_keeps_large_initial_weights_of_co_active_pairs():
    net = SpikingNet(3, seed=0, init_scale=2.0)
    before = net.synaptic_weights
    spikes = net.step([5.0, 5.0, 5.0], dt=1.0)
    after = net.synaptic_weights
    assert spikes.all()
    assert np.all(after >= before)
    np.testing.assert_allclose(after, np.maximum(before, np.minimum(before + 0.001, 1.0)))


def test_hebbian_weights_stay_within_clamp():
    net = SpikingNet(4, plasticity=HebbianRule(eta=0.5), init_scale=0.0)
    for _ in range(20):
        net.step(np.full(4, 5.0), dt=1.0)
    assert np.all(net.synaptic_weights <= 1.0)
    assert np.all(net.synaptic_weights >= -1.0)


def test_identical_networks_are_deterministic():
    rng = np.random.default_rng(7)
    stimulus = rng.uniform(0.0, 0.8, size=(100, 6))
    a = SpikingNet(6, seed=11)
    b = SpikingNet(6, seed=11)
    np.testing.assert_array_equal(a.run(stimulus, 0.5), b.run(stimulus, 0.5))
    np.testing.assert_array_equal(a.synaptic_weights, b.synaptic_weights)


def test_invalid_step_arguments_leave_state_untouched():
    net = SpikingNet(3, seed=0)
    net.step([0.5, 0.5, 0.5], dt=1.0)
    before = _state(net)
    with pytest.raises(DimensionMismatchError):
        net.step([0.5, 0.5], dt=1.0)
    for dt in (0.0, -1.0, float("nan")):
        with pytest.raises(ConfigurationError):
            net.step([0.5, 0.5, 0.5], dt=dt)
    with pytest.raises(NumericalInstabilityError):
        net.step([float("inf"), 0.0, 0.0], dt=1.0)
    for old, new in zip(before, _state(net)):
        np.testing.assert_array_equal(old, new)
    assert net.step_count == 1


def test_refractory_period_blocks_immediate_refiring():
    params = LIFParameters(threshold=1.0, leak_rate=0.0, refractory_period=2.0)
    net = SpikingNet(1, params=params, init_scale=0.0)
    raster = net.run(np.full((6, 1), 1.5), dt=1.0)[:, 0]
    assert raster.tolist() == [True, False, True, False, True, False]


def test_reset_state_keeps_weights():
    net = SpikingNet(4, seed=3)
    net.run(np.full((10, 4), 0.7), dt=1.0)
    weights = net.synaptic_weights
    net.reset_state()
    np.testing.assert_array_equal(net.synaptic_weights, weights)
    assert net.time == 0.0 and net.step_count == 0
    assert np.all(net.membrane_potential == 0.0)


def test_state_dict_rejects_mismatches():
    net = SpikingNet(3, seed=0)
    state = dict(net.state_dict())
    with pytest.raises(DimensionMismatchError):
        SpikingNet(4).load_state_dict(state)
    with pytest.raises(ConfigurationError):
        SpikingNet(3, params=LIFParameters(threshold=2.0)).load_state_dict(state)
    bad = dict(state)
    bad["synaptic_weights"] = np.zeros((3, 2))
    with pytest.raises(DimensionMismatchError):
        SpikingNet(3).load_state_dict(bad)


@pytest.mark.parametrize(
    "key, value",
    [
        ("refractory_remaining", [0.0, np.nan, 1.0]),
        ("refractory_remaining", [0.0, -1.0, 1.0]),
        ("clock", [np.nan, 3.0]),
        ("clock", [-2.0, 3.0]),
        ("clock", [4.0, np.inf]),
    ],
)
def test_state_dict_rejects_bad_refractory_and_clock(key, value):
    net = SpikingNet(3, seed=0)
    state = dict(net.state_dict())
    state[key] = np.asarray(value)
    fresh = SpikingNet(3, seed=1)
    weights = fresh.synaptic_weights
    with pytest.raises((ConfigurationError, NumericalInstabilityError)):
        fresh.load_state_dict(state)
    np.testing.assert_array_equal(fresh.synaptic_weights, weights)
    assert fresh.time == 0.0


def test_event_driven_delivers_due_events_in_time_order():
    params = LIFParameters(threshold=1.0, leak_rate=0.0)
    events = EventDrivenSpikingNet(
        3, params=params, plasticity=STDPRule(eta=0.0), init_scale=0.0
    )
    events.inject_spike(2, time=2.5, amplitude=1.0)
    events.inject_spike(0, time=0.5, amplitude=1.0)
    assert events.pending_events == 2

    first = events.step_event(1.0)
    assert first.tolist() == [True, False, False]
    assert events.pending_events == 1
    assert not events.step_event(1.0).any()
    assert events.step_event(1.0).tolist() == [False, False, True]
    assert events.pending_events == 0


def test_event_driven_validates_events():
    events = EventDrivenSpikingNet(2)
    with pytest.raises(DimensionMismatchError):
        events.inject_spike(2)
    with pytest.raises(DimensionMismatchError):
        events.inject_spike(-1)
    with pytest.raises(ConfigurationError):
        events.inject_spike(0, time=-1.0)
    with pytest.raises(ConfigurationError):
        events.inject_spike(0, time=float("nan"))
    assert events.pending_events == 0


def test_event_driven_requeues_on_failure():
    events = EventDrivenSpikingNet(2, init_scale=0.0)
    events.inject_spike(1, time=0.0, amplitude=1e308)
    events.inject_spike(1, time=0.5, amplitude=1e308)
    with pytest.raises(NumericalInstabilityError):
        events.step_event(1.0)
    assert events.pending_events == 2
    assert events.net.step_count == 0
