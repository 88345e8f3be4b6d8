import numpy as np

from brainfusion.core.activations import sigmoid, sigmoid_derivative


def test_sigmoid_of_zero_is_half():
    assert sigmoid(0.0) == 0.5
    assert isinstance(sigmoid(0.0), float)


def test_sigmoid_saturates_inside_open_interval():
    x = np.array([-1e6, -800.0, -50.0, 0.0, 50.0, 800.0, 1e6])
    y = sigmoid(x)
    assert y.shape == x.shape
    assert np.all(np.isfinite(y))
    assert np.all(y > 0.0) and np.all(y < 1.0)
    assert np.all(np.diff(y) >= 0.0)


def test_sigmoid_matches_closed_form_in_normal_range():
    x = np.linspace(-6.0, 6.0, 25)
    np.testing.assert_allclose(sigmoid(x), 1.0 / (1.0 + np.exp(-x)), rtol=1e-12)


def test_derivative_uses_output_value():
    y = sigmoid(np.array([-2.0, 0.0, 3.0]))
    np.testing.assert_allclose(sigmoid_derivative(y), y * (1.0 - y))
    assert sigmoid_derivative(0.5) == 0.25
