from __future__ import annotations

import numpy as np
import pytest

from seqlstm.activations import ACTIVATIONS, get_activation
from seqlstm.config import LSTMPOptions
from seqlstm.errors import ConfigError


def test_sigmoid_is_stable_for_large_inputs():
    act = get_activation("sigmoid")
    y = act(np.array([-1000.0, 0.0, 1000.0]))
    assert np.all(np.isfinite(y))
    np.testing.assert_allclose(y, [0.0, 0.5, 1.0])


@pytest.mark.parametrize("name", ["sigmoid", "tanh", "identity"])
def test_derivative_from_output_matches_finite_difference(name):
    act = get_activation(name)
    x = np.linspace(-2.0, 2.0, 9)
    eps = 1e-6
    fd = (act(x + eps) - act(x - eps)) / (2 * eps)
    np.testing.assert_allclose(act.derivative(act(x)), fd, rtol=1e-6, atol=1e-8)


def test_relu_derivative_uses_output_sign():
    act = get_activation("relu")
    y = act(np.array([-1.0, 0.0, 2.0]))
    np.testing.assert_array_equal(y, [0.0, 0.0, 2.0])
    np.testing.assert_array_equal(act.derivative(y), [0.0, 0.0, 1.0])


def test_activations_keep_float32():
    x = np.linspace(-1.0, 1.0, 5, dtype=np.float32)
    for act in ACTIVATIONS.values():
        assert act(x).dtype == np.float32
        assert act.derivative(act(x)).dtype == np.float32


def test_unknown_activation_is_a_config_error():
    with pytest.raises(ConfigError):
        get_activation("softplus")
    with pytest.raises(ConfigError):
        LSTMPOptions(cell_activation="gelu")


def test_default_options():
    opts = LSTMPOptions()
    acts = opts.resolve()
    assert opts.use_peepholes and not opts.is_reverse
    assert [a.name for a in acts] == ["sigmoid", "tanh", "tanh", "tanh"]
    assert opts.bias_width(3) == 21
    assert LSTMPOptions(use_peepholes=False).bias_width(3) == 12
