from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict
import numpy as np

from .errors import ConfigError


def sigmoid(x: np.ndarray) -> np.ndarray:
    y = np.empty_like(x)
    m = x >= 0
    y[m] = 1.0 / (1.0 + np.exp(-x[m]))
    e = np.exp(x[~m])
    y[~m] = e / (1.0 + e)
    return y


def _sigmoid_derivative(y: np.ndarray) -> np.ndarray:
    return y * (1.0 - y)


def _tanh_derivative(y: np.ndarray) -> np.ndarray:
    return 1.0 - y * y


def relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, 0.0).astype(x.dtype, copy=False)


def _relu_derivative(y: np.ndarray) -> np.ndarray:
    return (y > 0.0).astype(y.dtype)


def identity(x: np.ndarray) -> np.ndarray:
    return x


def _identity_derivative(y: np.ndarray) -> np.ndarray:
    return np.ones_like(y)


@dataclass(frozen=True)
class Activation:
    """Elementwise activation with its derivative written in terms of the output.

    ``derivative(y)`` returns ``f'(x)`` for ``y = f(x)`` so the backward pass
    only needs the values recorded in the forward trace.
    """

    name: str
    forward: Callable[[np.ndarray], np.ndarray]
    derivative: Callable[[np.ndarray], np.ndarray]

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return self.forward(x)


ACTIVATIONS: Dict[str, Activation] = {
    "sigmoid": Activation("sigmoid", sigmoid, _sigmoid_derivative),
    "tanh": Activation("tanh", np.tanh, _tanh_derivative),
    "relu": Activation("relu", relu, _relu_derivative),
    "identity": Activation("identity", identity, _identity_derivative),
}


def get_activation(name: str) -> Activation:
    try:
        return ACTIVATIONS[name]
    except (KeyError, TypeError):
        raise ConfigError(
            f"unknown activation {name!r}, expected one of {sorted(ACTIVATIONS)}"
        ) from None
