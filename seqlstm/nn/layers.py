from __future__ import annotations

import math
import numpy as np

from .module import Module, Parameter


def _kaiming_uniform(fan_in: int, fan_out: int, rng: np.random.Generator, dtype) -> np.ndarray:
    bound = math.sqrt(6.0 / fan_in)
    return rng.uniform(low=-bound, high=bound, size=(fan_in, fan_out)).astype(dtype)


class Linear(Module):
    """Dense layer over rows of a flat sequence buffer, ``y = x W (+ b)``."""

    def __init__(self, in_features: int, out_features: int, bias: bool = True, seed: int | None = None, dtype=np.float32) -> None:
        super().__init__()
        if in_features <= 0 or out_features <= 0:
            raise ValueError("in_features and out_features must be positive")
        rng = np.random.default_rng(seed)
        self.in_features = int(in_features)
        self.out_features = int(out_features)
        self.W = Parameter(_kaiming_uniform(in_features, out_features, rng, dtype), name="W")
        self.b = Parameter(np.zeros((out_features,), dtype=dtype), name="b") if bias else None
        self._cache_x: np.ndarray | None = None

    def forward(self, x: np.ndarray) -> np.ndarray:
        if x.ndim != 2:
            raise ValueError("Linear expects input of shape (rows, in_features)")
        if x.shape[1] != self.in_features:
            raise ValueError(f"Linear expects {self.in_features} input features, got {x.shape[1]}")
        x = x.astype(self.W.data.dtype, copy=False)
        self._cache_x = x
        y = x @ self.W.data
        if self.b is not None:
            y = y + self.b.data
        return y

    def backward(self, dy: np.ndarray) -> np.ndarray:
        if self._cache_x is None:
            raise RuntimeError("Linear backward called before forward")
        x = self._cache_x
        if dy.shape != (x.shape[0], self.out_features):
            raise ValueError("Upstream grad shape mismatch in Linear")
        self.W.grad += x.T @ dy
        if self.b is not None:
            self.b.grad += dy.sum(axis=0)
        return dy @ self.W.data.T
