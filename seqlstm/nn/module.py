from __future__ import annotations

from typing import List
import numpy as np


class Parameter:
    def __init__(self, data: np.ndarray, name: str = ""):
        if not isinstance(data, np.ndarray):
            raise TypeError("Parameter data must be a numpy.ndarray")
        if data.dtype not in (np.float32, np.float64):
            raise TypeError("Parameter dtype must be float32 or float64")
        self.data = data
        self.name = name
        self.grad = np.zeros_like(data)

    @property
    def shape(self):
        return self.data.shape

    def zero_grad(self) -> None:
        self.grad[...] = 0

    def __repr__(self) -> str:
        return f"Parameter(name={self.name!r}, shape={self.data.shape}, dtype={self.data.dtype})"


class Module:
    def __init__(self) -> None:
        self._training = True

    def modules(self) -> List["Module"]:
        return [v for v in self.__dict__.values() if isinstance(v, Module)]

    def parameters(self) -> List[Parameter]:
        ps: List[Parameter] = []
        for v in self.__dict__.values():
            if isinstance(v, Parameter):
                ps.append(v)
            elif isinstance(v, Module):
                ps.extend(v.parameters())
        return ps

    def train(self) -> None:
        self._training = True
        for m in self.modules():
            m.train()

    def eval(self) -> None:
        self._training = False
        for m in self.modules():
            m.eval()

    @property
    def training(self) -> bool:
        return self._training

    def zero_grad(self) -> None:
        for p in self.parameters():
            p.zero_grad()

    def forward(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise NotImplementedError

    def backward(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise NotImplementedError

    def __call__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        return self.forward(*args, **kwargs)
