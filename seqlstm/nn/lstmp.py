from __future__ import annotations

from typing import Optional, Tuple
import numpy as np

from ..config import LSTMPOptions
from ..ops.batching import OffsetsLike
from ..ops.lstmp import GRAD_SLOTS, LSTMPTrace, lstmp_backward, lstmp_forward
from .layers import Linear
from .module import Module, Parameter


def _glorot_uniform(fan_in: int, fan_out: int, rng: np.random.Generator, dtype) -> np.ndarray:
    s = np.sqrt(6.0 / float(fan_in + fan_out))
    return rng.uniform(-s, s, size=(fan_in, fan_out)).astype(dtype)


class LSTMP(Module):
    """LSTMP layer over flat sequence batches.

    Input is ``(T, 4 * cell_size)``: the gate pre-activations from the input
    transform, ``[candidate, input, forget, output]``. Outputs are the
    projection ``(T, proj_size)`` and cell state ``(T, cell_size)``, both in
    the same row order as the input.
    """

    def __init__(self, cell_size: int, proj_size: int, options: LSTMPOptions | None = None, seed: int | None = None, dtype=np.float32) -> None:
        super().__init__()
        if cell_size <= 0 or proj_size <= 0:
            raise ValueError("cell_size and proj_size must be positive")
        self.options = options or LSTMPOptions()
        self.rng = np.random.default_rng(seed)
        D = int(cell_size)
        Pn = int(proj_size)
        self.cell_size = D
        self.proj_size = Pn
        self.weight = Parameter(_glorot_uniform(Pn, 4 * D, self.rng, dtype), name="weight")
        self.proj_weight = Parameter(_glorot_uniform(D, Pn, self.rng, dtype), name="proj_weight")
        b = np.zeros((1, self.options.bias_width(D)), dtype=dtype)
        b[0, 2 * D:3 * D] = 1.0
        self.bias = Parameter(b, name="bias")
        self.h0_grad: np.ndarray | None = None
        self.c0_grad: np.ndarray | None = None
        self._trace: LSTMPTrace | None = None

    @property
    def input_size(self) -> int:
        return 4 * self.cell_size

    def forward(self, x: np.ndarray, offsets: OffsetsLike, h0: np.ndarray | None = None, c0: np.ndarray | None = None) -> Tuple[np.ndarray, np.ndarray]:
        out = lstmp_forward(
            x,
            offsets,
            self.weight.data,
            self.proj_weight.data,
            self.bias.data,
            options=self.options,
            h0=h0,
            c0=c0,
        )
        self._trace = out.trace
        self.h0_grad = None
        self.c0_grad = None
        return out.projection, out.cell

    def backward(self, d_projection: np.ndarray, d_cell: Optional[np.ndarray] = None) -> np.ndarray:
        if self._trace is None:
            raise RuntimeError("LSTMP backward called before forward")
        grads = lstmp_backward(
            self._trace,
            self.weight.data,
            self.proj_weight.data,
            self.bias.data,
            d_projection=d_projection,
            d_cell=d_cell,
            wrt=GRAD_SLOTS,
        )
        self.weight.grad += grads.weight
        self.proj_weight.grad += grads.proj_weight
        self.bias.grad += grads.bias
        self.h0_grad = grads.h0
        self.c0_grad = grads.c0
        return grads.input


class DynamicLSTMP(Module):
    """Bias-free input projection to ``4 * cell_size`` followed by :class:`LSTMP`.

    The gate bias lives in the LSTMP layer, so the input transform carries none.
    """

    def __init__(self, input_size: int, cell_size: int, proj_size: int, options: LSTMPOptions | None = None, seed: int | None = None, dtype=np.float32) -> None:
        super().__init__()
        if input_size <= 0:
            raise ValueError("input_size must be positive")
        self.input_size = int(input_size)
        self.fc = Linear(input_size, 4 * cell_size, bias=False, seed=seed, dtype=dtype)
        self.lstmp = LSTMP(cell_size, proj_size, options=options, seed=None if seed is None else seed + 1, dtype=dtype)

    @property
    def cell_size(self) -> int:
        return self.lstmp.cell_size

    @property
    def proj_size(self) -> int:
        return self.lstmp.proj_size

    def forward(self, x: np.ndarray, offsets: OffsetsLike, h0: np.ndarray | None = None, c0: np.ndarray | None = None) -> Tuple[np.ndarray, np.ndarray]:
        gates = self.fc(x)
        return self.lstmp(gates, offsets, h0=h0, c0=c0)

    def backward(self, d_projection: np.ndarray, d_cell: Optional[np.ndarray] = None) -> np.ndarray:
        d_gates = self.lstmp.backward(d_projection, d_cell)
        return self.fc.backward(d_gates)
