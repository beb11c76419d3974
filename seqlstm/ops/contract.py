from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import numpy as np

from ..config import LSTMPOptions
from ..errors import ConfigError
from .batching import OffsetsLike, check_offsets


@dataclass(frozen=True)
class LSTMPDims:
    total_rows: int
    num_sequences: int
    frame_size: int
    proj_size: int


def _require(name: str, value) -> np.ndarray:
    if value is None:
        raise ConfigError(f"{name} of the LSTMP operator must not be None")
    arr = np.asarray(value)
    if arr.dtype.kind != "f":
        raise ConfigError(f"{name} must be a floating point array, got dtype {arr.dtype}")
    return arr


def _check_rank(name: str, arr: np.ndarray, rank: int) -> None:
    if arr.ndim != rank:
        raise ConfigError(f"the rank of {name} should be {rank}, got shape {arr.shape}")


def check_lstmp_inputs(
    x,
    offsets: OffsetsLike,
    weight,
    proj_weight,
    bias,
    options: LSTMPOptions,
    h0=None,
    c0=None,
) -> LSTMPDims:
    x = _require("Input", x)
    weight = _require("Weight", weight)
    proj_weight = _require("ProjWeight", proj_weight)
    bias = _require("Bias", bias)
    if offsets is None:
        raise ConfigError("the offset table of Input must not be None")

    _check_rank("Input", x, 2)
    if x.shape[1] == 0 or x.shape[1] % 4 != 0:
        raise ConfigError(
            f"the second dimension of Input should be 4 * frame_size, got {x.shape[1]}"
        )
    frame_size = x.shape[1] // 4

    _check_rank("ProjWeight", proj_weight, 2)
    if proj_weight.shape[0] != frame_size:
        raise ConfigError(
            f"the first dimension of ProjWeight should be {frame_size}, "
            f"got {proj_weight.shape[0]}"
        )
    proj_size = proj_weight.shape[1]

    _check_rank("Weight", weight, 2)
    if weight.shape[0] != proj_size:
        raise ConfigError(
            f"the first dimension of Weight should be {proj_size}, got {weight.shape[0]}"
        )
    if weight.shape[1] != 4 * frame_size:
        raise ConfigError(
            f"the second dimension of Weight should be 4 * {frame_size}, "
            f"got {weight.shape[1]}"
        )

    _check_rank("Bias", bias, 2)
    if bias.shape[0] != 1:
        raise ConfigError(f"the first dimension of Bias should be 1, got {bias.shape[0]}")
    want = options.bias_width(frame_size)
    if bias.shape[1] != want:
        mode = "enabled" if options.use_peepholes else "disabled"
        raise ConfigError(
            f"the second dimension of Bias should be {want} with peepholes {mode}, "
            f"got {bias.shape[1]}"
        )

    off = check_offsets(offsets)
    if int(off[-1]) != x.shape[0]:
        raise ConfigError(
            f"offsets end at {int(off[-1])} but Input has {x.shape[0]} rows"
        )
    num_sequences = off.shape[0] - 1

    if h0 is not None and c0 is None:
        raise ConfigError("C0 of the LSTMP operator must be provided when H0 is given")
    for name, state in (("H0", h0), ("C0", c0)):
        if state is None:
            continue
        state = _require(name, state)
        if state.shape != (num_sequences, frame_size):
            raise ConfigError(
                f"{name} should have shape ({num_sequences}, {frame_size}), got {state.shape}"
            )

    return LSTMPDims(
        total_rows=x.shape[0],
        num_sequences=num_sequences,
        frame_size=frame_size,
        proj_size=proj_size,
    )


def check_output_grad(name: str, grad: Optional[np.ndarray], shape) -> Optional[np.ndarray]:
    if grad is None:
        return None
    grad = _require(name, grad)
    if grad.shape != tuple(shape):
        raise ConfigError(f"{name} should have shape {tuple(shape)}, got {grad.shape}")
    return grad
