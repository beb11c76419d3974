"""Finite-difference checks for the LSTMP forward/backward pair."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import numpy as np

from .config import LSTMPOptions
from .ops.lstmp import lstmp_backward, lstmp_forward

logger = logging.getLogger(__name__)


def finite_diff_grad(param: np.ndarray, f: Callable[[], float], eps: float = 1e-3, samples: int = 10, rng=None) -> Dict[Tuple[int, ...], float]:
    if rng is None:
        rng = np.random.default_rng(0)
    idxs = [tuple(int(rng.integers(0, s)) for s in param.shape) for _ in range(samples)]
    grads = {}
    for idx in idxs:
        orig = param[idx]
        param[idx] = orig + eps
        lp = f()
        param[idx] = orig - eps
        lm = f()
        param[idx] = orig
        grads[idx] = (lp - lm) / (2 * eps)
    return grads


@dataclass
class LSTMPProblem:
    x: np.ndarray
    offsets: np.ndarray
    weight: np.ndarray
    proj_weight: np.ndarray
    bias: np.ndarray
    options: LSTMPOptions
    h0: Optional[np.ndarray] = None
    c0: Optional[np.ndarray] = None
    d_projection: Optional[np.ndarray] = None
    d_cell: Optional[np.ndarray] = None

    def tensors(self) -> Dict[str, np.ndarray]:
        ts = {
            "input": self.x,
            "weight": self.weight,
            "proj_weight": self.proj_weight,
            "bias": self.bias,
        }
        if self.h0 is not None:
            ts["h0"] = self.h0
        if self.c0 is not None:
            ts["c0"] = self.c0
        return ts

    def loss(self) -> float:
        out = lstmp_forward(
            self.x,
            self.offsets,
            self.weight,
            self.proj_weight,
            self.bias,
            options=self.options,
            h0=self.h0,
            c0=self.c0,
        )
        total = 0.0
        if self.d_projection is not None:
            total += float(np.sum(out.projection * self.d_projection))
        if self.d_cell is not None:
            total += float(np.sum(out.cell * self.d_cell))
        return total


def random_lstmp_problem(
    lengths: Sequence[int],
    frame_size: int,
    proj_size: int,
    options: LSTMPOptions | None = None,
    with_initial_state: bool = False,
    unit_output_grads: bool = True,
    scale: float = 0.5,
    seed: int | None = None,
) -> LSTMPProblem:
    options = options or LSTMPOptions()
    lengths = [int(n) for n in lengths]
    if not lengths or min(lengths) <= 0:
        raise ValueError("lengths must be a non-empty list of positive ints")
    rng = np.random.default_rng(seed)
    D = int(frame_size)
    Pn = int(proj_size)
    N = len(lengths)
    offsets = np.concatenate([[0], np.cumsum(lengths)]).astype(np.int64)
    T = int(offsets[-1])

    def rand(*shape):
        return rng.standard_normal(shape) * scale

    problem = LSTMPProblem(
        x=rand(T, 4 * D),
        offsets=offsets,
        weight=rand(Pn, 4 * D),
        proj_weight=rand(D, Pn),
        bias=rand(1, options.bias_width(D)),
        options=options,
    )
    if with_initial_state:
        problem.h0 = rand(N, D)
        problem.c0 = rand(N, D)
    if unit_output_grads:
        problem.d_projection = np.ones((T, Pn))
        problem.d_cell = np.ones((T, D))
    else:
        problem.d_projection = rng.standard_normal((T, Pn))
        problem.d_cell = rng.standard_normal((T, D))
    return problem


@dataclass
class GradCheckReport:
    max_rel_error: Dict[str, float] = field(default_factory=dict)

    def worst(self) -> float:
        return max(self.max_rel_error.values()) if self.max_rel_error else 0.0

    def passed(self, tol: float) -> bool:
        return self.worst() <= tol

    def lines(self) -> List[str]:
        return [f"{name:<12s} max_rel_error={err:.3e}" for name, err in self.max_rel_error.items()]


def _rel_error(a: float, b: float) -> float:
    return abs(a - b) / max(1.0, abs(a), abs(b))


def check_lstmp_gradients(problem: LSTMPProblem, eps: float = 1e-6, samples: int = 10, seed: int = 0) -> GradCheckReport:
    """Compare analytic gradients against central differences.

    The loss is ``sum(Projection * d_projection) + sum(Cell * d_cell)``, so
    the upstream gradients double as the loss weights.
    """
    rng = np.random.default_rng(seed)
    out = lstmp_forward(
        problem.x,
        problem.offsets,
        problem.weight,
        problem.proj_weight,
        problem.bias,
        options=problem.options,
        h0=problem.h0,
        c0=problem.c0,
    )
    grads = lstmp_backward(
        out.trace,
        problem.weight,
        problem.proj_weight,
        problem.bias,
        d_projection=problem.d_projection,
        d_cell=problem.d_cell,
    )
    report = GradCheckReport()
    for name, tensor in problem.tensors().items():
        analytic = getattr(grads, name)
        fd = finite_diff_grad(tensor, problem.loss, eps=eps, samples=samples, rng=rng)
        err = 0.0
        for idx, val in fd.items():
            err = max(err, _rel_error(float(val), float(analytic[idx])))
        report.max_rel_error[name] = err
        logger.debug("gradcheck %s: max relative error %.3e over %d samples", name, err, len(fd))
    return report
