"""LSTM with a recurrent projection layer over offset-delimited sequences.

For every step ``t`` of every sequence::

    c~_t = act_cand(x_c + r_{t-1} W_c + b_c)
    i_t  = act_gate(x_i + r_{t-1} W_i + b_i + W_ic * c_{t-1})
    f_t  = act_gate(x_f + r_{t-1} W_f + b_f + W_fc * c_{t-1})
    c_t  = f_t * c_{t-1} + i_t * c~_t
    o_t  = act_gate(x_o + r_{t-1} W_o + b_o + W_oc * c_t)
    h_t  = o_t * act_cell(c_t)
    r_t  = act_proj(h_t P)

``x`` already holds the input transform ``x_t W_x`` for all four gates, laid
out as ``[candidate, input, forget, output]`` blocks of width ``D``. ``W`` is
``(P, 4D)``, ``P`` (``proj_weight``) is ``(D, P)`` and ``bias`` is ``(1, 4D)``
or, with peepholes, ``(1, 7D)`` with ``[W_ic, W_fc, W_oc]`` appended.

Both passes run on the batch layout from :mod:`seqlstm.ops.batching`, so each
step is a dense matmul over the sequences still active at that step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, Optional
import numpy as np

from ..config import LSTMPOptions
from ..errors import ConfigError
from .batching import BatchLayout, OffsetsLike, build_layout
from .contract import LSTMPDims, check_lstmp_inputs, check_output_grad

logger = logging.getLogger(__name__)

GRAD_SLOTS = ("input", "weight", "proj_weight", "bias", "h0", "c0")


@dataclass(frozen=True)
class LSTMPTrace:
    """Everything the backward pass needs, in batch order.

    Owned by one forward call and only read by the matching backward call.
    """

    options: LSTMPOptions
    layout: BatchLayout
    dims: LSTMPDims
    batch_gate: np.ndarray
    batch_cell_pre_act: np.ndarray
    batch_cell_act: np.ndarray
    batch_hidden: np.ndarray
    batch_projection: np.ndarray
    ordered_h0: Optional[np.ndarray] = None
    ordered_c0: Optional[np.ndarray] = None
    ordered_proj0: Optional[np.ndarray] = None


@dataclass(frozen=True)
class LSTMPOutput:
    projection: np.ndarray
    cell: np.ndarray
    trace: LSTMPTrace


@dataclass
class LSTMPGrads:
    input: Optional[np.ndarray] = None
    weight: Optional[np.ndarray] = None
    proj_weight: Optional[np.ndarray] = None
    bias: Optional[np.ndarray] = None
    h0: Optional[np.ndarray] = None
    c0: Optional[np.ndarray] = None


def _peepholes(bias: np.ndarray, D: int):
    b = bias[0]
    return b[4 * D:5 * D], b[5 * D:6 * D], b[6 * D:7 * D]


def lstmp_forward(
    x: np.ndarray,
    offsets: OffsetsLike,
    weight: np.ndarray,
    proj_weight: np.ndarray,
    bias: np.ndarray,
    options: Optional[LSTMPOptions] = None,
    h0: Optional[np.ndarray] = None,
    c0: Optional[np.ndarray] = None,
) -> LSTMPOutput:
    options = options or LSTMPOptions()
    dims = check_lstmp_inputs(x, offsets, weight, proj_weight, bias, options, h0=h0, c0=c0)
    acts = options.resolve()
    layout = build_layout(offsets, is_reverse=options.is_reverse)

    x = np.asarray(x)
    dtype = np.result_type(x.dtype, np.asarray(weight).dtype, np.asarray(proj_weight).dtype, np.asarray(bias).dtype)
    weight = np.asarray(weight, dtype=dtype)
    proj_weight = np.asarray(proj_weight, dtype=dtype)
    bias = np.asarray(bias, dtype=dtype)
    D = dims.frame_size
    Pn = dims.proj_size
    N = dims.num_sequences
    T = dims.total_rows

    batch_gate = layout.to_batch(x.astype(dtype, copy=False)) + bias[:, :4 * D]
    batch_cell = np.empty((T, D), dtype=dtype)
    batch_cell_act = np.empty((T, D), dtype=dtype)
    batch_hidden = np.empty((T, D), dtype=dtype)
    batch_proj = np.empty((T, Pn), dtype=dtype)
    if options.use_peepholes:
        w_ic, w_fc, w_oc = _peepholes(bias, D)

    ordered_h0 = ordered_c0 = ordered_proj0 = None
    if h0 is not None:
        ordered_h0 = layout.reorder_state(np.asarray(h0, dtype=dtype))
        ordered_proj0 = acts.proj(ordered_h0 @ proj_weight)
        r_prev = ordered_proj0
    else:
        r_prev = np.zeros((N, Pn), dtype=dtype)
    if c0 is not None:
        ordered_c0 = layout.reorder_state(np.asarray(c0, dtype=dtype))
        c_prev = ordered_c0
    else:
        c_prev = np.zeros((N, D), dtype=dtype)

    for t in range(layout.max_length):
        s = layout.step_slice(t)
        n = s.stop - s.start
        rp = r_prev[:n]
        cp = c_prev[:n]
        gate = batch_gate[s]
        gate += rp @ weight

        cand = acts.candidate(gate[:, :D])
        zi = gate[:, D:2 * D]
        zf = gate[:, 2 * D:3 * D]
        zo = gate[:, 3 * D:]
        if options.use_peepholes:
            zi = zi + cp * w_ic
            zf = zf + cp * w_fc
        i = acts.gate(zi)
        f = acts.gate(zf)
        c = f * cp + i * cand
        if options.use_peepholes:
            zo = zo + c * w_oc
        o = acts.gate(zo)
        c_act = acts.cell(c)
        h = o * c_act
        r = acts.proj(h @ proj_weight)

        gate[:, :D] = cand
        gate[:, D:2 * D] = i
        gate[:, 2 * D:3 * D] = f
        gate[:, 3 * D:] = o
        batch_cell[s] = c
        batch_cell_act[s] = c_act
        batch_hidden[s] = h
        batch_proj[s] = r
        r_prev = batch_proj[s]
        c_prev = batch_cell[s]

    logger.debug(
        "lstmp forward: %d sequences, %d steps, D=%d, P=%d, peepholes=%s, reverse=%s",
        N,
        layout.max_length,
        D,
        Pn,
        options.use_peepholes,
        options.is_reverse,
    )
    trace = LSTMPTrace(
        options=options,
        layout=layout,
        dims=dims,
        batch_gate=batch_gate,
        batch_cell_pre_act=batch_cell,
        batch_cell_act=batch_cell_act,
        batch_hidden=batch_hidden,
        batch_projection=batch_proj,
        ordered_h0=ordered_h0,
        ordered_c0=ordered_c0,
        ordered_proj0=ordered_proj0,
    )
    return LSTMPOutput(
        projection=layout.from_batch(batch_proj),
        cell=layout.from_batch(batch_cell),
        trace=trace,
    )


def lstmp_backward(
    trace: LSTMPTrace,
    weight: np.ndarray,
    proj_weight: np.ndarray,
    bias: np.ndarray,
    d_projection: Optional[np.ndarray] = None,
    d_cell: Optional[np.ndarray] = None,
    wrt: Collection[str] = GRAD_SLOTS,
) -> LSTMPGrads:
    """Backpropagate through one forward call.

    ``d_projection`` and ``d_cell`` are gradients of the loss w.r.t. the
    ``Projection`` and ``Cell`` outputs in original order; either may be None
    (treated as zero). ``wrt`` names the gradient slots to return, the other
    slots of the result stay None. Gradients for ``h0`` / ``c0`` are only
    produced when the forward call was given an initial state.
    """
    unknown = set(wrt) - set(GRAD_SLOTS)
    if unknown:
        raise ConfigError(f"unknown gradient slots {sorted(unknown)}, expected a subset of {GRAD_SLOTS}")
    options = trace.options
    layout = trace.layout
    dims = trace.dims
    acts = options.resolve()
    D = dims.frame_size
    Pn = dims.proj_size
    N = dims.num_sequences
    T = dims.total_rows

    dtype = trace.batch_gate.dtype
    weight = np.asarray(weight, dtype=dtype)
    proj_weight = np.asarray(proj_weight, dtype=dtype)
    bias = np.asarray(bias, dtype=dtype)
    if weight.shape != (Pn, 4 * D) or proj_weight.shape != (D, Pn):
        raise ConfigError(
            f"Weight {weight.shape} / ProjWeight {proj_weight.shape} do not match "
            f"the forward pass (D={D}, P={Pn})"
        )
    if bias.shape != (1, options.bias_width(D)):
        raise ConfigError(f"Bias should have shape (1, {options.bias_width(D)}), got {bias.shape}")

    d_projection = check_output_grad("Projection@GRAD", d_projection, (T, Pn))
    d_cell = check_output_grad("Cell@GRAD", d_cell, (T, D))
    if d_projection is None:
        dproj_b = np.zeros((T, Pn), dtype=dtype)
    else:
        dproj_b = layout.to_batch(np.asarray(d_projection, dtype=dtype))
    dcell_b = None if d_cell is None else layout.to_batch(np.asarray(d_cell, dtype=dtype))

    if options.use_peepholes:
        w_ic, w_fc, w_oc = _peepholes(bias, D)
        d_wic = np.zeros((D,), dtype=dtype)
        d_wfc = np.zeros((D,), dtype=dtype)
        d_woc = np.zeros((D,), dtype=dtype)

    g = trace.batch_gate
    batch_cell = trace.batch_cell_pre_act
    batch_proj = trace.batch_projection
    d_gate = np.empty((T, 4 * D), dtype=dtype)
    d_weight = np.zeros((Pn, 4 * D), dtype=dtype)
    d_proj_weight = np.zeros((D, Pn), dtype=dtype)
    # gradients flowing from step t + 1 into its previous projection / cell;
    # rows past the active count of t + 1 stay zero
    carry_r = np.zeros((N, Pn), dtype=dtype)
    carry_c = np.zeros((N, D), dtype=dtype)
    r0 = trace.ordered_proj0 if trace.ordered_proj0 is not None else np.zeros((N, Pn), dtype=dtype)
    c0 = trace.ordered_c0 if trace.ordered_c0 is not None else np.zeros((N, D), dtype=dtype)

    for t in range(layout.max_length - 1, -1, -1):
        s = layout.step_slice(t)
        n = s.stop - s.start
        if t > 0:
            sp = layout.step_slice(t - 1)
            r_prev = batch_proj[sp][:n]
            c_prev = batch_cell[sp][:n]
        else:
            r_prev = r0[:n]
            c_prev = c0[:n]

        cand = g[s, :D]
        i = g[s, D:2 * D]
        f = g[s, 2 * D:3 * D]
        o = g[s, 3 * D:]
        c = batch_cell[s]
        c_act = trace.batch_cell_act[s]

        dr = (dproj_b[s] + carry_r[:n]) * acts.proj.derivative(batch_proj[s])
        d_proj_weight += trace.batch_hidden[s].T @ dr
        dh = dr @ proj_weight.T

        do = dh * c_act * acts.gate.derivative(o)
        dc = dh * o * acts.cell.derivative(c_act) + carry_c[:n]
        if dcell_b is not None:
            dc += dcell_b[s]
        if options.use_peepholes:
            dc += do * w_oc
        dcand = dc * i * acts.candidate.derivative(cand)
        di = dc * cand * acts.gate.derivative(i)
        df = dc * c_prev * acts.gate.derivative(f)

        carry_c[:n] = dc * f
        if options.use_peepholes:
            carry_c[:n] += di * w_ic + df * w_fc
            d_wic += (di * c_prev).sum(axis=0)
            d_wfc += (df * c_prev).sum(axis=0)
            d_woc += (do * c).sum(axis=0)

        dg = d_gate[s]
        dg[:, :D] = dcand
        dg[:, D:2 * D] = di
        dg[:, 2 * D:3 * D] = df
        dg[:, 3 * D:] = do
        d_weight += r_prev.T @ dg
        carry_r[:n] = dg @ weight.T

    grads = LSTMPGrads()
    if trace.ordered_h0 is not None and ({"h0", "proj_weight"} & set(wrt)):
        dp0 = carry_r * acts.proj.derivative(trace.ordered_proj0)
        d_proj_weight += trace.ordered_h0.T @ dp0
        if "h0" in wrt:
            grads.h0 = layout.restore_state(dp0 @ proj_weight.T)
    if trace.ordered_c0 is not None and "c0" in wrt:
        grads.c0 = layout.restore_state(carry_c)

    if "input" in wrt:
        grads.input = layout.from_batch(d_gate)
    if "weight" in wrt:
        grads.weight = d_weight
    if "proj_weight" in wrt:
        grads.proj_weight = d_proj_weight
    if "bias" in wrt:
        d_bias = np.zeros_like(bias)
        d_bias[0, :4 * D] = d_gate.sum(axis=0)
        if options.use_peepholes:
            d_bias[0, 4 * D:5 * D] = d_wic
            d_bias[0, 5 * D:6 * D] = d_wfc
            d_bias[0, 6 * D:7 * D] = d_woc
        grads.bias = d_bias

    logger.debug("lstmp backward: %d rows, slots=%s", T, sorted(set(wrt)))
    return grads
