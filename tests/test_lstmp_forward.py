from __future__ import annotations

import numpy as np
import pytest

from seqlstm.config import LSTMPOptions
from seqlstm.gradcheck import random_lstmp_problem
from seqlstm.ops.lstmp import lstmp_forward


IDENTITY = dict(
    gate_activation="identity",
    cell_activation="identity",
    candidate_activation="identity",
    proj_activation="identity",
)


def _run(p, options=None, **kw):
    return lstmp_forward(
        p.x,
        p.offsets,
        p.weight,
        p.proj_weight,
        p.bias,
        options=options or p.options,
        h0=kw.get("h0", p.h0),
        c0=kw.get("c0", p.c0),
    )


def test_identity_cell_matches_hand_computation():
    D, P = 2, 1
    x = np.zeros((3, 4 * D))
    weight = np.full((P, 4 * D), 0.5)
    proj_weight = np.ones((D, P))
    bias = np.full((1, 4 * D), 0.1)
    opts = LSTMPOptions(use_peepholes=False, **IDENTITY)
    out = lstmp_forward(x, [0, 3], weight, proj_weight, bias, options=opts)
    # every gate sees g = 0.1 + 0.5 * r_prev, c = g * c_prev + g * g,
    # h = g * c and r = 2 * h
    expected_cell = np.array([0.01, 0.011211, 0.0113615387])
    expected_proj = np.array([0.002, 0.002264622, 0.0022980373])
    np.testing.assert_allclose(out.cell, np.repeat(expected_cell[:, None], 2, axis=1), rtol=1e-5)
    np.testing.assert_allclose(out.projection[:, 0], expected_proj, rtol=1e-5)
    np.testing.assert_allclose(out.trace.batch_hidden[:, 0], expected_proj / 2.0, rtol=1e-5)


def _reference(x, weight, proj_weight, bias, opts, h0=None, c0=None):
    acts = opts.resolve()
    D = proj_weight.shape[0]
    r = np.zeros((proj_weight.shape[1],)) if h0 is None else acts.proj(h0 @ proj_weight)
    c = np.zeros((D,)) if c0 is None else c0
    rows = range(x.shape[0] - 1, -1, -1) if opts.is_reverse else range(x.shape[0])
    proj = np.zeros((x.shape[0], proj_weight.shape[1]))
    cell = np.zeros((x.shape[0], D))
    b = bias[0]
    for t in rows:
        z = x[t] + r @ weight + b[:4 * D]
        zi, zf, zo = z[D:2 * D], z[2 * D:3 * D], z[3 * D:]
        if opts.use_peepholes:
            zi = zi + c * b[4 * D:5 * D]
            zf = zf + c * b[5 * D:6 * D]
        cand = acts.candidate(z[:D])
        c = acts.gate(zf) * c + acts.gate(zi) * cand
        if opts.use_peepholes:
            zo = zo + c * b[6 * D:]
        h = acts.gate(zo) * acts.cell(c)
        r = acts.proj(h @ proj_weight)
        proj[t] = r
        cell[t] = c
    return proj, cell


@pytest.mark.parametrize("peepholes", [False, True])
@pytest.mark.parametrize("reverse", [False, True])
def test_single_sequence_matches_reference_loop(peepholes, reverse):
    opts = LSTMPOptions(use_peepholes=peepholes, is_reverse=reverse)
    p = random_lstmp_problem([5], 3, 2, options=opts, with_initial_state=True, seed=4)
    out = _run(p)
    proj, cell = _reference(p.x, p.weight, p.proj_weight, p.bias, opts, h0=p.h0[0], c0=p.c0[0])
    np.testing.assert_allclose(out.projection, proj, rtol=1e-10, atol=1e-12)
    np.testing.assert_allclose(out.cell, cell, rtol=1e-10, atol=1e-12)


@pytest.mark.parametrize("reverse", [False, True])
@pytest.mark.parametrize("initial_state", [False, True])
def test_batching_matches_independent_sequences(reverse, initial_state):
    opts = LSTMPOptions(is_reverse=reverse)
    p = random_lstmp_problem([3, 1, 2], 4, 3, options=opts, with_initial_state=initial_state, seed=7)
    out = _run(p)
    for k in range(3):
        lo, hi = int(p.offsets[k]), int(p.offsets[k + 1])
        h0 = None if p.h0 is None else p.h0[k:k + 1]
        c0 = None if p.c0 is None else p.c0[k:k + 1]
        single = lstmp_forward(p.x[lo:hi], [0, hi - lo], p.weight, p.proj_weight, p.bias, options=opts, h0=h0, c0=c0)
        np.testing.assert_allclose(out.projection[lo:hi], single.projection, rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(out.cell[lo:hi], single.cell, rtol=1e-12, atol=1e-12)


def test_zero_peepholes_match_disabled_peepholes():
    p = random_lstmp_problem([4, 2, 5], 3, 2, options=LSTMPOptions(use_peepholes=True), seed=1)
    D = 3
    p.bias[:, 4 * D:] = 0.0
    with_peep = _run(p)
    without = lstmp_forward(
        p.x, p.offsets, p.weight, p.proj_weight, p.bias[:, :4 * D], options=LSTMPOptions(use_peepholes=False)
    )
    np.testing.assert_allclose(with_peep.projection, without.projection, rtol=1e-12, atol=1e-12)
    np.testing.assert_allclose(with_peep.cell, without.cell, rtol=1e-12, atol=1e-12)


def _reverse_each(a, offsets):
    out = np.empty_like(a)
    for lo, hi in zip(offsets[:-1], offsets[1:]):
        out[lo:hi] = a[lo:hi][::-1]
    return out


def test_reverse_mode_matches_reversed_sequences():
    p = random_lstmp_problem([2, 5, 3], 2, 3, seed=3)
    rev = lstmp_forward(p.x, p.offsets, p.weight, p.proj_weight, p.bias, options=LSTMPOptions(is_reverse=True))
    fwd = lstmp_forward(_reverse_each(p.x, p.offsets), p.offsets, p.weight, p.proj_weight, p.bias, options=LSTMPOptions())
    np.testing.assert_allclose(rev.projection, _reverse_each(fwd.projection, p.offsets), rtol=1e-12, atol=1e-12)
    np.testing.assert_allclose(rev.cell, _reverse_each(fwd.cell, p.offsets), rtol=1e-12, atol=1e-12)


def test_outputs_and_trace_shapes():
    p = random_lstmp_problem([3, 1, 2], 4, 3, with_initial_state=True, seed=0)
    out = _run(p)
    tr = out.trace
    assert out.projection.shape == (6, 3)
    assert out.cell.shape == (6, 4)
    assert tr.batch_gate.shape == (6, 16)
    assert tr.batch_cell_pre_act.shape == (6, 4)
    assert tr.batch_hidden.shape == (6, 4)
    assert tr.ordered_proj0.shape == (3, 3)
    np.testing.assert_array_equal(tr.layout.from_batch(tr.batch_cell_pre_act), out.cell)
    # post-activation sigmoid gates live in (0, 1)
    gates = tr.batch_gate[:, 4:]
    assert np.all((gates > 0.0) & (gates < 1.0))


def test_forward_does_not_modify_inputs():
    p = random_lstmp_problem([3, 2], 2, 2, with_initial_state=True, seed=5)
    before = {k: v.copy() for k, v in p.tensors().items()}
    _run(p)
    for k, v in p.tensors().items():
        np.testing.assert_array_equal(v, before[k])


def test_float32_inputs_stay_float32():
    p = random_lstmp_problem([3, 2], 2, 2, seed=6)
    out = lstmp_forward(
        p.x.astype(np.float32),
        p.offsets,
        p.weight.astype(np.float32),
        p.proj_weight.astype(np.float32),
        p.bias.astype(np.float32),
    )
    assert out.projection.dtype == np.float32
    assert out.cell.dtype == np.float32


def test_cell_state_without_hidden_state():
    p = random_lstmp_problem([2, 3], 2, 2, with_initial_state=True, seed=8)
    out = _run(p, h0=None)
    assert out.trace.ordered_proj0 is None
    baseline = _run(p, h0=None, c0=None)
    assert not np.allclose(out.cell, baseline.cell)
