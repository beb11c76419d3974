from __future__ import annotations

import numpy as np
import pytest

from seqlstm.config import LSTMPOptions
from seqlstm.errors import ConfigError
from seqlstm.ops.contract import check_lstmp_inputs
from seqlstm.ops.lstmp import lstmp_forward


def _inputs(D=2, P=3, rows=5, peep=True):
    return dict(
        x=np.zeros((rows, 4 * D)),
        offsets=[0, 2, rows],
        weight=np.zeros((P, 4 * D)),
        proj_weight=np.zeros((D, P)),
        bias=np.zeros((1, (7 if peep else 4) * D)),
        options=LSTMPOptions(use_peepholes=peep),
    )


def test_valid_inputs_report_dims():
    dims = check_lstmp_inputs(**_inputs())
    assert (dims.total_rows, dims.num_sequences, dims.frame_size, dims.proj_size) == (5, 2, 2, 3)


@pytest.mark.parametrize(
    "field,value,match",
    [
        ("x", None, "Input"),
        ("weight", None, "Weight"),
        ("proj_weight", None, "ProjWeight"),
        ("bias", None, "Bias"),
        ("offsets", None, "offset"),
        ("x", np.zeros((5, 8, 1)), "rank of Input"),
        ("x", np.zeros((5, 6)), "4 \\* frame_size"),
        ("x", np.zeros((5, 8), dtype=np.int64), "floating point"),
        ("weight", np.zeros((2, 8)), "first dimension of Weight"),
        ("weight", np.zeros((3, 12)), "second dimension of Weight"),
        ("weight", np.zeros((24,)), "rank of Weight"),
        ("proj_weight", np.zeros((3, 3)), "first dimension of ProjWeight"),
        ("bias", np.zeros((2, 14)), "first dimension of Bias"),
        ("bias", np.zeros((1, 8)), "peepholes enabled"),
        ("offsets", [0, 2, 4], "offsets end at 4"),
        ("offsets", [0, 3, 3, 5], "strictly increasing"),
    ],
)
def test_contract_violations(field, value, match):
    kw = _inputs()
    kw[field] = value
    with pytest.raises(ConfigError, match=match):
        check_lstmp_inputs(**kw)


def test_bias_width_follows_peephole_flag():
    kw = _inputs(peep=False)
    check_lstmp_inputs(**kw)
    kw["bias"] = np.zeros((1, 14))
    with pytest.raises(ConfigError, match="peepholes disabled"):
        check_lstmp_inputs(**kw)


def test_h0_requires_c0():
    kw = _inputs()
    with pytest.raises(ConfigError, match="C0"):
        check_lstmp_inputs(**kw, h0=np.zeros((2, 2)))


def test_initial_state_shapes():
    kw = _inputs()
    with pytest.raises(ConfigError, match="H0 should have shape"):
        check_lstmp_inputs(**kw, h0=np.zeros((3, 2)), c0=np.zeros((2, 2)))
    with pytest.raises(ConfigError, match="C0 should have shape"):
        check_lstmp_inputs(**kw, h0=np.zeros((2, 2)), c0=np.zeros((2, 3)))


def test_forward_checks_before_computing():
    kw = _inputs()
    kw["bias"] = np.zeros((1, 8))
    options = kw.pop("options")
    with pytest.raises(ConfigError):
        lstmp_forward(options=options, **kw)


def test_config_error_is_a_value_error():
    assert issubclass(ConfigError, ValueError)
