from .batching import BatchLayout, build_layout, check_offsets
from .contract import LSTMPDims, check_lstmp_inputs
from .lstmp import GRAD_SLOTS, LSTMPGrads, LSTMPOutput, LSTMPTrace, lstmp_backward, lstmp_forward

__all__ = [
    "BatchLayout",
    "build_layout",
    "check_offsets",
    "LSTMPDims",
    "check_lstmp_inputs",
    "GRAD_SLOTS",
    "LSTMPGrads",
    "LSTMPOutput",
    "LSTMPTrace",
    "lstmp_backward",
    "lstmp_forward",
]
