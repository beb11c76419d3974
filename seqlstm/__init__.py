from .errors import ConfigError
from .config import LSTMPOptions
from .activations import Activation, get_activation
from .ops.batching import BatchLayout, build_layout
from .ops.lstmp import LSTMPGrads, LSTMPOutput, LSTMPTrace, lstmp_backward, lstmp_forward
from .nn.lstmp import LSTMP, DynamicLSTMP
from .nn.layers import Linear

__all__ = [
    "ConfigError",
    "LSTMPOptions",
    "Activation",
    "get_activation",
    "BatchLayout",
    "build_layout",
    "LSTMPGrads",
    "LSTMPOutput",
    "LSTMPTrace",
    "lstmp_backward",
    "lstmp_forward",
    "LSTMP",
    "DynamicLSTMP",
    "Linear",
]
