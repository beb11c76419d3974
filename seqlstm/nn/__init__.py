from .module import Module, Parameter
from .layers import Linear
from .lstmp import LSTMP, DynamicLSTMP

__all__ = ["Module", "Parameter", "Linear", "LSTMP", "DynamicLSTMP"]
