from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

from .activations import Activation, get_activation


class ResolvedActivations(NamedTuple):
    gate: Activation
    cell: Activation
    candidate: Activation
    proj: Activation


@dataclass(frozen=True)
class LSTMPOptions:
    use_peepholes: bool = True
    is_reverse: bool = False
    gate_activation: str = "sigmoid"
    cell_activation: str = "tanh"
    candidate_activation: str = "tanh"
    proj_activation: str = "tanh"

    def __post_init__(self) -> None:
        self.resolve()

    def resolve(self) -> ResolvedActivations:
        return ResolvedActivations(
            gate=get_activation(self.gate_activation),
            cell=get_activation(self.cell_activation),
            candidate=get_activation(self.candidate_activation),
            proj=get_activation(self.proj_activation),
        )

    def bias_width(self, frame_size: int) -> int:
        return (7 if self.use_peepholes else 4) * frame_size
