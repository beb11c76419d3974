"""Sequence batching for offset-delimited inputs.

A batch of ``N`` variable-length sequences is stored as one flat ``(T, F)``
array plus an offset table ``offsets`` of length ``N + 1``; sequence ``k``
occupies rows ``offsets[k]:offsets[k + 1]``.

The recurrence needs the opposite view: for every time step the rows of all
sequences still running at that step, stacked densely. ``build_layout`` sorts
the sequences by descending length so that the sequences active at step
``t + 1`` are always a prefix of the ones active at step ``t``. The batched
buffer is then the concatenation of per-step blocks of shrinking height::

    lengths (sorted) = [3, 2, 1]

    step 0: rows of seq a, b, c    batch_sizes[0] = 3
    step 1: rows of seq a, b       batch_sizes[1] = 2
    step 2: rows of seq a          batch_sizes[2] = 1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union
import numpy as np

from ..errors import ConfigError

logger = logging.getLogger(__name__)

OffsetsLike = Union[Sequence[int], np.ndarray]


def check_offsets(offsets: OffsetsLike) -> np.ndarray:
    off = np.asarray(offsets)
    if off.ndim != 1:
        raise ConfigError(f"offsets must be 1-D, got shape {off.shape}")
    if off.shape[0] < 2:
        raise ConfigError("offsets must hold at least two entries (one sequence)")
    if off.dtype.kind not in "iu":
        if off.dtype.kind != "f" or not np.all(np.equal(np.mod(off, 1), 0)):
            raise ConfigError(f"offsets must be integers, got dtype {off.dtype}")
    off = off.astype(np.int64)
    if off[0] != 0:
        raise ConfigError(f"offsets must start at 0, got {int(off[0])}")
    steps = np.diff(off)
    if np.any(steps <= 0):
        bad = int(np.argmax(steps <= 0))
        raise ConfigError(
            f"offsets must be strictly increasing, sequence {bad} spans "
            f"[{int(off[bad])}, {int(off[bad + 1])})"
        )
    return off


@dataclass(frozen=True)
class BatchLayout:
    offsets: np.ndarray
    order: np.ndarray
    lengths: np.ndarray
    batch_sizes: np.ndarray
    batch_starts: np.ndarray
    row_index: np.ndarray
    is_reverse: bool = False

    @property
    def num_sequences(self) -> int:
        return int(self.order.shape[0])

    @property
    def max_length(self) -> int:
        return int(self.batch_sizes.shape[0])

    @property
    def total_rows(self) -> int:
        return int(self.row_index.shape[0])

    def step_slice(self, t: int) -> slice:
        return slice(int(self.batch_starts[t]), int(self.batch_starts[t + 1]))

    def to_batch(self, x: np.ndarray) -> np.ndarray:
        """Gather flat rows into batch order (returns a new array)."""
        if x.shape[0] != self.total_rows:
            raise ConfigError(
                f"expected {self.total_rows} rows to batch, got {x.shape[0]}"
            )
        return x[self.row_index]

    def from_batch(self, xb: np.ndarray) -> np.ndarray:
        """Scatter batch-ordered rows back to their original flat positions."""
        if xb.shape[0] != self.total_rows:
            raise ConfigError(
                f"expected {self.total_rows} batched rows, got {xb.shape[0]}"
            )
        out = np.empty_like(xb)
        out[self.row_index] = xb
        return out

    def reorder_state(self, s: np.ndarray) -> np.ndarray:
        """Permute a per-sequence ``(N, ...)`` array into sorted order."""
        if s.shape[0] != self.num_sequences:
            raise ConfigError(
                f"expected state with {self.num_sequences} rows, got {s.shape[0]}"
            )
        return s[self.order]

    def restore_state(self, s: np.ndarray) -> np.ndarray:
        if s.shape[0] != self.num_sequences:
            raise ConfigError(
                f"expected state with {self.num_sequences} rows, got {s.shape[0]}"
            )
        out = np.empty_like(s)
        out[self.order] = s
        return out


def build_layout(offsets: OffsetsLike, is_reverse: bool = False) -> BatchLayout:
    off = check_offsets(offsets)
    seq_lengths = np.diff(off)
    # stable sort on the negated lengths keeps ties in original index order
    order = np.argsort(-seq_lengths, kind="stable")
    lengths = seq_lengths[order]
    max_len = int(lengths[0])
    steps = np.arange(max_len)
    batch_sizes = (lengths[None, :] > steps[:, None]).sum(axis=1).astype(np.int64)
    batch_starts = np.zeros((max_len + 1,), dtype=np.int64)
    np.cumsum(batch_sizes, out=batch_starts[1:])
    starts = off[:-1][order]
    rows = []
    for t in range(max_len):
        n = int(batch_sizes[t])
        if is_reverse:
            rows.append(starts[:n] + lengths[:n] - 1 - t)
        else:
            rows.append(starts[:n] + t)
    row_index = np.concatenate(rows).astype(np.int64)
    assert int(batch_starts[-1]) == int(off[-1])
    logger.debug(
        "built batch layout: %d sequences, %d rows, max length %d, reverse=%s",
        order.shape[0],
        row_index.shape[0],
        max_len,
        is_reverse,
    )
    return BatchLayout(
        offsets=off,
        order=order,
        lengths=lengths,
        batch_sizes=batch_sizes,
        batch_starts=batch_starts,
        row_index=row_index,
        is_reverse=bool(is_reverse),
    )
