"""Network topology descriptor shared by every block-structured component."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatch


@dataclass(frozen=True)
class Topology:
    """Ordered layer widths ``(N_0, ..., N_L)`` of a feed-forward network.

    The certificate matrix has one diagonal block per width, so the block
    sizes are the widths themselves; the hidden widths ``N_1..N_{L-1}`` size
    the T-parameter vectors.
    """

    widths: Tuple[int, ...]

    def __post_init__(self) -> None:
        widths = tuple(int(w) for w in self.widths)
        if len(widths) < 3:
            raise DimensionMismatch("topology needs an input, at least one hidden and an output layer.")
        if any(w <= 0 for w in widths):
            raise DimensionMismatch(f"layer widths must be positive, got {widths}.")
        object.__setattr__(self, "widths", widths)

    @classmethod
    def parse(cls, value: str) -> "Topology":
        """Build a topology from a comma-separated string such as ``"2,10,10,3"``."""
        parts = [p.strip() for p in str(value).split(",") if p.strip()]
        try:
            widths = tuple(int(p) for p in parts)
        except ValueError as exc:
            raise DimensionMismatch(f"cannot parse topology '{value}'.") from exc
        return cls(widths)

    @property
    def num_layers(self) -> int:
        """Number of weight layers ``L``."""
        return len(self.widths) - 1

    @property
    def input_size(self) -> int:
        return self.widths[0]

    @property
    def output_size(self) -> int:
        return self.widths[-1]

    @property
    def hidden_sizes(self) -> Tuple[int, ...]:
        return self.widths[1:-1]

    @property
    def order(self) -> int:
        """Order of the (never materialized) certificate matrix."""
        return int(sum(self.widths))

    @property
    def offsets(self) -> Tuple[int, ...]:
        """Start row of every diagonal block in the dense certificate matrix."""
        return tuple(int(v) for v in np.concatenate([[0], np.cumsum(self.widths[:-1])]))

    def block_slice(self, k: int) -> slice:
        start = self.offsets[k]
        return slice(start, start + self.widths[k])

    @property
    def weight_shapes(self) -> List[Tuple[int, int]]:
        return [(self.widths[i + 1], self.widths[i]) for i in range(self.num_layers)]

    @property
    def tparam_sizes(self) -> List[int]:
        return list(self.hidden_sizes)

    def check_weights(self, weights: Sequence[np.ndarray], label: str = "weights") -> None:
        if len(weights) != self.num_layers:
            raise DimensionMismatch(f"{label}: expected {self.num_layers} matrices, got {len(weights)}.")
        for i, (W, shape) in enumerate(zip(weights, self.weight_shapes)):
            if np.shape(W) != shape:
                raise DimensionMismatch(f"{label}[{i}] must have shape {shape}, got {np.shape(W)}.")

    def check_biases(self, biases: Sequence[np.ndarray], label: str = "biases") -> None:
        if len(biases) != self.num_layers:
            raise DimensionMismatch(f"{label}: expected {self.num_layers} vectors, got {len(biases)}.")
        for i, b in enumerate(biases):
            if np.shape(b) != (self.widths[i + 1],):
                raise DimensionMismatch(f"{label}[{i}] must have shape ({self.widths[i + 1]},), got {np.shape(b)}.")

    def check_tparams(self, tparams: Sequence[np.ndarray], label: str = "tparams") -> None:
        sizes = self.tparam_sizes
        if len(tparams) != len(sizes):
            raise DimensionMismatch(f"{label}: expected {len(sizes)} vectors, got {len(tparams)}.")
        for i, (t, n) in enumerate(zip(tparams, sizes)):
            if np.shape(t) != (n,):
                raise DimensionMismatch(f"{label}[{i}] must have shape ({n},), got {np.shape(t)}.")

    def __str__(self) -> str:
        return ",".join(str(w) for w in self.widths)
