"""Log-barrier value and gradient of the Lipschitz certificate."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Sequence

import numpy as np

from .factorization import DEFAULT_RATIO, BlockCholesky, block_cholesky, block_inverse
from .topology import Topology

logger = logging.getLogger(__name__)

Array = np.ndarray


@dataclass
class LipschitzPosition:
    """Optimisation variable: weights, biases and (optionally) T-parameters.

    ``tparams`` is empty when T is held fixed outside the optimizer.
    """

    weights: List[Array]
    biases: List[Array]
    tparams: List[Array] = field(default_factory=list)

    def copy(self) -> "LipschitzPosition":
        return LipschitzPosition(
            [np.array(W, dtype=float) for W in self.weights],
            [np.array(b, dtype=float) for b in self.biases],
            [np.array(t, dtype=float) for t in self.tparams],
        )

    def zeros_like(self) -> "LipschitzPosition":
        return LipschitzPosition(
            [np.zeros_like(W, dtype=float) for W in self.weights],
            [np.zeros_like(b, dtype=float) for b in self.biases],
            [np.zeros_like(t, dtype=float) for t in self.tparams],
        )

    def _arrays(self) -> List[Array]:
        return [*self.weights, *self.biases, *self.tparams]

    @property
    def size(self) -> int:
        return int(sum(np.size(a) for a in self._arrays()))

    def flatten(self) -> Array:
        arrays = self._arrays()
        if not arrays:
            return np.zeros(0, dtype=float)
        return np.concatenate([np.asarray(a, dtype=float).reshape(-1) for a in arrays])

    def unflatten(self, vector: Array) -> "LipschitzPosition":
        """New position shaped like ``self`` holding the entries of ``vector``."""
        vector = np.asarray(vector, dtype=float).reshape(-1)
        if vector.shape[0] != self.size:
            raise ValueError(f"vector has {vector.shape[0]} entries, expected {self.size}.")
        out: List[Array] = []
        offset = 0
        for a in self._arrays():
            n = int(np.size(a))
            out.append(vector[offset : offset + n].reshape(np.shape(a)).copy())
            offset += n
        nw, nb = len(self.weights), len(self.biases)
        return LipschitzPosition(out[:nw], out[nw : nw + nb], out[nw + nb :])

    def to_record(self) -> Dict[str, List]:
        return {
            "weights": [np.asarray(W).tolist() for W in self.weights],
            "biases": [np.asarray(b).tolist() for b in self.biases],
            "tparams": [np.asarray(t).tolist() for t in self.tparams],
        }

    @classmethod
    def from_record(cls, record: Dict[str, List]) -> "LipschitzPosition":
        return cls(
            [np.asarray(W, dtype=float) for W in record["weights"]],
            [np.asarray(b, dtype=float) for b in record["biases"]],
            [np.asarray(t, dtype=float) for t in record.get("tparams", [])],
        )


class BarrierFunction:
    """``-log det chi(Psi^2, W, T)`` with T part of the position."""

    with_tparams = True

    def __init__(self, topology: Topology, lipschitz: float, ratio: float = DEFAULT_RATIO) -> None:
        if lipschitz <= 0.0:
            raise ValueError("lipschitz must be positive.")
        if not (0.0 <= ratio < 1.0):
            raise ValueError("ratio must satisfy 0 <= ratio < 1.")
        self.topology = topology
        self.lipschitz = float(lipschitz)
        self.ratio = float(ratio)

    def tparams_for(self, position: LipschitzPosition) -> Sequence[Array]:
        return position.tparams

    def factorize(self, position: LipschitzPosition) -> BlockCholesky:
        return block_cholesky(
            self.topology,
            self.lipschitz,
            position.weights,
            self.tparams_for(position),
            ratio=self.ratio,
        )

    def value(self, position: LipschitzPosition) -> float:
        return -self.factorize(position).logdet()

    def compute(self, position: LipschitzPosition, gradient: LipschitzPosition, gamma: float = 1.0) -> BlockCholesky:
        """Add ``gamma * grad(-log det chi)`` into ``gradient`` and return the factor.

        The contraction uses ``d(-log det chi) = -tr(chi^{-1} dchi)``: the
        coupling ``C_k`` touches ``K_k`` twice (both triangles), the diagonal
        ``2 diag(T_k)`` touches ``P_k``.
        """
        topology = self.topology
        L = topology.num_layers
        topology.check_weights(gradient.weights, "gradient weights")
        factor = self.factorize(position)
        inverse = block_inverse(factor)
        P, K = inverse.diagonals, inverse.subdiagonals
        tparams = self.tparams_for(position)
        scale = 2.0 * float(gamma)

        for k in range(L - 1):
            t = np.asarray(tparams[k], dtype=float)
            gradient.weights[k] += scale * (t[:, None] * K[k])
        gradient.weights[L - 1] += scale * K[L - 1]

        if self.with_tparams:
            topology.check_tparams(gradient.tparams, "gradient tparams")
            for k in range(1, L):
                W = np.asarray(position.weights[k - 1], dtype=float)
                gradient.tparams[k - 1] += scale * (np.sum(K[k - 1] * W, axis=1) - np.diag(P[k]))
        return factor


class FixedTBarrierFunction(BarrierFunction):
    """Barrier over the weights only; T is supplied from outside and never moves."""

    with_tparams = False

    def __init__(
        self,
        topology: Topology,
        tparams: Sequence[Array],
        lipschitz: float,
        ratio: float = DEFAULT_RATIO,
    ) -> None:
        super().__init__(topology, lipschitz, ratio)
        topology.check_tparams(tparams)
        self.tparams = [np.array(t, dtype=float) for t in tparams]

    def tparams_for(self, position: LipschitzPosition) -> Sequence[Array]:
        return self.tparams
