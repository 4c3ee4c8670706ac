"""Block Cholesky factorization and selected inversion of the certificate matrix.

chi is block tridiagonal, so its Cholesky factor is block lower bidiagonal:
diagonal blocks ``D_0..D_L`` (lower triangular) and sub-diagonal blocks
``L_0..L_{L-1}`` with ``L_k`` at block position ``(k+1, k)``. Only those blocks
and the matching blocks ``P_k = (chi^{-1})_{kk}``, ``K_k = (chi^{-1})_{k+1,k}``
of the inverse are ever formed, which keeps the cost at ``O(sum N_k^3)``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Sequence

import numpy as np
from scipy.linalg import LinAlgError, cholesky, solve_triangular

from .certificate import coupling_block, symmetrize
from .errors import NotPositiveDefinite
from .topology import Topology

logger = logging.getLogger(__name__)

Array = np.ndarray

DEFAULT_RATIO = 1e-2


@dataclass
class BlockCholesky:
    """Block factor ``F`` with ``F F^T = chi`` (+ ratio on blocks 1..L)."""

    topology: Topology
    diagonals: List[Array]
    subdiagonals: List[Array]

    def assemble(self) -> Array:
        """Dense lower-triangular factor."""
        n = self.topology.order
        out = np.zeros((n, n), dtype=float)
        for k, D in enumerate(self.diagonals):
            sl = self.topology.block_slice(k)
            out[sl, sl] = D
        for k, Lk in enumerate(self.subdiagonals):
            out[self.topology.block_slice(k + 1), self.topology.block_slice(k)] = Lk
        return out

    def logdet(self) -> float:
        """``log det chi`` from the diagonal of the factor."""
        return float(2.0 * sum(np.sum(np.log(np.diag(D))) for D in self.diagonals))


@dataclass
class BlockInverse:
    """Diagonal (``P``) and sub-diagonal (``K``) blocks of ``chi^{-1}``."""

    topology: Topology
    diagonals: List[Array]
    subdiagonals: List[Array]


def _cholesky_block(X: Array, k: int) -> Array:
    X = symmetrize(X)
    if not np.all(np.isfinite(X)):
        raise NotPositiveDefinite(k, f"certificate block {k} has non-finite entries")
    try:
        return cholesky(X, lower=True, check_finite=False)
    except LinAlgError as exc:
        logger.debug("Schur complement %d is not positive definite (min diag %.3e).", k, float(np.min(np.diag(X))))
        raise NotPositiveDefinite(k) from exc


def block_cholesky(
    topology: Topology,
    lipschitz: float,
    weights: Sequence[Array],
    tparams: Sequence[Array],
    ratio: float = DEFAULT_RATIO,
) -> BlockCholesky:
    """Forward block elimination of chi(Psi^2, W, T).

    Each Schur complement ``X_k = B_k - L_{k-1} L_{k-1}^T (+ ratio I)`` is
    factored densely; ``L_k`` solves ``L_k D_k^T = C_k``. Raises
    :class:`NotPositiveDefinite` as soon as a Schur complement fails to
    factor, which is how infeasible iterates are detected.
    """
    if lipschitz <= 0.0:
        raise ValueError("lipschitz must be positive.")
    if not (0.0 <= ratio < 1.0):
        raise ValueError("ratio must satisfy 0 <= ratio < 1.")
    topology.check_weights(weights)
    topology.check_tparams(tparams)

    L = topology.num_layers
    widths = topology.widths
    diagonals: List[Array] = [float(lipschitz) * np.eye(widths[0])]
    subdiagonals: List[Array] = [coupling_block(topology, 0, weights, tparams) / float(lipschitz)]

    for k in range(1, L + 1):
        if k < L:
            X = 2.0 * np.diag(np.asarray(tparams[k - 1], dtype=float))
        else:
            X = np.eye(widths[L])
        prev = subdiagonals[k - 1]
        X = X - prev @ prev.T
        if ratio > 0.0:
            X = X + ratio * np.eye(widths[k])
        D = _cholesky_block(X, k)
        diagonals.append(D)
        if k < L:
            C = coupling_block(topology, k, weights, tparams)
            subdiagonals.append(solve_triangular(D, C.T, lower=True, check_finite=False).T)

    return BlockCholesky(topology=topology, diagonals=diagonals, subdiagonals=subdiagonals)


def _triangular_inverse(D: Array) -> Array:
    return solve_triangular(D, np.eye(D.shape[0]), lower=True, check_finite=False)


def block_inverse(factor: BlockCholesky) -> BlockInverse:
    """Selected inversion: backward sweep from the last block.

    With ``chi = F F^T`` and ``Z = chi^{-1}``, the relation ``F^T Z = F^{-1}``
    restricted to the tridiagonal band gives

        K_k = -P_{k+1} L_k D_k^{-1},
        P_k = D_k^{-T} D_k^{-1} - D_k^{-T} L_k^T K_k,

    starting from ``P_L = D_L^{-T} D_L^{-1}``.
    """
    L = factor.topology.num_layers
    P: List[Array] = [np.empty((0, 0))] * (L + 1)
    K: List[Array] = [np.empty((0, 0))] * L

    Dinv = _triangular_inverse(factor.diagonals[L])
    P[L] = symmetrize(Dinv.T @ Dinv)
    for k in range(L - 1, -1, -1):
        Dinv = _triangular_inverse(factor.diagonals[k])
        tmp = Dinv.T @ factor.subdiagonals[k].T
        K[k] = -(P[k + 1] @ tmp.T)
        P[k] = symmetrize(Dinv.T @ Dinv - tmp @ K[k])

    return BlockInverse(topology=factor.topology, diagonals=P, subdiagonals=K)
