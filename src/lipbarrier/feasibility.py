"""Largest feasible step along a descent direction.

Both searches answer: how far can we move from a strictly feasible point
along ``-direction`` before chi loses positive semidefiniteness?
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.linalg import eig, eigh, solve_triangular

from .certificate import assemble_chi, quadratic_direction_matrices, symmetrize, weight_direction_matrix
from .factorization import BlockCholesky
from .topology import Topology

logger = logging.getLogger(__name__)

Array = np.ndarray

STEP_FLOOR = 1e-2
REAL_TOL = 1e-6
BETA_TOL = 1e-6


def max_step_weights(
    topology: Topology,
    factor: BlockCholesky,
    tparams: Sequence[Array],
    direction_weights: Sequence[Array],
    floor: float = STEP_FLOOR,
) -> float:
    """Safe step for a weights-only direction.

    chi is affine in W, so ``chi(W - a dW) = F (I - a R) F^T`` with
    ``R = F^{-1} M(dW) F^{-T}``. The step is ``1 / lambda_max(R)``, with
    ``lambda_max`` clipped from below at ``floor``.
    """
    if floor <= 0.0:
        raise ValueError("floor must be positive.")
    F = factor.assemble()
    M = weight_direction_matrix(topology, direction_weights, tparams)
    Y = solve_triangular(F, M, lower=True, check_finite=False)
    R = symmetrize(solve_triangular(F, Y.T, lower=True, check_finite=False))
    lam = float(np.max(eigh(R, eigvals_only=True)))
    return 1.0 / max(lam, floor)


def max_step_quadratic(
    topology: Topology,
    lipschitz: float,
    position,
    direction,
    ratio: float = 0.0,
) -> float:
    """Safe step for a joint weights-and-T direction.

    ``chi(a) = chi - a D1 + a^2 D2`` is quadratic in the step, so the crossing
    points solve a quadratic eigenvalue problem. In ``s = -a`` it linearises
    to the pencil ``[[0, I], [-chi, -D1]] - s [[I, 0], [0, D2]]``; real
    negative ``s`` are boundary crossings at ``a = -s``. Returns ``0.0`` when
    no crossing qualifies.
    """
    chi = assemble_chi(topology, lipschitz, position.weights, position.tparams, ratio=ratio)
    D1, D2 = quadratic_direction_matrices(
        topology,
        position.weights,
        position.tparams,
        direction.weights,
        direction.tparams,
    )
    n = chi.shape[0]
    I = np.eye(n)
    Z = np.zeros((n, n))
    A = np.block([[Z, I], [-chi, -D1]])
    C = np.block([[I, Z], [Z, D2]])

    w = eig(A, C, left=False, right=False, homogeneous_eigvals=True)
    alpha, beta = w[0], w[1]
    finite = np.abs(beta) > BETA_TOL
    if not np.any(finite):
        logger.debug("quadratic line search: no finite eigenvalue.")
        return 0.0
    ratios = alpha[finite] / beta[finite]
    real = np.abs(ratios.imag) < REAL_TOL
    candidates = ratios.real[real]
    candidates = candidates[candidates < 0.0]
    if candidates.size == 0:
        logger.debug("quadratic line search: no real negative eigenvalue.")
        return 0.0
    return float(abs(np.max(candidates)))
