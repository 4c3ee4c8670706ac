"""Block definition of the Lipschitz certificate matrix chi(Psi^2, W, T).

For layer widths ``(N_0, ..., N_L)`` the certificate is the symmetric
block-tridiagonal matrix

    B_0 = Psi^2 I,   B_k = 2 diag(T_k)  (k = 1..L-1),   B_L = I,
    C_k = -diag(T_{k+1}) W_k  (k = 0..L-2),             C_{L-1} = -W_{L-1},

where ``C_k`` is the coupling block at block position ``(k+1, k)``. For
activations with slopes in ``[0, 1]`` the quadratic form of chi evaluated at
the stacked increments ``(dx_0, ..., dx_{L-1}, dy)`` reads

    Psi^2 |dx_0|^2 - |dy|^2 - 2 sum_k dx_k^T T_k (W_{k-1} dx_{k-1} - dx_k),

and each summand of the last sum is non-negative, so ``chi >= 0`` implies
``|dy| <= Psi |dx_0|``.

The dense helpers in this module exist for the line search and for
validation; the barrier itself only ever touches the blocks.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from .topology import Topology

Array = np.ndarray


def symmetrize(mat: Array) -> Array:
    return 0.5 * (mat + mat.T)


def coupling_block(
    topology: Topology,
    k: int,
    weights: Sequence[Array],
    tparams: Sequence[Array],
) -> Array:
    """Return ``C_k``, the block at position ``(k+1, k)``."""
    W = np.asarray(weights[k], dtype=float)
    if k == topology.num_layers - 1:
        return -W
    t = np.asarray(tparams[k], dtype=float)
    return -(t[:, None] * W)


def certificate_blocks(
    topology: Topology,
    lipschitz: float,
    weights: Sequence[Array],
    tparams: Sequence[Array],
) -> Tuple[List[Array], List[Array]]:
    """Return the diagonal blocks ``B_0..B_L`` and couplings ``C_0..C_{L-1}``."""
    topology.check_weights(weights)
    topology.check_tparams(tparams)
    widths = topology.widths
    diagonals = [float(lipschitz) ** 2 * np.eye(widths[0])]
    diagonals += [2.0 * np.diag(np.asarray(t, dtype=float)) for t in tparams]
    diagonals.append(np.eye(widths[-1]))
    couplings = [coupling_block(topology, k, weights, tparams) for k in range(topology.num_layers)]
    return diagonals, couplings


def assemble_blocks(topology: Topology, diagonals: Sequence[Array], couplings: Sequence[Array]) -> Array:
    """Embed symmetric block-tridiagonal blocks into a dense matrix."""
    n = topology.order
    out = np.zeros((n, n), dtype=float)
    for k, block in enumerate(diagonals):
        sl = topology.block_slice(k)
        out[sl, sl] = block
    for k, block in enumerate(couplings):
        rows = topology.block_slice(k + 1)
        cols = topology.block_slice(k)
        out[rows, cols] = block
        out[cols, rows] = block.T
    return out


def stabilization_mask(topology: Topology) -> Array:
    """Diagonal of ones on blocks ``1..L``: where the stabilisation ratio lands."""
    mask = np.ones(topology.order, dtype=float)
    mask[topology.block_slice(0)] = 0.0
    return np.diag(mask)


def assemble_chi(
    topology: Topology,
    lipschitz: float,
    weights: Sequence[Array],
    tparams: Sequence[Array],
    ratio: float = 0.0,
) -> Array:
    """Dense chi (plus ``ratio`` on blocks 1..L when a stabilised copy is wanted)."""
    diagonals, couplings = certificate_blocks(topology, lipschitz, weights, tparams)
    chi = assemble_blocks(topology, diagonals, couplings)
    if ratio:
        chi = chi + ratio * stabilization_mask(topology)
    return chi


def weight_direction_matrix(
    topology: Topology,
    direction_weights: Sequence[Array],
    tparams: Sequence[Array],
) -> Array:
    """W-linear part of chi evaluated at ``direction_weights``.

    chi is affine in W, so ``chi(W - a dW) = chi(W) - a * M(dW)``.
    """
    topology.check_weights(direction_weights, "direction")
    topology.check_tparams(tparams)
    zeros = [np.zeros((w, w)) for w in topology.widths]
    couplings = [coupling_block(topology, k, direction_weights, tparams) for k in range(topology.num_layers)]
    return assemble_blocks(topology, zeros, couplings)


def quadratic_direction_matrices(
    topology: Topology,
    weights: Sequence[Array],
    tparams: Sequence[Array],
    direction_weights: Sequence[Array],
    direction_tparams: Sequence[Array],
) -> Tuple[Array, Array]:
    """Return ``(D1, D2)`` with ``chi(W - a dW, T - a dT) = chi - a D1 + a^2 D2``."""
    topology.check_weights(direction_weights, "direction")
    topology.check_tparams(direction_tparams, "direction tparams")
    L = topology.num_layers
    widths = topology.widths

    lin_diag = [np.zeros((widths[0], widths[0]))]
    lin_diag += [2.0 * np.diag(np.asarray(dt, dtype=float)) for dt in direction_tparams]
    lin_diag.append(np.zeros((widths[-1], widths[-1])))
    quad_diag = [np.zeros((w, w)) for w in widths]

    lin_coupling: List[Array] = []
    quad_coupling: List[Array] = []
    for k in range(L):
        dW = np.asarray(direction_weights[k], dtype=float)
        if k == L - 1:
            lin_coupling.append(-dW)
            quad_coupling.append(np.zeros_like(dW))
            continue
        t = np.asarray(tparams[k], dtype=float)
        dt = np.asarray(direction_tparams[k], dtype=float)
        W = np.asarray(weights[k], dtype=float)
        lin_coupling.append(-(t[:, None] * dW + dt[:, None] * W))
        quad_coupling.append(-(dt[:, None] * dW))

    D1 = assemble_blocks(topology, lin_diag, lin_coupling)
    D2 = assemble_blocks(topology, quad_diag, quad_coupling)
    return D1, D2


def trivial_lipschitz(weights: Sequence[Array]) -> float:
    """Product of the layer spectral norms."""
    value = 1.0
    for W in weights:
        value *= float(np.linalg.norm(np.asarray(W, dtype=float), ord=2))
    return value


def certified_lipschitz(topology: Topology, weights: Sequence[Array], tparams: Sequence[Array]) -> float:
    """Smallest Psi for which chi(Psi^2, W, T) is positive semidefinite.

    Eliminating block 0 gives ``Psi^2 I - C_0^T S^{-1} C_0 >= 0`` with ``S``
    the trailing blocks ``1..L``. Returns ``inf`` when ``S`` itself is not
    positive definite, i.e. no Psi can be certified with this T.
    """
    full = assemble_chi(topology, 0.0, weights, tparams)
    n0 = topology.input_size
    S = full[n0:, n0:]
    G = full[n0:, :n0]
    try:
        factor = cho_factor(S, lower=True)
    except LinAlgError:
        return float("inf")
    gram = symmetrize(G.T @ cho_solve(factor, G))
    lam = float(np.max(np.linalg.eigvalsh(gram)))
    return float(np.sqrt(max(lam, 0.0)))
