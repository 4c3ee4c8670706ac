"""Barrier training problem: a loss oracle and a barrier oracle side by side."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .barrier import BarrierFunction, LipschitzPosition
from .errors import NotPositiveDefinite
from .factorization import DEFAULT_RATIO, BlockCholesky, block_cholesky
from .feasibility import max_step_quadratic, max_step_weights
from .topology import Topology

logger = logging.getLogger(__name__)

Array = np.ndarray
LossOracle = Callable[[Sequence[Array], Sequence[Array]], Tuple[List[Array], List[Array], float]]


@dataclass
class Evaluation:
    gradient: LipschitzPosition
    objective: float
    loss: float
    barrier: float
    factor: BlockCholesky


class BarrierTrainingProblem:
    """Objective ``loss(W, b) + gamma * (-log det chi)`` and its gradient.

    ``oracle`` is any callable ``(weights, biases) -> (grad_w, grad_b, loss)``
    (see :class:`lipbarrier.network.BatchLossOracle`); ``barrier`` decides
    whether T is part of the position.
    """

    def __init__(self, oracle: LossOracle, barrier: BarrierFunction) -> None:
        self.oracle = oracle
        self.barrier = barrier

    @property
    def topology(self) -> Topology:
        return self.barrier.topology

    def evaluate(self, position: LipschitzPosition, gamma: float) -> Evaluation:
        """Raises :class:`NotPositiveDefinite` before touching the oracle if infeasible."""
        gradient = position.zeros_like()
        factor = self.barrier.compute(position, gradient, gamma)
        grad_w, grad_b, loss = self.oracle(position.weights, position.biases)
        self.topology.check_weights(grad_w, "loss gradient")
        for k, g in enumerate(grad_w):
            gradient.weights[k] += np.asarray(g, dtype=float)
        for k, g in enumerate(grad_b):
            gradient.biases[k] += np.asarray(g, dtype=float)
        barrier_value = -factor.logdet()
        return Evaluation(
            gradient=gradient,
            objective=float(loss) + float(gamma) * barrier_value,
            loss=float(loss),
            barrier=barrier_value,
            factor=factor,
        )

    def max_step(self, position: LipschitzPosition, evaluation: Evaluation, direction: LipschitzPosition) -> float:
        """Largest step along ``-direction`` that keeps chi positive semidefinite."""
        if self.barrier.with_tparams:
            return max_step_quadratic(
                self.topology,
                self.barrier.lipschitz,
                position,
                direction,
                ratio=self.barrier.ratio,
            )
        return max_step_weights(
            self.topology,
            evaluation.factor,
            self.barrier.tparams_for(position),
            direction.weights,
        )


def initial_position(
    topology: Topology,
    rng: Optional[np.random.Generator] = None,
    weight_scale: float = 0.1,
    tparam_value: float = 1.0,
    with_tparams: bool = True,
    lipschitz: Optional[float] = None,
    ratio: float = DEFAULT_RATIO,
    max_halvings: int = 60,
) -> LipschitzPosition:
    """Random start: ``W ~ N(0, weight_scale^2)``, zero biases, constant T.

    When ``lipschitz`` is given the weights are halved until chi factors,
    so the returned point is strictly feasible for that bound.
    """
    if weight_scale < 0.0:
        raise ValueError("weight_scale must be non-negative.")
    if tparam_value <= 0.0:
        raise ValueError("tparam_value must be positive.")
    rng = rng or np.random.default_rng()
    weights = [weight_scale * rng.standard_normal(shape) for shape in topology.weight_shapes]
    biases = [np.zeros(topology.widths[i + 1]) for i in range(topology.num_layers)]
    tparams = [tparam_value * np.ones(n) for n in topology.tparam_sizes]

    if lipschitz is not None:
        for _ in range(max_halvings):
            try:
                block_cholesky(topology, lipschitz, weights, tparams, ratio=ratio)
                break
            except NotPositiveDefinite:
                weights = [0.5 * W for W in weights]
        else:
            raise ValueError(f"no feasible initial point for lipschitz={lipschitz} after {max_halvings} halvings.")
        logger.debug("initial weights scaled to spectral product %.4e", float(np.prod([np.linalg.norm(W, 2) for W in weights])))

    return LipschitzPosition(weights, biases, tparams if with_tparams else [])
