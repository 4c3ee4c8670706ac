"""Lipschitz-certified training with a structured log barrier.

The top-level API exposes the barrier engine (certificate, block
factorization, barrier, line search) and the central-path optimizer. The
torch loss oracle, dataset helpers and CLI live in their submodules
(``lipbarrier.network``, ``lipbarrier.data``, ``lipbarrier.cli``).
"""

from .barrier import BarrierFunction, FixedTBarrierFunction, LipschitzPosition
from .certificate import assemble_chi, certified_lipschitz, trivial_lipschitz
from .errors import DimensionMismatch, InfeasibleDirection, NonConvergence, NotPositiveDefinite
from .factorization import BlockCholesky, BlockInverse, block_cholesky, block_inverse
from .feasibility import max_step_quadratic, max_step_weights
from .optimizer import (
    CentralPathAdam,
    CentralPathResult,
    CentralPathSettings,
    IterationRecord,
    LoggingObserver,
    Optimizer,
    ProgressObserver,
    StageReport,
)
from .problem import BarrierTrainingProblem, Evaluation, initial_position
from .topology import Topology

__all__ = [
    "Topology",
    "DimensionMismatch",
    "NotPositiveDefinite",
    "NonConvergence",
    "InfeasibleDirection",
    "assemble_chi",
    "certified_lipschitz",
    "trivial_lipschitz",
    "BlockCholesky",
    "BlockInverse",
    "block_cholesky",
    "block_inverse",
    "LipschitzPosition",
    "BarrierFunction",
    "FixedTBarrierFunction",
    "max_step_weights",
    "max_step_quadratic",
    "BarrierTrainingProblem",
    "Evaluation",
    "initial_position",
    "Optimizer",
    "CentralPathAdam",
    "CentralPathSettings",
    "CentralPathResult",
    "StageReport",
    "IterationRecord",
    "LoggingObserver",
    "ProgressObserver",
]
