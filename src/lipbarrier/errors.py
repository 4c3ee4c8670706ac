"""Error and warning types raised by the barrier engine."""

from __future__ import annotations

import numpy as np


class DimensionMismatch(ValueError):
    """Weights, T-parameters or directions do not match the topology."""


class NotPositiveDefinite(np.linalg.LinAlgError):
    """A Schur-complement block of the certificate matrix failed to factor.

    ``block`` is the index of the diagonal block (0..L) whose Cholesky
    factorization broke down.
    """

    def __init__(self, block: int, message: str | None = None) -> None:
        self.block = int(block)
        super().__init__(message or f"certificate block {self.block} is not positive definite")


class NonConvergence(RuntimeWarning):
    """A central-path stage exhausted its iteration budget."""


class InfeasibleDirection(RuntimeWarning):
    """The feasibility line search reported a safe step of zero."""
