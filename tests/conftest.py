import numpy as np
import pytest

from lipbarrier.certificate import assemble_chi
from lipbarrier.topology import Topology


def feasible_instance(rng: np.random.Generator, topology: Topology, lipschitz: float = 5.0):
    """Random (W, T) with chi(lipschitz^2, W, T) strictly positive definite."""
    tparams = [1.0 + rng.uniform(size=n) for n in topology.tparam_sizes]
    weights = [0.2 * rng.standard_normal(shape) for shape in topology.weight_shapes]
    for _ in range(40):
        chi = assemble_chi(topology, lipschitz, weights, tparams)
        if np.min(np.linalg.eigvalsh(chi)) > 1e-3:
            return weights, tparams
        weights = [0.5 * W for W in weights]
    raise AssertionError("could not build a feasible instance")


@pytest.fixture
def make_instance():
    return feasible_instance
