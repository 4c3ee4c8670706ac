import numpy as np
import pytest

from lipbarrier.certificate import (
    assemble_chi,
    certified_lipschitz,
    quadratic_direction_matrices,
    trivial_lipschitz,
    weight_direction_matrix,
)
from lipbarrier.errors import NotPositiveDefinite
from lipbarrier.factorization import block_cholesky
from lipbarrier.topology import Topology


def _tanh_net(weights, x):
    for W in weights[:-1]:
        x = np.tanh(W @ x)
    return weights[-1] @ x


def test_chi_is_symmetric_block_tridiagonal(make_instance):
    rng = np.random.default_rng(0)
    topo = Topology((2, 4, 3, 2))
    weights, tparams = make_instance(rng, topo)
    chi = assemble_chi(topo, 5.0, weights, tparams)
    assert np.allclose(chi, chi.T)
    assert np.allclose(chi[topo.block_slice(0), topo.block_slice(0)], 25.0 * np.eye(2))
    assert np.allclose(chi[topo.block_slice(1), topo.block_slice(1)], 2.0 * np.diag(tparams[0]))
    assert np.allclose(chi[topo.block_slice(3), topo.block_slice(3)], np.eye(2))
    assert np.allclose(chi[topo.block_slice(3), topo.block_slice(2)], -weights[2])
    assert np.allclose(chi[topo.block_slice(1), topo.block_slice(0)], -(tparams[0][:, None] * weights[0]))
    # non-adjacent blocks vanish
    assert np.all(chi[topo.block_slice(2), topo.block_slice(0)] == 0.0)
    assert np.all(chi[topo.block_slice(3), topo.block_slice(1)] == 0.0)


def test_certified_bound_holds_for_tanh_network(make_instance):
    rng = np.random.default_rng(1)
    topo = Topology((3, 5, 4, 2))
    weights, tparams = make_instance(rng, topo)
    bound = certified_lipschitz(topo, weights, tparams)
    assert np.isfinite(bound)
    for _ in range(200):
        x = rng.standard_normal(3)
        y = x + 0.1 * rng.standard_normal(3)
        ratio = np.linalg.norm(_tanh_net(weights, x) - _tanh_net(weights, y)) / np.linalg.norm(x - y)
        assert ratio <= bound * (1.0 + 1e-9)


def test_certified_bound_is_the_feasibility_threshold(make_instance):
    rng = np.random.default_rng(2)
    topo = Topology((2, 4, 4, 2))
    weights, tparams = make_instance(rng, topo)
    bound = certified_lipschitz(topo, weights, tparams)
    block_cholesky(topo, bound * (1.0 + 1e-3), weights, tparams, ratio=0.0)
    with pytest.raises(NotPositiveDefinite) as excinfo:
        block_cholesky(topo, bound * (1.0 - 1e-3), weights, tparams, ratio=0.0)
    assert excinfo.value.block > 0


def test_certified_bound_is_inf_without_valid_multipliers():
    topo = Topology((2, 3, 2))
    weights = [np.ones((3, 2)), 10.0 * np.ones((2, 3))]
    tparams = [1e-3 * np.ones(3)]
    assert certified_lipschitz(topo, weights, tparams) == float("inf")


def test_direction_matrices_reproduce_the_path(make_instance):
    rng = np.random.default_rng(3)
    topo = Topology((2, 3, 3, 2))
    weights, tparams = make_instance(rng, topo)
    dW = [rng.standard_normal(s) for s in topo.weight_shapes]
    dT = [rng.standard_normal(n) for n in topo.tparam_sizes]
    a = 0.37
    chi = assemble_chi(topo, 4.0, weights, tparams)

    M = weight_direction_matrix(topo, dW, tparams)
    moved_w = [W - a * d for W, d in zip(weights, dW)]
    assert np.allclose(assemble_chi(topo, 4.0, moved_w, tparams), chi - a * M)

    D1, D2 = quadratic_direction_matrices(topo, weights, tparams, dW, dT)
    moved_t = [t - a * d for t, d in zip(tparams, dT)]
    assert np.allclose(assemble_chi(topo, 4.0, moved_w, moved_t), chi - a * D1 + a * a * D2)


def test_trivial_bound_is_product_of_norms():
    weights = [np.diag([2.0, 0.5]), np.diag([3.0, 1.0]), np.array([[0.5, 0.0]])]
    assert trivial_lipschitz(weights) == pytest.approx(3.0)
