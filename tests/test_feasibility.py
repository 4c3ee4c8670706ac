import numpy as np
import pytest

from lipbarrier.barrier import LipschitzPosition
from lipbarrier.certificate import assemble_chi
from lipbarrier.factorization import block_cholesky
from lipbarrier.feasibility import STEP_FLOOR, max_step_quadratic, max_step_weights
from lipbarrier.topology import Topology

PSI = 5.0


def _min_eig(topo, weights, tparams):
    return float(np.min(np.linalg.eigvalsh(assemble_chi(topo, PSI, weights, tparams))))


def _moved(arrays, directions, a):
    return [x - a * d for x, d in zip(arrays, directions)]


def test_weights_step_is_tight(make_instance):
    rng = np.random.default_rng(30)
    topo = Topology((2, 4, 3, 2))
    weights, tparams = make_instance(rng, topo, PSI)
    direction = [rng.standard_normal(s) for s in topo.weight_shapes]
    factor = block_cholesky(topo, PSI, weights, tparams, ratio=0.0)

    step = max_step_weights(topo, factor, tparams, direction)
    assert 0.0 < step < 1.0 / STEP_FLOOR
    assert _min_eig(topo, _moved(weights, direction, step * (1.0 - 1e-6)), tparams) >= -1e-9
    assert _min_eig(topo, _moved(weights, direction, step * (1.0 + 1e-3)), tparams) < 0.0


def test_weights_step_floor_for_harmless_direction(make_instance):
    rng = np.random.default_rng(31)
    topo = Topology((2, 3, 2))
    weights, tparams = make_instance(rng, topo, PSI)
    factor = block_cholesky(topo, PSI, weights, tparams, ratio=0.0)
    zero = [np.zeros(s) for s in topo.weight_shapes]
    assert max_step_weights(topo, factor, tparams, zero) == pytest.approx(1.0 / STEP_FLOOR)


def test_quadratic_step_is_tight(make_instance):
    rng = np.random.default_rng(32)
    topo = Topology((2, 4, 3, 2))
    weights, tparams = make_instance(rng, topo, PSI)
    position = LipschitzPosition(weights, [np.zeros(n) for n in topo.widths[1:]], tparams)
    direction = LipschitzPosition(
        [rng.standard_normal(s) for s in topo.weight_shapes],
        [np.zeros(n) for n in topo.widths[1:]],
        [rng.standard_normal(n) for n in topo.tparam_sizes],
    )

    step = max_step_quadratic(topo, PSI, position, direction)
    assert step > 0.0
    inside = step * (1.0 - 1e-6)
    outside = step * (1.0 + 1e-3)
    assert _min_eig(topo, _moved(weights, direction.weights, inside), _moved(tparams, direction.tparams, inside)) >= -1e-8
    assert _min_eig(topo, _moved(weights, direction.weights, outside), _moved(tparams, direction.tparams, outside)) < 0.0


def test_quadratic_step_agrees_with_weights_step_when_t_is_still(make_instance):
    rng = np.random.default_rng(33)
    topo = Topology((3, 4, 4, 2))
    weights, tparams = make_instance(rng, topo, PSI)
    biases = [np.zeros(n) for n in topo.widths[1:]]
    dW = [rng.standard_normal(s) for s in topo.weight_shapes]
    position = LipschitzPosition(weights, biases, tparams)
    direction = LipschitzPosition(dW, biases, [np.zeros(n) for n in topo.tparam_sizes])

    factor = block_cholesky(topo, PSI, weights, tparams, ratio=0.0)
    linear = max_step_weights(topo, factor, tparams, dW)
    quadratic = max_step_quadratic(topo, PSI, position, direction)
    assert quadratic == pytest.approx(linear, rel=1e-6)


def test_quadratic_step_without_crossing_is_zero(make_instance):
    rng = np.random.default_rng(34)
    topo = Topology((2, 3, 2))
    weights, tparams = make_instance(rng, topo, PSI)
    position = LipschitzPosition(weights, [np.zeros(3), np.zeros(2)], tparams)
    assert max_step_quadratic(topo, PSI, position, position.zeros_like()) == 0.0
