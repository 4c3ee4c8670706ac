import numpy as np
import pytest

from lipbarrier.barrier import BarrierFunction, FixedTBarrierFunction, LipschitzPosition
from lipbarrier.certificate import assemble_chi
from lipbarrier.topology import Topology


def _position(topo, weights, tparams):
    biases = [np.zeros(topo.widths[i + 1]) for i in range(topo.num_layers)]
    return LipschitzPosition([W.copy() for W in weights], biases, [t.copy() for t in tparams])


def _numerical_gradient(barrier, position, h=1e-6):
    grad = position.zeros_like()
    for arrays, out in ((position.weights, grad.weights), (position.tparams, grad.tparams)):
        for a, g in zip(arrays, out):
            for idx in np.ndindex(a.shape):
                saved = a[idx]
                a[idx] = saved + h
                up = barrier.value(position)
                a[idx] = saved - h
                down = barrier.value(position)
                a[idx] = saved
                g[idx] = (up - down) / (2.0 * h)
    return grad


def test_gradient_matches_central_differences(make_instance):
    rng = np.random.default_rng(20)
    topo = Topology((2, 4, 3, 2))
    weights, tparams = make_instance(rng, topo)
    position = _position(topo, weights, tparams)
    barrier = BarrierFunction(topo, 5.0, ratio=0.0)

    analytic = position.zeros_like()
    barrier.compute(position, analytic, gamma=1.0)
    numeric = _numerical_gradient(barrier, position)

    for a, n in zip(analytic.weights + analytic.tparams, numeric.weights + numeric.tparams):
        assert np.allclose(a, n, rtol=1e-4, atol=1e-6)


def test_value_is_negative_log_determinant(make_instance):
    rng = np.random.default_rng(21)
    topo = Topology((3, 4, 2))
    weights, tparams = make_instance(rng, topo)
    barrier = BarrierFunction(topo, 5.0)
    position = _position(topo, weights, tparams)
    _, logdet = np.linalg.slogdet(assemble_chi(topo, 5.0, weights, tparams, ratio=barrier.ratio))
    assert barrier.value(position) == pytest.approx(-logdet, rel=1e-10, abs=1e-10)


def test_gradient_is_scaled_by_gamma_and_accumulated(make_instance):
    rng = np.random.default_rng(22)
    topo = Topology((2, 3, 3, 2))
    weights, tparams = make_instance(rng, topo)
    position = _position(topo, weights, tparams)
    barrier = BarrierFunction(topo, 5.0)

    unit = position.zeros_like()
    barrier.compute(position, unit, gamma=1.0)

    acc = position.zeros_like()
    for g in acc.weights + acc.tparams:
        g += 1.0
    factor = barrier.compute(position, acc, gamma=0.25)
    assert factor.logdet() == pytest.approx(-barrier.value(position))
    for a, u in zip(acc.weights + acc.tparams, unit.weights + unit.tparams):
        assert np.allclose(a, 1.0 + 0.25 * u)
    assert all(np.all(b == 0.0) for b in acc.biases)


def test_fixed_t_barrier_leaves_t_alone(make_instance):
    rng = np.random.default_rng(23)
    topo = Topology((2, 3, 3, 2))
    weights, tparams = make_instance(rng, topo)
    with_t = BarrierFunction(topo, 5.0)
    fixed = FixedTBarrierFunction(topo, tparams, 5.0)

    full = _position(topo, weights, tparams)
    weights_only = _position(topo, weights, [])
    g_full = full.zeros_like()
    g_fixed = weights_only.zeros_like()
    with_t.compute(full, g_full)
    fixed.compute(weights_only, g_fixed)

    assert g_fixed.tparams == []
    for a, b in zip(g_full.weights, g_fixed.weights):
        assert np.allclose(a, b)
    assert fixed.value(weights_only) == pytest.approx(with_t.value(full))


def test_position_flatten_and_record():
    topo = Topology((2, 3, 1))
    position = LipschitzPosition(
        [np.arange(6.0).reshape(3, 2), np.arange(3.0).reshape(1, 3)],
        [np.ones(3), np.zeros(1)],
        [np.full(3, 2.0)],
    )
    flat = position.flatten()
    assert flat.shape == (position.size,) == (6 + 3 + 3 + 1 + 3,)
    back = position.unflatten(2.0 * flat)
    assert np.allclose(back.weights[0], 2.0 * position.weights[0])
    assert np.allclose(back.tparams[0], 4.0)
    with pytest.raises(ValueError):
        position.unflatten(flat[:-1])

    restored = LipschitzPosition.from_record(position.to_record())
    assert np.allclose(restored.flatten(), flat)
    topo.check_weights(restored.weights)
