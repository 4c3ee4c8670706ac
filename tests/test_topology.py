import numpy as np
import pytest

from lipbarrier.errors import DimensionMismatch
from lipbarrier.topology import Topology


def test_derived_block_layout():
    topo = Topology((2, 4, 3, 1))
    assert topo.num_layers == 3
    assert topo.order == 10
    assert topo.offsets == (0, 2, 6, 9)
    assert topo.block_slice(2) == slice(6, 9)
    assert topo.weight_shapes == [(4, 2), (3, 4), (1, 3)]
    assert topo.tparam_sizes == [4, 3]
    assert topo.hidden_sizes == (4, 3)
    assert topo.input_size == 2 and topo.output_size == 1


def test_parse_and_str_agree():
    topo = Topology.parse("2, 10,10,3")
    assert topo == Topology((2, 10, 10, 3))
    assert str(topo) == "2,10,10,3"
    assert Topology.parse(str(topo)) == topo


@pytest.mark.parametrize("widths", [(2, 3), (2, 0, 3), (4, -1, 2)])
def test_invalid_widths_fail_fast(widths):
    with pytest.raises(DimensionMismatch):
        Topology(widths)


def test_parse_rejects_garbage():
    with pytest.raises(DimensionMismatch):
        Topology.parse("2,x,3")
    # DimensionMismatch is a ValueError so argparse reports it as a usage error.
    assert issubclass(DimensionMismatch, ValueError)


def test_shape_checks():
    topo = Topology((2, 3, 1))
    topo.check_weights([np.zeros((3, 2)), np.zeros((1, 3))])
    with pytest.raises(DimensionMismatch):
        topo.check_weights([np.zeros((2, 3)), np.zeros((1, 3))])
    with pytest.raises(DimensionMismatch):
        topo.check_weights([np.zeros((3, 2))])
    with pytest.raises(DimensionMismatch):
        topo.check_tparams([np.ones(2)])
    with pytest.raises(DimensionMismatch):
        topo.check_biases([np.zeros(3), np.zeros(2)])
