"""
Shared pytest fixtures for decompcg tests.
"""

import numpy as np
import pytest

from decompcg.applications.mcf import MCFInstance
from decompcg.core.model import BlockModel, MasterModel, Row
from decompcg.core.network import Network


def pytest_configure(config):
    """Add custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")


@pytest.fixture
def frac2_instance():
    """6 nodes, 12 arcs, 4 commodities; LP optimum 12 with fractional flows."""
    return MCFInstance.frac2()


@pytest.fixture
def cycle_network():
    """
    4-node cycle 0 -> 1 -> 2 -> 3 -> 0 with unit costs, source 0, sink 2.

    The only source-sink path is 0 -> 1 -> 2 (arcs 0 and 1).
    """
    network = Network(num_nodes=4, source=0, sink=2)
    network.add_arc(0, 1, cost=1.0)
    network.add_arc(1, 2, cost=1.0)
    network.add_arc(2, 3, cost=1.0)
    network.add_arc(3, 0, cost=1.0)
    return network


@pytest.fixture
def two_block_models():
    """
    Two blocks of two variables each sharing one capacity row.

    Master indices: block 0 -> (0, 1), block 1 -> (2, 3).
    Coupling row: x0 + x2 <= 1 ("cap").
    """
    master = MasterModel(
        num_cols=4,
        objective=np.array([1.0, 3.0, 1.0, 2.0]),
        rows=[Row.from_dict({0: 1.0, 2: 1.0}, upper=1.0, name="cap")],
        name="two_blocks",
    )
    blocks = [
        BlockModel(
            block_id=0,
            active_columns=(0, 1),
            rows=[Row.from_dict({0: 1.0, 1: 1.0}, lower=1.0, upper=1.0, name="pick0")],
        ),
        BlockModel(
            block_id=1,
            active_columns=(2, 3),
            rows=[Row.from_dict({0: 1.0, 1: 1.0}, lower=1.0, upper=1.0, name="pick1")],
        ),
    ]
    return master, blocks
