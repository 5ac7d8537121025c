"""
Multi-Commodity Flow (MCF) via Dantzig-Wolfe decomposition.

Each commodity k = (s_k, t_k, d_k) sends one unit of (scaled) flow from its
source to its sink; all commodities share the arc capacities.

Mathematical Formulation:
------------------------
Variables x[k, a] in [0, 1] give the fraction of commodity k routed on arc
a. Master index of x[k, a] is k * num_arcs + a.

Master (coupling) rows:
    min  sum_k sum_a w_a * d_k * x[k, a]
    s.t. sum_k d_k * x[k, a] <= u_a                     e(tail,head)
         sum_{a: tail(a) = s_k} x[k, a] = 1             d(k_s_k)

Block k (one per commodity):
    sum_{a: head(a) = i} x[k, a] - sum_{a: tail(a) = i} x[k, a]
        = -1 if i = s_k, 1 if i = t_k, 0 otherwise        flow(k_i_s,t)

The block polytope is a single-path flow, so each block is priced by a
shortest path oracle on the arc prices c - A^T u.

Instance format (one record per line):
-------------------------------------
    p <name> <num_nodes> <num_arcs> <num_commodities>
    d <source> <sink> <demand>                 (num_commodities lines)
    a <tail> <head> <lb> <ub> <weight>         (num_arcs lines)

Usage:
------
    from decompcg.applications.mcf import MCFInstance, solve_mcf

    instance = MCFInstance.from_file("data/frac2.txt")
    result = solve_mcf(instance)
    print(result.summary())
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np

from decompcg.config import DecompConfig
from decompcg.core.model import BlockModel, MasterModel, Row
from decompcg.core.network import Network
from decompcg.pricing.shortest_path import ShortestPathOracle
from decompcg.solver.column_generation import solve_node
from decompcg.solver.context import CutGenerator, SolverContext
from decompcg.solver.hooks import DecompHooks
from decompcg.solver.solution import NodeResult

logger = logging.getLogger(__name__)


FRAC2_TEXT = """\
p frac2 6 12 4
d 0 3 1
d 1 2 2
d 2 1 2
d 4 5 1
a 0 1 0 1 1
a 0 2 0 1 1
a 1 2 0 1 1
a 1 3 0 1 1
a 1 5 0 1 1
a 2 1 0 1 1
a 2 3 0 1 1
a 2 5 0 1 1
a 3 0 0 1 1
a 4 1 0 1 1
a 4 2 0 1 1
a 5 4 0 1 1
"""


@dataclass(frozen=True)
class MCFArc:
    """
    A capacitated arc.

    Attributes:
        tail: Tail node
        head: Head node
        lb: Lower bound on the arc load (read, not used by the model)
        ub: Capacity
        weight: Cost per unit of flow
    """
    tail: int
    head: int
    lb: float = 0.0
    ub: float = 1.0
    weight: float = 1.0


@dataclass(frozen=True)
class Commodity:
    """A source-sink demand."""
    source: int
    sink: int
    demand: float = 1.0


@dataclass
class MCFInstance:
    """
    A multi-commodity flow instance.

    Attributes:
        num_nodes: Number of nodes (0..num_nodes-1)
        arcs: Arcs shared by all commodities
        commodities: Demands, one block each
        name: Instance name

    Example:
        >>> instance = MCFInstance.frac2()
        >>> instance.num_cols
        48
        >>> instance.col_index(1, 2)
        14
    """
    num_nodes: int
    arcs: List[MCFArc] = field(default_factory=list)
    commodities: List[Commodity] = field(default_factory=list)
    name: str = "mcf"

    def __post_init__(self):
        errors = self.validate()
        if errors:
            raise ValueError(f"Invalid MCF instance {self.name!r}: " + "; ".join(errors))

    @property
    def num_arcs(self) -> int:
        return len(self.arcs)

    @property
    def num_commodities(self) -> int:
        return len(self.commodities)

    @property
    def num_cols(self) -> int:
        """Number of master variables x[k, a]."""
        return self.num_commodities * self.num_arcs

    def col_index(self, commodity: int, arc: int) -> int:
        """Master index of x[commodity, arc]."""
        return commodity * self.num_arcs + arc

    def active_columns(self, commodity: int) -> List[int]:
        """Master indices owned by a commodity's block."""
        start = commodity * self.num_arcs
        return list(range(start, start + self.num_arcs))

    def validate(self) -> List[str]:
        errors = []
        if self.num_nodes < 2:
            errors.append("at least two nodes are required")
        for a, arc in enumerate(self.arcs):
            if not (0 <= arc.tail < self.num_nodes and 0 <= arc.head < self.num_nodes):
                errors.append(f"arc {a} ({arc.tail},{arc.head}) uses an unknown node")
            if arc.lb > arc.ub:
                errors.append(f"arc {a} has lb > ub")
        for k, commodity in enumerate(self.commodities):
            if not (0 <= commodity.source < self.num_nodes and 0 <= commodity.sink < self.num_nodes):
                errors.append(f"commodity {k} uses an unknown node")
            elif commodity.source == commodity.sink:
                errors.append(f"commodity {k} has source == sink")
            if commodity.demand <= 0:
                errors.append(f"commodity {k} has non-positive demand")
        return errors

    # =========================================================================
    # I/O
    # =========================================================================

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'MCFInstance':
        """Read an instance in the p/d/a line format."""
        from decompcg.parsers.mcf import MCFParser
        return MCFParser().parse(path)

    @classmethod
    def from_text(cls, text: str, name: str = "mcf") -> 'MCFInstance':
        from decompcg.parsers.mcf import MCFParser
        return MCFParser().parse_text(text, name=name)

    @classmethod
    def frac2(cls) -> 'MCFInstance':
        """Small instance (6 nodes, 12 arcs, 4 commodities) with a fractional LP optimum."""
        return cls.from_text(FRAC2_TEXT)

    def to_text(self) -> str:
        """Write the instance in the p/d/a line format."""
        lines = [f"p {self.name} {self.num_nodes} {self.num_arcs} {self.num_commodities}"]
        for c in self.commodities:
            lines.append(f"d {c.source} {c.sink} {c.demand:g}")
        for arc in self.arcs:
            lines.append(f"a {arc.tail} {arc.head} {arc.lb:g} {arc.ub:g} {arc.weight:g}")
        return "\n".join(lines) + "\n"

    def summary(self) -> str:
        return (
            f"MCFInstance {self.name}: {self.num_nodes} nodes, {self.num_arcs} arcs, "
            f"{self.num_commodities} commodities"
        )


# =============================================================================
# Model construction
# =============================================================================


def build_master_model(instance: MCFInstance) -> MasterModel:
    """
    Objective, capacity rows and source rows over x[k, a].

    Args:
        instance: MCF instance

    Returns:
        MasterModel with num_arcs capacity rows followed by one source row
        per commodity
    """
    n = instance.num_cols
    objective = np.zeros(n)
    for k, commodity in enumerate(instance.commodities):
        for a, arc in enumerate(instance.arcs):
            objective[instance.col_index(k, a)] = arc.weight * commodity.demand

    rows = []
    for a, arc in enumerate(instance.arcs):
        coefficients = {
            instance.col_index(k, a): commodity.demand
            for k, commodity in enumerate(instance.commodities)
        }
        rows.append(Row.from_dict(coefficients, upper=arc.ub, name=f"e({arc.tail}_{arc.head})"))

    for k, commodity in enumerate(instance.commodities):
        coefficients = {
            instance.col_index(k, a): 1.0
            for a, arc in enumerate(instance.arcs)
            if arc.tail == commodity.source
        }
        rows.append(Row.from_dict(coefficients, lower=1.0, upper=1.0,
                                  name=f"d({k}_{commodity.source})"))

    col_names = [
        f"x({k}_{arc.tail},{arc.head})"
        for k in range(instance.num_commodities)
        for arc in instance.arcs
    ]
    return MasterModel(
        num_cols=n,
        objective=objective,
        rows=rows,
        col_lower=np.zeros(n),
        col_upper=np.ones(n),
        col_names=col_names,
        name=instance.name,
    )


def build_block_models(instance: MCFInstance, sparse: bool = True) -> List[BlockModel]:
    """
    Flow conservation block of every commodity.

    Args:
        instance: MCF instance
        sparse: If True the block's local space is its own arcs (local arc a
            maps to master x[k, a]). If False the local space is the whole
            master space and the other commodities' variables are fixed to 0.

    Returns:
        One BlockModel per commodity (block_id = commodity index)
    """
    blocks = []
    for k, commodity in enumerate(instance.commodities):
        if sparse:
            offset = 0
            active = instance.active_columns(k)
            col_lower = np.zeros(instance.num_arcs)
            col_upper = np.ones(instance.num_arcs)
        else:
            offset = k * instance.num_arcs
            active = list(range(instance.num_cols))
            col_lower = np.zeros(instance.num_cols)
            col_upper = np.zeros(instance.num_cols)
            col_upper[instance.active_columns(k)] = 1.0

        rows = []
        for i in range(instance.num_nodes):
            coefficients: Dict[int, float] = {}
            for a, arc in enumerate(instance.arcs):
                if arc.head == i:
                    coefficients[offset + a] = 1.0
                elif arc.tail == i:
                    coefficients[offset + a] = -1.0
            if i == commodity.source:
                rhs = -1.0
            elif i == commodity.sink:
                rhs = 1.0
            else:
                rhs = 0.0
            rows.append(Row.from_dict(
                coefficients, lower=rhs, upper=rhs,
                name=f"flow({k}_{i}_{commodity.source},{commodity.sink})",
            ))

        blocks.append(BlockModel(
            block_id=k,
            active_columns=tuple(active),
            rows=rows,
            col_lower=col_lower,
            col_upper=col_upper,
            name=f"commodity{k}",
        ))
    return blocks


def build_networks(instance: MCFInstance) -> List[Network]:
    """
    One network per commodity; arc a costs w_a * d_k.
    """
    networks = []
    for commodity in instance.commodities:
        network = Network(instance.num_nodes, commodity.source, commodity.sink)
        for arc in instance.arcs:
            network.add_arc(arc.tail, arc.head, cost=arc.weight * commodity.demand)
        networks.append(network)
    return networks


def build_oracles(
    instance: MCFInstance,
    scale: float = 1e4,
    tolerance: float = 1e-6,
) -> Dict[int, ShortestPathOracle]:
    """
    Shortest path oracle of every commodity.

    Returns:
        block_id -> ShortestPathOracle
    """
    return {
        k: ShortestPathOracle(network, instance.active_columns(k), scale=scale, tolerance=tolerance)
        for k, network in enumerate(build_networks(instance))
    }


# =============================================================================
# Solving
# =============================================================================


def commodity_flows(instance: MCFInstance, x: np.ndarray, tol: float = 1e-9) -> Dict[int, Dict[int, float]]:
    """
    Split a solution over x[k, a] by commodity.

    Returns:
        commodity -> {arc index: flow fraction} (entries above tol only)
    """
    flows: Dict[int, Dict[int, float]] = {}
    for k in range(instance.num_commodities):
        flows[k] = {
            a: float(x[instance.col_index(k, a)])
            for a in range(instance.num_arcs)
            if x[instance.col_index(k, a)] > tol
        }
    return flows


def solve_mcf(
    instance: MCFInstance,
    config: Optional[DecompConfig] = None,
    hooks: Optional[DecompHooks] = None,
    cut_generator: Optional[CutGenerator] = None,
    sparse: bool = True,
) -> NodeResult:
    """
    Solve the root LP of an MCF instance by column generation.

    Args:
        instance: MCF instance
        config: Engine configuration (defaults if None)
        hooks: Optional lifecycle hooks
        cut_generator: Optional separator over x[k, a]
        sparse: Block model layout (see build_block_models)

    Returns:
        NodeResult; bound is the LP bound when the status is OPTIMAL

    Example:
        >>> result = solve_mcf(MCFInstance.frac2())
        >>> round(result.bound, 6)
        12.0
    """
    config = config or DecompConfig()
    logger.info(instance.summary())

    context = SolverContext(
        config=config,
        oracles=build_oracles(instance, tolerance=config.get_tolerance("reduced_cost")),
        cut_generator=cut_generator,
        hooks=hooks or DecompHooks(),
    )
    result = solve_node(
        context,
        build_block_models(instance, sparse=sparse),
        build_master_model(instance),
    )
    logger.info("%s: %s, bound=%s", instance.name, result.status.name, result.bound)
    return result


__all__ = [
    'FRAC2_TEXT',
    'MCFArc',
    'Commodity',
    'MCFInstance',
    'build_master_model',
    'build_block_models',
    'build_networks',
    'build_oracles',
    'commodity_flows',
    'solve_mcf',
]
