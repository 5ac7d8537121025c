"""
Shortest-path pricing oracle for network-structured blocks.

For a block whose feasible region is "one unit of flow from source to sink"
the pricing problem is a shortest path problem with arc weights equal to the
block's prices. This oracle solves it with networkx on an integer-scaled
copy of the prices.

Algorithm:
---------
1. local_prices[a] = prices[active_columns[a]]
2. INITIAL mode: give up (no column) if any local price is negative;
   otherwise search with no target contribution
3. NORMAL mode: add round(target * scale) to every arc leaving the source
   and drop arcs entering the source, so every source-sink path carries
   the target exactly once
4. Weights are round(price * scale); parallel arcs keep the cheapest one
5. Dijkstra from the source; negative weights on other arcs switch to a
   negative-cycle check and Bellman-Ford
6. The path's reduced cost is recomputed in floating point:
   sum(local_prices[path]) - target; the column is returned only when it
   is below -tolerance (INITIAL mode always returns the path)

Limitations:
-----------
- A negative cycle makes the elementary shortest path problem hard; the
  oracle logs a warning and returns no column
- Rounding to 1/scale can hide columns whose reduced cost is within
  (num_nodes - 1) * 0.5 / scale of zero; lower_bound accounts for it
"""

import logging
import time
from collections.abc import Sequence
from typing import Dict, List, Tuple

import networkx as nx
import numpy as np

from decompcg.core.column import Column
from decompcg.core.network import Network
from decompcg.pricing.base import PricingMode, PricingResult, PricingStatus

logger = logging.getLogger(__name__)


class ShortestPathOracle:
    """
    Pricing oracle computing one shortest source-sink path per call.

    The oracle is stateless between calls: the same prices and target always
    give the same answer.

    Attributes:
        network: The block's network (arc i = block-local variable i)
        active_columns: active_columns[i] -> master index of arc i
        scale: Integer scaling factor of the arc prices
        tolerance: A path is returned only if its reduced cost < -tolerance

    Example:
        >>> network = Network(num_nodes=3, source=0, sink=2)
        >>> network.add_arc(0, 1, cost=1.0)
        0
        >>> network.add_arc(1, 2, cost=1.0)
        1
        >>> oracle = ShortestPathOracle(network, active_columns=[0, 1])
        >>> result = oracle.price(0, np.array([1.0, 1.0]), target=5.0)
        >>> result.columns[0].reduced_cost
        -3.0
    """

    def __init__(
        self,
        network: Network,
        active_columns: Sequence[int],
        scale: float = 1e4,
        tolerance: float = 1e-6,
    ):
        if len(active_columns) != network.num_arcs:
            raise ValueError(
                f"active_columns has {len(active_columns)} entries, "
                f"network has {network.num_arcs} arcs"
            )
        if scale <= 0:
            raise ValueError("scale must be positive")
        self.network = network
        self.active_columns = np.asarray(active_columns, dtype=np.int64)
        self.scale = float(scale)
        self.tolerance = tolerance

    # =========================================================================
    # Pricing
    # =========================================================================

    def price(
        self,
        block_id: int,
        prices: np.ndarray,
        target: float,
        mode: PricingMode = PricingMode.NORMAL,
    ) -> PricingResult:
        """
        Find the cheapest source-sink path under the given prices.

        Args:
            block_id: Block being priced (stored on the column)
            prices: Dense price vector over master indices
            target: Convexity dual of the block (ignored in INITIAL mode)
            mode: NORMAL or INITIAL

        Returns:
            PricingResult with at most one column
        """
        start = time.time()
        local_prices = np.asarray(prices, dtype=float)[self.active_columns]
        initial = mode == PricingMode.INITIAL

        if initial and np.any(local_prices < 0):
            logger.debug("Block %s: negative prices in initial mode, no column", block_id)
            return PricingResult(status=PricingStatus.OPTIMAL, solve_time=time.time() - start)

        offset = 0 if initial else int(round(target * self.scale))
        graph, has_negative = self._build_graph(local_prices, offset, drop_into_source=not initial)

        try:
            if has_negative:
                if nx.negative_edge_cycle(graph, weight='weight'):
                    logger.warning(
                        "Block %s: negative cycle in pricing network, no column returned",
                        block_id,
                    )
                    return PricingResult(
                        status=PricingStatus.OPTIMAL, solve_time=time.time() - start
                    )
                dist, nodes = nx.single_source_bellman_ford(
                    graph, self.network.source, target=self.network.sink, weight='weight'
                )
            else:
                dist, nodes = nx.single_source_dijkstra(
                    graph, self.network.source, target=self.network.sink, weight='weight'
                )
        except nx.NetworkXNoPath:
            return PricingResult(status=PricingStatus.INFEASIBLE, solve_time=time.time() - start)

        arcs = [graph[u][v]['arc'] for u, v in zip(nodes, nodes[1:])]
        path_price = float(np.sum(local_prices[arcs]))

        if initial:
            reduced_cost = path_price
            lower_bound = None
        else:
            reduced_cost = path_price - target
            slack = (self.network.num_nodes - 1) * 0.5 / self.scale
            lower_bound = (dist - offset) / self.scale - target - slack

        columns = []
        if initial or reduced_cost < -self.tolerance:
            columns.append(self._make_column(block_id, arcs, nodes, reduced_cost))

        return PricingResult(
            status=PricingStatus.OPTIMAL,
            columns=columns,
            lower_bound=lower_bound,
            solve_time=time.time() - start,
        )

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _build_graph(
        self,
        local_prices: np.ndarray,
        offset: int,
        drop_into_source: bool,
    ) -> Tuple[nx.DiGraph, bool]:
        """
        Integer-weighted graph with the cheapest arc per node pair.

        Returns:
            (graph, has_negative) where has_negative flags a negative weight
            on an arc that does not leave the source
        """
        source = self.network.source
        best: Dict[Tuple[int, int], Tuple[int, int]] = {}

        for arc in self.network.arcs:
            if drop_into_source and arc.head == source:
                continue
            weight = int(round(local_prices[arc.index] * self.scale))
            if arc.tail == source:
                weight += offset
            pair = (arc.tail, arc.head)
            current = best.get(pair)
            if current is None or weight < current[0]:
                best[pair] = (weight, arc.index)

        graph = nx.DiGraph()
        graph.add_nodes_from(range(self.network.num_nodes))
        has_negative = False
        for (tail, head), (weight, index) in best.items():
            graph.add_edge(tail, head, weight=weight, arc=index)
            if weight < 0 and tail != source:
                has_negative = True
        return graph, has_negative

    def _make_column(
        self,
        block_id: int,
        arcs: List[int],
        nodes: List[int],
        reduced_cost: float,
    ) -> Column:
        entries = tuple((int(self.active_columns[a]), 1.0) for a in arcs)
        return Column(
            entries=entries,
            original_cost=self.network.path_cost(arcs),
            block_id=block_id,
            reduced_cost=reduced_cost,
            attributes={'arcs': list(arcs), 'nodes': list(nodes)},
        )

    def __repr__(self) -> str:
        return f"ShortestPathOracle({self.network!r}, scale={self.scale:g})"
