"""
Network module - the directed graph of a network-structured block.

A block whose feasible region is "one unit of flow from a source to a sink"
is described by a Network. Arc i of the network is the block-local variable
i, so the block's active_columns mapping translates a path directly into
master indices.

This module provides:
- Arc: a directed arc with its true (original-space) cost
- Network: nodes 0..num_nodes-1, arcs, a source and a sink

Design Notes:
------------
- Nodes are plain integers; arcs are stored in a list indexed by arc.index
- Adjacency is stored as outgoing/incoming arc indices per node
- Parallel arcs are allowed; the pricing oracle keeps the cheapest one
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Arc:
    """
    A directed arc.

    Attributes:
        index: Arc index (= block-local variable index)
        tail: Tail node
        head: Head node
        cost: True cost of sending the block's flow along the arc
        name: Optional name
    """
    index: int
    tail: int
    head: int
    cost: float = 0.0
    name: str = ""

    def __repr__(self) -> str:
        return f"Arc({self.index}: {self.tail}->{self.head}, cost={self.cost})"


class Network:
    """
    Directed graph with a designated source and sink.

    Example:
        >>> network = Network(num_nodes=4, source=0, sink=2)
        >>> network.add_arc(0, 1, cost=1.0)
        0
        >>> network.add_arc(1, 2, cost=1.0)
        1
        >>> [arc.index for arc in network.outgoing_arcs(0)]
        [0]
    """

    def __init__(self, num_nodes: int, source: int, sink: int):
        """
        Create a network without arcs.

        Args:
            num_nodes: Number of nodes (nodes are 0..num_nodes-1)
            source: Source node of the block's flow
            sink: Sink node of the block's flow

        Raises:
            ValueError: If source or sink are out of range or equal
        """
        if num_nodes < 2:
            raise ValueError("A network needs at least two nodes")
        for label, node in (("source", source), ("sink", sink)):
            if not 0 <= node < num_nodes:
                raise ValueError(f"{label} node {node} out of range")
        if source == sink:
            raise ValueError("source and sink must differ")

        self._num_nodes = num_nodes
        self._source = source
        self._sink = sink
        self._arcs: List[Arc] = []
        self._outgoing: List[List[int]] = [[] for _ in range(num_nodes)]
        self._incoming: List[List[int]] = [[] for _ in range(num_nodes)]
        self.attributes: Dict[str, Any] = {}

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def num_nodes(self) -> int:
        return self._num_nodes

    @property
    def num_arcs(self) -> int:
        return len(self._arcs)

    @property
    def source(self) -> int:
        return self._source

    @property
    def sink(self) -> int:
        return self._sink

    @property
    def arcs(self) -> List[Arc]:
        """List of all arcs (read-only view)."""
        return self._arcs

    # =========================================================================
    # Construction
    # =========================================================================

    def add_arc(self, tail: int, head: int, cost: float = 0.0, name: str = "") -> int:
        """
        Add an arc.

        Args:
            tail: Tail node
            head: Head node
            cost: True arc cost
            name: Optional name

        Returns:
            Index of the new arc
        """
        for node in (tail, head):
            if not 0 <= node < self._num_nodes:
                raise ValueError(f"Node {node} out of range")
        index = len(self._arcs)
        self._arcs.append(Arc(index=index, tail=tail, head=head, cost=float(cost), name=name))
        self._outgoing[tail].append(index)
        self._incoming[head].append(index)
        return index

    # =========================================================================
    # Access
    # =========================================================================

    def get_arc(self, index: int) -> Arc:
        return self._arcs[index]

    def outgoing_arcs(self, node: int) -> Iterator[Arc]:
        for index in self._outgoing[node]:
            yield self._arcs[index]

    def incoming_arcs(self, node: int) -> Iterator[Arc]:
        for index in self._incoming[node]:
            yield self._arcs[index]

    def find_arc(self, tail: int, head: int) -> Optional[Arc]:
        """First arc from tail to head, or None."""
        for arc in self.outgoing_arcs(tail):
            if arc.head == head:
                return arc
        return None

    def path_cost(self, arc_indices: List[int]) -> float:
        """Sum of true costs along a list of arcs."""
        return sum(self._arcs[i].cost for i in arc_indices)

    def is_path(self, arc_indices: List[int]) -> bool:
        """Check that the arcs form a source-to-sink path."""
        if not arc_indices:
            return False
        node = self._source
        for index in arc_indices:
            arc = self._arcs[index]
            if arc.tail != node:
                return False
            node = arc.head
        return node == self._sink

    def validate(self) -> List[str]:
        """
        Validate the network structure.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        if not self._outgoing[self._source]:
            errors.append("source has no outgoing arcs")
        if not self._incoming[self._sink]:
            errors.append("sink has no incoming arcs")
        return errors

    def __repr__(self) -> str:
        return (
            f"Network(nodes={self._num_nodes}, arcs={self.num_arcs}, "
            f"source={self._source}, sink={self._sink})"
        )
