"""
Node result module.

This module defines the data structures describing the outcome of column
generation at one branch-and-bound node:
- NodeStatus: how the node finished
- NodeStatistics: monotone counters and accumulated timings
- CGIteration: one pricing round of the history
- NodeResult: everything the tree search needs from the node
"""

from dataclasses import asdict, dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

import numpy as np

from decompcg.core.column import Column
from decompcg.core.model import Row


class NodeStatus(Enum):
    """
    Status of a node solve.
    """
    OPTIMAL = auto()            # Pricing (and cutting) converged
    INFEASIBLE = auto()         # Master infeasible or artificials remain
    UNBOUNDED = auto()          # Master unbounded
    NUMERICAL_FAILURE = auto()  # LP solver failed twice
    BLOCK_INFEASIBLE = auto()   # A block subproblem has no feasible point
    ITERATION_LIMIT = auto()    # max_iterations reached
    TIME_LIMIT = auto()         # max_time reached
    CANCELLED = auto()          # Cancelled by the caller or a hook
    NOT_SOLVED = auto()         # Not yet solved


# Statuses that describe a failed node
FAILURE_STATUSES = frozenset({
    NodeStatus.INFEASIBLE,
    NodeStatus.UNBOUNDED,
    NodeStatus.NUMERICAL_FAILURE,
    NodeStatus.BLOCK_INFEASIBLE,
})


@dataclass
class NodeStatistics:
    """
    Counters of one node solve. All counters only ever increase.

    Attributes:
        price_calls_total: Pricing rounds against master duals
        cut_calls_total: Cutting rounds
        master_solves: Restricted master LP solves
        columns_generated: Columns added to the master from pricing
        columns_compressed: Columns evicted by compression
        columns_reused: Evicted columns brought back from the pool
        cuts_added: Cut rows added to the master
        cuts_rolled_back: Cut rows removed after an infeasible master
        oracle_timeouts: Oracle calls that missed the time budget
        mispricing_rounds: Re-pricing rounds with unsmoothed duals
        master_time: Seconds in master solves
        pricing_time: Seconds in pricing rounds
        cut_time: Seconds in cut separation
    """
    price_calls_total: int = 0
    cut_calls_total: int = 0
    master_solves: int = 0
    columns_generated: int = 0
    columns_compressed: int = 0
    columns_reused: int = 0
    cuts_added: int = 0
    cuts_rolled_back: int = 0
    oracle_timeouts: int = 0
    mispricing_rounds: int = 0

    master_time: float = 0.0
    pricing_time: float = 0.0
    cut_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CGIteration:
    """
    Information about a single pricing round.

    Attributes:
        iteration: Round number (1-based)
        phase: Phase name when the round ran
        master_objective: Restricted master objective value
        lagrangian_bound: Bound computed in this round (None if invalid)
        best_bound: Best bound so far (None until one is valid)
        num_columns_added: Columns added in this round
        stabilized: Pricing used smoothed duals that differed from the raw ones
        misprice: A mispricing round with raw duals was needed
        master_time: Time spent on the master solve
        pricing_time: Time spent pricing
        total_columns: Columns in the master after the round
        artificial_usage: Total value of artificial columns
    """
    iteration: int
    phase: str
    master_objective: float
    lagrangian_bound: Optional[float]
    best_bound: Optional[float]
    num_columns_added: int
    stabilized: bool
    misprice: bool
    master_time: float
    pricing_time: float
    total_columns: int
    artificial_usage: float = 0.0

    @property
    def gap(self) -> Optional[float]:
        """Relative gap between master objective and best bound."""
        if self.best_bound is None:
            return None
        return (self.master_objective - self.best_bound) / max(abs(self.master_objective), 1e-6)


@dataclass
class NodeResult:
    """
    Result of column generation at one node.

    Attributes:
        status: How the node finished
        bound: Valid lower bound of the node (master objective when
            converged, else the best Lagrangian bound; None if unknown)
        master_objective: Last restricted master objective
        lagrangian_bound: Best Lagrangian bound found (None if never valid)
        fractional_solution: x = sum_j lambda_j s_j of the last master solution
        generated_cuts: Cut rows added at this node and kept
        columns: Columns with positive value in the last master solution
        column_values: column_id -> value for those columns
        incumbent: Accepted integral solution in the original space
        incumbent_value: Objective of the incumbent
        statistics: Node counters
        history: One entry per pricing round
        message: Human readable reason for a failure status

    Example:
        >>> result = solve_node(context, blocks, master_model)
        >>> if result.is_optimal:
        ...     print(f"Node bound: {result.bound}")
    """
    status: NodeStatus = NodeStatus.NOT_SOLVED
    bound: Optional[float] = None
    master_objective: Optional[float] = None
    lagrangian_bound: Optional[float] = None
    fractional_solution: Optional[np.ndarray] = None
    generated_cuts: List[Row] = field(default_factory=list)
    columns: List[Column] = field(default_factory=list)
    column_values: Dict[int, float] = field(default_factory=dict)
    incumbent: Optional[np.ndarray] = None
    incumbent_value: Optional[float] = None
    statistics: NodeStatistics = field(default_factory=NodeStatistics)
    history: List[CGIteration] = field(default_factory=list)
    message: str = ""
    total_time: float = 0.0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_optimal(self) -> bool:
        return self.status == NodeStatus.OPTIMAL

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES

    @property
    def iterations(self) -> int:
        return len(self.history)

    # =========================================================================
    # Methods
    # =========================================================================

    def is_integral(self, tol: float = 1e-5) -> bool:
        """Check whether the fractional solution is integral."""
        if self.fractional_solution is None:
            return False
        x = self.fractional_solution
        return bool(np.all(np.abs(x - np.round(x)) <= tol))

    def get_convergence_history(self) -> List[float]:
        """Master objective values over the rounds."""
        return [it.master_objective for it in self.history]

    def summary(self) -> str:
        """
        Return a human-readable summary.

        Returns:
            Summary string
        """
        stats = self.statistics
        lines = [
            "Node Result:",
            f"  Status: {self.status.name}",
        ]
        if self.message:
            lines.append(f"  Message: {self.message}")
        if self.bound is not None:
            lines.append(f"  Bound: {self.bound:.6f}")
        if self.master_objective is not None:
            lines.append(f"  Master objective: {self.master_objective:.6f}")
        if self.lagrangian_bound is not None:
            lines.append(f"  Lagrangian bound: {self.lagrangian_bound:.6f}")
        if self.incumbent_value is not None:
            lines.append(f"  Incumbent: {self.incumbent_value:.6f}")

        lines.extend([
            "",
            f"  Pricing rounds: {stats.price_calls_total}",
            f"  Cutting rounds: {stats.cut_calls_total}",
            f"  Columns generated: {stats.columns_generated}",
            f"  Columns compressed: {stats.columns_compressed}",
            f"  Cuts added: {stats.cuts_added} (rolled back {stats.cuts_rolled_back})",
            "",
            f"  Total time: {self.total_time:.3f}s",
            f"  Master time: {stats.master_time:.3f}s",
            f"  Pricing time: {stats.pricing_time:.3f}s",
        ])
        return "\n".join(lines)

    def __repr__(self) -> str:
        bound_str = f", bound={self.bound:.4f}" if self.bound is not None else ""
        return f"NodeResult({self.status.name}{bound_str}, iter={self.iterations})"
