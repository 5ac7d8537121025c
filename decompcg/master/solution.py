"""
Master problem solution module.

This module defines the data structures returned by the restricted master:
- SolutionStatus: outcome of one LP solve
- LPResult: raw, index-based answer of a solver backend
- MasterSolution: the answer translated to column ids and master rows
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Set

import numpy as np


class SolutionStatus(Enum):
    """
    Status of the master problem solution.
    """
    OPTIMAL = auto()           # Optimal solution found
    INFEASIBLE = auto()        # Problem is infeasible
    UNBOUNDED = auto()         # Problem is unbounded
    INF_OR_UNBOUNDED = auto()  # Infeasible or unbounded (solver couldn't determine)
    TIME_LIMIT = auto()        # Time limit reached
    ITERATION_LIMIT = auto()   # Iteration limit reached
    NUMERICAL = auto()         # Numerical trouble inside the solver
    NOT_SOLVED = auto()        # Solve not called yet
    ERROR = auto()             # Solver error occurred


@dataclass
class LPResult:
    """
    Raw result of one LP solve, indexed by solver row/column position.

    Attributes:
        status: Solution status
        objective_value: Objective value (None without a solution)
        primal: Column values in solver order (artificials first)
        dual: Row duals in master row order
        basic: Boolean basis flags in solver column order
        iterations: Simplex iterations
    """
    status: SolutionStatus
    objective_value: Optional[float] = None
    primal: np.ndarray = field(default_factory=lambda: np.zeros(0))
    dual: np.ndarray = field(default_factory=lambda: np.zeros(0))
    basic: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))
    iterations: int = 0


@dataclass
class MasterSolution:
    """
    Result of solving the restricted master problem.

    Attributes:
        status: Solution status (OPTIMAL, INFEASIBLE, etc.)
        objective_value: Objective function value (None if not solved)
        column_values: Mapping from column_id to its value (lambda)
        dual_values: One dual per master row (coupling, convexity, cuts)
        basic_columns: Ids of the columns that are basic
        artificial_values: Values of the big-M artificial columns
        solve_time: Time spent solving in seconds
        iterations: Number of LP iterations (simplex pivots)
        num_columns: Number of (non-artificial) columns when solved
        num_rows: Number of master rows when solved

    Example:
        >>> solution = master.solve()
        >>> if solution.is_optimal:
        ...     print(f"Objective: {solution.objective_value}")
        ...     print(f"Convexity dual of block 0: {master.convexity_dual(solution.dual_values, 0)}")
    """
    status: SolutionStatus = SolutionStatus.NOT_SOLVED
    objective_value: Optional[float] = None

    # Primal solution: column_id -> value (lambda)
    column_values: Dict[int, float] = field(default_factory=dict)

    # Dual solution: one entry per master row
    dual_values: np.ndarray = field(default_factory=lambda: np.zeros(0))

    basic_columns: Set[int] = field(default_factory=set)
    artificial_values: np.ndarray = field(default_factory=lambda: np.zeros(0))

    # Solver statistics
    solve_time: float = 0.0
    iterations: int = 0
    num_columns: int = 0
    num_rows: int = 0

    # =========================================================================
    # Convenience Properties
    # =========================================================================

    @property
    def is_optimal(self) -> bool:
        """Check if solution is optimal."""
        return self.status == SolutionStatus.OPTIMAL

    @property
    def artificial_usage(self) -> float:
        """Total value of the artificial columns."""
        return float(np.sum(self.artificial_values)) if self.artificial_values.size else 0.0

    # =========================================================================
    # Methods
    # =========================================================================

    def get_active_columns(self, tol: float = 1e-6) -> List[int]:
        """
        Get column IDs with positive value in solution.

        Args:
            tol: Tolerance for considering a value positive

        Returns:
            List of column IDs with value > tol
        """
        return [
            col_id for col_id, value in self.column_values.items()
            if value > tol
        ]

    def get_fractional_columns(self, tol: float = 1e-6) -> List[int]:
        """
        Get column IDs with fractional value in solution.

        Args:
            tol: Tolerance for integrality check

        Returns:
            List of column IDs with fractional values
        """
        return [
            col_id for col_id, value in self.column_values.items()
            if value > tol and abs(value - round(value)) > tol
        ]

    def get_dual(self, row_index: int, default: float = 0.0) -> float:
        """Dual value of one master row."""
        if 0 <= row_index < self.dual_values.size:
            return float(self.dual_values[row_index])
        return default

    def summary(self) -> str:
        """
        Return a human-readable summary of the solution.

        Returns:
            Summary string
        """
        lines = [
            "MasterSolution:",
            f"  Status: {self.status.name}",
        ]

        if self.objective_value is not None:
            lines.append(f"  Objective: {self.objective_value:.6f}")

        active = self.get_active_columns()
        lines.append(f"  Active columns: {len(active)} / {self.num_columns}")
        lines.append(f"  Rows: {self.num_rows}")
        if self.artificial_usage > 0:
            lines.append(f"  Artificial usage: {self.artificial_usage:.6g}")

        lines.extend([
            f"  Solve time: {self.solve_time:.3f}s",
            f"  Iterations: {self.iterations}",
        ])
        return "\n".join(lines)

    def __repr__(self) -> str:
        obj_str = f", obj={self.objective_value:.4f}" if self.objective_value is not None else ""
        return f"MasterSolution({self.status.name}{obj_str})"
