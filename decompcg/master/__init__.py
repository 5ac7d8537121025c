"""
Master problem module - the restricted master of the decomposition.

The restricted master holds the coupling rows, one convexity row per block
and any cut rows; its variables are the block columns generated so far.

This module provides:
- MasterProblem: Abstract base class for custom backends
- HiGHSMasterProblem: Default implementation using HiGHS
- MasterSolution / LPResult: Solution data structures
- SolutionStatus: Enum for solution status
- DualStabilizer: Dual smoothing between master and pricing

Customization Points:
--------------------
1. Required methods (must implement):
   - _build_model(): Create an empty solver model
   - _add_row_impl() / _add_column_impl(): Append rows and columns
   - _delete_rows_impl() / _delete_columns_impl(): Remove them again
   - _solve_lp_impl(): Solve and return an LPResult

2. Hooks (override to customize behavior):
   - column_cost(): Objective coefficient of a column
   - _on_column_added(): Called after adding a column
   - _before_solve() / _after_solve(): Around every LP solve
"""

from decompcg.master.solution import LPResult, MasterSolution, SolutionStatus
from decompcg.master.base import MasterProblem
from decompcg.master.stabilization import DualStabilizer

# Try to import HiGHS implementation
try:
    from decompcg.master.highs import HiGHSMasterProblem, HIGHS_AVAILABLE
except ImportError:
    HIGHS_AVAILABLE = False
    HiGHSMasterProblem = None  # type: ignore


__all__ = [
    # Solution
    'LPResult',
    'MasterSolution',
    'SolutionStatus',

    # Base class
    'MasterProblem',

    # Stabilization
    'DualStabilizer',

    # HiGHS implementation
    'HiGHSMasterProblem',
    'HIGHS_AVAILABLE',
]
