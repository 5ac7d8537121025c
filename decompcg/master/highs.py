"""
HiGHS implementation of the master problem.

This module provides a ready-to-use restricted master using HiGHS, a
high-performance open-source LP solver, through the highspy bindings.

Usage:
    >>> from decompcg.master import HiGHSMasterProblem
    >>> master = HiGHSMasterProblem(master_model, block_ids=[0, 1], config=config)
    >>> master.add_column(column)
    >>> solution = master.solve()
    >>> prices = master.reduced_cost_vector(solution.dual_values)
"""

import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

try:
    import highspy
    HIGHS_AVAILABLE = True
except ImportError:
    HIGHS_AVAILABLE = False

from decompcg.config import DecompConfig
from decompcg.core.model import MasterModel
from decompcg.master.base import MasterProblem
from decompcg.master.solution import LPResult, SolutionStatus


# HiGHS status mapping
def _map_highs_status(status) -> SolutionStatus:
    """Map HiGHS model status to our SolutionStatus."""
    if not HIGHS_AVAILABLE:
        return SolutionStatus.ERROR

    status_map = {
        highspy.HighsModelStatus.kNotset: SolutionStatus.NOT_SOLVED,
        highspy.HighsModelStatus.kLoadError: SolutionStatus.ERROR,
        highspy.HighsModelStatus.kModelError: SolutionStatus.ERROR,
        highspy.HighsModelStatus.kPresolveError: SolutionStatus.ERROR,
        highspy.HighsModelStatus.kSolveError: SolutionStatus.NUMERICAL,
        highspy.HighsModelStatus.kPostsolveError: SolutionStatus.NUMERICAL,
        highspy.HighsModelStatus.kModelEmpty: SolutionStatus.OPTIMAL,
        highspy.HighsModelStatus.kOptimal: SolutionStatus.OPTIMAL,
        highspy.HighsModelStatus.kInfeasible: SolutionStatus.INFEASIBLE,
        highspy.HighsModelStatus.kUnbounded: SolutionStatus.UNBOUNDED,
        highspy.HighsModelStatus.kUnboundedOrInfeasible: SolutionStatus.INF_OR_UNBOUNDED,
        highspy.HighsModelStatus.kTimeLimit: SolutionStatus.TIME_LIMIT,
        highspy.HighsModelStatus.kIterationLimit: SolutionStatus.ITERATION_LIMIT,
    }

    return status_map.get(status, SolutionStatus.ERROR)


def _bound(value: float) -> float:
    """Translate math.inf to the HiGHS infinity."""
    if math.isinf(value):
        return highspy.kHighsInf if value > 0 else -highspy.kHighsInf
    return float(value)


class HiGHSMasterProblem(MasterProblem):
    """
    Restricted master solved with HiGHS.

    Features:
    - Incremental row and column addition
    - Column and row deletion (compression, cut roll-back)
    - Warm started re-solves (HiGHS keeps its basis between runs)

    Example:
        >>> master = HiGHSMasterProblem(master_model, block_ids=[0, 1])
        >>> for col in initial_columns:
        ...     master.add_column(col)
        >>> solution = master.solve()
        >>> print(f"Objective: {solution.objective_value}")

    Attributes:
        time_limit: Maximum solve time in seconds (None = no limit)
        verbosity: HiGHS output level (0 = silent, 1 = normal)
    """

    def __init__(
        self,
        model: MasterModel,
        block_ids: Sequence[int],
        config: Optional[DecompConfig] = None,
        time_limit: Optional[float] = None,
        verbosity: int = 0,
    ):
        """
        Initialize the HiGHS master problem.

        Args:
            model: The MasterModel (objective and coupling rows)
            block_ids: One convexity row is created per block
            config: Engine configuration
            time_limit: Maximum solve time in seconds (None = no limit)
            verbosity: HiGHS output level (0 = silent)

        Raises:
            ImportError: If highspy is not installed
        """
        if not HIGHS_AVAILABLE:
            raise ImportError(
                "HiGHS is not available. Install it with: pip install highspy"
            )

        self._time_limit = time_limit
        self._verbosity = verbosity

        # HiGHS model (created in _build_model)
        self._highs: Optional[highspy.Highs] = None

        # Call parent init (which calls _build_model)
        super().__init__(model, block_ids, config)

    # =========================================================================
    # Abstract Method Implementations
    # =========================================================================

    def _build_model(self) -> None:
        """Create an empty HiGHS model."""
        self._highs = highspy.Highs()

        # Set options
        self._highs.setOptionValue('output_flag', self._verbosity > 0)
        self._highs.setOptionValue('log_to_console', self._verbosity > 0)

        if self._time_limit is not None:
            self._highs.setOptionValue('time_limit', self._time_limit)

        self._highs.changeObjectiveSense(highspy.ObjSense.kMinimize)

    def _add_row_impl(
        self,
        lower: float,
        upper: float,
        col_indices: List[int],
        values: List[float],
    ) -> None:
        """Add a row to the HiGHS model."""
        self._highs.addRow(
            _bound(lower),
            _bound(upper),
            len(col_indices),
            np.asarray(col_indices, dtype=np.int32),
            np.asarray(values, dtype=np.float64),
        )

    def _add_column_impl(
        self,
        cost: float,
        row_indices: List[int],
        values: List[float],
    ) -> None:
        """Add a column to the HiGHS model."""
        # addCol(cost, lower, upper, num_nz, indices, values)
        self._highs.addCol(
            float(cost),
            0.0,
            highspy.kHighsInf,
            len(row_indices),
            np.asarray(row_indices, dtype=np.int32),
            np.asarray(values, dtype=np.float64),
        )

    def _delete_rows_impl(self, row_indices: List[int]) -> None:
        self._highs.deleteRows(len(row_indices), np.asarray(row_indices, dtype=np.int32))

    def _delete_columns_impl(self, col_indices: List[int]) -> None:
        self._highs.deleteCols(len(col_indices), np.asarray(col_indices, dtype=np.int32))

    def _solve_lp_impl(self, presolve: bool = True) -> LPResult:
        """Solve the LP relaxation."""
        self._highs.setOptionValue('presolve', 'on' if presolve else 'off')
        self._highs.run()

        model_status = self._highs.getModelStatus()
        if model_status == highspy.HighsModelStatus.kModelEmpty:
            return self._empty_result()

        status = _map_highs_status(model_status)
        info = self._highs.getInfo()
        result = LPResult(status=status, iterations=int(info.simplex_iteration_count))

        if status != SolutionStatus.OPTIMAL:
            return result

        sol = self._highs.getSolution()
        result.objective_value = float(info.objective_function_value)
        result.primal = np.asarray(sol.col_value, dtype=float)
        result.dual = np.asarray(sol.row_dual, dtype=float)

        basis = self._highs.getBasis()
        if basis is not None and basis.valid:
            result.basic = np.array(
                [s == highspy.HighsBasisStatus.kBasic for s in basis.col_status],
                dtype=bool,
            )
        return result

    def _empty_result(self) -> LPResult:
        """Result for a model without columns: feasible only if 0 satisfies every row."""
        lp = self._highs.getLp()
        lower = np.asarray(lp.row_lower_, dtype=float)
        upper = np.asarray(lp.row_upper_, dtype=float)
        if np.any(lower > 0.0) or np.any(upper < 0.0):
            return LPResult(status=SolutionStatus.INFEASIBLE)
        return LPResult(
            status=SolutionStatus.OPTIMAL,
            objective_value=0.0,
            dual=np.zeros(lower.size),
        )

    # =========================================================================
    # HiGHS-specific Methods
    # =========================================================================

    def get_model_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the solver model.

        Returns:
            Dictionary with model statistics
        """
        return {
            'num_columns': self._highs.getNumCol(),
            'num_rows': self._highs.getNumRow(),
            'num_nonzeros': self._highs.getNumNz(),
        }
