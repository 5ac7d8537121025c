"""
Master problem abstract base class.

This module defines the restricted master manager of the Dantzig-Wolfe
decomposition and the interface a solver backend must implement.
Users can either:
1. Use the provided HiGHSMasterProblem (default implementation)
2. Implement their own by subclassing MasterProblem

The restricted master over the columns generated so far is:

    min  sum_j (c . s_j) * lambda_j
    s.t. lo_r <= sum_j (a_r . s_j) * lambda_j <= up_r   coupling and cut rows
         sum_{j in block k} lambda_j = 1                 one per block
         lambda_j >= 0

where s_j is the column's point in the original variable space.

Row layout:
----------
    [0, m)          coupling rows of the MasterModel
    [m, m + K)      convexity rows conv(<block>), in block order
    [m + K, ...)    cut rows, in the order they were added

Design Philosophy:
-----------------
- The manager owns the authoritative copy of rows and columns; the solver
  model is a cache that reset() can rebuild at any time
- Required backend methods are abstract; they only see solver indices
- Column coefficients are computed from column entries, never supplied
  by the caller
- Hooks allow customization without full reimplementation

Customization Guide:
-------------------
To create a custom master problem backend:

1. Subclass MasterProblem
2. Implement _build_model, _add_row_impl, _add_column_impl,
   _delete_rows_impl, _delete_columns_impl and _solve_lp_impl
3. Optionally override the hooks

Example:
    >>> class MyMaster(MasterProblem):
    ...     def _build_model(self) -> None:
    ...         self._lp = SomeSolver()
    ...
    ...     def _add_column_impl(self, cost, row_indices, values) -> None:
    ...         self._lp.add_var(cost, row_indices, values)
    ...     ...
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Dict, List, Optional, Tuple

import numpy as np

from decompcg.config import DecompConfig
from decompcg.core.column import Column
from decompcg.core.model import MasterModel, Row
from decompcg.errors import MasterInfeasible, MasterNumericalFailure, MasterUnbounded
from decompcg.master.solution import LPResult, MasterSolution, SolutionStatus

logger = logging.getLogger(__name__)

# Statuses that trigger a reset-and-retry
_FAILURE_STATUSES = (
    SolutionStatus.NUMERICAL,
    SolutionStatus.ERROR,
    SolutionStatus.TIME_LIMIT,
    SolutionStatus.ITERATION_LIMIT,
    SolutionStatus.NOT_SOLVED,
)

# Duals smaller than this are treated as zero in the Lagrangian bound
_DUAL_ZERO = 1e-12


class MasterProblem(ABC):
    """
    Abstract base class for the restricted master manager.

    Lifecycle:
    ---------
    1. Create: master = HiGHSMasterProblem(master_model, block_ids, config)
    2. Add initial columns: master.add_column(column)
    3. Solve LP: solution = master.solve()
    4. Price with solution.dual_values (reduced_cost_vector / convexity_dual)
    5. Add new columns from pricing, compress unused ones
    6. Add cut rows (add_row) or roll them back (remove_last_rows)
    7. Repeat 3-6 until no improving column exists

    Attributes:
        model: The MasterModel providing objective and coupling rows
        block_ids: Blocks with a convexity row, in row order
        config: Engine configuration
    """

    def __init__(
        self,
        model: MasterModel,
        block_ids: Sequence[int],
        config: Optional[DecompConfig] = None,
    ):
        """
        Initialize the master problem.

        Args:
            model: The MasterModel (objective and coupling rows)
            block_ids: One convexity row is created per block
            config: Engine configuration (defaults if None)

        Raises:
            ValueError: If block ids are duplicated
        """
        if len(set(block_ids)) != len(block_ids):
            raise ValueError("block_ids must be unique")

        self._model = model
        self._config = config or DecompConfig()
        self._block_ids: List[int] = list(block_ids)

        num_coupling = model.num_rows
        self._conv_row: Dict[int, int] = {
            block_id: num_coupling + k for k, block_id in enumerate(self._block_ids)
        }
        self._cut_rows: List[Row] = []

        # Sparse lookup per coupling/cut row: master index -> coefficient
        self._row_maps: List[Dict[int, float]] = [dict(row.coefficients) for row in model.rows]
        self._triplets: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None

        # Columns in solver order (after the artificials)
        self._columns: List[Column] = []
        self._column_keys: Dict[tuple, int] = {}
        self._next_column_id: int = 0

        # Artificial columns: (row index, sign)
        self._artificials: List[Tuple[int, float]] = []

        self._num_solves: int = 0
        self._last_solution: Optional[MasterSolution] = None

        self._load_model(with_columns=False)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def model(self) -> MasterModel:
        """The underlying MasterModel."""
        return self._model

    @property
    def config(self) -> DecompConfig:
        return self._config

    @property
    def block_ids(self) -> List[int]:
        return list(self._block_ids)

    @property
    def num_columns(self) -> int:
        """Number of (non-artificial) columns in the master."""
        return len(self._columns)

    @property
    def num_artificials(self) -> int:
        return len(self._artificials)

    @property
    def num_coupling_rows(self) -> int:
        return self._model.num_rows

    @property
    def num_cut_rows(self) -> int:
        return len(self._cut_rows)

    @property
    def num_rows(self) -> int:
        """Total number of master rows."""
        return self._model.num_rows + len(self._block_ids) + len(self._cut_rows)

    @property
    def columns(self) -> List[Column]:
        """List of columns in the master problem."""
        return self._columns.copy()

    @property
    def cut_rows(self) -> List[Row]:
        return self._cut_rows.copy()

    @property
    def num_solves(self) -> int:
        return self._num_solves

    # =========================================================================
    # Abstract Methods (MUST be implemented by subclasses)
    # =========================================================================

    @abstractmethod
    def _build_model(self) -> None:
        """
        Create an empty solver model (minimization, no rows, no columns).

        Called once on construction and again by reset(); rows and columns
        are then re-added through _add_row_impl and _add_column_impl.
        """
        pass

    @abstractmethod
    def _add_row_impl(
        self,
        lower: float,
        upper: float,
        col_indices: List[int],
        values: List[float],
    ) -> None:
        """
        Append a row to the solver model.

        Args:
            lower: Row lower bound (-math.inf allowed)
            upper: Row upper bound (math.inf allowed)
            col_indices: Solver column indices with a nonzero coefficient
            values: Coefficients aligned with col_indices
        """
        pass

    @abstractmethod
    def _add_column_impl(
        self,
        cost: float,
        row_indices: List[int],
        values: List[float],
    ) -> None:
        """
        Append a column (0 <= lambda < inf) to the solver model.

        Args:
            cost: Objective coefficient
            row_indices: Master row indices with a nonzero coefficient
            values: Coefficients aligned with row_indices
        """
        pass

    @abstractmethod
    def _delete_rows_impl(self, row_indices: List[int]) -> None:
        """Delete rows; remaining rows keep their relative order."""
        pass

    @abstractmethod
    def _delete_columns_impl(self, col_indices: List[int]) -> None:
        """Delete solver columns; remaining columns keep their relative order."""
        pass

    @abstractmethod
    def _solve_lp_impl(self, presolve: bool = True) -> LPResult:
        """
        Solve the LP.

        Args:
            presolve: Allow presolve (switched off to disambiguate an
                "infeasible or unbounded" answer)

        Returns:
            LPResult with primal values in solver column order and one dual
            per master row
        """
        pass

    # =========================================================================
    # Public API - Columns
    # =========================================================================

    def add_column(self, column: Column) -> int:
        """
        Add a column to the master problem.

        The column's coefficients in every coupling, convexity and cut row
        are computed from its entries. The column is frozen afterwards.

        Args:
            column: The column to add (an id is assigned if missing)

        Returns:
            The column's id

        Raises:
            ValueError: If the block is unknown, an index is out of range or
                an identical column is already in the master
        """
        if column.block_id not in self._conv_row:
            raise ValueError(f"Column for unknown block {column.block_id}")
        if column.key in self._column_keys:
            raise ValueError(f"Duplicate column for block {column.block_id}")
        bad = [i for i in column.indices if not 0 <= i < self._model.num_cols]
        if bad:
            raise ValueError(f"Column uses master indices {bad[:5]} out of range")

        if column.column_id is None:
            column.column_id = self._next_column_id
        self._next_column_id = max(self._next_column_id, column.column_id + 1)

        row_indices, values = self._column_coefficients(column)
        self._add_column_impl(self.column_cost(column), row_indices, values)

        self._columns.append(column)
        self._column_keys[column.key] = column.column_id
        column.inactive_rounds = 0
        column.freeze()

        self._on_column_added(column)
        return column.column_id

    def has_column(self, column: Column) -> bool:
        """Check whether an identical column is in the master."""
        return column.key in self._column_keys

    def get_column(self, column_id: int) -> Optional[Column]:
        for column in self._columns:
            if column.column_id == column_id:
                return column
        return None

    def column_cost(self, column: Column) -> float:
        """
        Objective coefficient of a column in the master.

        Defaults to the column's original cost. Override to add
        branching penalties or similar terms.
        """
        return column.original_cost

    def compress_columns(self, threshold: int, solution: MasterSolution) -> List[Column]:
        """
        Evict columns that stayed inactive for too long.

        A column is evicted only if inactive_rounds >= threshold, it is not
        basic in the solution and its value is exactly zero.

        Args:
            threshold: Inactive rounds before eviction (<= 0 disables)
            solution: The latest master solution

        Returns:
            The evicted columns
        """
        if threshold <= 0:
            return []

        evict_positions = []
        for pos, column in enumerate(self._columns):
            if column.inactive_rounds < threshold:
                continue
            if column.column_id in solution.basic_columns:
                continue
            if solution.column_values.get(column.column_id, 0.0) != 0.0:
                continue
            evict_positions.append(pos)

        if not evict_positions:
            return []

        offset = len(self._artificials)
        self._delete_columns_impl([offset + pos for pos in evict_positions])

        evicted_set = set(evict_positions)
        evicted = [self._columns[pos] for pos in evict_positions]
        self._columns = [
            col for pos, col in enumerate(self._columns) if pos not in evicted_set
        ]
        for column in evicted:
            del self._column_keys[column.key]

        logger.debug("Compressed %d columns out of the master", len(evicted))
        return evicted

    def update_activity(self, solution: MasterSolution, tol: float = 1e-9) -> None:
        """
        Update usage counters after a master solve.

        A basic column or a column with positive value has its inactive
        counter reset; any other column's counter is incremented.
        """
        for column in self._columns:
            value = solution.column_values.get(column.column_id, 0.0)
            if value > tol:
                column.times_active += 1
            if value > tol or column.column_id in solution.basic_columns:
                column.inactive_rounds = 0
            else:
                column.inactive_rounds += 1

    # =========================================================================
    # Public API - Rows
    # =========================================================================

    def add_row(self, row: Row) -> int:
        """
        Append a cut row.

        Coefficients for the existing columns are computed from their
        entries. Cut rows get no artificial column.

        Args:
            row: Row over master (original-space) indices

        Returns:
            Index of the new master row
        """
        bad = [i for i in row.indices if not 0 <= i < self._model.num_cols]
        if bad:
            raise ValueError(f"Cut row {row.name!r} uses indices {bad[:5]} out of range")

        row_map = dict(row.coefficients)
        offset = len(self._artificials)
        col_indices, values = [], []
        for pos, column in enumerate(self._columns):
            coef = sum(row_map.get(i, 0.0) * a for i, a in column.entries)
            if coef != 0.0:
                col_indices.append(offset + pos)
                values.append(coef)

        self._add_row_impl(row.lower, row.upper, col_indices, values)
        self._cut_rows.append(row)
        self._row_maps.append(row_map)
        self._triplets = None
        return self.num_rows - 1

    def remove_last_rows(self, count: int) -> List[Row]:
        """
        Roll back the most recently added cut rows.

        Args:
            count: Number of cut rows to remove

        Returns:
            The removed rows (oldest first)

        Raises:
            ValueError: If fewer cut rows exist
        """
        if count <= 0:
            return []
        if count > len(self._cut_rows):
            raise ValueError(
                f"Cannot remove {count} cut rows, only {len(self._cut_rows)} present"
            )
        first = self.num_rows - count
        self._delete_rows_impl(list(range(first, self.num_rows)))

        removed = self._cut_rows[-count:]
        del self._cut_rows[-count:]
        del self._row_maps[-count:]
        self._triplets = None
        return removed

    def row_name(self, index: int) -> str:
        """Name of a master row."""
        num_coupling = self._model.num_rows
        if index < num_coupling:
            return self._model.rows[index].name or f"row{index}"
        if index < num_coupling + len(self._block_ids):
            return f"conv({self._block_ids[index - num_coupling]})"
        cut = self._cut_rows[index - num_coupling - len(self._block_ids)]
        return cut.name or f"cut{index}"

    def row_names(self) -> List[str]:
        return [self.row_name(i) for i in range(self.num_rows)]

    def convexity_row(self, block_id: int) -> int:
        """Index of a block's convexity row."""
        return self._conv_row[block_id]

    # =========================================================================
    # Public API - Solving
    # =========================================================================

    def solve(self) -> MasterSolution:
        """
        Solve the restricted master LP.

        An "infeasible or unbounded" answer is re-solved once with presolve
        off. A numerical failure is retried once after reset().

        Returns:
            MasterSolution with primal values, duals and basis flags

        Raises:
            MasterInfeasible: The LP is infeasible
            MasterUnbounded: The LP is unbounded
            MasterNumericalFailure: The solver failed twice
        """
        self._before_solve()
        start = time.time()

        result = self._solve_lp_impl()
        if result.status == SolutionStatus.INF_OR_UNBOUNDED:
            result = self._solve_lp_impl(presolve=False)

        if result.status in _FAILURE_STATUSES:
            logger.warning(
                "Master solve failed with status %s, rebuilding solver model",
                result.status.name,
            )
            self.reset()
            result = self._solve_lp_impl()
            if result.status == SolutionStatus.INF_OR_UNBOUNDED:
                result = self._solve_lp_impl(presolve=False)
            if result.status in _FAILURE_STATUSES:
                raise MasterNumericalFailure(
                    f"Master solve failed twice (status {result.status.name})",
                    retried=True,
                )

        if result.status in (SolutionStatus.INFEASIBLE, SolutionStatus.INF_OR_UNBOUNDED):
            raise MasterInfeasible()
        if result.status == SolutionStatus.UNBOUNDED:
            raise MasterUnbounded()

        solution = self._make_solution(result, time.time() - start)
        self._num_solves += 1
        self._last_solution = solution
        return self._after_solve(solution)

    def reset(self) -> None:
        """Rebuild the solver model from the stored rows and columns."""
        self._load_model(with_columns=True)

    @property
    def last_solution(self) -> Optional[MasterSolution]:
        return self._last_solution

    # =========================================================================
    # Public API - Duals and bounds
    # =========================================================================

    def reduced_cost_vector(self, duals: np.ndarray) -> np.ndarray:
        """
        Compute c - A^T u over coupling and cut rows.

        Args:
            duals: One dual per master row

        Returns:
            Dense price vector indexed by master (original-space) index
        """
        duals = np.asarray(duals, dtype=float)
        if duals.shape != (self.num_rows,):
            raise ValueError(
                f"Expected {self.num_rows} duals, got shape {duals.shape}"
            )
        rows, cols, vals = self._coefficient_triplets()
        prices = self._model.objective.astype(float, copy=True)
        if vals.size:
            prices -= np.bincount(
                cols, weights=vals * duals[rows], minlength=self._model.num_cols
            )
        return prices

    def convexity_dual(self, duals: np.ndarray, block_id: int) -> float:
        """Dual of a block's convexity row (the block's pricing target)."""
        return float(duals[self._conv_row[block_id]])

    def lagrangian_bound(
        self,
        duals: np.ndarray,
        block_bounds: Mapping[int, Optional[float]],
    ) -> Optional[float]:
        """
        Lagrangian lower bound for the node.

        bound = sum_r u_r * b_r(u_r) + sum_k (u_conv_k + min(0, lb_k))

        where r runs over coupling and cut rows, b_r(u_r) is the row bound
        priced by the dual's sign and lb_k is a lower bound on block k's
        minimum reduced cost.

        Args:
            duals: One dual per master row (the vector the blocks were priced with)
            block_bounds: block_id -> lower bound on the minimum reduced cost

        Returns:
            The bound, or None if a required row bound is infinite or a
            block bound is unknown
        """
        total = 0.0
        for index, row in self._priced_rows():
            u = float(duals[index])
            if abs(u) <= _DUAL_ZERO:
                continue
            rhs = row.rhs_for_dual(u)
            if rhs is None:
                return None
            total += u * rhs

        for block_id in self._block_ids:
            lb = block_bounds.get(block_id)
            if lb is None or not math.isfinite(lb):
                return None
            total += self.convexity_dual(duals, block_id) + min(0.0, lb)
        return total

    def fractional_solution(self, solution: MasterSolution) -> np.ndarray:
        """
        Project the master solution into the original space.

        Returns:
            x = sum_j lambda_j s_j (dense, length num_cols)
        """
        x = np.zeros(self._model.num_cols)
        for column in self._columns:
            value = solution.column_values.get(column.column_id, 0.0)
            if value != 0.0:
                for index, coef in column.entries:
                    x[index] += value * coef
        return x

    def artificial_usage(self, solution: MasterSolution) -> float:
        """Total value of the artificial columns in a solution."""
        return solution.artificial_usage

    # =========================================================================
    # Hooks (override for custom behavior)
    # =========================================================================

    def _on_column_added(self, column: Column) -> None:
        """Hook called after a column is added."""
        pass

    def _before_solve(self) -> None:
        """Hook called before solving."""
        pass

    def _after_solve(self, solution: MasterSolution) -> MasterSolution:
        """
        Hook called after solving.

        Args:
            solution: The solution built from the solver result

        Returns:
            Possibly modified solution
        """
        return solution

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _load_model(self, with_columns: bool) -> None:
        """Push rows, artificials and (optionally) columns to a fresh solver model."""
        self._build_model()

        for row in self._model.rows:
            self._add_row_impl(row.lower, row.upper, [], [])
        for _ in self._block_ids:
            self._add_row_impl(1.0, 1.0, [], [])
        for row in self._cut_rows:
            self._add_row_impl(row.lower, row.upper, [], [])

        self._artificials = self._artificial_layout() if self._config.use_artificials else []
        cost = self._config.artificial_cost
        for row_index, sign in self._artificials:
            self._add_column_impl(cost, [row_index], [sign])

        if with_columns:
            for column in self._columns:
                row_indices, values = self._column_coefficients(column)
                self._add_column_impl(self.column_cost(column), row_indices, values)

    def _artificial_layout(self) -> List[Tuple[int, float]]:
        """
        Artificial columns for coupling and convexity rows.

        A finite upper bound gets a -1 column, a finite lower bound a +1
        column; convexity rows only need the +1 column.
        """
        layout = []
        for index, row in enumerate(self._model.rows):
            if math.isfinite(row.upper):
                layout.append((index, -1.0))
            if math.isfinite(row.lower):
                layout.append((index, 1.0))
        for block_id in self._block_ids:
            layout.append((self._conv_row[block_id], 1.0))
        return layout

    def _priced_rows(self) -> List[Tuple[int, Row]]:
        """(master row index, row) for coupling and cut rows."""
        cut_offset = self._model.num_rows + len(self._block_ids)
        pairs = list(enumerate(self._model.rows))
        pairs.extend((cut_offset + k, row) for k, row in enumerate(self._cut_rows))
        return pairs

    def _coefficient_triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Cached (row, master index, value) arrays of coupling and cut rows."""
        if self._triplets is None:
            rows, cols, vals = [], [], []
            for index, row in self._priced_rows():
                for i, a in row.coefficients:
                    rows.append(index)
                    cols.append(i)
                    vals.append(a)
            self._triplets = (
                np.asarray(rows, dtype=np.int64),
                np.asarray(cols, dtype=np.int64),
                np.asarray(vals, dtype=float),
            )
        return self._triplets

    def _column_coefficients(self, column: Column) -> Tuple[List[int], List[float]]:
        """Coefficients of a column in every master row."""
        row_indices, values = [], []
        for index, row in self._priced_rows():
            row_map = self._row_maps[self._map_position(index)]
            coef = sum(row_map.get(i, 0.0) * a for i, a in column.entries)
            if coef != 0.0:
                row_indices.append(index)
                values.append(coef)
        row_indices.append(self._conv_row[column.block_id])
        values.append(1.0)
        return row_indices, values

    def _map_position(self, row_index: int) -> int:
        """Position in _row_maps of a coupling or cut row."""
        num_coupling = self._model.num_rows
        if row_index < num_coupling:
            return row_index
        return row_index - len(self._block_ids)

    def _make_solution(self, result: LPResult, solve_time: float) -> MasterSolution:
        """Translate a solver result to column ids and master rows."""
        offset = len(self._artificials)
        primal = np.asarray(result.primal, dtype=float)
        basic = np.asarray(result.basic, dtype=bool)

        column_values = {}
        basic_columns = set()
        for pos, column in enumerate(self._columns):
            column_values[column.column_id] = float(primal[offset + pos])
            if basic.size and basic[offset + pos]:
                basic_columns.add(column.column_id)

        return MasterSolution(
            status=result.status,
            objective_value=result.objective_value,
            column_values=column_values,
            dual_values=np.asarray(result.dual, dtype=float).copy(),
            basic_columns=basic_columns,
            artificial_values=primal[:offset].copy(),
            solve_time=solve_time,
            iterations=result.iterations,
            num_columns=len(self._columns),
            num_rows=self.num_rows,
        )

    def summary(self) -> str:
        """
        Return a human-readable summary.

        Returns:
            Summary string
        """
        lines = [
            f"MasterProblem: {self._model.name}",
            f"  Columns: {self.num_columns} (+{self.num_artificials} artificial)",
            f"  Coupling rows: {self.num_coupling_rows}",
            f"  Convexity rows: {len(self._block_ids)}",
            f"  Cut rows: {self.num_cut_rows}",
            f"  Solves: {self._num_solves}",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"columns={self.num_columns}, "
            f"rows={self.num_rows})"
        )
