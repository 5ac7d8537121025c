"""
Column Generation controller for one branch-and-bound node.

This module implements the price-and-cut loop that coordinates the
restricted master, the dual stabilizer, the block pricing oracles and the
cut pool.

Algorithm Overview:
------------------
INIT
    Build the master (coupling rows, convexity rows, artificial columns),
    add warm start columns, hook columns and one INITIAL-mode oracle
    answer per block priced at the original objective.
PRICING
    1. Solve the master; update column activity and compress
    2. Smooth the duals
    3. Re-price columns evicted earlier; if none improves, call every
       block's oracle (in parallel) against the same dual vector
    4. Compute the Lagrangian bound and move the stabilization center
       when it improves
    5. Add improving columns and repeat; when a smoothed round adds no
       new column, re-price once with the raw duals (mispricing check)
    Pricing has converged only when every block returned no improving
    column in the same round against the same duals.
CUTTING
    Separate the fractional solution: violated pooled cuts first, then the
    external CutGenerator. New rows go to the master and pricing resumes
    in a new phase. No rows means DONE. If the master becomes infeasible
    right after a cutting round, that round's rows are rolled back.
DONE
    Converged with zero artificial usage: the master objective is the node
    bound. Positive artificial usage: the node is infeasible.

Limits (max_iterations, max_time) and cancellation are checked at round
boundaries only.

References:
----------
- Desaulniers, G., Desrosiers, J., & Solomon, M. M. (Eds.). (2006).
  Column generation. Springer Science & Business Media.
- Wentges, P. (1997). Weighted Dantzig-Wolfe decomposition for linear
  mixed-integer programming. International Transactions in Operational
  Research, 4(2), 151-162.
"""

import logging
import time
from collections.abc import Iterable, Sequence
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple

import numpy as np

from decompcg.core.column import Column, ColumnPool
from decompcg.core.model import BlockModel, MasterModel, Row
from decompcg.errors import (
    BlockInfeasible,
    ConfigurationError,
    MasterInfeasible,
    MasterNumericalFailure,
    MasterUnbounded,
)
from decompcg.logging_utils import ROOT_LOGGER, init_logging
from decompcg.master.base import MasterProblem
from decompcg.master.solution import MasterSolution
from decompcg.master.stabilization import DualStabilizer
from decompcg.pricing.base import PricingMode
from decompcg.pricing.round import PricingRound, RoundResult
from decompcg.solver.context import SolverContext
from decompcg.solver.hooks import (
    CutRoundEvent,
    FeasibleSolutionEvent,
    InitialColumnsEvent,
    PricingRoundEvent,
)
from decompcg.solver.solution import CGIteration, NodeResult, NodeStatistics, NodeStatus

logger = logging.getLogger(__name__)


class Phase(Enum):
    """
    Phase of the node solve.
    """
    INIT = auto()
    PRICING = auto()
    CUTTING = auto()
    DONE = auto()


class ColumnGeneration:
    """
    Column generation controller for one node.

    Example:
        >>> from decompcg.solver import ColumnGeneration, SolverContext
        >>> context = SolverContext(config=DecompConfig(dual_stab=True), oracles=oracles)
        >>> cg = ColumnGeneration(context, block_models, master_model)
        >>> result = cg.solve()
        >>> print(f"Node bound: {result.bound}")

    Raises:
        ConfigurationError: On construction, if the configuration is invalid,
            a block has no oracle or a block maps outside the master
    """

    def __init__(
        self,
        context: SolverContext,
        block_models: Sequence[BlockModel],
        master_model: MasterModel,
        warm_start_columns: Iterable[Column] = (),
    ):
        self._context = context
        self._config = context.config
        self._config.validate()

        self._master_model = master_model
        self._blocks: Dict[int, BlockModel] = {}
        for block in block_models:
            if block.block_id in self._blocks:
                raise ConfigurationError(f"Duplicate block id {block.block_id}")
            try:
                block.check_mapping(master_model.num_cols)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            self._blocks[block.block_id] = block
        self._block_ids: List[int] = list(self._blocks)

        missing = [b for b in self._block_ids if b not in context.oracles]
        if missing:
            raise ConfigurationError(f"No pricing oracle for blocks {missing}")

        self._warm_start: List[Column] = []
        for column in warm_start_columns:
            if column.block_id not in self._blocks:
                raise ConfigurationError(
                    f"Warm start column for unknown block {column.block_id}"
                )
            self._warm_start.append(column.with_id(column.column_id)
                                    if column.column_id is not None else column)

        if self._config.verbose and not logging.getLogger(ROOT_LOGGER).handlers:
            init_logging(self._config.log_level)

        # Components (created in solve)
        self._master: Optional[MasterProblem] = None
        self._stabilizer: Optional[DualStabilizer] = None
        self._pricing: Optional[PricingRound] = None
        self._column_pool = ColumnPool()

        # State
        self._phase = Phase.INIT
        self._iteration = 0
        self._cut_rounds = 0
        self._pending_cuts: List[Row] = []
        self._generated_cuts: List[Row] = []
        self._best_bound: Optional[float] = None
        self._last_solution: Optional[MasterSolution] = None
        self._stats = NodeStatistics()
        self._history: List[CGIteration] = []
        self._start_time = 0.0
        self._result: Optional[NodeResult] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def master(self) -> Optional[MasterProblem]:
        """The restricted master (None before solve)."""
        return self._master

    @property
    def stabilizer(self) -> Optional[DualStabilizer]:
        return self._stabilizer

    @property
    def column_pool(self) -> ColumnPool:
        """Every column generated at this node."""
        return self._column_pool

    @property
    def statistics(self) -> NodeStatistics:
        return self._stats

    @property
    def best_bound(self) -> Optional[float]:
        """Best Lagrangian bound so far (never decreases)."""
        return self._best_bound

    @property
    def result(self) -> Optional[NodeResult]:
        return self._result

    # =========================================================================
    # Main Algorithm
    # =========================================================================

    def solve(self) -> NodeResult:
        """
        Run column generation at this node.

        Node-local failures are reported through the result status, never
        raised.

        Returns:
            NodeResult
        """
        self._start_time = time.time()
        message = ""
        try:
            self._initialize()
            status, message = self._run()
        except MasterInfeasible as e:
            status, message = NodeStatus.INFEASIBLE, e.message
        except MasterUnbounded as e:
            status, message = NodeStatus.UNBOUNDED, e.message
        except MasterNumericalFailure as e:
            status, message = NodeStatus.NUMERICAL_FAILURE, e.message
        except BlockInfeasible as e:
            status, message = NodeStatus.BLOCK_INFEASIBLE, e.message

        self._phase = Phase.DONE
        if status not in (NodeStatus.OPTIMAL, NodeStatus.ITERATION_LIMIT,
                          NodeStatus.TIME_LIMIT, NodeStatus.CANCELLED):
            logger.info("Node finished with %s: %s", status.name, message, extra=self._extra())
        self._result = self._build_result(status, message)
        return self._result

    def _initialize(self) -> None:
        """INIT phase: master, stabilizer, pricing and initial columns."""
        self._phase = Phase.INIT
        self._master = self._context.create_master(self._master_model, self._block_ids)
        self._stabilizer = DualStabilizer.from_config(self._config, self._master.num_rows)
        self._pricing = PricingRound(
            {b: self._context.oracles[b] for b in self._block_ids},
            num_threads=self._config.num_threads,
            time_budget=self._config.pricing_time_budget,
            tolerance=self._config.get_tolerance("reduced_cost"),
            fallback_oracles={
                b: o for b, o in self._context.fallback_oracles.items() if b in self._blocks
            },
            block_models=self._blocks,
        )

        added = len(self._add_columns(self._warm_start))

        event = InitialColumnsEvent(
            master_model=self._master_model,
            block_models=dict(self._blocks),
            node_id=self._context.node_id,
        )
        added += len(self._add_columns(self._context.hooks.on_initial_columns(event) or []))

        prices = self._master_model.objective.astype(float, copy=True)
        initial = self._pricing.run(
            self._block_ids, prices, {b: 0.0 for b in self._block_ids}, PricingMode.INITIAL
        )
        self._record_round_problems(initial)
        added += len(self._add_columns(initial.columns))

        logger.info(
            "Initial master: %d columns, %d rows, %d artificials",
            self._master.num_columns, self._master.num_rows, self._master.num_artificials,
            extra=self._extra(),
        )
        logger.debug("Initial columns added: %d", added, extra=self._extra())

    def _run(self) -> Tuple[NodeStatus, str]:
        """PRICING / CUTTING loop until DONE or a limit is hit."""
        self._phase = Phase.PRICING
        self._stabilizer.start_phase()

        while True:
            stop = self._check_limits()
            if stop is not None:
                return stop

            self._iteration += 1
            solution = self._solve_master_after_cuts()
            if solution is None:
                # Cuts rolled back; the master is back at a converged state
                return self._finish(self._last_solution)

            converged, keep_going = self._pricing_round(solution)
            if not keep_going:
                return NodeStatus.CANCELLED, "Stopped by on_pricing_round hook"
            if not converged:
                continue

            # Pricing converged for the current rows
            if not self._should_cut(solution):
                return self._finish(solution)
            if not self._cutting_round(solution):
                return self._finish(solution)

    # =========================================================================
    # Pricing
    # =========================================================================

    def _pricing_round(self, solution: MasterSolution) -> Tuple[bool, bool]:
        """
        One pricing round at the given master solution.

        Returns:
            (converged, keep_going)
        """
        self._phase = Phase.PRICING
        self._stats.price_calls_total += 1
        first_call = self._stats.price_calls_total + self._stats.cut_calls_total == 1

        dual_rm = solution.dual_values
        dual_st = self._stabilizer.smooth(dual_rm, first_call=first_call)
        if self._stabilizer.tracing:
            self._stabilizer.log_duals(self._master.row_names())
        stabilized = self._stabilizer.is_smoothed()

        pricing_start = time.time()
        columns, bound = self._price(dual_st)
        self._stabilizer.update_bound(bound)
        added = self._add_columns(columns)

        # Nothing new at the smoothed duals proves nothing at the raw ones
        misprice = False
        if not added and stabilized:
            misprice = True
            self._stats.mispricing_rounds += 1
            self._stats.price_calls_total += 1
            logger.debug("Smoothed duals added no column, re-pricing with raw duals",
                         extra=self._extra())
            columns, raw_bound = self._price(dual_rm)
            if raw_bound is not None and (bound is None or raw_bound > bound):
                bound = raw_bound
            added = self._add_columns(columns)
        self._stats.pricing_time += time.time() - pricing_start

        self._stats.columns_generated += len(added)
        converged = not added

        iter_info = CGIteration(
            iteration=self._iteration,
            phase=self._phase.name,
            master_objective=solution.objective_value,
            lagrangian_bound=bound,
            best_bound=self._best_bound,
            num_columns_added=len(added),
            stabilized=stabilized,
            misprice=misprice,
            master_time=solution.solve_time,
            pricing_time=time.time() - pricing_start,
            total_columns=self._master.num_columns,
            artificial_usage=solution.artificial_usage,
        )
        self._history.append(iter_info)

        bound_str = f"{self._best_bound:.6f}" if self._best_bound is not None else "-"
        logger.info(
            "obj=%.6f best_bound=%s added=%d columns=%d%s",
            solution.objective_value, bound_str, len(added), self._master.num_columns,
            " (misprice)" if misprice else "",
            extra=self._extra(),
        )

        event = PricingRoundEvent(
            iteration=self._iteration,
            master_objective=solution.objective_value,
            columns_added=added,
            lagrangian_bound=bound,
            best_bound=self._best_bound,
            converged=converged,
            node_id=self._context.node_id,
        )
        keep_going = self._context.hooks.on_pricing_round(event) is not False
        return converged, keep_going

    def _price(self, duals: np.ndarray) -> Tuple[List[Column], Optional[float]]:
        """
        Price every block against one dual vector.

        Evicted pool columns are re-priced first; the oracles are called only
        when none of them improves.

        Returns:
            (improving columns, Lagrangian bound or None)
        """
        prices = self._master.reduced_cost_vector(duals)
        targets = {b: self._master.convexity_dual(duals, b) for b in self._block_ids}

        reused = self._reprice_pool(prices, targets)
        if reused:
            self._stats.columns_reused += len(reused)
            logger.debug("Re-using %d pooled columns", len(reused), extra=self._extra())
            return reused, None

        round_result = self._pricing.run(self._block_ids, prices, targets, PricingMode.NORMAL)
        self._record_round_problems(round_result)

        bound = None
        if round_result.bound_valid:
            bound = self._master.lagrangian_bound(duals, round_result.block_bounds)
            if bound is not None and (self._best_bound is None or bound > self._best_bound):
                self._best_bound = bound
        return round_result.columns, bound

    def _reprice_pool(self, prices: np.ndarray, targets: Dict[int, float]) -> List[Column]:
        """Evicted columns with negative reduced cost under the given prices."""
        tol = self._config.get_tolerance("reduced_cost")
        improving = []
        for column in self._column_pool.outside_columns():
            column.reduced_cost = column.price(prices) - targets[column.block_id]
            if column.reduced_cost < -tol:
                improving.append(column)
        return improving

    def _record_round_problems(self, round_result: RoundResult) -> None:
        """Count timeouts and raise for infeasible blocks."""
        self._stats.oracle_timeouts += len(round_result.timed_out)
        if round_result.infeasible:
            raise BlockInfeasible(round_result.infeasible[0])

    def _add_columns(self, columns: Iterable[Column]) -> List[Column]:
        """Pool and add columns to the master; return the ones actually added."""
        added = []
        for column in columns:
            pooled = self._column_pool.add(column)
            if self._master.has_column(pooled):
                logger.debug("Column already in master, skipped: %r", pooled, extra=self._extra())
                continue
            self._master.add_column(pooled)
            self._column_pool.mark_inside(pooled)
            added.append(pooled)
        return added

    # =========================================================================
    # Master
    # =========================================================================

    def _solve_master(self) -> MasterSolution:
        start = time.time()
        solution = self._master.solve()
        self._stats.master_solves += 1
        self._stats.master_time += time.time() - start

        self._master.update_activity(solution)
        evicted = self._master.compress_columns(
            self._config.column_compression_threshold, solution
        )
        if evicted:
            self._column_pool.mark_outside(evicted)
            self._stats.columns_compressed += len(evicted)

        self._last_solution = solution
        return solution

    def _solve_master_after_cuts(self) -> Optional[MasterSolution]:
        """
        Solve the master; roll back the last cutting round if it made the
        master infeasible.

        Returns:
            The solution, or None after a roll-back
        """
        try:
            solution = self._solve_master()
        except MasterInfeasible:
            if not self._pending_cuts:
                raise
            count = len(self._pending_cuts)
            logger.warning(
                "Master infeasible after adding %d cuts, rolling them back", count,
                extra=self._extra(),
            )
            self._master.remove_last_rows(count)
            del self._generated_cuts[-count:]
            self._stats.cuts_rolled_back += count
            self._pending_cuts = []
            self._stabilizer.resize(self._master.num_rows)
            self._solve_master()
            return None

        self._pending_cuts = []
        return solution

    # =========================================================================
    # Cutting
    # =========================================================================

    def _should_cut(self, solution: MasterSolution) -> bool:
        if self._cut_rounds >= self._config.max_cut_rounds:
            return False
        if solution.artificial_usage > self._config.get_tolerance("feasibility"):
            return False
        return self._context.cut_generator is not None or len(self._context.cut_pool) > 0

    def _cutting_round(self, solution: MasterSolution) -> bool:
        """
        Separate the current fractional solution.

        Returns:
            True if rows were added (pricing resumes), False if none found
        """
        self._phase = Phase.CUTTING
        self._stats.cut_calls_total += 1
        self._cut_rounds += 1
        start = time.time()

        x = self._master.fractional_solution(solution)
        tol = self._config.get_tolerance("cut_violation")
        pool = self._context.cut_pool

        rows = pool.violated(x, tol, exclude=self._master.cut_rows)
        if not rows and self._context.cut_generator is not None:
            generated = self._context.cut_generator.generate_cuts(x)
            rows = [r for r in pool.add(generated) if r.violation(x) > tol]

        for row in rows:
            self._master.add_row(row)
            pool.mark_used(row)
        self._generated_cuts.extend(rows)
        self._pending_cuts = list(rows)
        self._stats.cuts_added += len(rows)
        self._stats.cut_time += time.time() - start

        logger.info("Cutting round %d: %d cuts", self._cut_rounds, len(rows), extra=self._extra())
        self._context.hooks.on_cut_round(CutRoundEvent(
            cut_round=self._cut_rounds,
            x=x,
            cuts_added=list(rows),
            node_id=self._context.node_id,
        ))

        if not rows:
            return False
        self._stabilizer.resize(self._master.num_rows)
        self._stabilizer.start_phase()
        self._phase = Phase.PRICING
        return True

    # =========================================================================
    # Finishing
    # =========================================================================

    def _check_limits(self) -> Optional[Tuple[NodeStatus, str]]:
        """Round boundary: cancellation, iteration and time limits."""
        if self._context.is_cancelled:
            return NodeStatus.CANCELLED, "Cancelled"
        if self._config.max_iterations > 0 and self._iteration >= self._config.max_iterations:
            return NodeStatus.ITERATION_LIMIT, f"Reached {self._config.max_iterations} iterations"
        elapsed = time.time() - self._start_time
        if self._config.max_time > 0 and elapsed >= self._config.max_time:
            return NodeStatus.TIME_LIMIT, f"Reached {self._config.max_time}s"
        return None

    def _finish(self, solution: MasterSolution) -> Tuple[NodeStatus, str]:
        """DONE: classify a converged master."""
        self._phase = Phase.DONE
        usage = solution.artificial_usage
        if usage > self._config.get_tolerance("feasibility"):
            return NodeStatus.INFEASIBLE, f"Artificial columns remain at convergence ({usage:.6g})"
        return NodeStatus.OPTIMAL, ""

    def _build_result(self, status: NodeStatus, message: str) -> NodeResult:
        solution = self._last_solution
        result = NodeResult(
            status=status,
            lagrangian_bound=self._best_bound,
            generated_cuts=list(self._generated_cuts),
            statistics=self._stats,
            history=list(self._history),
            message=message,
        )

        if solution is not None and self._master is not None:
            result.master_objective = solution.objective_value
            result.fractional_solution = self._master.fractional_solution(solution)
            tol = self._config.get_tolerance("feasibility")
            for column in self._master.columns:
                value = solution.column_values.get(column.column_id, 0.0)
                if value > tol:
                    result.columns.append(column)
                    result.column_values[column.column_id] = value

        if status == NodeStatus.OPTIMAL:
            result.bound = result.master_objective
            self._offer_incumbent(result)
        elif status in (NodeStatus.ITERATION_LIMIT, NodeStatus.TIME_LIMIT, NodeStatus.CANCELLED):
            result.bound = self._best_bound

        result.total_time = time.time() - self._start_time
        return result

    def _offer_incumbent(self, result: NodeResult) -> None:
        """Hand an integral converged solution to on_feasible_solution."""
        if result.fractional_solution is None:
            return
        if not result.is_integral(self._config.get_tolerance("integrality")):
            return
        x = np.round(result.fractional_solution)
        value = self._master_model.objective_value(x)
        event = FeasibleSolutionEvent(x=x, objective_value=value, node_id=self._context.node_id)
        if self._context.hooks.on_feasible_solution(event):
            result.incumbent = x
            result.incumbent_value = value

    def _extra(self) -> Dict[str, object]:
        node = self._context.node_id
        return {
            'node_id': '-' if node is None else node,
            'phase': self._phase.name,
            'iteration': self._iteration,
        }

    def summary(self) -> str:
        """
        Return a human-readable summary.

        Returns:
            Summary string
        """
        lines = [
            f"ColumnGeneration: {self._master_model.name}",
            f"  Blocks: {len(self._block_ids)}",
            "  Config:",
            f"    Max iterations: {self._config.max_iterations}",
            f"    Max time: {self._config.max_time}s",
            f"    Dual stabilization: {self._config.dual_stab} (alpha={self._config.dual_stab_alpha})",
            f"    Compression threshold: {self._config.column_compression_threshold}",
        ]
        if self._result is not None:
            lines.extend(["", self._result.summary()])
        else:
            lines.append("\n  Status: Not yet solved")
        return "\n".join(lines)

    def __repr__(self) -> str:
        status = self._result.status.name if self._result is not None else "not solved"
        return f"ColumnGeneration(master={self._master_model.name!r}, {status})"


def solve_node(
    context: SolverContext,
    block_models: Sequence[BlockModel],
    master_model: MasterModel,
    warm_start_columns: Iterable[Column] = (),
) -> NodeResult:
    """
    Solve one node by column generation.

    Args:
        context: Configuration, oracles, cut pool and hooks
        block_models: One BlockModel per block
        master_model: Objective and coupling rows
        warm_start_columns: Columns to start from (e.g. from the parent node)

    Returns:
        NodeResult; node-local failures are reported through its status

    Raises:
        ConfigurationError: If the configuration or the models are invalid
    """
    cg = ColumnGeneration(context, block_models, master_model, warm_start_columns)
    return cg.solve()


__all__ = ['Phase', 'ColumnGeneration', 'solve_node']
