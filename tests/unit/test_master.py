"""
Tests for the master problem module.

This module tests:
- MasterSolution dataclass
- MasterProblem bookkeeping (via a scripted backend)
- Solve retries and error mapping
- Column compression and activity counters
- HiGHSMasterProblem implementation
"""

import math
import random

import numpy as np
import pytest

from decompcg.config import DecompConfig
from decompcg.core.column import Column
from decompcg.core.model import MasterModel, Row
from decompcg.errors import MasterInfeasible, MasterNumericalFailure, MasterUnbounded
from decompcg.master import (
    HIGHS_AVAILABLE,
    HiGHSMasterProblem,
    LPResult,
    MasterProblem,
    MasterSolution,
    SolutionStatus,
)


# =============================================================================
# Test Fixtures
# =============================================================================


class ScriptedMaster(MasterProblem):
    """Backend that records solver calls and replays scripted LP results."""

    def __init__(self, model, block_ids, config=None, results=()):
        self.results = list(results)
        self.presolve_calls = []
        self.builds = 0
        super().__init__(model, block_ids, config)

    def _build_model(self):
        self.builds += 1
        self.rows = []
        self.cols = []

    def _add_row_impl(self, lower, upper, col_indices, values):
        self.rows.append((lower, upper, list(col_indices), list(values)))

    def _add_column_impl(self, cost, row_indices, values):
        self.cols.append((cost, list(row_indices), list(values)))

    def _delete_rows_impl(self, row_indices):
        for i in sorted(row_indices, reverse=True):
            del self.rows[i]

    def _delete_columns_impl(self, col_indices):
        for i in sorted(col_indices, reverse=True):
            del self.cols[i]

    def _solve_lp_impl(self, presolve=True):
        self.presolve_calls.append(presolve)
        return self.results.pop(0)


def unit_column(index, block_id, cost):
    return Column(entries=((index, 1.0),), original_cost=cost, block_id=block_id)


def optimal_result(master, values, duals, basic=None, objective=0.0):
    """LPResult over artificials (all zero) followed by the given column values."""
    offset = master.num_artificials
    primal = np.zeros(offset + len(values))
    primal[offset:] = values
    flags = np.zeros(primal.size, dtype=bool)
    for pos in basic or []:
        flags[offset + pos] = True
    return LPResult(
        status=SolutionStatus.OPTIMAL,
        objective_value=objective,
        primal=primal,
        dual=np.asarray(duals, dtype=float),
        basic=flags,
    )


@pytest.fixture
def scripted(two_block_models):
    master_model, _ = two_block_models
    return ScriptedMaster(master_model, [0, 1])


# =============================================================================
# MasterSolution
# =============================================================================


class TestMasterSolution:
    """Tests for MasterSolution."""

    def test_default_status(self):
        solution = MasterSolution()
        assert solution.status == SolutionStatus.NOT_SOLVED
        assert not solution.is_optimal
        assert solution.artificial_usage == 0.0

    def test_active_and_fractional_columns(self):
        solution = MasterSolution(
            status=SolutionStatus.OPTIMAL,
            objective_value=3.0,
            column_values={0: 1.0, 1: 0.5, 2: 0.0},
        )
        assert sorted(solution.get_active_columns()) == [0, 1]
        assert solution.get_fractional_columns() == [1]

    def test_artificial_usage(self):
        solution = MasterSolution(artificial_values=np.array([0.0, 0.25, 1.0]))
        assert solution.artificial_usage == pytest.approx(1.25)

    def test_get_dual(self):
        solution = MasterSolution(dual_values=np.array([1.0, -2.0]))
        assert solution.get_dual(1) == -2.0
        assert solution.get_dual(5, default=9.0) == 9.0

    def test_summary(self):
        solution = MasterSolution(status=SolutionStatus.OPTIMAL, objective_value=2.5)
        assert "OPTIMAL" in solution.summary()
        assert "2.5" in solution.summary()


# =============================================================================
# MasterProblem bookkeeping
# =============================================================================


class TestMasterLayout:
    """Row layout, artificials and column coefficients."""

    def test_row_layout(self, scripted):
        assert scripted.num_coupling_rows == 1
        assert scripted.num_rows == 3
        assert scripted.convexity_row(0) == 1
        assert scripted.convexity_row(1) == 2
        assert scripted.row_names() == ["cap", "conv(0)", "conv(1)"]
        assert [(lo, up) for lo, up, _, _ in scripted.rows] == [
            (-math.inf, 1.0), (1.0, 1.0), (1.0, 1.0)
        ]

    def test_artificial_layout(self, scripted):
        assert scripted.num_artificials == 3
        cost = DecompConfig().artificial_cost
        assert scripted.cols == [
            (cost, [0], [-1.0]),
            (cost, [1], [1.0]),
            (cost, [2], [1.0]),
        ]

    def test_ranged_row_gets_two_artificials(self):
        model = MasterModel(
            num_cols=1,
            objective=np.array([1.0]),
            rows=[Row.from_dict({0: 1.0}, lower=0.5, upper=2.0)],
        )
        master = ScriptedMaster(model, [0])
        assert master.num_artificials == 3

    def test_without_artificials(self, two_block_models):
        master_model, _ = two_block_models
        master = ScriptedMaster(master_model, [0, 1], DecompConfig(use_artificials=False))
        assert master.num_artificials == 0
        assert master.cols == []

    def test_duplicate_block_ids(self, two_block_models):
        master_model, _ = two_block_models
        with pytest.raises(ValueError):
            ScriptedMaster(master_model, [0, 0])

    def test_add_column(self, scripted):
        col = unit_column(0, 0, 1.0)
        col_id = scripted.add_column(col)
        assert col_id == 0
        assert col.is_frozen
        assert scripted.num_columns == 1
        assert scripted.cols[-1] == (1.0, [0, 1], [1.0, 1.0])

    def test_add_column_rejects(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        with pytest.raises(ValueError):
            scripted.add_column(unit_column(0, 0, 1.0))
        with pytest.raises(ValueError):
            scripted.add_column(unit_column(0, 7, 1.0))
        with pytest.raises(ValueError):
            scripted.add_column(unit_column(12, 0, 1.0))

    def test_has_and_get_column(self, scripted):
        col = unit_column(3, 1, 2.0)
        scripted.add_column(col)
        assert scripted.has_column(unit_column(3, 1, 2.0))
        assert scripted.get_column(col.column_id) is col
        assert scripted.get_column(99) is None

    def test_add_and_remove_cut_rows(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        scripted.add_column(unit_column(1, 0, 3.0))
        cut = Row.from_dict({0: 1.0, 1: 1.0}, upper=1.0, name="cut")
        assert scripted.add_row(cut) == 3
        assert scripted.rows[-1] == (-math.inf, 1.0, [3, 4], [1.0, 1.0])
        assert scripted.num_cut_rows == 1
        assert scripted.row_name(3) == "cut"

        # New columns get their cut coefficient
        scripted.add_column(unit_column(2, 1, 1.0))
        scripted.add_column(Column(entries=((0, 1.0), (1, 1.0)), original_cost=4.0, block_id=0))
        assert scripted.cols[-1] == (4.0, [0, 3, 1], [1.0, 2.0, 1.0])

        assert scripted.remove_last_rows(1) == [cut]
        assert scripted.num_rows == 3
        with pytest.raises(ValueError):
            scripted.remove_last_rows(1)

    def test_cut_row_out_of_range(self, scripted):
        with pytest.raises(ValueError):
            scripted.add_row(Row.from_dict({10: 1.0}, upper=1.0))


class TestDualsAndBounds:
    """Reduced costs, convexity duals and the Lagrangian bound."""

    def test_reduced_cost_vector(self, scripted):
        prices = scripted.reduced_cost_vector(np.array([-2.0, 5.0, 1.0]))
        np.testing.assert_allclose(prices, [3.0, 3.0, 3.0, 2.0])

    def test_reduced_cost_vector_includes_cuts(self, scripted):
        scripted.add_row(Row.from_dict({1: 2.0}, lower=1.0, name="cut"))
        prices = scripted.reduced_cost_vector(np.array([0.0, 0.0, 0.0, 0.5]))
        np.testing.assert_allclose(prices, [1.0, 2.0, 1.0, 2.0])

    def test_wrong_dual_length(self, scripted):
        with pytest.raises(ValueError):
            scripted.reduced_cost_vector(np.zeros(2))

    def test_convexity_dual(self, scripted):
        duals = np.array([-2.0, 5.0, 1.0])
        assert scripted.convexity_dual(duals, 0) == 5.0
        assert scripted.convexity_dual(duals, 1) == 1.0

    def test_lagrangian_bound(self, scripted):
        duals = np.array([-2.0, 5.0, 1.0])
        # -2 * 1 + (5 - 1) + (1 + 0)
        assert scripted.lagrangian_bound(duals, {0: -1.0, 1: 0.5}) == pytest.approx(3.0)

    def test_lagrangian_bound_needs_finite_rhs(self, scripted):
        # A positive dual on a row without lower bound has no finite rhs
        duals = np.array([2.0, 5.0, 1.0])
        assert scripted.lagrangian_bound(duals, {0: 0.0, 1: 0.0}) is None

    def test_lagrangian_bound_needs_block_bounds(self, scripted):
        duals = np.array([0.0, 5.0, 1.0])
        assert scripted.lagrangian_bound(duals, {0: 0.0, 1: None}) is None
        assert scripted.lagrangian_bound(duals, {0: 0.0}) is None

    def test_fractional_solution(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        scripted.add_column(Column(entries=((0, 1.0), (1, 2.0)), original_cost=1.0, block_id=0))
        solution = MasterSolution(column_values={0: 0.5, 1: 0.5})
        np.testing.assert_allclose(scripted.fractional_solution(solution), [1.0, 1.0, 0.0, 0.0])


class TestSolve:
    """MasterProblem.solve(): translation, retries and errors."""

    def test_solution_translation(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        scripted.add_column(unit_column(3, 1, 2.0))
        scripted.results.append(
            optimal_result(scripted, [1.0, 1.0], [0.0, 1.0, 2.0], basic=[0, 1], objective=3.0)
        )
        solution = scripted.solve()
        assert solution.is_optimal
        assert solution.objective_value == 3.0
        assert solution.column_values == {0: 1.0, 1: 1.0}
        assert solution.basic_columns == {0, 1}
        assert solution.artificial_values.size == 3
        assert solution.num_rows == 3
        assert scripted.num_solves == 1
        assert scripted.last_solution is solution

    def test_numerical_failure_retried_once(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        scripted.results.extend([
            LPResult(status=SolutionStatus.NUMERICAL),
            optimal_result(scripted, [1.0], [0.0, 1.0, 0.0]),
        ])
        solution = scripted.solve()
        assert solution.is_optimal
        assert scripted.builds == 2
        # Artificials and the column are pushed again after the reset
        assert len(scripted.cols) == scripted.num_artificials + 1

    def test_numerical_failure_twice_raises(self, scripted):
        scripted.results.extend([
            LPResult(status=SolutionStatus.NUMERICAL),
            LPResult(status=SolutionStatus.ERROR),
        ])
        with pytest.raises(MasterNumericalFailure) as info:
            scripted.solve()
        assert info.value.retried

    def test_inf_or_unbounded_resolved_without_presolve(self, scripted):
        scripted.results.extend([
            LPResult(status=SolutionStatus.INF_OR_UNBOUNDED),
            LPResult(status=SolutionStatus.INFEASIBLE),
        ])
        with pytest.raises(MasterInfeasible):
            scripted.solve()
        assert scripted.presolve_calls == [True, False]

    def test_unbounded(self, scripted):
        scripted.results.append(LPResult(status=SolutionStatus.UNBOUNDED))
        with pytest.raises(MasterUnbounded):
            scripted.solve()


class TestCompression:
    """update_activity and compress_columns."""

    def test_update_activity(self, scripted):
        for index, block in ((0, 0), (1, 0), (2, 1)):
            scripted.add_column(unit_column(index, block, 1.0))
        solution = MasterSolution(column_values={0: 1.0, 1: 0.0, 2: 0.0}, basic_columns={1})
        scripted.update_activity(solution)
        cols = scripted.columns
        assert (cols[0].times_active, cols[0].inactive_rounds) == (1, 0)
        assert cols[1].inactive_rounds == 0
        assert cols[2].inactive_rounds == 1

    def test_compress_only_inactive_zero_nonbasic(self, scripted):
        for index, block in ((0, 0), (1, 0), (2, 1), (3, 1)):
            scripted.add_column(unit_column(index, block, 1.0))
        for col in scripted.columns:
            col.inactive_rounds = 5
        scripted.columns[3].inactive_rounds = 1
        solution = MasterSolution(column_values={0: 0.0, 1: 0.5, 2: 0.0, 3: 0.0}, basic_columns={2})

        evicted = scripted.compress_columns(3, solution)
        assert [c.column_id for c in evicted] == [0]
        assert [c.column_id for c in scripted.columns] == [1, 2, 3]
        assert len(scripted.cols) == scripted.num_artificials + 3
        assert not scripted.has_column(unit_column(0, 0, 1.0))

    def test_threshold_zero_disables(self, scripted):
        scripted.add_column(unit_column(0, 0, 1.0))
        scripted.columns[0].inactive_rounds = 100
        assert scripted.compress_columns(0, MasterSolution(column_values={0: 0.0})) == []

    @pytest.mark.parametrize("seed", range(5))
    def test_never_evicts_nonzero_column(self, two_block_models, seed):
        rng = random.Random(seed)
        master_model, _ = two_block_models
        master = ScriptedMaster(master_model, [0, 1])
        for index in range(4):
            master.add_column(unit_column(index, index // 2, 1.0))
            master.add_column(Column(
                entries=((index, 1.0), (2 * (index // 2) + (1 - index % 2), 0.5)),
                original_cost=1.0, block_id=index // 2,
            ))

        for _ in range(10):
            values = {
                c.column_id: rng.choice([0.0, 0.0, 1e-12, 0.3, 1.0]) for c in master.columns
            }
            basic = {c.column_id for c in master.columns if rng.random() < 0.3}
            for col in master.columns:
                col.inactive_rounds = rng.randint(0, 4)
            solution = MasterSolution(column_values=values, basic_columns=basic)
            for col in master.compress_columns(2, solution):
                assert values[col.column_id] == 0.0
                assert col.column_id not in basic


# =============================================================================
# HiGHS
# =============================================================================


@pytest.mark.skipif(not HIGHS_AVAILABLE, reason="HiGHS not installed")
class TestHiGHSMasterProblem:
    """Tests for HiGHSMasterProblem."""

    def _master_with_columns(self, two_block_models):
        master_model, _ = two_block_models
        master = HiGHSMasterProblem(master_model, [0, 1])
        for index, block, cost in ((0, 0, 1.0), (1, 0, 3.0), (2, 1, 1.0), (3, 1, 2.0)):
            master.add_column(unit_column(index, block, cost))
        return master

    def test_solve_lp(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        solution = master.solve()
        assert solution.is_optimal
        assert solution.objective_value == pytest.approx(3.0)
        assert solution.artificial_usage == pytest.approx(0.0)
        x = master.fractional_solution(solution)
        np.testing.assert_allclose(x, [1.0, 0.0, 0.0, 1.0], atol=1e-9)

    def test_duals_price_columns_nonnegative(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        solution = master.solve()
        prices = master.reduced_cost_vector(solution.dual_values)
        for col in master.columns:
            rc = col.price(prices) - master.convexity_dual(solution.dual_values, col.block_id)
            assert rc >= -1e-7
            if solution.column_values[col.column_id] > 1e-9:
                assert rc == pytest.approx(0.0, abs=1e-7)

    def test_artificials_only(self, two_block_models):
        master_model, _ = two_block_models
        master = HiGHSMasterProblem(master_model, [0, 1])
        solution = master.solve()
        assert solution.is_optimal
        assert solution.artificial_usage == pytest.approx(2.0)
        assert solution.objective_value == pytest.approx(2 * DecompConfig().artificial_cost)

    def test_infeasible_without_artificials(self, two_block_models):
        master_model, _ = two_block_models
        master = HiGHSMasterProblem(master_model, [0, 1], DecompConfig(use_artificials=False))
        with pytest.raises(MasterInfeasible):
            master.solve()

    def test_cut_row_and_rollback(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        master.solve()
        # Forbid x0: block 0 must use x1 (cost 3); optimum becomes x1 + x2 = 4
        master.add_row(Row.from_dict({0: 1.0}, upper=0.0, name="no_x0"))
        solution = master.solve()
        assert solution.objective_value == pytest.approx(4.0)
        assert solution.dual_values.size == 4

        master.remove_last_rows(1)
        assert master.solve().objective_value == pytest.approx(3.0)

    def test_compress_then_resolve(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        solution = master.solve()
        for col in master.columns:
            col.inactive_rounds = 10
        evicted = master.compress_columns(5, solution)
        assert all(solution.column_values[c.column_id] == 0.0 for c in evicted)
        assert master.solve().objective_value == pytest.approx(3.0)

    def test_reset_keeps_model(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        master.reset()
        assert master.solve().objective_value == pytest.approx(3.0)
        stats = master.get_model_stats()
        assert stats['num_columns'] == master.num_artificials + 4
        assert stats['num_rows'] == 3

    def test_summary(self, two_block_models):
        master = self._master_with_columns(two_block_models)
        assert "Convexity rows: 2" in master.summary()
