"""
Integration tests for the multi-commodity flow application.

These tests verify that:
1. MCF instances can be parsed, written and validated
2. Master and block models have the documented layout
3. Column generation reaches the LP bound of frac2 in every configuration
"""

import numpy as np
import pytest

from decompcg.applications.mcf import (
    FRAC2_TEXT,
    Commodity,
    MCFArc,
    MCFInstance,
    build_block_models,
    build_master_model,
    build_networks,
    build_oracles,
    commodity_flows,
    solve_mcf,
)
from decompcg.config import DecompConfig
from decompcg.core.model import Row
from decompcg.master import HIGHS_AVAILABLE
from decompcg.parsers import MCFParser, ParserConfig
from decompcg.pricing import PricingMode, ShortestPathOracle
from decompcg.solver import DecompHooks, NodeStatus

FRAC2_BOUND = 12.0

needs_highs = pytest.mark.skipif(not HIGHS_AVAILABLE, reason="HiGHS not installed")


def random_instance(seed, num_nodes=7, num_commodities=4):
    """
    Congested random instance that always has a feasible flow.

    A two-way ring of expensive arcs with room for every demand keeps it
    feasible; cheap random shortcuts with small capacities make the
    commodities compete.
    """
    rng = np.random.default_rng(seed)
    commodities = []
    while len(commodities) < num_commodities:
        source, sink = (int(v) for v in rng.choice(num_nodes, size=2, replace=False))
        commodities.append(Commodity(source=source, sink=sink, demand=float(rng.integers(1, 4))))
    total = sum(c.demand for c in commodities)

    arcs = []
    pairs = set()
    for i in range(num_nodes):
        for tail, head in ((i, (i + 1) % num_nodes), ((i + 1) % num_nodes, i)):
            pairs.add((tail, head))
            arcs.append(MCFArc(tail=tail, head=head, ub=total, weight=10.0))
    for _ in range(3 * num_nodes):
        tail, head = (int(v) for v in rng.choice(num_nodes, size=2, replace=False))
        if (tail, head) in pairs:
            continue
        pairs.add((tail, head))
        arcs.append(MCFArc(tail=tail, head=head, ub=float(rng.integers(1, 4)),
                           weight=float(rng.integers(1, 4))))
    return MCFInstance(num_nodes=num_nodes, arcs=arcs, commodities=commodities,
                       name=f"random{seed}")


# =============================================================================
# Parsing
# =============================================================================


class TestMCFParser:
    """Tests for reading the p/d/a format."""

    def test_frac2(self, frac2_instance):
        assert frac2_instance.name == "frac2"
        assert frac2_instance.num_nodes == 6
        assert frac2_instance.num_arcs == 12
        assert frac2_instance.num_commodities == 4
        assert frac2_instance.commodities[1] == Commodity(source=1, sink=2, demand=2.0)
        assert frac2_instance.arcs[-1] == MCFArc(tail=5, head=4, lb=0.0, ub=1.0, weight=1.0)

    def test_to_text_reads_back(self, frac2_instance):
        again = MCFInstance.from_text(frac2_instance.to_text())
        assert again == frac2_instance

    def test_comments_and_blank_lines(self):
        text = "# a comment\n\nc another comment\n" + FRAC2_TEXT
        assert MCFInstance.from_text(text).num_arcs == 12

    def test_from_file(self, tmp_path):
        path = tmp_path / "frac2.txt"
        path.write_text(FRAC2_TEXT)
        instance = MCFInstance.from_file(path)
        assert instance.num_commodities == 4
        assert MCFParser().can_parse(path)

    def test_can_parse_rejects_other_files(self, tmp_path):
        path = tmp_path / "other.txt"
        path.write_text("NAME something\n")
        parser = MCFParser()
        assert not parser.can_parse(path)
        assert not parser.can_parse(tmp_path / "missing.txt")

    def test_custom_comment_prefix(self):
        parser = MCFParser(ParserConfig(comment_prefixes=("%",)))
        instance = parser.parse_text("% header\n" + FRAC2_TEXT)
        assert instance.num_nodes == 6

    def test_format_name(self):
        assert MCFParser().get_format_name() == "MCF"

    @pytest.mark.parametrize("text, message", [
        ("", "Empty"),
        ("d 0 1 1\n", "expected 'p'"),
        ("p x 3 1\n", "4 fields"),
        ("p x 3 1 1\nd 0 1\na 0 1 0 1 1\n", "Line 2"),
        ("p x 3 1 1\nd 0 1 1\na 0 one 0 1 1\n", "expected an integer"),
        ("p x 3 1 1\nd 0 1 1\na 0 1 0 big 1\n", "expected a number"),
        ("p x 3 1 1\nd 0 1 1\nq 0 1\n", "unknown record"),
        ("p x 3 2 1\nd 0 1 1\na 0 1 0 1 1\n", "Expected 2 arcs"),
        ("p x 3 1 2\nd 0 1 1\na 0 1 0 1 1\n", "Expected 2 commodities"),
    ])
    def test_malformed(self, text, message):
        with pytest.raises(ValueError, match=message):
            MCFParser().parse_text(text)

    def test_invalid_instance(self):
        with pytest.raises(ValueError, match="unknown node"):
            MCFParser().parse_text("p x 3 1 1\nd 0 1 1\na 0 7 0 1 1\n")
        with pytest.raises(ValueError, match="source == sink"):
            MCFInstance(num_nodes=3, arcs=[MCFArc(0, 1)], commodities=[Commodity(1, 1)])


# =============================================================================
# Model construction
# =============================================================================


class TestMCFModels:
    """Tests for the master and block models."""

    def test_indexing(self, frac2_instance):
        assert frac2_instance.num_cols == 48
        assert frac2_instance.col_index(1, 2) == 14
        assert frac2_instance.active_columns(3) == list(range(36, 48))

    def test_master_rows(self, frac2_instance):
        master = build_master_model(frac2_instance)
        assert master.num_cols == 48
        assert master.num_rows == 12 + 4
        assert master.rows[0].name == "e(0_1)"
        assert master.rows[12].name == "d(0_0)"
        assert master.rows[13].name == "d(1_1)"
        assert master.col_names[14] == "x(1_1,2)"
        assert master.validate() == []

    def test_capacity_row_uses_demands(self, frac2_instance):
        master = build_master_model(frac2_instance)
        cap = master.rows[0]
        assert cap.upper == 1.0
        assert dict(cap.coefficients) == {0: 1.0, 12: 2.0, 24: 2.0, 36: 1.0}

    def test_source_row(self, frac2_instance):
        master = build_master_model(frac2_instance)
        # Commodity 1 leaves node 1 on arcs 2, 3, 4
        row = master.rows[13]
        assert row.is_equality and row.lower == 1.0
        assert row.indices == (14, 15, 16)

    def test_objective(self, frac2_instance):
        master = build_master_model(frac2_instance)
        np.testing.assert_array_equal(master.objective[:12], np.ones(12))
        np.testing.assert_array_equal(master.objective[12:24], 2 * np.ones(12))

    def test_sparse_blocks(self, frac2_instance):
        blocks = build_block_models(frac2_instance)
        assert [b.block_id for b in blocks] == [0, 1, 2, 3]
        block = blocks[1]
        assert block.active_columns == tuple(range(12, 24))
        assert block.num_rows == 6
        assert block.rows[1].name == "flow(1_1_1,2)"
        source_row = block.rows[1]
        assert source_row.lower == source_row.upper == -1.0
        assert block.rows[2].lower == 1.0
        # Node 1: in via arcs 0 (0->1), 5 (2->1), 9 (4->1); out via 2, 3, 4
        assert dict(source_row.coefficients) == {
            0: 1.0, 2: -1.0, 3: -1.0, 4: -1.0, 5: 1.0, 9: 1.0,
        }

    def test_dense_blocks(self, frac2_instance):
        blocks = build_block_models(frac2_instance, sparse=False)
        block = blocks[2]
        assert block.active_columns == tuple(range(48))
        assert block.col_upper[24:36].tolist() == [1.0] * 12
        assert block.col_upper[:24].sum() == 0.0
        assert all(i in range(24, 36) for row in block.rows for i in row.indices)

    def test_single_path_is_block_feasible(self, frac2_instance):
        block = build_block_models(frac2_instance)[0]
        # Commodity 0: 0 -> 1 (arc 0), 1 -> 3 (arc 3)
        x = np.zeros(12)
        x[[0, 3]] = 1.0
        assert block.is_feasible(x)
        x[3] = 0.0
        assert not block.is_feasible(x)

    def test_networks(self, frac2_instance):
        networks = build_networks(frac2_instance)
        assert len(networks) == 4
        assert networks[1].source == 1 and networks[1].sink == 2
        assert [arc.cost for arc in networks[1].arcs] == [2.0] * 12

    def test_oracles(self, frac2_instance):
        oracles = build_oracles(frac2_instance)
        assert sorted(oracles) == [0, 1, 2, 3]
        assert isinstance(oracles[0], ShortestPathOracle)
        assert oracles[2].active_columns.tolist() == list(range(24, 36))

    def test_initial_oracle_answer(self, frac2_instance):
        master = build_master_model(frac2_instance)
        oracle = build_oracles(frac2_instance)[0]
        result = oracle.price(0, master.objective, 0.0, PricingMode.INITIAL)
        assert len(result.columns) == 1
        column = result.columns[0]
        # 0 -> 1 -> 3 or 0 -> 2 -> 3
        assert column.original_cost == pytest.approx(2.0)
        assert column.indices in ((0, 3), (1, 6))

    def test_commodity_flows(self, frac2_instance):
        x = np.zeros(48)
        x[[0, 3]] = 1.0
        x[14] = 0.5
        flows = commodity_flows(frac2_instance, x)
        assert flows[0] == {0: 1.0, 3: 1.0}
        assert flows[1] == {2: 0.5}
        assert flows[2] == {} and flows[3] == {}


# =============================================================================
# Solving
# =============================================================================


@needs_highs
class TestSolveMCF:
    """Column generation on frac2."""

    def test_frac2_bound(self, frac2_instance):
        result = solve_mcf(frac2_instance)
        assert result.status == NodeStatus.OPTIMAL
        assert result.bound == pytest.approx(FRAC2_BOUND, abs=1e-4)
        assert not result.is_integral()
        assert result.lagrangian_bound <= FRAC2_BOUND + 1e-4

    def test_solution_satisfies_master_rows(self, frac2_instance):
        result = solve_mcf(frac2_instance)
        x = result.fractional_solution
        master = build_master_model(frac2_instance)
        for row in master.rows:
            assert not row.is_violated(x, tol=1e-6), row.name
        assert master.objective_value(x) == pytest.approx(FRAC2_BOUND, abs=1e-4)

    def test_each_commodity_routes_one_unit(self, frac2_instance):
        result = solve_mcf(frac2_instance)
        blocks = build_block_models(frac2_instance)
        for block in blocks:
            local = result.fractional_solution[list(block.active_columns)]
            assert block.is_feasible(local, tol=1e-6)

    def test_dense_and_sparse_agree(self, frac2_instance):
        sparse = solve_mcf(frac2_instance, sparse=True)
        dense = solve_mcf(frac2_instance, sparse=False)
        assert dense.status == NodeStatus.OPTIMAL
        assert dense.bound == pytest.approx(sparse.bound, abs=1e-4)

    @pytest.mark.parametrize("alpha", [0.3, 0.5, 0.9])
    def test_dual_stabilization_same_bound(self, frac2_instance, alpha):
        config = DecompConfig(dual_stab=True, dual_stab_alpha=alpha)
        result = solve_mcf(frac2_instance, config=config)
        assert result.status == NodeStatus.OPTIMAL
        assert result.bound == pytest.approx(FRAC2_BOUND, abs=1e-4)

    def test_compression_same_bound(self, frac2_instance):
        config = DecompConfig(column_compression_threshold=1)
        result = solve_mcf(frac2_instance, config=config)
        assert result.status == NodeStatus.OPTIMAL
        assert result.bound == pytest.approx(FRAC2_BOUND, abs=1e-4)

    @pytest.mark.parametrize("seed", range(20))
    def test_dual_stabilization_matches_plain_bound(self, seed):
        instance = random_instance(seed)
        assert instance.validate() == []
        plain = solve_mcf(instance)
        stabilized = solve_mcf(instance, config=DecompConfig(dual_stab=True, dual_stab_alpha=0.5))

        assert plain.status == NodeStatus.OPTIMAL
        assert stabilized.status == NodeStatus.OPTIMAL
        assert stabilized.bound == pytest.approx(plain.bound, abs=1e-4)
        assert stabilized.history[-1].num_columns_added == 0
        if stabilized.history[-1].stabilized:
            assert stabilized.history[-1].misprice

    def test_parallel_pricing_same_bound(self, frac2_instance):
        config = DecompConfig(num_threads=4)
        result = solve_mcf(frac2_instance, config=config)
        assert result.bound == pytest.approx(FRAC2_BOUND, abs=1e-4)

    def test_bound_history_non_decreasing(self, frac2_instance):
        config = DecompConfig(dual_stab=True, dual_stab_alpha=0.5)
        result = solve_mcf(frac2_instance, config=config)
        bounds = [it.best_bound for it in result.history if it.best_bound is not None]
        assert bounds == sorted(bounds)
        assert bounds[-1] <= FRAC2_BOUND + 1e-4

    def test_hooks_see_every_round(self, frac2_instance):
        class Counter(DecompHooks):
            rounds = 0

            def on_pricing_round(self, event):
                Counter.rounds += 1

        result = solve_mcf(frac2_instance, hooks=Counter())
        assert Counter.rounds == len(result.history)

    def test_satisfied_cut_not_added(self, frac2_instance):
        class SourceCut:
            """x[0, 0] + x[0, 1] <= 1 holds for any flow of commodity 0."""

            def __init__(self):
                self.calls = 0

            def generate_cuts(self, x):
                self.calls += 1
                return [Row.from_dict({0: 1.0, 1: 1.0}, upper=1.0, name="src(0)")]

        generator = SourceCut()
        result = solve_mcf(frac2_instance, cut_generator=generator)
        assert result.status == NodeStatus.OPTIMAL
        assert result.bound == pytest.approx(FRAC2_BOUND, abs=1e-4)
        assert generator.calls == 1
        assert result.generated_cuts == []
        assert result.statistics.cut_calls_total == 1
