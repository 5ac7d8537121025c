"""
Tests for the cut pool.
"""

import numpy as np

from decompcg.core.model import Row
from decompcg.cuts import CutPool


class TestCutPool:
    """Tests for CutPool."""

    def test_add_deduplicates(self):
        pool = CutPool()
        cut = Row.from_dict({0: 1.0, 1: 1.0}, upper=1.0, name="clique")
        assert pool.add([cut, cut]) == [cut]
        assert len(pool) == 1
        assert pool.add([cut]) == []

    def test_duplicates_ignore_name(self):
        pool = CutPool()
        pool.add([Row.from_dict({0: 1.0}, upper=1.0, name="a")])
        renamed = Row.from_dict({0: 1.0}, upper=1.0, name="b")
        assert pool.contains(renamed)
        assert pool.add([renamed]) == []

    def test_different_bounds_are_different_cuts(self):
        pool = CutPool()
        pool.add([Row.from_dict({0: 1.0}, upper=1.0)])
        assert pool.add([Row.from_dict({0: 1.0}, upper=2.0)]) != []

    def test_violated_sorted_by_violation(self):
        pool = CutPool()
        small = Row.from_dict({0: 1.0}, upper=0.9, name="small")
        large = Row.from_dict({1: 1.0}, upper=0.2, name="large")
        satisfied = Row.from_dict({2: 1.0}, upper=1.0, name="ok")
        pool.add([small, large, satisfied])
        x = np.array([1.0, 1.0, 0.5])
        assert [r.name for r in pool.violated(x)] == ["large", "small"]
        assert [r.name for r in pool.violated(x, tol=0.5)] == ["large"]

    def test_violated_exclude(self):
        pool = CutPool()
        cut = Row.from_dict({0: 1.0}, upper=0.0, name="c")
        pool.add([cut])
        assert pool.violated(np.array([1.0]), exclude=[cut]) == []

    def test_usage_counter(self):
        pool = CutPool()
        cut = Row.from_dict({0: 1.0}, upper=0.0)
        pool.add([cut])
        pool.mark_used(cut)
        pool.mark_used(cut)
        assert pool.uses(cut) == 2
        assert pool.uses(Row.from_dict({1: 1.0}, upper=0.0)) == 0

    def test_clear_and_iter(self):
        pool = CutPool()
        rows = [Row.from_dict({i: 1.0}, upper=1.0) for i in range(3)]
        pool.add(rows)
        assert list(pool) == rows
        pool.clear()
        assert len(pool) == 0
