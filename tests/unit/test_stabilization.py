"""
Tests for dual stabilization (DualStabilizer).
"""

import logging

import numpy as np
import pytest

from decompcg.config import DecompConfig
from decompcg.errors import ConfigurationError
from decompcg.master.stabilization import DualStabilizer


class TestDualStabilizer:
    """Tests for smoothing and center updates."""

    def test_invalid_alpha(self):
        with pytest.raises(ConfigurationError):
            DualStabilizer(alpha=1.0)
        with pytest.raises(ConfigurationError):
            DualStabilizer(alpha=-0.5)

    def test_from_config(self):
        stab = DualStabilizer.from_config(DecompConfig(dual_stab=True, dual_stab_alpha=0.2), 3)
        assert stab.enabled
        assert stab.alpha == 0.2
        assert stab.num_rows == 3

    def test_disabled_returns_raw(self):
        stab = DualStabilizer(num_rows=2, alpha=0.9, enabled=False)
        stab.smooth(np.array([1.0, 1.0]), first_call=True)
        np.testing.assert_array_equal(stab.smooth(np.array([3.0, 4.0])), [3.0, 4.0])
        assert not stab.is_smoothed()

    def test_first_call_equals_raw(self):
        stab = DualStabilizer(num_rows=3, alpha=0.7, enabled=True)
        stab.dual = np.array([100.0, -100.0, 5.0])
        dual_rm = np.array([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(stab.smooth(dual_rm, first_call=True), dual_rm)
        np.testing.assert_array_equal(stab.dual, dual_rm)

    def test_first_call_of_new_phase_equals_raw(self):
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.array([1.0, 2.0]), first_call=True)
        stab.smooth(np.array([3.0, 2.0]))
        stab.start_phase()
        dual_rm = np.array([-4.0, 8.0])
        np.testing.assert_array_equal(stab.smooth(dual_rm), dual_rm)

    def test_convex_combination(self):
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.array([1.0, 2.0]), first_call=True)
        np.testing.assert_allclose(stab.smooth(np.array([3.0, 2.0])), [2.0, 2.0])
        assert stab.is_smoothed()

    @pytest.mark.parametrize("seed", range(3))
    def test_alpha_zero_gives_raw_duals(self, seed):
        rng = np.random.default_rng(seed)
        stab = DualStabilizer(num_rows=5, alpha=0.0, enabled=True)
        stab.smooth(rng.normal(size=5), first_call=True)
        for _ in range(5):
            stab.update_bound(float(rng.normal()))
            dual_rm = rng.normal(size=5)
            np.testing.assert_array_equal(stab.smooth(dual_rm), dual_rm)
            assert not stab.is_smoothed()

    def test_center_moves_only_on_strict_improvement(self):
        stab = DualStabilizer(num_rows=1, alpha=0.5, enabled=True)
        stab.smooth(np.array([0.0]), first_call=True)
        st = stab.smooth(np.array([4.0]))
        np.testing.assert_allclose(st, [2.0])

        assert stab.update_bound(1.0)
        np.testing.assert_allclose(stab.dual, [2.0])

        stab.smooth(np.array([6.0]))  # dual_st = 4
        assert not stab.update_bound(1.0)
        np.testing.assert_allclose(stab.dual, [2.0])
        assert not stab.update_bound(None)
        assert stab.update_bound(1.5)
        np.testing.assert_allclose(stab.dual, [4.0])

    def test_best_bound_non_decreasing(self):
        rng = np.random.default_rng(7)
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.zeros(2), first_call=True)
        previous = stab.best_bound
        for _ in range(50):
            stab.smooth(rng.normal(size=2))
            stab.update_bound(float(rng.normal()))
            assert stab.best_bound >= previous
            previous = stab.best_bound

    def test_resize(self):
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.array([1.0, 2.0]), first_call=True)
        stab.resize(4)
        np.testing.assert_array_equal(stab.dual, [1.0, 2.0, 0.0, 0.0])
        assert stab.num_rows == 4
        stab.resize(1)
        np.testing.assert_array_equal(stab.dual_rm, [1.0])

    def test_smooth_pads_to_new_row_count(self):
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.array([2.0, 2.0]), first_call=True)
        st = stab.smooth(np.array([4.0, 4.0, 4.0]))
        np.testing.assert_allclose(st, [3.0, 3.0, 2.0])

    def test_log_duals(self, caplog):
        stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        stab.smooth(np.array([1.0, 2.0]), first_call=True)
        with caplog.at_level(logging.DEBUG, logger="decompcg.master.stabilization"):
            assert stab.tracing
            stab.log_duals(["cap", "conv(0)"])
        assert "r: conv(0) dual: 2 dual_rm: 2 dual_st: 2" in caplog.text
