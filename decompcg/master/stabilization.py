"""
Dual stabilization (smoothing) for column generation.

Column generation duals tend to oscillate from one master solve to the
next. Smoothing prices the blocks at a convex combination of the current
master duals and a stabilization center:

    dual_st = alpha * dual + (1 - alpha) * dual_rm

where dual_rm are the raw duals of the restricted master and dual is the
center. The center moves to dual_st whenever the Lagrangian bound computed
at dual_st strictly improves the best bound seen so far.

The three vectors always have one entry per master row; resize() keeps
them aligned when cut rows are added or rolled back.
"""

import logging
from collections.abc import Sequence
from typing import Optional

import numpy as np

from decompcg.config import DecompConfig
from decompcg.errors import ConfigurationError

logger = logging.getLogger(__name__)


class DualStabilizer:
    """
    Maintain the dual center and apply smoothing.

    Attributes:
        enabled: Smoothing active; when False smooth() returns dual_rm
        alpha: Weight of the center, in [0, 1)
        dual: Stabilization center
        dual_rm: Raw duals of the latest master solve
        dual_st: Smoothed duals handed to pricing
        best_bound: Best Lagrangian bound recorded through update_bound()

    Example:
        >>> stab = DualStabilizer(num_rows=2, alpha=0.5, enabled=True)
        >>> stab.smooth(np.array([1.0, 2.0]), first_call=True)
        array([1., 2.])
        >>> stab.smooth(np.array([3.0, 2.0]))
        array([2., 2.])
    """

    def __init__(self, num_rows: int = 0, alpha: float = 0.5, enabled: bool = False):
        if not 0.0 <= alpha < 1.0:
            raise ConfigurationError(f"DualStabAlpha must lie in [0, 1), got {alpha}")
        self.enabled = enabled
        self.alpha = float(alpha)
        self.dual = np.zeros(num_rows)
        self.dual_rm = np.zeros(num_rows)
        self.dual_st = np.zeros(num_rows)
        self.best_bound = -np.inf
        self._phase_start = True

    @classmethod
    def from_config(cls, config: DecompConfig, num_rows: int = 0) -> 'DualStabilizer':
        """Create a stabilizer from DualStab / DualStabAlpha."""
        return cls(num_rows=num_rows, alpha=config.dual_stab_alpha, enabled=config.dual_stab)

    @property
    def num_rows(self) -> int:
        return self.dual_rm.size

    @property
    def tracing(self) -> bool:
        """True if per-row dual traces are logged."""
        return logger.isEnabledFor(logging.DEBUG)

    def resize(self, num_rows: int) -> None:
        """Pad with zeros or truncate all vectors to num_rows."""
        self.dual = _fit(self.dual, num_rows)
        self.dual_rm = _fit(self.dual_rm, num_rows)
        self.dual_st = _fit(self.dual_st, num_rows)

    def start_phase(self) -> None:
        """The next smooth() call re-initializes the center."""
        self._phase_start = True

    def smooth(self, dual_rm: np.ndarray, first_call: bool = False) -> np.ndarray:
        """
        Compute the duals used for pricing.

        Args:
            dual_rm: Raw master duals (one per row)
            first_call: First pricing call of the node; the center is set to
                dual_rm so the result equals dual_rm

        Returns:
            dual_st (a copy)
        """
        dual_rm = np.asarray(dual_rm, dtype=float)
        if dual_rm.size != self.dual.size:
            self.resize(dual_rm.size)
        self.dual_rm = dual_rm.copy()

        if not self.enabled:
            self.dual_st = self.dual_rm.copy()
            return self.dual_st.copy()

        if first_call or self._phase_start:
            self.dual = self.dual_rm.copy()
            self._phase_start = False

        self.dual_st = self.alpha * self.dual + (1.0 - self.alpha) * self.dual_rm
        return self.dual_st.copy()

    def update_bound(self, bound: Optional[float]) -> bool:
        """
        Record a Lagrangian bound computed at dual_st.

        Returns:
            True if the bound strictly improved and the center moved
        """
        if bound is None or not bound > self.best_bound:
            return False
        self.best_bound = float(bound)
        if self.enabled:
            self.dual = self.dual_st.copy()
        return True

    def is_smoothed(self, tol: float = 1e-12) -> bool:
        """True if dual_st differs from dual_rm."""
        if self.dual_st.size != self.dual_rm.size:
            return True
        return bool(np.any(np.abs(self.dual_st - self.dual_rm) > tol))

    def log_duals(self, row_names: Optional[Sequence[str]] = None) -> None:
        """Trace the three dual vectors row by row at DEBUG level."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        for r in range(self.dual_rm.size):
            name = row_names[r] if row_names is not None and r < len(row_names) else str(r)
            logger.debug(
                "r: %s dual: %.6g dual_rm: %.6g dual_st: %.6g",
                name, self.dual[r], self.dual_rm[r], self.dual_st[r],
            )

    def __repr__(self) -> str:
        return (
            f"DualStabilizer(enabled={self.enabled}, alpha={self.alpha}, "
            f"rows={self.num_rows})"
        )


def _fit(vector: np.ndarray, size: int) -> np.ndarray:
    if vector.size >= size:
        return vector[:size].copy()
    return np.concatenate([vector, np.zeros(size - vector.size)])
