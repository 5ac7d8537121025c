"""
Pricing oracle interface.

A pricing oracle solves one block's subproblem for a given price vector:
find a point s of the block's feasible region minimizing

    reduced_cost(s) = prices . s - target

where prices = c - A^T u (u are the coupling and cut row duals, see
MasterProblem.reduced_cost_vector) and target is the dual of the block's
convexity row. A column is improving when its reduced cost is negative.

Oracles are plain objects satisfying the PricingOracle protocol; any class
with a matching price() method qualifies. FunctionOracle adapts a callable.

Contract:
--------
- Columns are expressed in master indices (use BlockModel.translate)
- Returned columns carry their reduced cost; the engine recomputes it
  and discards columns that are not improving
- lower_bound, when known, bounds the block's minimum reduced cost from
  below and feeds the Lagrangian bound
- INITIAL mode is used once per block to seed the master; target is
  meaningless there and oracles may return no column
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Protocol, Union, runtime_checkable

import numpy as np

from decompcg.core.column import Column


class PricingMode(Enum):
    """
    Why the oracle is called.
    """
    NORMAL = auto()   # Regular pricing against (smoothed) duals
    INITIAL = auto()  # Seeding the master with the original objective as prices


class PricingStatus(Enum):
    """
    Status of one oracle call.
    """
    OPTIMAL = auto()     # Solved; columns (possibly none) returned
    INFEASIBLE = auto()  # The block has no feasible point


@dataclass
class PricingResult:
    """
    Result of one oracle call.

    Attributes:
        status: Oracle status
        columns: Columns with negative reduced cost (master indices)
        lower_bound: Lower bound on the block's minimum reduced cost
            (None if unknown)
        solve_time: Time spent in the oracle in seconds
        timed_out: The call missed the round's time budget
        block_id: Block the result belongs to (filled in by the round)
    """
    status: PricingStatus = PricingStatus.OPTIMAL
    columns: List[Column] = field(default_factory=list)
    lower_bound: Optional[float] = None
    solve_time: float = 0.0
    timed_out: bool = False
    block_id: Optional[int] = None

    @property
    def has_columns(self) -> bool:
        return bool(self.columns)

    @property
    def num_columns(self) -> int:
        return len(self.columns)

    @property
    def best_reduced_cost(self) -> Optional[float]:
        """Most negative reduced cost among the returned columns."""
        costs = [c.reduced_cost for c in self.columns if c.reduced_cost is not None]
        return min(costs) if costs else None

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = [
            "PricingResult:",
            f"  Status: {self.status.name}",
            f"  Columns found: {self.num_columns}",
        ]
        if self.best_reduced_cost is not None:
            lines.append(f"  Best reduced cost: {self.best_reduced_cost:.6f}")
        if self.lower_bound is not None:
            lines.append(f"  Lower bound: {self.lower_bound:.6f}")
        if self.timed_out:
            lines.append("  Timed out")
        lines.append(f"  Solve time: {self.solve_time:.3f}s")
        return "\n".join(lines)

    def __repr__(self) -> str:
        rc = self.best_reduced_cost
        rc_str = f", rc={rc:.4f}" if rc is not None else ""
        return f"PricingResult({self.status.name}, cols={self.num_columns}{rc_str})"


@runtime_checkable
class PricingOracle(Protocol):
    """
    Structural interface of a block pricing oracle.

    Example:
        >>> class MyOracle:
        ...     def price(self, block_id, prices, target, mode=PricingMode.NORMAL):
        ...         return PricingResult(status=PricingStatus.OPTIMAL)
        >>> isinstance(MyOracle(), PricingOracle)
        True
    """

    def price(
        self,
        block_id: int,
        prices: np.ndarray,
        target: float,
        mode: PricingMode = PricingMode.NORMAL,
    ) -> PricingResult:
        """
        Price one block.

        Args:
            block_id: Block to price
            prices: Dense price vector over master indices (c - A^T u)
            target: Dual of the block's convexity row
            mode: NORMAL or INITIAL

        Returns:
            PricingResult
        """
        ...


OracleFunction = Callable[
    [int, np.ndarray, float, PricingMode],
    Union[PricingResult, Iterable[Column]],
]


class FunctionOracle:
    """
    Adapt a plain callable into a PricingOracle.

    The callable receives (block_id, prices, target, mode) and returns a
    PricingResult or an iterable of columns. Bare columns get their reduced
    cost filled in and no lower bound.

    Example:
        >>> def enumerate_paths(block_id, prices, target, mode):
        ...     return [col for col in known_paths[block_id]]
        >>> oracle = FunctionOracle(enumerate_paths)
    """

    def __init__(self, func: OracleFunction, name: str = ""):
        self._func = func
        self.name = name or getattr(func, '__name__', 'oracle')

    def price(
        self,
        block_id: int,
        prices: np.ndarray,
        target: float,
        mode: PricingMode = PricingMode.NORMAL,
    ) -> PricingResult:
        start = time.time()
        answer = self._func(block_id, prices, target, mode)
        if isinstance(answer, PricingResult):
            if not answer.solve_time:
                answer.solve_time = time.time() - start
            return answer

        columns = list(answer)
        for column in columns:
            if column.reduced_cost is None:
                column.reduced_cost = column.price(prices) - target
        return PricingResult(
            status=PricingStatus.OPTIMAL,
            columns=columns,
            solve_time=time.time() - start,
        )

    def __repr__(self) -> str:
        return f"FunctionOracle({self.name})"
