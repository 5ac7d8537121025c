"""
Pricing round - one oracle call per block against a single dual vector.

Blocks are independent given the prices, so a round prices them on a
ThreadPoolExecutor. The master is not touched while a round runs; the
round only returns validated columns for the caller to add.

Validation of oracle answers:
----------------------------
- A column owned by another block is dropped (WARNING)
- A column touching master indices outside its block is dropped (WARNING)
- The reduced cost is recomputed as column.price(prices) - target and the
  column is kept only if it is below -tolerance; a column the oracle
  claimed to be improving that is not is dropped (WARNING)
- A block that misses the round's time budget is treated as OPTIMAL with
  no column and no lower bound (OracleTimeout logged at WARNING)
- A block reported INFEASIBLE is priced again with its fallback oracle
  when one is registered
"""

import logging
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from decompcg.core.column import Column
from decompcg.core.model import BlockModel
from decompcg.errors import OracleTimeout
from decompcg.pricing.base import PricingMode, PricingOracle, PricingResult, PricingStatus

logger = logging.getLogger(__name__)


@dataclass
class RoundResult:
    """
    Outcome of one pricing round.

    Attributes:
        results: block_id -> PricingResult
        columns: Validated improving columns from all blocks
        timed_out: Blocks that missed the time budget
        infeasible: Blocks reported infeasible (after fallbacks)
        elapsed: Wall time of the round in seconds
    """
    results: Dict[int, PricingResult] = field(default_factory=dict)
    columns: List[Column] = field(default_factory=list)
    timed_out: List[int] = field(default_factory=list)
    infeasible: List[int] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def has_columns(self) -> bool:
        return bool(self.columns)

    @property
    def block_bounds(self) -> Dict[int, Optional[float]]:
        """block_id -> lower bound on the block's minimum reduced cost."""
        return {block_id: r.lower_bound for block_id, r in self.results.items()}

    @property
    def bound_valid(self) -> bool:
        """True if every block reported a lower bound and none timed out."""
        return not self.timed_out and all(
            r.lower_bound is not None for r in self.results.values()
        )

    def columns_for_block(self, block_id: int) -> List[Column]:
        return [c for c in self.columns if c.block_id == block_id]


class PricingRound:
    """
    Price every block once, in parallel, under an optional time budget.

    Example:
        >>> pricing = PricingRound(oracles, num_threads=4, time_budget=2.0)
        >>> result = pricing.run(block_ids, prices, targets)
        >>> for column in result.columns:
        ...     master.add_column(column)
    """

    def __init__(
        self,
        oracles: Mapping[int, PricingOracle],
        num_threads: int = 1,
        time_budget: Optional[float] = None,
        tolerance: float = 1e-6,
        fallback_oracles: Optional[Mapping[int, PricingOracle]] = None,
        block_models: Optional[Mapping[int, BlockModel]] = None,
    ):
        self._oracles = dict(oracles)
        self._fallbacks = dict(fallback_oracles or {})
        self._block_models = dict(block_models or {})
        self._num_threads = max(1, num_threads)
        self._time_budget = time_budget
        self._tolerance = tolerance

    @property
    def oracles(self) -> Dict[int, PricingOracle]:
        return self._oracles

    def run(
        self,
        block_ids: Sequence[int],
        prices: np.ndarray,
        targets: Mapping[int, float],
        mode: PricingMode = PricingMode.NORMAL,
    ) -> RoundResult:
        """
        Price the given blocks.

        Args:
            block_ids: Blocks to price
            prices: Dense price vector over master indices (c - A^T u)
            targets: block_id -> convexity dual
            mode: NORMAL or INITIAL

        Returns:
            RoundResult with validated columns
        """
        start = time.time()
        round_result = RoundResult()

        missing = [b for b in block_ids if b not in self._oracles]
        if missing:
            raise KeyError(f"No pricing oracle registered for blocks {missing}")

        executor = ThreadPoolExecutor(max_workers=self._num_threads)
        try:
            futures = {
                executor.submit(
                    self._oracles[block_id].price,
                    block_id, prices, targets.get(block_id, 0.0), mode,
                ): block_id
                for block_id in block_ids
            }
            done, not_done = wait(futures, timeout=self._time_budget)

            for future in not_done:
                block_id = futures[future]
                future.cancel()
                logger.warning(str(OracleTimeout(block_id, self._time_budget)))
                round_result.timed_out.append(block_id)
                round_result.results[block_id] = PricingResult(
                    status=PricingStatus.OPTIMAL, timed_out=True, block_id=block_id
                )

            for future in done:
                block_id = futures[future]
                round_result.results[block_id] = future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for block_id in block_ids:
            result = round_result.results[block_id]
            result.block_id = block_id
            if result.status == PricingStatus.INFEASIBLE and block_id in self._fallbacks:
                logger.info("Block %s infeasible for primary oracle, trying fallback", block_id)
                result = self._fallbacks[block_id].price(
                    block_id, prices, targets.get(block_id, 0.0), mode
                )
                result.block_id = block_id
                round_result.results[block_id] = result
            if result.status == PricingStatus.INFEASIBLE:
                round_result.infeasible.append(block_id)
                continue

            result.columns = self._validate(
                block_id, result.columns, prices, targets.get(block_id, 0.0), mode
            )
            round_result.columns.extend(result.columns)

        round_result.timed_out.sort()
        round_result.elapsed = time.time() - start
        return round_result

    def _validate(
        self,
        block_id: int,
        columns: List[Column],
        prices: np.ndarray,
        target: float,
        mode: PricingMode,
    ) -> List[Column]:
        """Recompute reduced costs and keep the improving columns."""
        kept = []
        for column in columns:
            if column.block_id != block_id:
                logger.warning(
                    "Oracle for block %s returned a column of block %s, dropped",
                    block_id, column.block_id,
                )
                continue
            block = self._block_models.get(block_id)
            if block is not None and not all(block.is_active(i) for i in column.indices):
                logger.warning(
                    "Oracle for block %s returned a column outside the block's variables, dropped",
                    block_id,
                )
                continue
            claimed = column.reduced_cost
            if mode == PricingMode.INITIAL:
                column.reduced_cost = column.price(prices)
                kept.append(column)
                continue
            column.reduced_cost = column.price(prices) - target
            if column.reduced_cost < -self._tolerance:
                kept.append(column)
            elif claimed is not None and claimed < -self._tolerance:
                logger.warning(
                    "Block %s: column claimed reduced cost %.6g but has %.6g, dropped",
                    block_id, claimed, column.reduced_cost,
                )
        return kept

    def __repr__(self) -> str:
        return (
            f"PricingRound(blocks={len(self._oracles)}, threads={self._num_threads}, "
            f"budget={self._time_budget})"
        )
