"""
Solver context - everything a node solve needs, passed explicitly.

There are no module-level singletons: configuration, solver factory,
oracles, the cut pool and hooks travel together in a SolverContext. A tree
search creates one context and hands it to solve_node() for every node;
the cut pool inside it is shared across those nodes.
"""

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, runtime_checkable

import numpy as np

from decompcg.config import DecompConfig
from decompcg.core.model import MasterModel, Row
from decompcg.cuts.pool import CutPool
from decompcg.master import HIGHS_AVAILABLE, HiGHSMasterProblem
from decompcg.master.base import MasterProblem
from decompcg.pricing.base import PricingOracle
from decompcg.solver.hooks import DecompHooks


@runtime_checkable
class CutGenerator(Protocol):
    """Separator of valid inequalities in the original space."""

    def generate_cuts(self, x: np.ndarray) -> List[Row]:
        """
        Return rows violated by x (master indices).

        Args:
            x: Fractional solution in the original space
        """
        ...


MasterFactory = Callable[[MasterModel, Sequence[int], DecompConfig], MasterProblem]


def default_master_factory(
    model: MasterModel,
    block_ids: Sequence[int],
    config: DecompConfig,
) -> MasterProblem:
    """Create a HiGHSMasterProblem."""
    if not HIGHS_AVAILABLE:
        raise RuntimeError(
            "HiGHS is not available. Install it with: pip install highspy\n"
            "Or provide a master_factory returning a custom MasterProblem."
        )
    return HiGHSMasterProblem(model, block_ids, config)


@dataclass
class SolverContext:
    """
    Dependencies of a node solve.

    Attributes:
        config: Engine configuration
        oracles: block_id -> pricing oracle
        fallback_oracles: block_id -> oracle tried when the primary one
            reports the block infeasible
        master_factory: Creates the restricted master
        cut_generator: Optional external separator
        cut_pool: Cuts shared across nodes
        hooks: Lifecycle hooks
        cancel_event: Set it to stop at the next round boundary
        node_id: Identifier used in log records

    Example:
        >>> context = SolverContext(
        ...     config=DecompConfig(dual_stab=True),
        ...     oracles={0: oracle0, 1: oracle1},
        ... )
        >>> result = solve_node(context, block_models, master_model)
    """
    config: DecompConfig = field(default_factory=DecompConfig)
    oracles: Dict[int, PricingOracle] = field(default_factory=dict)
    fallback_oracles: Dict[int, PricingOracle] = field(default_factory=dict)
    master_factory: MasterFactory = default_master_factory
    cut_generator: Optional[CutGenerator] = None
    cut_pool: CutPool = field(default_factory=CutPool)
    hooks: DecompHooks = field(default_factory=DecompHooks)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    node_id: Optional[int] = None

    def create_master(self, model: MasterModel, block_ids: Sequence[int]) -> MasterProblem:
        return self.master_factory(model, block_ids, self.config)

    def cancel(self) -> None:
        """Request cancellation (honoured at the next round boundary)."""
        self.cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()
