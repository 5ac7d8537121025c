"""
Lifecycle hooks of a node solve.

Subclass DecompHooks and override the methods you need; the defaults do
nothing. Every hook receives one typed event object.

    on_initial_columns   INIT phase, may return extra starting columns
    on_pricing_round     after every pricing round; returning False stops
    on_cut_round         after every cutting round
    on_feasible_solution the converged master projects to an integral x;
                         returning True accepts it as incumbent

Example:
    >>> class PrintProgress(DecompHooks):
    ...     def on_pricing_round(self, event):
    ...         print(event.iteration, event.master_objective)
    ...         return None
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from decompcg.core.column import Column
from decompcg.core.model import BlockModel, MasterModel, Row


@dataclass
class InitialColumnsEvent:
    """The node is about to build its initial master."""
    master_model: MasterModel
    block_models: Dict[int, BlockModel]
    node_id: Optional[int] = None


@dataclass
class PricingRoundEvent:
    """A pricing round finished."""
    iteration: int
    master_objective: float
    columns_added: List[Column]
    lagrangian_bound: Optional[float]
    best_bound: Optional[float]
    converged: bool
    node_id: Optional[int] = None


@dataclass
class CutRoundEvent:
    """A cutting round finished."""
    cut_round: int
    x: np.ndarray
    cuts_added: List[Row] = field(default_factory=list)
    node_id: Optional[int] = None


@dataclass
class FeasibleSolutionEvent:
    """The converged master solution is integral in the original space."""
    x: np.ndarray
    objective_value: float
    node_id: Optional[int] = None


class DecompHooks:
    """No-op base class for node lifecycle hooks."""

    def on_initial_columns(self, event: InitialColumnsEvent) -> List[Column]:
        return []

    def on_pricing_round(self, event: PricingRoundEvent) -> Optional[bool]:
        return None

    def on_cut_round(self, event: CutRoundEvent) -> None:
        return None

    def on_feasible_solution(self, event: FeasibleSolutionEvent) -> bool:
        return True


__all__ = [
    'DecompHooks',
    'InitialColumnsEvent',
    'PricingRoundEvent',
    'CutRoundEvent',
    'FeasibleSolutionEvent',
]
