"""
Solver module - column generation at one branch-and-bound node.

This module provides:
- ColumnGeneration / solve_node: the phase controller
- Phase: INIT -> PRICING -> (CUTTING -> PRICING)* -> DONE
- SolverContext / CutGenerator: dependencies of a node solve
- DecompHooks and its event types: lifecycle callbacks
- NodeResult / NodeStatus / NodeStatistics / CGIteration: results

Usage:
------
    >>> from decompcg.solver import SolverContext, solve_node
    >>> context = SolverContext(config=config, oracles=oracles)
    >>> result = solve_node(context, block_models, master_model)
    >>> print(result.summary())
"""

from decompcg.solver.column_generation import ColumnGeneration, Phase, solve_node
from decompcg.solver.context import CutGenerator, SolverContext, default_master_factory
from decompcg.solver.hooks import (
    CutRoundEvent,
    DecompHooks,
    FeasibleSolutionEvent,
    InitialColumnsEvent,
    PricingRoundEvent,
)
from decompcg.solver.solution import CGIteration, NodeResult, NodeStatistics, NodeStatus

__all__ = [
    # Main classes
    'ColumnGeneration',
    'Phase',
    'solve_node',

    # Context
    'SolverContext',
    'CutGenerator',
    'default_master_factory',

    # Hooks
    'DecompHooks',
    'InitialColumnsEvent',
    'PricingRoundEvent',
    'CutRoundEvent',
    'FeasibleSolutionEvent',

    # Results
    'NodeResult',
    'NodeStatus',
    'NodeStatistics',
    'CGIteration',
]
