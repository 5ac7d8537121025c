"""
Pricing module - block subproblem oracles.

This module provides:
- PricingOracle: Protocol every block oracle satisfies
- PricingMode / PricingStatus / PricingResult: Oracle call data types
- FunctionOracle: Adapter turning a callable into an oracle
- ShortestPathOracle: Reference oracle for network blocks (networkx)
- PricingRound / RoundResult: Parallel pricing of all blocks

Usage:
------
    >>> from decompcg.pricing import ShortestPathOracle, PricingRound
    >>> oracles = {k: ShortestPathOracle(networks[k], blocks[k].active_columns)
    ...            for k in blocks}
    >>> result = PricingRound(oracles, num_threads=4).run(list(oracles), prices, targets)
"""

from decompcg.pricing.base import (
    FunctionOracle,
    PricingMode,
    PricingOracle,
    PricingResult,
    PricingStatus,
)
from decompcg.pricing.round import PricingRound, RoundResult
from decompcg.pricing.shortest_path import ShortestPathOracle

__all__ = [
    # Interface
    'PricingOracle',
    'PricingMode',
    'PricingStatus',
    'PricingResult',
    'FunctionOracle',

    # Oracles
    'ShortestPathOracle',

    # Rounds
    'PricingRound',
    'RoundResult',
]
