"""
Applications module - reference models built on the engine.

Available Applications:
----------------------
- Multi-Commodity Flow: one shortest-path block per commodity
"""

from decompcg.applications.mcf import (
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

__all__ = [
    'Commodity',
    'MCFArc',
    'MCFInstance',
    'build_block_models',
    'build_master_model',
    'build_networks',
    'build_oracles',
    'commodity_flows',
    'solve_mcf',
]
