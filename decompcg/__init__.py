"""
decompcg: Dantzig-Wolfe Column Generation Engine

Solves one node of a branch-and-price(-and-cut) tree: a restricted master
over the coupling rows, one pricing oracle per block, dual stabilization
and optional cutting rounds.
"""

__version__ = "0.1.0"

# Applications
from decompcg.applications import MCFInstance, solve_mcf
from decompcg.config import DecompConfig

# Core classes
from decompcg.core import Arc, BlockModel, Column, ColumnPool, MasterModel, Network, Row
from decompcg.cuts import CutPool
from decompcg.errors import (
    BlockInfeasible,
    ConfigurationError,
    DecompError,
    MasterInfeasible,
    MasterNumericalFailure,
    MasterUnbounded,
    OracleTimeout,
)
from decompcg.logging_utils import init_logging

# Master problem
from decompcg.master import (
    HIGHS_AVAILABLE,
    DualStabilizer,
    HiGHSMasterProblem,
    MasterProblem,
    MasterSolution,
    SolutionStatus,
)

# Pricing
from decompcg.pricing import (
    FunctionOracle,
    PricingMode,
    PricingOracle,
    PricingResult,
    PricingRound,
    PricingStatus,
    ShortestPathOracle,
)

# Column generation solver
from decompcg.solver import (
    ColumnGeneration,
    CutGenerator,
    DecompHooks,
    NodeResult,
    NodeStatus,
    SolverContext,
    solve_node,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DecompConfig",
    "init_logging",
    # Errors
    "DecompError",
    "MasterInfeasible",
    "MasterUnbounded",
    "MasterNumericalFailure",
    "BlockInfeasible",
    "OracleTimeout",
    "ConfigurationError",
    # Core classes
    "Column",
    "ColumnPool",
    "Row",
    "MasterModel",
    "BlockModel",
    "Arc",
    "Network",
    "CutPool",
    # Master problem
    "MasterProblem",
    "MasterSolution",
    "SolutionStatus",
    "HiGHSMasterProblem",
    "HIGHS_AVAILABLE",
    "DualStabilizer",
    # Pricing
    "PricingOracle",
    "PricingMode",
    "PricingStatus",
    "PricingResult",
    "FunctionOracle",
    "ShortestPathOracle",
    "PricingRound",
    # Column generation solver
    "ColumnGeneration",
    "SolverContext",
    "CutGenerator",
    "DecompHooks",
    "NodeResult",
    "NodeStatus",
    "solve_node",
    # Applications
    "MCFInstance",
    "solve_mcf",
]
