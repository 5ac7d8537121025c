"""
Error taxonomy for the decomposition engine.

Every node-local failure of the column generation loop maps to one of the
exceptions below. The phase controller converts them into a failed
NodeResult instead of letting them escape, so the embedding tree search can
decide whether to prune the node or retry it with different settings.

Recoverability:
--------------
- MasterNumericalFailure: retried once after a solver reset
- OracleTimeout: never propagated, degrades to "no column" for the round
- MasterInfeasible after a cutting round: the round's cuts are rolled back
- Everything else is fatal for the node
"""

from typing import Optional


class DecompError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str = "DecompError"):
        self.message = message
        super().__init__(self.message)


class MasterInfeasible(DecompError):
    """The restricted master LP has no feasible solution."""

    def __init__(self, message: str = "Restricted master is infeasible"):
        super().__init__(message)


class MasterUnbounded(DecompError):
    """The restricted master LP is unbounded (missing bound or modeling error)."""

    def __init__(self, message: str = "Restricted master is unbounded"):
        super().__init__(message)


class MasterNumericalFailure(DecompError):
    """The LP solver failed for numerical reasons."""

    def __init__(
        self,
        message: str = "Numerical failure in restricted master",
        retried: bool = False
    ):
        self.retried = retried
        super().__init__(message)


class BlockInfeasible(DecompError):
    """A block subproblem has no feasible solution."""

    def __init__(self, block_id: int, message: Optional[str] = None):
        self.block_id = block_id
        super().__init__(message or f"Block {block_id} subproblem is infeasible")


class OracleTimeout(DecompError):
    """A pricing oracle did not answer within the round's time budget."""

    def __init__(self, block_id: int, budget: float):
        self.block_id = block_id
        self.budget = budget
        super().__init__(
            f"Pricing oracle for block {block_id} exceeded {budget:.3f}s budget"
        )


class ConfigurationError(DecompError, ValueError):
    """Invalid parameter or parameter combination."""

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message)


__all__ = [
    'DecompError',
    'MasterInfeasible',
    'MasterUnbounded',
    'MasterNumericalFailure',
    'BlockInfeasible',
    'OracleTimeout',
    'ConfigurationError',
]
