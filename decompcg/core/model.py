"""
Model module - constraint systems handed to the engine by the application.

The application builds these once; the engine treats them as immutable input.

This module provides:
- Row: one linear constraint lower <= a . x <= upper with a name
- MasterModel: the coupling ("core") constraints in the original variable
  space together with the original objective
- BlockModel: the constraint system of one block in its local variable space,
  plus the mapping from local to master indices (activeColumns)

Index spaces:
------------
Master indices are the original variables (e.g. x[k, a] = k * num_arcs + a
in a multi-commodity flow model). A block only touches a subset of them;
block-local index i corresponds to master index active_columns[i]. Columns
and cut rows are always expressed in master indices.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Row:
    """
    A named linear constraint: lower <= sum(coef * x[index]) <= upper.

    Rows are hashable by value so that a cut pool can detect duplicates.

    Attributes:
        coefficients: Tuple of (index, coefficient) pairs, sorted by index
        lower: Lower bound (-inf allowed)
        upper: Upper bound (+inf allowed)
        name: Human readable name

    Example:
        >>> row = Row.from_dict({0: 1.0, 2: 1.0}, upper=1.0, name="cap")
        >>> row.activity(np.array([1.0, 5.0, 1.0]))
        2.0
        >>> row.violation(np.array([1.0, 5.0, 1.0]))
        1.0
    """
    coefficients: Tuple[Tuple[int, float], ...]
    lower: float = -math.inf
    upper: float = math.inf
    name: str = ""

    def __post_init__(self):
        """Normalize coefficients and check bounds."""
        merged: Dict[int, float] = {}
        for index, coef in self.coefficients:
            merged[int(index)] = merged.get(int(index), 0.0) + float(coef)
        normalized = tuple(sorted((i, c) for i, c in merged.items() if c != 0.0))
        object.__setattr__(self, 'coefficients', normalized)
        object.__setattr__(self, 'lower', float(self.lower))
        object.__setattr__(self, 'upper', float(self.upper))
        if self.lower > self.upper:
            raise ValueError(
                f"Row {self.name!r}: lower bound {self.lower} exceeds upper bound {self.upper}"
            )

    @classmethod
    def from_dict(
        cls,
        coefficients: Mapping[int, float],
        lower: float = -math.inf,
        upper: float = math.inf,
        name: str = "",
    ) -> 'Row':
        """Create a row from an index -> coefficient mapping."""
        return cls(tuple(coefficients.items()), lower, upper, name)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def indices(self) -> Tuple[int, ...]:
        return tuple(i for i, _ in self.coefficients)

    @property
    def is_equality(self) -> bool:
        return self.lower == self.upper

    @property
    def num_entries(self) -> int:
        return len(self.coefficients)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def activity(self, x: np.ndarray) -> float:
        """Left-hand side value a . x."""
        return float(sum(coef * x[i] for i, coef in self.coefficients))

    def violation(self, x: np.ndarray) -> float:
        """Amount by which x violates the row (0.0 if satisfied)."""
        act = self.activity(x)
        return max(self.lower - act, act - self.upper, 0.0)

    def is_violated(self, x: np.ndarray, tol: float = 1e-6) -> bool:
        """Check whether x violates the row by more than tol."""
        return self.violation(x) > tol

    def rhs_for_dual(self, dual: float) -> Optional[float]:
        """
        Right-hand side used when pricing this row with a dual value.

        A positive dual prices the lower bound, a negative dual the upper
        bound. Returns None when that bound is infinite.
        """
        if dual > 0:
            return self.lower if math.isfinite(self.lower) else None
        if dual < 0:
            return self.upper if math.isfinite(self.upper) else None
        return 0.0

    def __repr__(self) -> str:
        return (
            f"Row({self.name!r}, nnz={self.num_entries}, "
            f"[{self.lower}, {self.upper}])"
        )


# =============================================================================
# Master model
# =============================================================================


@dataclass
class MasterModel:
    """
    Coupling constraints and objective in the original variable space.

    Attributes:
        num_cols: Number of original variables (master indices)
        objective: Objective coefficients, length num_cols (minimization)
        rows: Coupling constraints
        col_lower: Optional lower bounds of the original variables
        col_upper: Optional upper bounds of the original variables
        col_names: Optional variable names
        name: Model name
    """
    num_cols: int
    objective: np.ndarray
    rows: List[Row] = field(default_factory=list)
    col_lower: Optional[np.ndarray] = None
    col_upper: Optional[np.ndarray] = None
    col_names: List[str] = field(default_factory=list)
    name: str = "master"

    def __post_init__(self):
        self.objective = np.asarray(self.objective, dtype=float)
        if self.col_lower is not None:
            self.col_lower = np.asarray(self.col_lower, dtype=float)
        if self.col_upper is not None:
            self.col_upper = np.asarray(self.col_upper, dtype=float)
        errors = self.validate()
        if errors:
            raise ValueError(f"Invalid master model {self.name!r}: " + "; ".join(errors))

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    def add_row(self, row: Row) -> int:
        """Append a coupling row and return its index."""
        self.rows.append(row)
        return len(self.rows) - 1

    def objective_value(self, x: np.ndarray) -> float:
        """Original objective c . x."""
        return float(np.dot(self.objective, x))

    def validate(self) -> List[str]:
        """
        Validate the model.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        if self.objective.shape != (self.num_cols,):
            errors.append(
                f"objective has shape {self.objective.shape}, expected ({self.num_cols},)"
            )
        for r, row in enumerate(self.rows):
            for index in row.indices:
                if not 0 <= index < self.num_cols:
                    errors.append(f"row {r} ({row.name}) uses index {index} out of range")
                    break
        for bounds, label in ((self.col_lower, "col_lower"), (self.col_upper, "col_upper")):
            if bounds is not None and bounds.shape != (self.num_cols,):
                errors.append(f"{label} has shape {bounds.shape}, expected ({self.num_cols},)")
        if self.col_names and len(self.col_names) != self.num_cols:
            errors.append("col_names length differs from num_cols")
        return errors

    def summary(self) -> str:
        nnz = sum(row.num_entries for row in self.rows)
        return (
            f"MasterModel {self.name}: {self.num_cols} cols x {self.num_rows} rows, "
            f"{nnz} nonzeros"
        )


# =============================================================================
# Block model
# =============================================================================


@dataclass
class BlockModel:
    """
    Constraint system of one block in its local variable space.

    Invariants (checked at construction):
    - every local index maps to exactly one master index
    - the mapping is injective
    - the mapping never changes (stored as a tuple)

    Attributes:
        block_id: Identifier of the block
        active_columns: active_columns[local_index] -> master index
        rows: Local constraints (indices are local)
        col_lower: Local lower bounds (default 0)
        col_upper: Local upper bounds (default 1)
        name: Model name

    Example:
        >>> block = BlockModel(block_id=1, active_columns=(4, 5, 6))
        >>> block.to_master(2)
        6
        >>> block.translate([(0, 1.0), (2, 1.0)])
        ((4, 1.0), (6, 1.0))
    """
    block_id: int
    active_columns: Tuple[int, ...]
    rows: List[Row] = field(default_factory=list)
    col_lower: Optional[np.ndarray] = None
    col_upper: Optional[np.ndarray] = None
    name: str = ""

    def __post_init__(self):
        self.active_columns = tuple(int(i) for i in self.active_columns)
        if len(set(self.active_columns)) != len(self.active_columns):
            raise ValueError(
                f"Block {self.block_id}: active_columns must map each local "
                "index to a distinct master index"
            )
        if any(i < 0 for i in self.active_columns):
            raise ValueError(f"Block {self.block_id}: negative master index in active_columns")
        n = len(self.active_columns)
        self.col_lower = np.zeros(n) if self.col_lower is None else np.asarray(self.col_lower, dtype=float)
        self.col_upper = np.ones(n) if self.col_upper is None else np.asarray(self.col_upper, dtype=float)
        for row in self.rows:
            if any(not 0 <= i < n for i in row.indices):
                raise ValueError(
                    f"Block {self.block_id}: row {row.name!r} uses a local index out of range"
                )
        self._master_to_local: Dict[int, int] = {
            master: local for local, master in enumerate(self.active_columns)
        }
        if not self.name:
            self.name = f"block{self.block_id}"

    @property
    def num_cols(self) -> int:
        """Number of local variables."""
        return len(self.active_columns)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    def to_master(self, local_index: int) -> int:
        """Map a local index to its master index."""
        return self.active_columns[local_index]

    def to_local(self, master_index: int) -> Optional[int]:
        """Map a master index to the local index (None if not active)."""
        return self._master_to_local.get(master_index)

    def is_active(self, master_index: int) -> bool:
        return master_index in self._master_to_local

    def translate(
        self,
        local_entries: Iterable[Tuple[int, float]]
    ) -> Tuple[Tuple[int, float], ...]:
        """Translate (local index, coefficient) pairs into master indices."""
        return tuple((self.active_columns[i], coef) for i, coef in local_entries)

    def check_mapping(self, num_master_cols: int) -> None:
        """
        Check that every mapped master index exists.

        Raises:
            ValueError: If an index is out of range
        """
        bad = [i for i in self.active_columns if i >= num_master_cols]
        if bad:
            raise ValueError(
                f"Block {self.block_id}: master indices {bad[:5]} out of range "
                f"(master has {num_master_cols} columns)"
            )

    def is_feasible(self, local_x: Sequence[float], tol: float = 1e-6) -> bool:
        """Check a local point against rows and bounds."""
        x = np.asarray(local_x, dtype=float)
        if np.any(x < self.col_lower - tol) or np.any(x > self.col_upper + tol):
            return False
        return all(not row.is_violated(x, tol) for row in self.rows)

    def __repr__(self) -> str:
        return (
            f"BlockModel(id={self.block_id}, cols={self.num_cols}, rows={self.num_rows})"
        )
