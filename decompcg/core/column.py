"""
Column module - represents a column in the Dantzig-Wolfe master problem.

In decomposition, a "column" is a point (usually an extreme point) of one
block's feasible region, expressed in the original variable space. For a
multi-commodity flow block, a column is one source-to-sink path of that
commodity: a coefficient of 1.0 on every arc variable of the path.

This module provides:
- Column: sparse (master index, coefficient) entries plus cost and usage data
- ColumnPool: storage of every column generated at a node, used to detect
  duplicates and to re-price columns that were compressed out of the master

Column Lifecycle:
----------------
1. Created by a block's pricing oracle (entries already in master indices)
2. Accepted by the master (frozen, gets an id, becomes a lambda variable)
3. Re-priced every round (cached reduced cost, usage counters updated)
4. Compressed out after many inactive rounds, kept in the pool for reuse
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

# Fields that may change after a column has been accepted into the master
_MUTABLE_FIELDS = frozenset({
    'reduced_cost',
    'inactive_rounds',
    'times_active',
    '_frozen',
})


@dataclass(eq=False)
class Column:
    """
    A sparse contribution of one block to the master problem.

    Attributes:
        entries: Tuple of (master_index, coefficient) pairs, sorted by index
        original_cost: Cost in the original space (objective . entries)
        block_id: Identifier of the block that produced the column
        reduced_cost: Reduced cost from the latest pricing pass (cached)
        column_id: Unique identifier (assigned when pooled / added to master)
        inactive_rounds: Consecutive master solves with the column non-basic
        times_active: Number of master solves with a positive value
        attributes: Additional data (e.g. the arcs of a path)

    Example:
        >>> column = Column(
        ...     entries=((3, 1.0), (7, 1.0)),
        ...     original_cost=2.0,
        ...     block_id=0,
        ... )
        >>> column.coefficient(7)
        1.0
        >>> column.coefficient(4)
        0.0
    """
    entries: Tuple[Tuple[int, float], ...]
    original_cost: float
    block_id: int

    reduced_cost: Optional[float] = None
    column_id: Optional[int] = None

    # Usage counters (for compression)
    inactive_rounds: int = 0
    times_active: int = 0

    attributes: Dict[str, Any] = field(default_factory=dict)

    _frozen: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        """Normalize entries and check that indices are unique."""
        normalized = tuple(sorted(
            (int(index), float(coef)) for index, coef in self.entries
        ))
        for (a, _), (b, _) in zip(normalized, normalized[1:]):
            if a == b:
                raise ValueError(f"Duplicate master index {a} in column entries")
        object.__setattr__(self, 'entries', normalized)
        object.__setattr__(self, 'original_cost', float(self.original_cost))

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, '_frozen', False) and name not in _MUTABLE_FIELDS:
            raise AttributeError(
                f"Column {self.column_id} is accepted into the master; "
                f"'{name}' can no longer change"
            )
        object.__setattr__(self, name, value)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def indices(self) -> Tuple[int, ...]:
        """Master indices with a coefficient in this column."""
        return tuple(index for index, _ in self.entries)

    @property
    def coefficients(self) -> Tuple[float, ...]:
        """Coefficients, aligned with indices."""
        return tuple(coef for _, coef in self.entries)

    @property
    def num_entries(self) -> int:
        """Number of nonzero entries."""
        return len(self.entries)

    @property
    def key(self) -> Tuple[int, Tuple[Tuple[int, float], ...]]:
        """Identity of the column: owning block plus its entries."""
        return (self.block_id, self.entries)

    @property
    def is_frozen(self) -> bool:
        """True once the column has been accepted into a master."""
        return self._frozen

    # =========================================================================
    # Methods
    # =========================================================================

    def freeze(self) -> None:
        """Make entries, cost and owner immutable."""
        object.__setattr__(self, '_frozen', True)

    def coefficient(self, index: int) -> float:
        """
        Get the coefficient of a master index.

        Args:
            index: Master (original-space) variable index

        Returns:
            Coefficient, 0.0 if the index is not used by the column
        """
        for i, coef in self.entries:
            if i == index:
                return coef
            if i > index:
                break
        return 0.0

    def price(self, prices: np.ndarray) -> float:
        """
        Evaluate a dense price vector on this column.

        Args:
            prices: Vector indexed by master index (e.g. c - A^T u)

        Returns:
            sum(prices[i] * coef for (i, coef) in entries)
        """
        if not self.entries:
            return 0.0
        idx = np.fromiter(self.indices, dtype=np.int64, count=len(self.entries))
        coefs = np.fromiter(self.coefficients, dtype=float, count=len(self.entries))
        return float(np.dot(prices[idx], coefs))

    def to_dense(self, num_cols: int) -> np.ndarray:
        """Dense representation of length num_cols."""
        x = np.zeros(num_cols)
        for index, coef in self.entries:
            x[index] = coef
        return x

    def with_id(self, column_id: int) -> 'Column':
        """
        Create an unfrozen copy with column_id set.

        Args:
            column_id: The unique identifier

        Returns:
            New Column with column_id set
        """
        return replace(self, column_id=column_id, attributes=dict(self.attributes))

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Get an attribute value."""
        return self.attributes.get(key, default)

    def __hash__(self) -> int:
        """Hash based on owner and entries."""
        return hash(self.key)

    def __eq__(self, other: object) -> bool:
        """Equality based on owner and entries."""
        if not isinstance(other, Column):
            return NotImplemented
        return self.key == other.key

    def __repr__(self) -> str:
        rc_str = f", rc={self.reduced_cost:.4f}" if self.reduced_cost is not None else ""
        id_str = f"id={self.column_id}, " if self.column_id is not None else ""
        return (
            f"Column({id_str}block={self.block_id}, nnz={self.num_entries}, "
            f"cost={self.original_cost:.2f}{rc_str})"
        )


# =============================================================================
# Column Pool
# =============================================================================


class ColumnPool:
    """
    Container for every column generated at a node.

    The ColumnPool provides:
    - Id assignment
    - Duplicate detection (by block and entries)
    - Lookup by column_id and by block
    - Tracking of columns currently outside the master (compressed out),
      so they can be re-priced before asking the oracles again

    Example:
        >>> pool = ColumnPool()
        >>> col = pool.add(Column(entries=((0, 1.0),), original_cost=1.0, block_id=0))
        >>> col.column_id
        0
        >>> pool.contains(Column(entries=((0, 1.0),), original_cost=1.0, block_id=0))
        True
    """

    def __init__(self):
        """Create an empty column pool."""
        self._columns: Dict[int, Column] = {}
        self._by_key: Dict[Tuple, int] = {}
        self._outside: set = set()
        self._next_id: int = 0

    @property
    def size(self) -> int:
        """Number of columns in the pool."""
        return len(self._columns)

    def add(self, column: Column) -> Column:
        """
        Add a column to the pool.

        If the column doesn't have an ID, one is assigned. If an identical
        column is already pooled, the pooled instance is returned.

        Args:
            column: Column to add

        Returns:
            Column with ID assigned
        """
        existing = self._by_key.get(column.key)
        if existing is not None:
            return self._columns[existing]

        if column.column_id is None or column.column_id in self._columns:
            column = column.with_id(self._next_id)
        self._next_id = max(self._next_id, column.column_id) + 1

        self._columns[column.column_id] = column
        self._by_key[column.key] = column.column_id
        return column

    def get(self, column_id: int) -> Optional[Column]:
        """Get a column by ID (None if not found)."""
        return self._columns.get(column_id)

    def contains(self, column: Column) -> bool:
        """Check whether an identical column is pooled."""
        return column.key in self._by_key

    def all_columns(self) -> List[Column]:
        """Get all columns in the pool."""
        return list(self._columns.values())

    def columns_for_block(self, block_id: int) -> List[Column]:
        """Get the columns produced by one block."""
        return [col for col in self._columns.values() if col.block_id == block_id]

    # =========================================================================
    # Columns outside the master
    # =========================================================================

    def mark_outside(self, columns: Iterable[Column]) -> None:
        """Record that these columns were compressed out of the master."""
        for col in columns:
            if col.column_id in self._columns:
                self._outside.add(col.column_id)

    def mark_inside(self, column: Column) -> None:
        """Record that a column is (again) part of the master."""
        self._outside.discard(column.column_id)

    def outside_columns(self, block_id: Optional[int] = None) -> List[Column]:
        """Columns currently not in the master, optionally for one block."""
        cols = [self._columns[cid] for cid in sorted(self._outside)]
        if block_id is not None:
            cols = [col for col in cols if col.block_id == block_id]
        return cols

    def clear(self) -> None:
        """Remove all columns from the pool."""
        self._columns.clear()
        self._by_key.clear()
        self._outside.clear()
        self._next_id = 0

    def __len__(self) -> int:
        return self.size

    def __iter__(self) -> Iterator[Column]:
        return iter(list(self._columns.values()))

    def __repr__(self) -> str:
        return f"ColumnPool(size={self.size}, outside={len(self._outside)})"
