"""
Cut pool - rows kept across cutting rounds and nodes.

Cuts are Rows over master (original-space) indices. The pool stores each
distinct cut once, so rows generated again by an external separator are
recognized and not added to the master twice.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from decompcg.core.model import Row

logger = logging.getLogger(__name__)


def _row_key(row: Row) -> Tuple:
    """Identity of a cut: coefficients and bounds, not the name."""
    return (row.coefficients, row.lower, row.upper)


class CutPool:
    """
    De-duplicating container of cut rows.

    Example:
        >>> pool = CutPool()
        >>> cut = Row.from_dict({0: 1.0, 1: 1.0}, upper=1.0, name="clique")
        >>> pool.add([cut, cut])
        [Row('clique', nnz=2, [-inf, 1.0])]
        >>> len(pool)
        1
    """

    def __init__(self):
        self._rows: List[Row] = []
        self._keys: Dict[Tuple, int] = {}
        self._uses: List[int] = []

    def add(self, rows: Iterable[Row]) -> List[Row]:
        """
        Add rows to the pool.

        Args:
            rows: Candidate cuts

        Returns:
            Only the rows that were not already pooled, in input order
        """
        new_rows = []
        for row in rows:
            key = _row_key(row)
            if key in self._keys:
                continue
            self._keys[key] = len(self._rows)
            self._rows.append(row)
            self._uses.append(0)
            new_rows.append(row)
        return new_rows

    def contains(self, row: Row) -> bool:
        return _row_key(row) in self._keys

    def violated(
        self,
        x: np.ndarray,
        tol: float = 1e-6,
        exclude: Optional[Iterable[Row]] = None,
    ) -> List[Row]:
        """
        Pooled rows violated by x, most violated first.

        Args:
            x: Point in the original space
            tol: Minimum violation
            exclude: Rows to skip (e.g. those already in the master)

        Returns:
            Violated rows
        """
        skip: Set[Tuple] = {_row_key(r) for r in exclude} if exclude else set()
        scored = []
        for position, row in enumerate(self._rows):
            if _row_key(row) in skip:
                continue
            amount = row.violation(x)
            if amount > tol:
                scored.append((-amount, position, row))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [row for _, _, row in scored]

    def mark_used(self, row: Row) -> None:
        """Count one more use of a pooled row in a master."""
        position = self._keys.get(_row_key(row))
        if position is not None:
            self._uses[position] += 1

    def uses(self, row: Row) -> int:
        position = self._keys.get(_row_key(row))
        return 0 if position is None else self._uses[position]

    def clear(self) -> None:
        """Remove all rows from the pool."""
        self._rows.clear()
        self._keys.clear()
        self._uses.clear()

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(list(self._rows))

    def __repr__(self) -> str:
        return f"CutPool(size={len(self._rows)})"
