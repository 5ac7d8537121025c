"""
Parser for multi-commodity flow instances in the p/d/a line format.

File Format:
-----------
    p <name> <num_nodes> <num_arcs> <num_commodities>
    d <source> <sink> <demand>
    a <tail> <head> <lb> <ub> <weight>

The p line comes first. d and a lines may be interleaved; their counts must
match the p line. Blank lines and lines starting with '#' or 'c ' are
ignored.
"""

import logging
from typing import List

from decompcg.applications.mcf import Commodity, MCFArc, MCFInstance
from decompcg.parsers.base import Parser

logger = logging.getLogger(__name__)


class MCFParser(Parser):
    """
    Read MCF instances.

    Example:
        >>> parser = MCFParser()
        >>> instance = parser.parse("data/frac2.txt")
        >>> instance.num_commodities
        4
    """

    def parse_text(self, text: str, name: str = "") -> MCFInstance:
        lines = self._data_lines(text)
        if not lines:
            raise ValueError("Empty MCF instance")

        number, tokens = lines[0]
        if tokens[0] != 'p':
            raise ValueError(f"Line {number}: expected 'p' record, got {tokens[0]!r}")
        if len(tokens) != 5:
            raise ValueError(f"Line {number}: 'p' record needs 4 fields")
        instance_name = tokens[1] or name
        num_nodes, num_arcs, num_commodities = (
            self._int(number, t) for t in tokens[2:5]
        )

        arcs: List[MCFArc] = []
        commodities: List[Commodity] = []
        for number, tokens in lines[1:]:
            kind = tokens[0]
            if kind == 'd':
                if len(tokens) != 4:
                    raise ValueError(f"Line {number}: 'd' record needs 3 fields")
                commodities.append(Commodity(
                    source=self._int(number, tokens[1]),
                    sink=self._int(number, tokens[2]),
                    demand=self._float(number, tokens[3]),
                ))
            elif kind == 'a':
                if len(tokens) != 6:
                    raise ValueError(f"Line {number}: 'a' record needs 5 fields")
                arcs.append(MCFArc(
                    tail=self._int(number, tokens[1]),
                    head=self._int(number, tokens[2]),
                    lb=self._float(number, tokens[3]),
                    ub=self._float(number, tokens[4]),
                    weight=self._float(number, tokens[5]),
                ))
            else:
                raise ValueError(f"Line {number}: unknown record type {kind!r}")

        if len(arcs) != num_arcs:
            raise ValueError(f"Expected {num_arcs} arcs, read {len(arcs)}")
        if len(commodities) != num_commodities:
            raise ValueError(f"Expected {num_commodities} commodities, read {len(commodities)}")

        instance = MCFInstance(
            num_nodes=num_nodes,
            arcs=arcs,
            commodities=commodities,
            name=instance_name,
        )
        logger.debug("Parsed %s", instance.summary())
        return instance

    def can_parse(self, path) -> bool:
        """A file whose first record is a 'p' line with four fields."""
        if not super().can_parse(path):
            return False
        try:
            lines = self._data_lines(self._read_file(path))
        except (OSError, UnicodeDecodeError):
            return False
        return bool(lines) and lines[0][1][0] == 'p' and len(lines[0][1]) == 5

    @staticmethod
    def _int(number: int, token: str) -> int:
        try:
            return int(token)
        except ValueError:
            raise ValueError(f"Line {number}: expected an integer, got {token!r}") from None

    @staticmethod
    def _float(number: int, token: str) -> float:
        try:
            return float(token)
        except ValueError:
            raise ValueError(f"Line {number}: expected a number, got {token!r}") from None
