"""
Parsers module - instance file readers.

Available Parsers:
-----------------
- Parser: Abstract base class for custom parsers
- MCFParser: Multi-commodity flow instances (p/d/a line format)

Usage:
------
>>> from decompcg.parsers import MCFParser
>>>
>>> instance = MCFParser().parse("path/to/instance.txt")
>>> print(instance.summary())
"""

from decompcg.parsers.base import Parser, ParserConfig
from decompcg.parsers.mcf import MCFParser

__all__ = [
    "Parser",
    "ParserConfig",
    "MCFParser",
]
