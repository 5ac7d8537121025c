"""
Core data types of the decomposition engine.

This module provides:
- Column / ColumnPool: block contributions to the master problem
- Row: named linear constraint
- MasterModel / BlockModel: constraint systems supplied by the application
- Network / Arc: graph of a network-structured block
"""

from decompcg.core.column import Column, ColumnPool
from decompcg.core.model import BlockModel, MasterModel, Row
from decompcg.core.network import Arc, Network

__all__ = [
    'Column',
    'ColumnPool',
    'Row',
    'MasterModel',
    'BlockModel',
    'Arc',
    'Network',
]
