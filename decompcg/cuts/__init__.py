"""
Cuts module - storage of cutting planes.

Cut derivation is supplied by the application through the CutGenerator
protocol (see decompcg.solver.context); this package only keeps the rows.
"""

from decompcg.cuts.pool import CutPool

__all__ = ['CutPool']
