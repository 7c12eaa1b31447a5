# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
__version__ = '0.3.0'
__doc__ = """
Particle-In-Cell scatter layer (picscatter)

Deposition of particle charge and current onto structured grids, and
perfect-electric-conductor (PEC) corrections of the grid values.

Usage
-----
See picscatter.particles.Depositor and picscatter.boundaries.PECBoundary
"""

# Change the default formatting for warnings within picscatter
import warnings
def modified_formatting(message, category, filename, lineno, line=None):
    """Format a warning so that the code line `line` is not shown`."""
    return('\n%s: %s:%s:\n%s\n'%(category.__name__, filename, lineno, message))
warnings.formatwarning = modified_formatting

from .grid import GridGeometry
from .particles import ParticleBatch, Depositor
from .boundaries import PECBoundary
from .load_balance import CostLedger

__all__ = ['GridGeometry', 'ParticleBatch', 'Depositor',
           'PECBoundary', 'CostLedger']
