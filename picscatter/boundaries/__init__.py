"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It imports the PECBoundary object,
so that this object can be used at a higher level.
"""
from .pec import PECBoundary
__all__ = ['PECBoundary']
