"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It imports the ParticleBatch and Depositor objects from the particles
package, so that these objects can be used at a higher level.
"""
from .batch import ParticleBatch
from .depositor import Depositor
__all__ = ['ParticleBatch', 'Depositor']
