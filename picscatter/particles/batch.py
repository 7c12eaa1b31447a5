# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the structure that holds the particle data to be deposited.
"""
import numpy as np

class ParticleBatch(object):
    """
    Class that gives read-only access to the arrays of a set of
    macroparticles, for the duration of a deposition.

    Main attributes
    ---------------
    - x, y, z : 1darrays containing the Cartesian positions
                of the macroparticles (in meters)
    - w : 1darray containing the weights of the macroparticles
    - ionization_level : 1darray of ints, or None
                (None means that all the particles have a charge state of 1)
    - ux, uy, uz : 1darrays containing the unitless momenta
                (i.e. px/mc, py/mc, pz/mc), or None
    - inv_gamma : 1darray containing the inverse Lorentz factors, or None
    """
    def __init__( self, w, x=None, y=None, z=None, ionization_level=None,
                  ux=None, uy=None, uz=None, inv_gamma=None ):
        """
        Register the particle arrays

        Parameters
        ----------
        w : 1darray of floats
            The weights of the particles

        x, y, z : 1darrays of floats (in meters), optional
            The positions of the particles. The components that are
            not used by the geometry of the grid can be omitted
            (they are then set to 0).

        ionization_level : 1darray of ints, optional
            The charge state of each particle (for ionizable species)

        ux, uy, uz : 1darrays of floats (dimensionless), optional
            The normalized momenta (only needed for current deposition)

        inv_gamma : 1darray of floats, optional
            The inverse of the Lorentz factor. It is computed from the
            momenta if these are given and `inv_gamma` is not.
        """
        self.w = np.asarray( w, dtype=np.float64 )
        self.Ntot = len(self.w)

        # Register the positions (missing components are set to 0)
        self.x = self._register( x, 'x' )
        self.y = self._register( y, 'y' )
        self.z = self._register( z, 'z' )

        # Register the optional charge state
        if ionization_level is not None:
            ionization_level = np.asarray( ionization_level )
            self._check_length( ionization_level, 'ionization_level' )
        self.ionization_level = ionization_level

        # Register the optional momenta
        if ux is None and uy is None and uz is None:
            self.has_momenta = False
            self.ux = self.uy = self.uz = self.inv_gamma = None
        else:
            self.has_momenta = True
            self.ux = self._register( ux, 'ux' )
            self.uy = self._register( uy, 'uy' )
            self.uz = self._register( uz, 'uz' )
            if inv_gamma is None:
                inv_gamma = 1./np.sqrt( 1 + self.ux**2 + self.uy**2 + self.uz**2 )
            self.inv_gamma = self._register( inv_gamma, 'inv_gamma' )

    def _register( self, array, name ):
        if array is None:
            return np.zeros( self.Ntot, dtype=np.float64 )
        array = np.asarray( array, dtype=np.float64 )
        self._check_length( array, name )
        return array

    def _check_length( self, array, name ):
        if len(array) != self.Ntot:
            raise ValueError("The array `%s` has %d elements, while the "
                "array of weights has %d elements." %(name, len(array), self.Ntot))

    def effective_weights( self ):
        """
        Return the weights of the particles multiplied by their
        charge state (i.e. `w` for species that are not ionizable)
        """
        if self.ionization_level is None:
            return self.w
        return self.w * self.ionization_level

    def total_charge( self, q ):
        """
        Return the total charge carried by the particles of this batch

        Parameters
        ----------
        q : float (in Coulombs)
           Charge of the species (for ionizable species: the charge
           of a particle with an ionization level of 1)
        """
        return q * float( np.sum(self.effective_weights()) )
