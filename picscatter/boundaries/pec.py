# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the structure that applies the perfect electric conductor
(PEC) boundary conditions to the fields and to the deposited sources.
"""
import warnings
import numpy as np
from .threading_methods import apply_field_pec_numba, \
    apply_source_pec_numba, apply_neumann_pec_numba
# Check if CUDA is available, then import CUDA functions
from picscatter.utils.cuda import cuda_installed
if cuda_installed:
    import cupy
    from picscatter.utils.cuda import cuda_tpb_bpg_1d
    from .cuda_methods import apply_field_pec_cuda, \
        apply_source_pec_cuda, apply_neumann_pec_cuda

# Supported particle boundaries (they determine the sign of the images)
particle_boundary_types = ['absorbing', 'reflecting']

class PECBoundary(object):
    """
    Class that applies the PEC boundary conditions to the arrays of a grid,
    either on CPU or GPU.

    - E and B: the tangential E and normal B components are set to 0 on the
      boundary, and the guard cells are filled with the mirror image of the
      valid cells (with the sign inverted for tangential E and normal B).
    - rho and J: the charge and current deposited in the guard cells are
      folded back into the domain (image charges), and the guard cells are
      then filled with the image of the valid cells.
    - pressure: zero-derivative (Neumann) condition.

    The sign and mirror tables are computed once, when the object is
    created, for all axes, sides and components.
    """

    def __init__( self, grid, field_boundary_lo, field_boundary_hi,
                  particle_boundary_lo=None, particle_boundary_hi=None,
                  use_cuda=False ):
        """
        Initialize the PEC boundaries of a grid

        Parameters
        ----------
        grid : a GridGeometry object

        field_boundary_lo, field_boundary_hi : lists of strings
            The field boundary on the lower and upper side of each axis
            (in array order). Only 'pec' is handled here, any other value
            (e.g. 'open', 'periodic') leaves the corresponding side untouched.

        particle_boundary_lo, particle_boundary_hi : lists of strings,
            optional. Either 'absorbing' (default) or 'reflecting', for each
            axis. They determine the sign with which the charge and current
            of the guard cells are folded into the domain.

        use_cuda : bool, optional
            Whether to apply the boundary conditions on the GPU
        """
        self.grid = grid
        ndim = grid.ndim

        # Define whether or not to use the GPU
        self.use_cuda = use_cuda
        if (self.use_cuda==True) and (cuda_installed==False):
            warnings.warn(
                'Cuda not available for the boundaries.\n'
                'Applying the boundary conditions on the CPU.')
            self.use_cuda = False

        # Register the boundary types
        field_boundary_lo = self._per_axis( field_boundary_lo,
                                            'field_boundary_lo' )
        field_boundary_hi = self._per_axis( field_boundary_hi,
                                            'field_boundary_hi' )
        if particle_boundary_lo is None:
            particle_boundary_lo = ['absorbing']*ndim
        if particle_boundary_hi is None:
            particle_boundary_hi = ['absorbing']*ndim
        particle_boundary_lo = self._per_axis( particle_boundary_lo,
                                               'particle_boundary_lo' )
        particle_boundary_hi = self._per_axis( particle_boundary_hi,
                                               'particle_boundary_hi' )
        for boundary in particle_boundary_lo + particle_boundary_hi:
            if boundary not in particle_boundary_types:
                raise ValueError("The particle boundaries should be one "
                    "of %s (got '%s')." %(particle_boundary_types, boundary))

        # Whether each side of each axis is PEC (unused axes are never PEC)
        self.is_pec = np.zeros( (3, 2), dtype=np.int64 )
        is_reflecting = np.zeros( (3, 2), dtype=bool )
        for idim in range(ndim):
            self.is_pec[idim, 0] = (field_boundary_lo[idim] == 'pec')
            self.is_pec[idim, 1] = (field_boundary_hi[idim] == 'pec')
            is_reflecting[idim, 0] = \
                (particle_boundary_lo[idim] == 'reflecting')
            is_reflecting[idim, 1] = \
                (particle_boundary_hi[idim] == 'reflecting')

        # Whether each vector component is tangential to each axis
        self.tangent = np.zeros( (3, 3), dtype=np.int64 )
        for icomp in range(3):
            for idim in range(ndim):
                self.tangent[icomp, idim] = self.is_tangent( icomp, idim )

        # Signs of the image of rho and J
        # (with absorbing particle boundaries, the image of the charge
        # has the opposite sign; with reflecting boundaries, the same sign)
        self.rho_psign = np.where( is_reflecting, 1., -1. )
        self.rho_tangent = np.ones( 3, dtype=np.int64 )
        self.j_psign = np.zeros( (3, 3, 2) )
        for icomp in range(3):
            for idim in range(3):
                if self.tangent[icomp, idim] == 1:
                    self.j_psign[icomp, idim] = self.rho_psign[idim]
                else:
                    self.j_psign[icomp, idim] = -self.rho_psign[idim]

        # Index bounds of the valid domain
        self.dom_lo, self.dom_hi = grid.domain_bounds()
        # Mirror factors, computed once per staggering
        self._mirrorfac = {}

        # Transfer the tables to the GPU
        if self.use_cuda:
            self.d_is_pec = cupy.asarray( self.is_pec )
            self.d_dom_lo = cupy.asarray( self.dom_lo )
            self.d_dom_hi = cupy.asarray( self.dom_hi )

    def _per_axis( self, values, name ):
        values = [ str(v).lower() for v in values ]
        if len(values) != self.grid.ndim:
            raise ValueError("`%s` should have %d elements in the '%s' "
                "geometry (got %d)." %(name, self.grid.ndim,
                                      self.grid.dim, len(values)))
        return values

    def is_tangent( self, icomp, idim ):
        """
        Return whether the vector component `icomp` (0: x or r,
        1: y or theta, 2: z) is tangential to the boundaries of the
        spatial axis `idim` (in array order)
        """
        dim = self.grid.dim
        if dim in ['2d', 'rz']:
            # The axes are (x or r, z): the component 1 is tangential
            # to both boundaries
            return icomp != 2*idim
        elif dim == '1d':
            # The only axis is z
            return icomp != idim + 2
        return icomp != idim

    def is_any_boundary_pec( self ):
        """Return whether any side of any axis is a PEC boundary"""
        return bool( np.any( self.is_pec == 1 ) )

    def get_mirrorfac( self, staggering ):
        """
        Return the table `mirrorfac` (see `pec_methods`) for an array
        with the given staggering
        """
        staggering = tuple( staggering )
        if staggering not in self._mirrorfac:
            nodal = np.array( self.grid.padded(staggering, 1), dtype=np.int64 )
            mirrorfac = np.zeros( (3, 2), dtype=np.int64 )
            mirrorfac[:, 0] = 2*self.dom_lo - (1 - nodal)
            mirrorfac[:, 1] = 2*(self.dom_hi + nodal) + (1 - nodal)
            self._mirrorfac[staggering] = mirrorfac
        return self._mirrorfac[staggering]

    # Fields
    # ------

    def apply_to_efield( self, Ex, Ey, Ez, staggerings=None ):
        """
        Apply the PEC condition to the electric field (in place)

        Parameters
        ----------
        Ex, Ey, Ez : ndarrays of floats (numpy or cupy arrays)
            The components of E (Er, Et, Ez in the 'rz' geometry),
            including guard cells

        staggerings : list of 3 tuples, optional
            Staggering of each component (Default: Yee grid)
        """
        if staggerings is None:
            staggerings = [ self.grid.yee_staggering('E', icomp)
                            for icomp in range(3) ]
        for icomp, field in enumerate([ Ex, Ey, Ez ]):
            flip = self.tangent[icomp]
            self._apply_to_field( field, staggerings[icomp], flip, icomp )

    def apply_to_bfield( self, Bx, By, Bz, staggerings=None ):
        """
        Apply the PEC condition to the magnetic field (in place)

        Parameters
        ----------
        Bx, By, Bz : ndarrays of floats (numpy or cupy arrays)
            The components of B (Br, Bt, Bz in the 'rz' geometry),
            including guard cells

        staggerings : list of 3 tuples, optional
            Staggering of each component (Default: Yee grid)
        """
        if staggerings is None:
            staggerings = [ self.grid.yee_staggering('B', icomp)
                            for icomp in range(3) ]
        for icomp, field in enumerate([ Bx, By, Bz ]):
            # The normal component of B is flipped
            flip = 1 - self.tangent[icomp]
            flip[self.grid.ndim:] = 0
            self._apply_to_field( field, staggerings[icomp], flip, icomp )

    def _apply_to_field( self, field, staggering, flip, icomp ):
        if not self.is_any_boundary_pec():
            return
        nodal = np.array( self.grid.padded(staggering, 1), dtype=np.int64 )
        # The radial component is rescaled across the upper radial boundary
        radial_scaling = int( self.grid.dim == 'rz' and icomp == 0 )
        if self.use_cuda:
            on_cpu = isinstance( field, np.ndarray )
            d_field = cupy.asarray( field ) if on_cpu else field
            field4 = self.grid.as_array4( d_field )
            n_points = field4.shape[0]*field4.shape[1]*field4.shape[2]
            bpg, tpb = cuda_tpb_bpg_1d( n_points )
            apply_field_pec_cuda[bpg, tpb]( field4, cupy.asarray(flip),
                self.d_is_pec, cupy.asarray(nodal), self.d_dom_lo,
                self.d_dom_hi, radial_scaling )
            if on_cpu:
                field[...] = d_field.get()
        else:
            field4 = self.grid.as_array4( field )
            # All the points of the array, guard cells included
            range_lo = np.zeros( 3, dtype=np.int64 )
            range_hi = np.array( field4.shape[:3], dtype=np.int64 ) - 1
            apply_field_pec_numba( field4, range_lo, range_hi, flip,
                self.is_pec, nodal, self.dom_lo, self.dom_hi,
                radial_scaling )

    # Sources
    # -------

    def apply_to_rho( self, rho, staggering=None ):
        """
        Fold the charge density of the guard cells into the domain,
        and fill the guard cells with its image (in place)

        Parameters
        ----------
        rho : ndarray of floats (numpy or cupy array)
            The charge density, including guard cells

        staggering : tuple, optional
            Staggering of rho (Default: node-centered)
        """
        if staggering is None:
            staggering = self.grid.nodal_staggering()
        self._apply_to_source( rho, staggering,
                               self.rho_psign, self.rho_tangent )

    def apply_to_j( self, jx, jy, jz, staggerings=None ):
        """
        Fold the current density of the guard cells into the domain,
        and fill the guard cells with its image (in place)

        Parameters
        ----------
        jx, jy, jz : ndarrays of floats (numpy or cupy arrays)
            The components of J (Jr, Jt, Jz in the 'rz' geometry),
            including guard cells

        staggerings : list of 3 tuples, optional
            Staggering of each component (Default: Yee grid)
        """
        if staggerings is None:
            staggerings = [ self.grid.yee_staggering('J', icomp)
                            for icomp in range(3) ]
        for icomp, field in enumerate([ jx, jy, jz ]):
            self._apply_to_source( field, staggerings[icomp],
                                   self.j_psign[icomp], self.tangent[icomp] )

    def apply_to_pressure( self, pe, staggering=None ):
        """
        Apply a zero-derivative (Neumann) condition across the PEC
        boundaries to a scalar field such as the electron pressure

        Parameters
        ----------
        pe : ndarray of floats (numpy or cupy array)
            The scalar field, including guard cells

        staggering : tuple, optional
            Staggering of the field (Default: node-centered)
        """
        if staggering is None:
            staggering = self.grid.nodal_staggering()
        self._apply_to_source( pe, staggering, None, None )

    def _get_range( self, field4, staggering ):
        """
        Return the points to be updated: the valid domain (including the
        last point of node-centered axes) along the PEC sides,
        the whole array along the other sides
        """
        nodal = np.array( self.grid.padded(staggering, 1), dtype=np.int64 )
        range_lo = np.zeros( 3, dtype=np.int64 )
        range_hi = np.array( field4.shape[:3], dtype=np.int64 ) - 1
        for idim in range(self.grid.ndim):
            if self.is_pec[idim, 0]:
                range_lo[idim] = self.dom_lo[idim]
            if self.is_pec[idim, 1]:
                range_hi[idim] = self.dom_hi[idim] + nodal[idim]
        return range_lo, range_hi

    def _apply_to_source( self, field, staggering, psign, tangent ):
        # `psign` is None for the Neumann condition
        if not self.is_any_boundary_pec():
            return
        mirrorfac = self.get_mirrorfac( staggering )
        if self.use_cuda:
            on_cpu = isinstance( field, np.ndarray )
            d_field = cupy.asarray( field ) if on_cpu else field
            field4 = self.grid.as_array4( d_field )
            range_lo, range_hi = self._get_range( field4, staggering )
            n_points = int( np.prod( range_hi - range_lo + 1 ) )
            bpg, tpb = cuda_tpb_bpg_1d( n_points )
            if psign is None:
                apply_neumann_pec_cuda[bpg, tpb]( field4,
                    cupy.asarray(range_lo), cupy.asarray(range_hi),
                    cupy.asarray(mirrorfac), self.d_is_pec )
            else:
                apply_source_pec_cuda[bpg, tpb]( field4,
                    cupy.asarray(range_lo), cupy.asarray(range_hi),
                    cupy.asarray(mirrorfac), cupy.asarray(psign),
                    self.d_is_pec, cupy.asarray(tangent) )
            if on_cpu:
                field[...] = d_field.get()
        else:
            field4 = self.grid.as_array4( field )
            range_lo, range_hi = self._get_range( field4, staggering )
            if psign is None:
                apply_neumann_pec_numba( field4, range_lo, range_hi,
                                         mirrorfac, self.is_pec )
            else:
                apply_source_pec_numba( field4, range_lo, range_hi,
                                        mirrorfac, psign, self.is_pec,
                                        tangent )
