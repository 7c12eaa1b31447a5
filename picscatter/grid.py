# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the structure that describes the geometry of the local grid.
"""
import numpy as np

# Spatial axes of each geometry, in array order
geometry_axes = { '1d': ('z',),
                  '2d': ('x', 'z'),
                  'rz': ('r', 'z'),
                  '3d': ('x', 'y', 'z') }

# Integer codes of the geometries, as passed to the compiled kernels
geometry_codes = { '1d': 0, '2d': 1, 'rz': 2, '3d': 3 }

class GridGeometry(object):
    """
    Class that describes the local grid onto which the particles deposit,
    and the arrays (including guard cells) that live on this grid.

    Main attributes
    ---------------
    - dim : string, either '1d', '2d', 'rz' or '3d'
    - n_cells : tuple of ints, number of valid cells along each axis
    - dx : tuple of floats, cell size along each axis (in meters)
    - xmin : tuple of floats, position of the domain index 0 (in meters)
    - n_guard : tuple of ints, number of guard cells on each side
    - n_rz_modes : number of azimuthal modes (only used in 'rz')

    In 'rz', the first axis is the radius r, whose origin r=0 is assumed
    to be at `xmin[0]`, and the arrays carry an additional mode axis
    with 2*n_rz_modes-1 components (0: mode 0, 2m-1 and 2m: real and
    imaginary part of the mode m).
    """

    def __init__( self, dim, n_cells, dx, xmin=None, n_guard=3,
                  n_rz_modes=1 ):
        """
        Initialize a grid geometry

        Parameters
        ----------
        dim : string
            Either '1d' (z), '2d' (x, z), 'rz' (r, z) or '3d' (x, y, z)

        n_cells : tuple of ints
            Number of valid cells along each spatial axis (in array order)

        dx : tuple of floats (in meters)
            Cell size along each spatial axis

        xmin : tuple of floats (in meters), optional
            Position of the lower edge of the valid domain along each axis
            (Default: 0 for all axes)

        n_guard : int or tuple of ints, optional
            Number of guard cells on each side of the valid domain

        n_rz_modes : int, optional
            Number of azimuthal modes (only for `dim='rz'`)
        """
        if dim not in geometry_axes:
            raise ValueError("`dim` should be one of %s (got '%s')"
                    %(list(geometry_axes.keys()), dim))
        self.dim = dim
        self.axes = geometry_axes[dim]
        self.ndim = len(self.axes)

        self.n_cells = self._per_axis( n_cells, 'n_cells', int )
        self.dx = self._per_axis( dx, 'dx', float )
        if xmin is None:
            xmin = [0.]*self.ndim
        self.xmin = self._per_axis( xmin, 'xmin', float )
        if np.isscalar(n_guard):
            n_guard = [n_guard]*self.ndim
        self.n_guard = self._per_axis( n_guard, 'n_guard', int )

        # Check the azimuthal modes
        if n_rz_modes < 1:
            raise ValueError("`n_rz_modes` should be at least 1.")
        if dim != 'rz' and n_rz_modes != 1:
            raise ValueError("Azimuthal modes are only supported in "
                "the 'rz' geometry (got n_rz_modes=%d with dim='%s')."
                %(n_rz_modes, dim))
        self.n_rz_modes = n_rz_modes
        self.ncomp = 2*n_rz_modes - 1

        self.invdx = tuple( 1./d for d in self.dx )
        self.cell_volume = float( np.prod(self.dx) )

    def _per_axis( self, values, name, dtype ):
        values = tuple( dtype(v) for v in values )
        if len(values) != self.ndim:
            raise ValueError("`%s` should have %d elements in the '%s' "
                "geometry (got %d)." %(name, self.ndim, self.dim, len(values)))
        return values

    # Staggering
    # ----------

    def nodal_staggering( self ):
        """Staggering of a fully node-centered array (e.g. rho)"""
        return (1,)*self.ndim

    def yee_staggering( self, fieldtype, icomp ):
        """
        Return the staggering of one component of a field on the Yee grid

        Parameters
        ----------
        fieldtype: string
            Either 'E', 'J' (same staggering as E) or 'B'

        icomp: int
            The component of the field (0: x or r, 1: y or theta, 2: z)

        Returns
        -------
        A tuple of 0 (cell-centered) or 1 (node-centered), one per axis
        """
        if fieldtype not in ['E', 'J', 'B']:
            raise ValueError("Unknown field type: %s" %fieldtype)
        component = ['x', 'y', 'z'][icomp]
        if self.dim == 'rz':
            component = ['r', 'y', 'z'][icomp]
        # E and J are cell-centered along their own direction,
        # B is node-centered along its own direction only
        staggering = []
        for axis in self.axes:
            if fieldtype == 'B':
                staggering.append( 1 if axis == component else 0 )
            else:
                staggering.append( 0 if axis == component else 1 )
        return tuple(staggering)

    # Arrays
    # ------

    def array_shape( self, staggering ):
        """
        Return the shape of an array with the given staggering, including
        the guard cells (and, in 'rz', the mode axis)
        """
        shape = [ n + s + 2*ng for n, s, ng in
                  zip(self.n_cells, staggering, self.n_guard) ]
        if self.dim == 'rz':
            shape.append( self.ncomp )
        return tuple(shape)

    def zeros( self, staggering=None ):
        """
        Allocate a zero-initialized array on this grid

        Parameters
        ----------
        staggering: tuple of 0 or 1, optional
            Staggering along each axis (Default: node-centered)
        """
        if staggering is None:
            staggering = self.nodal_staggering()
        return np.zeros( self.array_shape(staggering), dtype=np.float64 )

    def as_array4( self, array ):
        """
        Return a 4D view (i, j, k, component) of an array of this grid,
        which is the layout on which all the kernels operate.
        Unused axes have a length of 1. No data is copied.
        """
        shape = array.shape
        if self.dim == '1d':
            return array.reshape( (shape[0], 1, 1, 1) )
        elif self.dim == '2d':
            return array.reshape( (shape[0], shape[1], 1, 1) )
        elif self.dim == 'rz':
            if len(shape) == 2:
                return array.reshape( (shape[0], shape[1], 1, 1) )
            return array.reshape( (shape[0], shape[1], 1, shape[2]) )
        else:
            return array.reshape( (shape[0], shape[1], shape[2], 1) )

    def padded( self, values, fill ):
        """Return a 3-element array with `values` padded with `fill`"""
        padded = [fill]*3
        padded[:self.ndim] = list(values)
        return padded

    def axis_parameters( self, staggering ):
        """
        Return the per-axis quantities that the deposition kernels need,
        as 3-element arrays (padded for the unused axes)

        Returns
        -------
        xmin, invdx : 1darrays of floats
            Lower edge of the domain and inverse cell size
        shift : 1darray of floats
            Shift (in cell units) of the first point of the array:
            0 for node-centered axes, 0.5 for cell-centered axes
        lo : 1darray of ints
            Array index of the domain index 0 (i.e. number of guard cells)
        """
        xmin = np.array( self.padded(self.xmin, 0.), dtype=np.float64 )
        invdx = np.array( self.padded(self.invdx, 0.), dtype=np.float64 )
        shift = np.array( self.padded(
            [ 0.5*(1 - s) for s in staggering ], 0.), dtype=np.float64 )
        lo = np.array( self.padded(self.n_guard, 0), dtype=np.int64 )
        return xmin, invdx, shift, lo

    def domain_bounds( self ):
        """
        Return the index bounds of the valid domain, in array index space
        (lower bound, cell-centered upper bound), as 3-element int arrays
        """
        dom_lo = np.array( self.padded(self.n_guard, 0), dtype=np.int64 )
        dom_hi = np.array( self.padded(
            [ n - 1 + ng for n, ng in zip(self.n_cells, self.n_guard) ], 0),
            dtype=np.int64 )
        return dom_lo, dom_hi
