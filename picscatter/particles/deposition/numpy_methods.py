# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the deposition with numpy (reference implementation).
"""
import itertools
import numpy as np
from .particle_shapes import compute_shape_factors

def get_axis_positions( dim, x, y, z ):
    """
    Return the positions of the particles along each axis of the grid
    (in array order), as well as the cosine and sine of their azimuthal
    angle (only relevant in the 'rz' geometry)
    """
    if dim == '1d':
        return [z], None, None
    elif dim == '2d':
        return [x, z], None, None
    elif dim == '3d':
        return [x, y, z], None, None
    # Cylindrical conversion
    r = np.sqrt( x**2 + y**2 )
    # Avoid division by 0.
    nonzero = (r != 0.)
    invr = np.where( nonzero, 1./np.where( nonzero, r, 1. ), 0. )
    cos = np.where( nonzero, x*invr, 1. )
    sin = np.where( nonzero, y*invr, 0. )
    return [r, z], cos, sin

def deposit_numpy( x, y, z, w, q_over_vol, dim, ndim, order,
                   xmin, invdx, shift, lo, grid4, n_rz_modes ):
    """
    Perform the deposition using numpy.add.at

    Parameters
    ----------
    x, y, z : 1darrays of floats (in meters)
        The position of the particles

    w : 1darray of floats
        The quantity carried by each particle (weight times charge state,
        possibly multiplied by a velocity component)

    q_over_vol : float
        Charge of the species, divided by the volume of a cell

    dim : string
        The geometry of the grid ('1d', '2d', 'rz', '3d')

    ndim, order : ints
        Number of spatial axes, and order of the shape factor

    xmin, invdx, shift, lo : 1darrays of 3 elements
        Per-axis parameters of the grid (see GridGeometry.axis_parameters)

    grid4 : 4darray of floats
        The array (i, j, k, component) onto which to deposit
        (is modified by this function)

    n_rz_modes : int
        The number of azimuthal modes
    """
    positions, cos, sin = get_axis_positions( dim, x, y, z )

    # Indices and shape factors along each axis
    indices = []
    shapes = []
    for idim in range(ndim):
        x_cell = invdx[idim]*(positions[idim] - xmin[idim]) - shift[idim]
        i, S = compute_shape_factors( x_cell, order )
        indices.append( i + lo[idim] )
        shapes.append( S )
    zero = np.zeros( len(w), dtype=np.int64 )
    for idim in range(ndim, 3):
        indices.append( zero )
        shapes.append( np.ones((1, len(w))) )

    wq = q_over_vol * w
    if dim == 'rz':
        exptheta = cos + 1.j*sin

    # Loop over the points of the stencil
    stencil = [ range(S.shape[0]) for S in shapes ]
    for ix, iy, iz in itertools.product( *stencil ):
        index = ( indices[0] + ix, indices[1] + iy, indices[2] + iz )
        weight = shapes[0][ix]*shapes[1][iy]*shapes[2][iz]*wq
        np.add.at( grid4, index + (0,), weight )
        if dim == 'rz':
            # The factor 2 comes from the normalization of the modes
            xy = exptheta.copy()
            for m in range(1, n_rz_modes):
                np.add.at( grid4, index + (2*m-1,), 2*weight*xy.real )
                np.add.at( grid4, index + (2*m,), 2*weight*xy.imag )
                xy = xy*exptheta
