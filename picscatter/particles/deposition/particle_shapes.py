# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the particle shape factors (B-splines of order 0 to 3).

The scalar functions below are written in plain python, and are compiled
by the modules that use them (with `numba.njit` on CPU, and with
`numba.cuda.jit(device=True)` on GPU). Each of them fills the array `s`
with the `order+1` weights of a particle at position `x` (in cell units,
relative to the first point of the array, already shifted by -0.5 for
cell-centered arrays), and returns the index of the lowest grid point
that the particle touches.
"""
import math
import numpy as np

# Names of the supported particle shapes
shape_names = { 'ngp': 0, 'linear': 1, 'quadratic': 2, 'cubic': 3 }

# -------------------------------
# Particle shape Factor functions
# -------------------------------

def shape_factor_ngp( s, x ):
    # Nearest grid point
    j = int(math.floor(x + 0.5))
    s[0] = 1.
    return j

def shape_factor_linear( s, x ):
    j = int(math.floor(x))
    xint = x - j
    s[0] = 1. - xint
    s[1] = xint
    return j

def shape_factor_quadratic( s, x ):
    j = int(math.floor(x + 0.5))
    xint = x - j
    s[0] = 0.5*(0.5 - xint)**2
    s[1] = 0.75 - xint**2
    s[2] = 0.5*(0.5 + xint)**2
    # The lowest grid point is the left neighbor of the nearest point
    return j - 1

def shape_factor_cubic( s, x ):
    j = int(math.floor(x))
    xint = x - j
    s[0] = (1./6.)*(1. - xint)**3
    s[1] = (2./3.) - xint**2*(1. - 0.5*xint)
    s[2] = (2./3.) - (1. - xint)**2*(1. - 0.5*(1. - xint))
    s[3] = (1./6.)*xint**3
    return j - 1

# Shape functions, indexed by their order
shape_factors = { 0: shape_factor_ngp,
                  1: shape_factor_linear,
                  2: shape_factor_quadratic,
                  3: shape_factor_cubic }

def get_shape_order( particle_shape ):
    """
    Return the order (0, 1, 2 or 3) that corresponds to `particle_shape`

    Parameters
    ----------
    particle_shape: int or string
        Either the order itself, or one of 'ngp', 'linear',
        'quadratic', 'cubic'
    """
    if isinstance( particle_shape, str ):
        if particle_shape not in shape_names:
            raise ValueError("`particle_shape` should be one of %s "
                "(got '%s')" %(list(shape_names.keys()), particle_shape))
        return shape_names[particle_shape]
    if particle_shape not in shape_factors:
        raise ValueError("The order of the particle shape should be "
            "0, 1, 2 or 3 (got %s)" %particle_shape)
    return int(particle_shape)

# -----------------------------------
# Vectorized version (numpy, per axis)
# -----------------------------------

def compute_shape_factors( x, order ):
    """
    Return the indices of the lowest grid points touched by the particles,
    and the corresponding shape factors (a.k.a. interpolation weights)

    Parameters:
    -----------
    x : 1darray of floats
        Positions of the particles, in cell units
        (relative to the first point of the array)

    order : int
        Order of the shape factor (0, 1, 2 or 3)

    Returns:
    --------
    A tuple containing :

    i: 1darray of ints
        The index of the lowest grid point touched by each particle

    S: 2darray of floats
        An array of shape (order+1, N), which contains the weights
        of the grid points i, i+1, ..., i+order
    """
    x = np.asarray( x, dtype=np.float64 )
    S = np.empty( (order+1, len(x)), dtype=np.float64 )

    if order == 0:
        i = np.floor( x + 0.5 ).astype(np.int64)
        S[0,:] = 1.
    elif order == 1:
        i = np.floor( x ).astype(np.int64)
        xint = x - i
        S[0,:] = 1. - xint
        S[1,:] = xint
    elif order == 2:
        j = np.floor( x + 0.5 ).astype(np.int64)
        xint = x - j
        S[0,:] = 0.5*(0.5 - xint)**2
        S[1,:] = 0.75 - xint**2
        S[2,:] = 0.5*(0.5 + xint)**2
        i = j - 1
    elif order == 3:
        j = np.floor( x ).astype(np.int64)
        xint = x - j
        S[0,:] = (1./6.)*(1. - xint)**3
        S[1,:] = (2./3.) - xint**2*(1. - 0.5*xint)
        S[2,:] = (2./3.) - (1. - xint)**2*(1. - 0.5*(1. - xint))
        S[3,:] = (1./6.)*xint**3
        i = j - 1
    else:
        raise ValueError("The order of the particle shape should be "
            "0, 1, 2 or 3 (got %s)" %order)

    return( i, S )
