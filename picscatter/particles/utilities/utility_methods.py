# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines particle utility methods.

These functions are written in plain python and are compiled by the
modules that use them, either for the CPU (`numba.njit`) or for the
GPU (`numba.cuda.jit(device=True)`).
"""
import math

def get_axis_positions( xj, yj, zj, geometry ):
    """
    Return the position of a particle along the three axes of the
    arrays (unused axes get 0), as well as the cosine and sine of its
    azimuthal angle (1 and 0 except in the 'rz' geometry)

    Parameters
    ----------
    xj, yj, zj : floats (in meters)
        Cartesian position of the particle

    geometry : int
        0: '1d', 1: '2d', 2: 'rz', 3: '3d'
    """
    cos = 1.
    sin = 0.
    if geometry == 0:
        return zj, 0., 0., cos, sin
    elif geometry == 1:
        return xj, zj, 0., cos, sin
    elif geometry == 2:
        # Cylindrical conversion
        rj = math.sqrt( xj**2 + yj**2 )
        # Avoid division by 0.
        if rj != 0.:
            invr = 1./rj
            cos = xj*invr
            sin = yj*invr
        return rj, zj, 0., cos, sin
    return xj, yj, zj, cos, sin

def get_tile_index( p0, p1, p2, xmin, invdx, lo, n_tiles, tile_size ):
    """
    Return the flat (row-major) index of the tile that contains a particle,
    given its position along the axes of the array (p0, p1, p2, as returned
    by `get_axis_positions`)

    The tile of a particle along a given axis is the index of its cell
    (counted from the first cell of the array, i.e. including guard cells)
    divided by the tile size. Particles outside of the array are attributed
    to the closest tile.
    """
    tile = 0
    for idim in range(3):
        if idim == 0:
            p = p0
        elif idim == 1:
            p = p1
        else:
            p = p2
        # Unused axes have invdx = 0, hence a single tile
        cell = int( math.floor( invdx[idim]*(p - xmin[idim]) ) ) + lo[idim]
        t = cell // tile_size[idim]
        t = min( max( t, 0 ), n_tiles[idim] - 1 )
        tile = tile*n_tiles[idim] + t
    return tile
