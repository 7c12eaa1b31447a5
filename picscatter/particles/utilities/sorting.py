# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the decomposition of the grid into tiles, and the binning
of the particles per tile on the CPU.
"""
import numpy as np
import numba
from picscatter.utils.threading import njit_parallel, prange
from picscatter.grid import geometry_codes
from .utility_methods import get_axis_positions, get_tile_index

# JIT-compilation of the particle utilities
get_axis_positions = numba.njit(get_axis_positions)
get_tile_index = numba.njit(get_tile_index)

class TileLayout(object):
    """
    Class that describes how the arrays of a grid (including their
    guard cells) are divided into tiles of `tile_size` cells per axis.

    Main attributes
    ---------------
    - tile_size : 1darray of 3 ints (1 for the unused axes)
    - n_tiles : 1darray of 3 ints, number of tiles along each axis
    - n_tiles_total : int, total number of tiles
    - colors : list of 1darrays, the flat indices of the tiles of each
               color. Two tiles of the same color are separated by at least
               one tile along one axis, so that their deposition buffers
               never overlap as long as `tile_size > 2*order`.
    """
    def __init__( self, grid, tile_size ):
        """
        Parameters
        ----------
        grid : a GridGeometry object

        tile_size : int or tuple of ints
            Number of cells per tile along each axis
        """
        self.grid = grid
        if np.isscalar(tile_size):
            tile_size = [tile_size]*grid.ndim
        tile_size = [ int(ts) for ts in tile_size ]
        if len(tile_size) != grid.ndim:
            raise ValueError("`tile_size` should have %d elements in the "
                "'%s' geometry (got %d)." %(grid.ndim, grid.dim, len(tile_size)))
        if min(tile_size) < 1:
            raise ValueError("`tile_size` should be at least 1 "
                "(got %s)." %tile_size)
        self.tile_size = np.array( grid.padded(tile_size, 1), dtype=np.int64 )

        # The tiles cover all the points of the arrays (including the
        # guard cells and the last point of node-centered arrays)
        n_points = [ n + 1 + 2*ng for n, ng in
                     zip(grid.n_cells, grid.n_guard) ]
        n_tiles = [ -(-n // ts) for n, ts in zip(n_points, tile_size) ]
        self.n_tiles = np.array( grid.padded(n_tiles, 1), dtype=np.int64 )
        self.n_tiles_total = int( np.prod(self.n_tiles) )

        # Group the tiles by color (parity of their index along each axis)
        tiles = np.arange( self.n_tiles_total, dtype=np.int64 )
        t0 = tiles // (self.n_tiles[1]*self.n_tiles[2])
        t1 = (tiles // self.n_tiles[2]) % self.n_tiles[1]
        t2 = tiles % self.n_tiles[2]
        color = (t0 & 1) + 2*(t1 & 1) + 4*(t2 & 1)
        self.colors = [ tiles[color == c] for c in range(8)
                        if np.any(color == c) ]

    def check_tile_size( self, order ):
        """
        Check that tiles of the same color never write to the same
        points of the array, for the shape order `order`
        """
        ts = self.tile_size[:self.grid.ndim]
        if np.any( ts <= 2*order ):
            raise ValueError("With particle shape order %d, the tiled "
                "deposition on CPU requires `tile_size` > %d along every "
                "axis (got %s)." %(order, 2*order, list(ts)))

    def buffer_shape( self, staggering, order ):
        """
        Return the number of points of the private deposition buffer of a
        tile, along each of the 3 axes of the arrays

        The buffer covers the tile, plus `order` points on each side, plus
        one point along node-centered axes.
        """
        shape = [ ts + s + 2*order for ts, s in
                  zip(self.tile_size, staggering) ]
        return np.array( self.grid.padded(shape, 1), dtype=np.int64 )

    def buffer_bytes( self, staggering, order ):
        """Return the size (in bytes) of the private buffer of a tile"""
        n_points = int( np.prod( self.buffer_shape(staggering, order) ) )
        return n_points * self.grid.ncomp * np.dtype(np.float64).itemsize

    def bin_particles( self, x, y, z ):
        """
        Sort the particles by tile

        Parameters
        ----------
        x, y, z : 1darrays of floats (in meters)
            The position of the particles

        Returns
        -------
        permutation : 1darray of ints
            The indices of the particles, sorted by tile (the order of the
            particles within a tile is preserved)
        offsets : 1darray of ints, of size n_tiles_total+1
            The particles of the tile `t` are
            `permutation[ offsets[t]:offsets[t+1] ]`
        """
        xmin, invdx, _, lo = self.grid.axis_parameters(
                                self.grid.nodal_staggering() )
        tile_idx = np.empty( len(x), dtype=np.int64 )
        get_tile_idx_per_particle( tile_idx, x, y, z,
            geometry_codes[self.grid.dim], xmin, invdx, lo,
            self.n_tiles, self.tile_size )
        return sort_particles_per_tile( tile_idx, self.n_tiles_total )

# -----------------------------------------------------
# Sorting utilities - get_tile_idx / sort / prefix_sum
# -----------------------------------------------------

@njit_parallel
def get_tile_idx_per_particle( tile_idx, x, y, z, geometry,
                               xmin, invdx, lo, n_tiles, tile_size ):
    """
    Get the (flat) tile index of each particle.

    Parameters
    ----------
    tile_idx : 1darray of integers
        The tile index of the particle (is modified by this function)

    x, y, z : 1darray of floats (in meters)
        The position of the particles

    geometry : int
        Code of the geometry (see `geometry_codes`)

    xmin, invdx, lo : 1darrays of 3 elements
        Per-axis parameters (see GridGeometry.axis_parameters)

    n_tiles, tile_size : 1darrays of 3 ints
        Number of tiles, and number of cells per tile, along each axis
    """
    for ip in prange( tile_idx.shape[0] ):
        p0, p1, p2, cos, sin = get_axis_positions(
            x[ip], y[ip], z[ip], geometry )
        tile_idx[ip] = get_tile_index( p0, p1, p2,
                            xmin, invdx, lo, n_tiles, tile_size )

def sort_particles_per_tile( tile_idx, n_tiles_total ):
    """
    Return the permutation that sorts the particles by tile, and the
    offsets (exclusive prefix sum of the number of particles per tile)
    """
    permutation = np.argsort( tile_idx, kind='stable' )
    counts = np.bincount( tile_idx, minlength=n_tiles_total )
    offsets = np.zeros( n_tiles_total + 1, dtype=np.int64 )
    np.cumsum( counts, out=offsets[1:] )
    return permutation, offsets
