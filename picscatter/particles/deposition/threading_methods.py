# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the deposition methods on the CPU with threading
(direct deposition and tiled deposition).

Since the order of the shape factor and the geometry are constant for
a given simulation, the kernels are generated by factory functions
which capture them as compile-time constants (one compiled kernel per
combination, built on first use).
"""
import numpy as np
import numba
from picscatter.utils.threading import njit_parallel, prange, \
    threading_enabled
from picscatter.grid import geometry_axes, geometry_codes
from picscatter.particles.utilities.utility_methods import get_axis_positions
from .particle_shapes import shape_factors

# JIT-compilation of the particle utilities
get_axis_positions = numba.njit(get_axis_positions)

# Kernels that have already been generated, indexed by (order, dim)
_direct_kernels = {}
_tiled_kernels = {}

# -------------------------------
# Direct deposition (per thread)
# -------------------------------

def get_deposit_direct_numba( order, dim ):
    """
    Return the kernel that performs the direct deposition for
    the shape order `order` in the geometry `dim`.

    The kernel iterates over the threads in parallel, while each thread
    iterates over a chunk of particles. Each thread deposits into its
    own copy of the grid, so that no two threads ever write to the same
    memory location. The copies are summed afterwards
    (see `sum_reduce_threading_buffer`; this is *not* done in the kernel).
    """
    if (order, dim) in _direct_kernels:
        return _direct_kernels[(order, dim)]

    compute_shape_factor = numba.njit( shape_factors[order] )
    geometry = geometry_codes[dim]
    ndim = len( geometry_axes[dim] )
    n_shape = order + 1
    # Number of grid points touched along each of the 3 array axes
    n0 = n_shape
    n1 = n_shape if ndim > 1 else 1
    n2 = n_shape if ndim > 2 else 1
    is_rz = (dim == 'rz')

    def deposit_direct_numba( x, y, z, w, q_over_vol,
                              xmin, invdx, shift, lo,
                              grid_global, n_rz_modes,
                              nthreads, ptcl_chunk_indices ):
        """
        Deposition of the particle quantity `w` (times `q_over_vol`)

        Parameters
        ----------
        x, y, z : 1darray of floats (in meters)
            The position of the particles

        w : 1darray of floats
            The quantity carried by each particle
            (e.g. weight times ionization level)

        q_over_vol : float
            Charge of the species divided by the volume of a cell

        xmin, invdx, shift, lo : 1darrays of 3 elements
            Per-axis parameters (see GridGeometry.axis_parameters)

        grid_global : 5darray of floats
            Thread-local copies of the grid, of shape
            (nthreads, N0, N1, N2, ncomp) (is modified by this function)

        n_rz_modes : int
            The number of azimuthal modes

        nthreads : int
            Number of CPU threads used with numba prange

        ptcl_chunk_indices : array of int, of size nthreads+1
            The indices (of the particle array) between which each thread
            should loop. (i.e. divisions of particle array between threads)
        """
        # Deposit the particle quantity chunk-wise
        for i_thread in prange( nthreads ):
            # Shape factors along each axis (unused axes keep a weight of 1)
            s0 = np.zeros( n_shape )
            s1 = np.ones( n_shape )
            s2 = np.ones( n_shape )
            # Loop over all particles in thread chunk
            for ip in range( ptcl_chunk_indices[i_thread],
                             ptcl_chunk_indices[i_thread+1] ):
                wq = q_over_vol*w[ip]
                p0, p1, p2, cos, sin = get_axis_positions(
                    x[ip], y[ip], z[ip], geometry )
                # Index of the lowest grid point touched along each axis
                i = compute_shape_factor( s0,
                        invdx[0]*(p0 - xmin[0]) - shift[0] ) + lo[0]
                j = 0
                k = 0
                if ndim > 1:
                    j = compute_shape_factor( s1,
                        invdx[1]*(p1 - xmin[1]) - shift[1] ) + lo[1]
                if ndim > 2:
                    k = compute_shape_factor( s2,
                        invdx[2]*(p2 - xmin[2]) - shift[2] ) + lo[2]

                # Deposit into the thread-local grid
                for iz in range( n2 ):
                    for iy in range( n1 ):
                        for ix in range( n0 ):
                            weight = s0[ix]*s1[iy]*s2[iz]*wq
                            grid_global[i_thread, i+ix, j+iy, k+iz, 0] += weight

                if is_rz:
                    # Higher modes, with exp(i m theta) obtained by
                    # recurrence (once per particle)
                    exptheta = cos + 1.j*sin
                    xy = exptheta
                    for m in range( 1, n_rz_modes ):
                        for iz in range( n2 ):
                            for iy in range( n1 ):
                                for ix in range( n0 ):
                                    weight = s0[ix]*s1[iy]*s2[iz]*wq
                                    grid_global[i_thread, i+ix, j+iy, k+iz,
                                        2*m-1] += 2.*weight*xy.real
                                    grid_global[i_thread, i+ix, j+iy, k+iz,
                                        2*m] += 2.*weight*xy.imag
                        xy = xy*exptheta

        return

    kernel = numba.njit( parallel=threading_enabled )( deposit_direct_numba )
    _direct_kernels[(order, dim)] = kernel
    return kernel

@njit_parallel
def sum_reduce_threading_buffer( grid_global, grid4 ):
    """
    Sum the thread-local copies of the grid into the destination array

    Parameters
    ----------
    grid_global : 5darray of floats
        Thread-local copies, of shape (nthreads, N0, N1, N2, ncomp)

    grid4 : 4darray of floats
        The destination array (i, j, k, component)
        (is modified by this function)
    """
    nthreads, N0, N1, N2, ncomp = grid_global.shape
    # Each thread of the reduction owns a set of points along the first axis
    for i in prange( N0 ):
        for j in range( N1 ):
            for k in range( N2 ):
                for n in range( ncomp ):
                    total = 0.
                    for i_thread in range( nthreads ):
                        total += grid_global[i_thread, i, j, k, n]
                    grid4[i, j, k, n] += total

# -------------------------------
# Tiled deposition
# -------------------------------

def get_deposit_tiled_numba( order, dim ):
    """
    Return the kernel that performs the tiled deposition for
    the shape order `order` in the geometry `dim`.

    The kernel iterates in parallel over a set of tiles whose buffers do
    not overlap (tiles of the same color, see `TileLayout`). For each
    tile, the particles of this tile are deposited into a private buffer
    (which covers the tile plus `order` points on each side), and the
    buffer is then added to the destination array.
    """
    if (order, dim) in _tiled_kernels:
        return _tiled_kernels[(order, dim)]

    compute_shape_factor = numba.njit( shape_factors[order] )
    geometry = geometry_codes[dim]
    ndim = len( geometry_axes[dim] )
    n_shape = order + 1
    n0 = n_shape
    n1 = n_shape if ndim > 1 else 1
    n2 = n_shape if ndim > 2 else 1
    is_rz = (dim == 'rz')

    def deposit_tiled_numba( x, y, z, w, q_over_vol,
                             xmin, invdx, shift, lo,
                             grid4, n_rz_modes,
                             permutation, offsets, tiles,
                             n_tiles, tile_size, buffer_shape ):
        """
        Deposition of the particle quantity `w` (times `q_over_vol`),
        tile by tile

        Parameters
        ----------
        x, y, z, w, q_over_vol, xmin, invdx, shift, lo, n_rz_modes :
            See `deposit_direct_numba`

        grid4 : 4darray of floats
            The destination array (i, j, k, component)
            (is modified by this function)

        permutation : 1darray of ints
            The indices of the particles, sorted by tile

        offsets : 1darray of ints
            The particles of the tile `t` are
            `permutation[ offsets[t]:offsets[t+1] ]`

        tiles : 1darray of ints
            The (flat) indices of the tiles to be processed by this call

        n_tiles, tile_size, buffer_shape : 1darrays of 3 ints
            Number of tiles, number of cells per tile, and number of
            points of the private buffer along each axis
        """
        ncomp = grid4.shape[3]
        for i_tile in prange( len(tiles) ):
            tile = tiles[i_tile]
            bin_start = offsets[tile]
            bin_stop = offsets[tile+1]
            if bin_start == bin_stop:
                continue

            # Array index of the first point of the private buffer
            t0 = tile // (n_tiles[1]*n_tiles[2])
            t1 = (tile // n_tiles[2]) % n_tiles[1]
            t2 = tile % n_tiles[2]
            o0 = t0*tile_size[0] - order
            o1 = 0
            o2 = 0
            if ndim > 1:
                o1 = t1*tile_size[1] - order
            if ndim > 2:
                o2 = t2*tile_size[2] - order

            # Private buffer of this tile
            buffer = np.zeros( (buffer_shape[0], buffer_shape[1],
                                buffer_shape[2], ncomp) )
            s0 = np.zeros( n_shape )
            s1 = np.ones( n_shape )
            s2 = np.ones( n_shape )

            # Deposit the particles of this tile into the buffer
            for i_sorted in range( bin_start, bin_stop ):
                ip = permutation[i_sorted]
                wq = q_over_vol*w[ip]
                p0, p1, p2, cos, sin = get_axis_positions(
                    x[ip], y[ip], z[ip], geometry )
                i = compute_shape_factor( s0,
                        invdx[0]*(p0 - xmin[0]) - shift[0] ) + lo[0] - o0
                j = 0
                k = 0
                if ndim > 1:
                    j = compute_shape_factor( s1,
                        invdx[1]*(p1 - xmin[1]) - shift[1] ) + lo[1] - o1
                if ndim > 2:
                    k = compute_shape_factor( s2,
                        invdx[2]*(p2 - xmin[2]) - shift[2] ) + lo[2] - o2

                for iz in range( n2 ):
                    for iy in range( n1 ):
                        for ix in range( n0 ):
                            weight = s0[ix]*s1[iy]*s2[iz]*wq
                            buffer[i+ix, j+iy, k+iz, 0] += weight

                if is_rz:
                    exptheta = cos + 1.j*sin
                    xy = exptheta
                    for m in range( 1, n_rz_modes ):
                        for iz in range( n2 ):
                            for iy in range( n1 ):
                                for ix in range( n0 ):
                                    weight = s0[ix]*s1[iy]*s2[iz]*wq
                                    buffer[i+ix, j+iy, k+iz, 2*m-1] += \
                                        2.*weight*xy.real
                                    buffer[i+ix, j+iy, k+iz, 2*m] += \
                                        2.*weight*xy.imag
                        xy = xy*exptheta

            # Merge the buffer into the destination array
            # (skipping the points that are outside of the array)
            for ib in range( buffer_shape[0] ):
                ig = o0 + ib
                if ig < 0 or ig >= grid4.shape[0]:
                    continue
                for jb in range( buffer_shape[1] ):
                    jg = o1 + jb
                    if jg < 0 or jg >= grid4.shape[1]:
                        continue
                    for kb in range( buffer_shape[2] ):
                        kg = o2 + kb
                        if kg < 0 or kg >= grid4.shape[2]:
                            continue
                        for n in range( ncomp ):
                            grid4[ig, jg, kg, n] += buffer[ib, jb, kb, n]

        return

    kernel = numba.njit( parallel=threading_enabled )( deposit_tiled_numba )
    _tiled_kernels[(order, dim)] = kernel
    return kernel
