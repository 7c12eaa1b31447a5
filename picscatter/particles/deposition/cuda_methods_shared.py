# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the tiled deposition method on the GPU using CUDA.

Each block of threads handles one tile: the particles of the tile are
first deposited into a buffer in shared memory (with atomic additions
that only compete within the block), and the buffer is then added to
the destination array in global memory.
"""
from numba import cuda
import numba
from picscatter.utils.cuda import compile_cupy
from picscatter.grid import geometry_axes, geometry_codes
from picscatter.particles.utilities.utility_methods import get_axis_positions
from .particle_shapes import shape_factors

# JIT-compilation of the particle utilities
get_axis_positions = cuda.jit(get_axis_positions, device=True, inline=True)

# Kernels that have already been generated, indexed by (order, dim)
_tiled_kernels = {}

def get_deposit_tiled_cuda( order, dim ):
    """
    Return the GPU kernel that performs the tiled deposition for
    the shape order `order` in the geometry `dim`.

    The kernel is to be launched with one block per tile, and with
    the size of the buffer (in bytes) as dynamic shared memory.
    """
    if (order, dim) in _tiled_kernels:
        return _tiled_kernels[(order, dim)]

    compute_shape_factor = cuda.jit( shape_factors[order],
                                     device=True, inline=True )
    geometry = geometry_codes[dim]
    ndim = len( geometry_axes[dim] )
    n_shape = order + 1
    n0 = n_shape
    n1 = n_shape if ndim > 1 else 1
    n2 = n_shape if ndim > 2 else 1
    is_rz = (dim == 'rz')

    def deposit_tiled_cuda( x, y, z, w, q_over_vol,
                            xmin, invdx, shift, lo,
                            grid4, n_rz_modes,
                            permutation, offsets,
                            n_tiles, tile_size, buffer_shape ):
        """
        Deposition of the particle quantity `w` (times `q_over_vol`),
        with one block of threads per tile

        Parameters
        ----------
        x, y, z, w, q_over_vol, xmin, invdx, shift, lo, grid4, n_rz_modes :
            See `deposit_direct_cuda`

        permutation : 1darray of ints
            The indices of the particles, sorted by tile

        offsets : 1darray of ints
            The particles of the tile `t` are
            `permutation[ offsets[t]:offsets[t+1] ]`

        n_tiles, tile_size, buffer_shape : 1darrays of 3 ints
            Number of tiles, number of cells per tile, and number of
            points of the shared buffer along each axis
        """
        tile = cuda.blockIdx.x
        bin_start = offsets[tile]
        bin_stop = offsets[tile+1]
        # All the threads of the block leave together for empty tiles
        if bin_start == bin_stop:
            return

        ncomp = grid4.shape[3]
        b0 = buffer_shape[0]
        b1 = buffer_shape[1]
        b2 = buffer_shape[2]
        n_buffer = b0*b1*b2*ncomp

        # Array index of the first point of the buffer
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

        # Zero-initialize the buffer (flattened, in row-major order)
        buffer = cuda.shared.array( 0, numba.float64 )
        for ib in range( cuda.threadIdx.x, n_buffer, cuda.blockDim.x ):
            buffer[ib] = 0.
        cuda.syncthreads()

        # Deposit the particles of the tile (strided among the threads)
        s0 = cuda.local.array( n_shape, numba.float64 )
        s1 = cuda.local.array( n_shape, numba.float64 )
        s2 = cuda.local.array( n_shape, numba.float64 )
        for l in range( n_shape ):
            s1[l] = 1.
            s2[l] = 1.
        for i_sorted in range( bin_start + cuda.threadIdx.x, bin_stop,
                               cuda.blockDim.x ):
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
                        ib = (((i+ix)*b1 + (j+iy))*b2 + (k+iz))*ncomp
                        cuda.atomic.add( buffer, ib, weight )

            if is_rz:
                exptheta = cos + 1.j*sin
                xy = exptheta
                for m in range( 1, n_rz_modes ):
                    for iz in range( n2 ):
                        for iy in range( n1 ):
                            for ix in range( n0 ):
                                weight = s0[ix]*s1[iy]*s2[iz]*wq
                                ib = (((i+ix)*b1 + (j+iy))*b2 + (k+iz))*ncomp
                                cuda.atomic.add( buffer, ib + 2*m-1,
                                                 2.*weight*xy.real )
                                cuda.atomic.add( buffer, ib + 2*m,
                                                 2.*weight*xy.imag )
                    xy = xy*exptheta
        cuda.syncthreads()

        # Merge the buffer into the destination array
        # (skipping the points that are outside of the array)
        for ib in range( cuda.threadIdx.x, n_buffer, cuda.blockDim.x ):
            n = ib % ncomp
            kb = (ib // ncomp) % b2
            jb = (ib // (ncomp*b2)) % b1
            ibx = ib // (ncomp*b2*b1)
            ig = o0 + ibx
            jg = o1 + jb
            kg = o2 + kb
            if ig >= 0 and ig < grid4.shape[0] and \
                jg >= 0 and jg < grid4.shape[1] and \
                kg >= 0 and kg < grid4.shape[2]:
                value = buffer[ib]
                if value != 0.:
                    cuda.atomic.add( grid4, (ig, jg, kg, n), value )

    kernel = compile_cupy( deposit_tiled_cuda )
    _tiled_kernels[(order, dim)] = kernel
    return kernel
