# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the direct deposition method on the GPU using CUDA
(one thread per particle, atomic additions into the destination array).
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
_direct_kernels = {}

def get_deposit_direct_cuda( order, dim ):
    """
    Return the GPU kernel that performs the direct deposition for
    the shape order `order` in the geometry `dim`.
    """
    if (order, dim) in _direct_kernels:
        return _direct_kernels[(order, dim)]

    compute_shape_factor = cuda.jit( shape_factors[order],
                                     device=True, inline=True )
    geometry = geometry_codes[dim]
    ndim = len( geometry_axes[dim] )
    n_shape = order + 1
    n0 = n_shape
    n1 = n_shape if ndim > 1 else 1
    n2 = n_shape if ndim > 2 else 1
    is_rz = (dim == 'rz')

    def deposit_direct_cuda( x, y, z, w, q_over_vol,
                             xmin, invdx, shift, lo,
                             grid4, n_rz_modes ):
        """
        Deposition of the particle quantity `w` (times `q_over_vol`)
        using numba on the GPU. Each thread handles one particle, and adds
        its contribution to the `(order+1)**ndim` surrounding points
        with atomic additions.

        Parameters
        ----------
        x, y, z : 1darray of floats (in meters)
            The position of the particles

        w : 1darray of floats
            The quantity carried by each particle

        q_over_vol : float
            Charge of the species divided by the volume of a cell

        xmin, invdx, shift, lo : 1darrays of 3 elements
            Per-axis parameters (see GridGeometry.axis_parameters)

        grid4 : 4darray of floats
            The destination array (i, j, k, component)
            (is modified by this function)

        n_rz_modes : int
            The number of azimuthal modes
        """
        ip = cuda.grid(1)
        if ip < x.shape[0]:
            s0 = cuda.local.array( n_shape, numba.float64 )
            s1 = cuda.local.array( n_shape, numba.float64 )
            s2 = cuda.local.array( n_shape, numba.float64 )
            for l in range( n_shape ):
                s1[l] = 1.
                s2[l] = 1.

            wq = q_over_vol*w[ip]
            p0, p1, p2, cos, sin = get_axis_positions(
                x[ip], y[ip], z[ip], geometry )
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

            for iz in range( n2 ):
                for iy in range( n1 ):
                    for ix in range( n0 ):
                        weight = s0[ix]*s1[iy]*s2[iz]*wq
                        cuda.atomic.add( grid4,
                            (i+ix, j+iy, k+iz, 0), weight )

            if is_rz:
                # Higher modes, with exp(i m theta) obtained by recurrence
                exptheta = cos + 1.j*sin
                xy = exptheta
                for m in range( 1, n_rz_modes ):
                    for iz in range( n2 ):
                        for iy in range( n1 ):
                            for ix in range( n0 ):
                                weight = s0[ix]*s1[iy]*s2[iz]*wq
                                cuda.atomic.add( grid4,
                                    (i+ix, j+iy, k+iz, 2*m-1),
                                    2.*weight*xy.real )
                                cuda.atomic.add( grid4,
                                    (i+ix, j+iy, k+iz, 2*m),
                                    2.*weight*xy.imag )
                    xy = xy*exptheta

    kernel = compile_cupy( deposit_direct_cuda )
    _direct_kernels[(order, dim)] = kernel
    return kernel
