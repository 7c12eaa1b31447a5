# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the binning of the particles per tile on the GPU using CUDA.
"""
from numba import cuda
from picscatter.utils.cuda import cuda_installed, cuda_tpb_bpg_1d
from picscatter.grid import geometry_codes
from .utility_methods import get_axis_positions, get_tile_index
if cuda_installed:
    import cupy
    from picscatter.utils.cuda import compile_cupy

# Compile the particle utilities as inlined device functions
get_axis_positions = cuda.jit( get_axis_positions, device=True, inline=True )
get_tile_index = cuda.jit( get_tile_index, device=True, inline=True )

# -----------------------------------------------------
# Sorting utilities - get_tile_idx / sort / prefix_sum
# -----------------------------------------------------

@compile_cupy
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
    i = cuda.grid(1)
    if i < tile_idx.shape[0]:
        p0, p1, p2, cos, sin = get_axis_positions( x[i], y[i], z[i], geometry )
        tile_idx[i] = get_tile_index( p0, p1, p2,
                            xmin, invdx, lo, n_tiles, tile_size )

@compile_cupy
def incl_prefix_sum( tile_idx, prefix_sum ):
    """
    Perform an inclusive parallel prefix sum on the sorted
    tile index array. The prefix sum array represents the
    cumulative sum of the number of particles per tile
    for each tile index.

    Parameters
    ----------
    tile_idx : 1darray of integers
        The sorted tile index of the particles

    prefix_sum : 1darray of integers
        Represents the cumulative sum of
        the particles per tile
    """
    # i is the index of the macroparticle
    i = cuda.grid(1)
    if i < tile_idx.shape[0]-1:
        # ti: index of the tile of the present macroparticle
        ti = tile_idx[i]
        # ti_next: index of the tile of the next macroparticle
        ti_next = tile_idx[i+1]
        # Fill all the tiles between ti and ti_next with the
        # inclusive cumulative sum of the number particles until ti
        while ti < ti_next:
            prefix_sum[ti] = i+1
            ti += 1

@compile_cupy
def prefill_prefix_sum( tile_idx, prefix_sum, Ntot ):
    """
    Prefill the prefix sum array so that:
        - the tiles that have a lower index than the tile that contains
        the first particle are set to 0
        - the tiles that have a higher index than the tile that contains
        the last particle are set to the total number of particles (Ntot)

    All the tiles in between will have their value set by `incl_prefix_sum`
    """
    # One thread per tile
    i = cuda.grid(1)
    if i < prefix_sum.shape[0]:
        if Ntot > 0:
            if i < tile_idx[0]:
                prefix_sum[i] = 0
            elif i >= tile_idx[Ntot-1]:
                prefix_sum[i] = Ntot
        else:
            prefix_sum[i] = 0

def bin_particles_gpu( layout, x, y, z ):
    """
    Sort the particles by tile, on the GPU

    Parameters
    ----------
    layout : a TileLayout object

    x, y, z : cupy arrays of floats (in meters)
        The position of the particles

    Returns
    -------
    permutation, offsets : cupy arrays of ints
        See `TileLayout.bin_particles`
    """
    grid = layout.grid
    Ntot = x.shape[0]
    xmin, invdx, _, lo = grid.axis_parameters( grid.nodal_staggering() )

    # Tile index of each particle
    tile_idx = cupy.empty( Ntot, dtype=cupy.int64 )
    bpg, tpb = cuda_tpb_bpg_1d( Ntot )
    get_tile_idx_per_particle[bpg, tpb]( tile_idx, x, y, z,
        geometry_codes[grid.dim], cupy.asarray(xmin), cupy.asarray(invdx),
        cupy.asarray(lo), cupy.asarray(layout.n_tiles),
        cupy.asarray(layout.tile_size) )

    # Sort (`cupy.argsort` is a stable sort)
    permutation = cupy.argsort( tile_idx )
    sorted_tile_idx = tile_idx[permutation]

    # offsets[t+1] is the number of particles in the tiles 0 to t
    offsets = cupy.zeros( layout.n_tiles_total + 1, dtype=cupy.int64 )
    prefix_sum = offsets[1:]
    bpg_t, tpb_t = cuda_tpb_bpg_1d( layout.n_tiles_total )
    prefill_prefix_sum[bpg_t, tpb_t]( sorted_tile_idx, prefix_sum, Ntot )
    incl_prefix_sum[bpg, tpb]( sorted_tile_idx, prefix_sum )
    return permutation, offsets
