# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the PEC boundary methods on the CPU with threading.
"""
import numba
from picscatter.utils.threading import njit_parallel, prange
from .pec_methods import set_field_on_pec, set_rho_or_j_from_pec, \
    set_neumann_on_pec

# JIT-compilation of the per-point rules
set_field_on_pec = numba.njit(set_field_on_pec)
set_rho_or_j_from_pec = numba.njit(set_rho_or_j_from_pec)
set_neumann_on_pec = numba.njit(set_neumann_on_pec)

@njit_parallel
def apply_field_pec_numba( field, range_lo, range_hi, flip, is_pec, nodal,
                           dom_lo, dom_hi, radial_scaling ):
    """
    Apply the PEC condition to one component of E or B, for the points
    between `range_lo` and `range_hi` (included)

    Parameters
    ----------
    field : 4darray of floats
        The field component (i, j, k, mode) (is modified by this function)

    range_lo, range_hi : 1darrays of 3 ints
        The points to be updated (usually the whole array, guard cells
        included). The indices are signed integers, like the mirror
        indices computed in `set_field_on_pec`.

    flip, is_pec, nodal, dom_lo, dom_hi, radial_scaling :
        See `set_field_on_pec`
    """
    ncomp = field.shape[3]
    # Guard cells only read from points that are never modified,
    # so that the points can be updated in any order
    for i in prange( range_lo[0], range_hi[0]+1 ):
        for j in range( range_lo[1], range_hi[1]+1 ):
            for k in range( range_lo[2], range_hi[2]+1 ):
                for n in range( ncomp ):
                    set_field_on_pec( field, i, j, k, n, flip, is_pec,
                                      nodal, dom_lo, dom_hi, radial_scaling )

@njit_parallel
def apply_source_pec_numba( field, range_lo, range_hi, mirrorfac, psign,
                            is_pec, tangent ):
    """
    Fold the charge or current of the guard cells into the domain,
    for the points between `range_lo` and `range_hi` (included)

    Parameters
    ----------
    field : 4darray of floats
        The charge or current component (i, j, k, mode)
        (is modified by this function)

    range_lo, range_hi : 1darrays of 3 ints
        The points to be updated: the valid domain along the axes
        with a PEC boundary, the whole array otherwise

    mirrorfac, psign, is_pec, tangent :
        See `set_rho_or_j_from_pec`
    """
    ncomp = field.shape[3]
    for i in prange( range_lo[0], range_hi[0]+1 ):
        for j in range( range_lo[1], range_hi[1]+1 ):
            for k in range( range_lo[2], range_hi[2]+1 ):
                for n in range( ncomp ):
                    set_rho_or_j_from_pec( field, i, j, k, n,
                        mirrorfac, psign, is_pec, tangent )

@njit_parallel
def apply_neumann_pec_numba( field, range_lo, range_hi, mirrorfac, is_pec ):
    """
    Apply the zero-derivative condition across the PEC boundaries,
    for the points between `range_lo` and `range_hi` (included)
    """
    ncomp = field.shape[3]
    for i in prange( range_lo[0], range_hi[0]+1 ):
        for j in range( range_lo[1], range_hi[1]+1 ):
            for k in range( range_lo[2], range_hi[2]+1 ):
                for n in range( ncomp ):
                    set_neumann_on_pec( field, i, j, k, n, mirrorfac, is_pec )
