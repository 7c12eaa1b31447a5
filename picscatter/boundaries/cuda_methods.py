# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the PEC boundary methods on the GPU using CUDA.

Each thread handles one point (i, j, k) of the array, and loops
over the components of the mode axis.
"""
from numba import cuda
from picscatter.utils.cuda import compile_cupy
from .pec_methods import set_field_on_pec, set_rho_or_j_from_pec, \
    set_neumann_on_pec

# Compile the per-point rules as inlined device functions
set_field_on_pec = cuda.jit( set_field_on_pec, device=True, inline=True )
set_rho_or_j_from_pec = cuda.jit( set_rho_or_j_from_pec,
                                  device=True, inline=True )
set_neumann_on_pec = cuda.jit( set_neumann_on_pec, device=True, inline=True )

@compile_cupy
def apply_field_pec_cuda( field, flip, is_pec, nodal, dom_lo, dom_hi,
                          radial_scaling ):
    """
    Apply the PEC condition to one component of E or B, on all the
    points of the array (see `apply_field_pec_numba`)
    """
    ip = cuda.grid(1)
    N1 = field.shape[1]
    N2 = field.shape[2]
    if ip < field.shape[0]*N1*N2:
        i = ip // (N1*N2)
        j = (ip // N2) % N1
        k = ip % N2
        for n in range( field.shape[3] ):
            set_field_on_pec( field, i, j, k, n, flip, is_pec,
                              nodal, dom_lo, dom_hi, radial_scaling )

@compile_cupy
def apply_source_pec_cuda( field, range_lo, range_hi, mirrorfac, psign,
                           is_pec, tangent ):
    """
    Fold the charge or current of the guard cells into the domain,
    for the points between `range_lo` and `range_hi`
    (see `apply_source_pec_numba`)
    """
    ip = cuda.grid(1)
    n0 = range_hi[0] - range_lo[0] + 1
    n1 = range_hi[1] - range_lo[1] + 1
    n2 = range_hi[2] - range_lo[2] + 1
    if ip < n0*n1*n2:
        i = range_lo[0] + ip // (n1*n2)
        j = range_lo[1] + (ip // n2) % n1
        k = range_lo[2] + ip % n2
        for n in range( field.shape[3] ):
            set_rho_or_j_from_pec( field, i, j, k, n,
                                   mirrorfac, psign, is_pec, tangent )

@compile_cupy
def apply_neumann_pec_cuda( field, range_lo, range_hi, mirrorfac, is_pec ):
    """
    Apply the zero-derivative condition across the PEC boundaries,
    for the points between `range_lo` and `range_hi`
    """
    ip = cuda.grid(1)
    n0 = range_hi[0] - range_lo[0] + 1
    n1 = range_hi[1] - range_lo[1] + 1
    n2 = range_hi[2] - range_lo[2] + 1
    if ip < n0*n1*n2:
        i = range_lo[0] + ip // (n1*n2)
        j = range_lo[1] + (ip // n2) % n1
        k = range_lo[2] + ip % n2
        for n in range( field.shape[3] ):
            set_neumann_on_pec( field, i, j, k, n, mirrorfac, is_pec )
