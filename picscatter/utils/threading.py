# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines a set of generic functions for multithreaded CPU execution.

The behavior can be changed with the following environment variables:
- PICSCATTER_DISABLE_THREADING=1 : compile the CPU kernels without prange
- PICSCATTER_DISABLE_CACHING=1 : do not cache the compiled kernels on disk
- PICSCATTER_FAST_MEMORY_BYTES : size of the private buffer of a tile
"""
import os, sys
import numpy as np
from numba import njit, prange as numba_prange
import numba

def _env_flag( name ):
    """Whether the environment variable `name` is set to 1"""
    return int( os.environ.get( name, 0 ) ) == 1

# Numba has no threading layer on Windows
threading_enabled = (sys.platform != 'win32') and \
    not _env_flag( 'PICSCATTER_DISABLE_THREADING' )
caching = not _env_flag( 'PICSCATTER_DISABLE_CACHING' )

# Fast memory (e.g. per-core cache) available to the private buffer
# of a tile, in the tiled deposition on CPU (in bytes)
default_fast_memory_bytes = int(
    os.environ.get( 'PICSCATTER_FAST_MEMORY_BYTES', 256*1024 ) )

if threading_enabled:
    njit_parallel = njit( parallel=True, cache=caching )
    prange = numba_prange
    nthreads = numba.config.NUMBA_NUM_THREADS
else:
    njit_parallel = njit( cache=caching )
    prange = range
    nthreads = 1


def get_chunk_indices( Ntot, nthreads ):
    """
    Divide `Ntot` particles among `nthreads` threads, and return the
    indices that bound the chunk of each thread

    The chunks differ in size by at most one particle.

    Parameters
    ----------
    Ntot: int
        Typically, the number of particles in a batch
    nthreads: int
        The number of threads among which the work is divided

    Return
    ------
    ptcl_chunk_indices: a 1d array of integers (uint64)
        An array of size nthreads+1 that starts with 0 and ends with Ntot
    """
    i_chk = np.arange( nthreads+1, dtype=np.uint64 )
    return( (i_chk*np.uint64(Ntot)) // np.uint64(nthreads) )
