# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines a set of generic functions for printing setup information.
"""
from picscatter import __version__
from picscatter.utils.cuda import cuda, cuda_installed
from picscatter.utils.threading import threading_enabled, nthreads

def print_deposition_setup( depositor, verbose_level=1, pec=None ):
    """
    Print information about the deposition setup.
    - Version of picscatter
    - CPU or GPU computation
    - Number of threads in case of CPU multi-threading
    - (Additional detailed information)

    Parameters
    ----------
    depositor: a Depositor object
        Contains all the information of the deposition setup

    verbose_level: int, optional
        Level of detail of the information
        0 - Print no information
        1 (Default) - Print basic information
        2 - Print detailed information

    pec: a PECBoundary object, optional
        The boundaries that are applied after the deposition
    """
    if verbose_level > 0:
        # Print version of picscatter
        message = '\npicscatter (%s)\n'%__version__
        # Basic information
        if verbose_level == 1:
            if depositor.use_cuda:
                message += "\nRunning on GPU "
            else:
                message += "\nRunning on CPU "
                if threading_enabled:
                    message += "(%d threads) " %nthreads
        # Detailed information
        elif verbose_level == 2:
            # Information on Cuda
            if cuda_installed:
                message += '\nCUDA available: Yes'
            else:
                message += '\nCUDA available: No'
            # Information about the architecture
            if depositor.use_cuda:
                message += '\nCompute architecture: GPU (CUDA)'
                message += get_gpu_message()
            else:
                message += '\nCompute architecture: CPU'
                if threading_enabled:
                    message += '\nCPU multi-threading enabled: Yes'
                    message += '\nThreads: %s' %nthreads
                else:
                    message += '\nCPU multi-threading enabled: No'
                if depositor.use_numpy:
                    message += '\nKernels: numpy (reference)'
            message += '\n'

            # Information on the numerical algorithm
            grid = depositor.grid
            message += '\nGeometry: %s' %grid.dim
            message += '\nCells: %s' %(grid.n_cells,)
            message += '\nGuard region size: %s cells' %(grid.n_guard,)
            if grid.dim == 'rz':
                message += '\nAzimuthal modes: %d' %grid.n_rz_modes
            message += '\nParticle shape order: %d' %depositor.order
            message += '\nDeposition algorithm: %s' %depositor.algorithm
            if depositor.algorithm == 'tiled':
                layout = depositor.tile_layout
                message += '\nTile size: %s cells' \
                    %(tuple(layout.tile_size[:grid.ndim]),)
                message += '\nNumber of tiles: %d' %layout.n_tiles_total
                message += '\nFast memory per tile: %d bytes' \
                    %depositor.fast_memory_bytes
            message += '\nCost measurement: %s' %depositor.cost_algo
            if pec is not None:
                if pec.is_any_boundary_pec():
                    message += '\nPEC boundaries: Yes'
                else:
                    message += '\nPEC boundaries: No'
        message += '\n'

        print( message )

def get_gpu_message():
    """
    Returns a string with information about the currently selected GPU.
    """
    gpu = cuda.gpus.current
    # Convert bytestring to actual string
    try:
        gpu_name = gpu.name.decode()
    except AttributeError:
        gpu_name = gpu.name
    return "\npicscatter selected a %s GPU with id %s" %( gpu_name, gpu.id )
