# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines a set of generic functions that operate on a GPU.
"""
import numba
numba_version = (int(numba.__version__.split('.')[0]),
                 int(numba.__version__.split('.')[1]))
from numba import cuda
import numpy as np

# Check if CUDA is available and set variable accordingly
try:
    numba_cuda_installed = cuda.is_available()
except Exception:
    numba_cuda_installed = False

try:
    import cupy
    cupy_installed = cupy.is_available()
except (ImportError, AssertionError):
    cupy_installed = False

cuda_installed = (numba_cuda_installed and cupy_installed)

# -----------------------------------------------------
# CUDA grid utilities
# -----------------------------------------------------

def cuda_tpb_bpg_1d(x, TPB = 256):
    """
    Get the needed blocks per grid for a 1D CUDA grid.

    Parameters :
    ------------
    x : int
        Total number of threads

    TPB : int
        Threads per block

    Returns :
    ---------
    BPG : int
        Number of blocks per grid

    TPB : int
        Threads per block.
    """
    # Calculates the needed blocks per grid
    BPG = int(x/TPB + 1)
    return BPG, TPB

def get_shared_memory_per_block():
    """
    Return the amount of fast shared memory (in bytes) that a single
    block of threads can allocate on the current GPU.
    """
    device = cuda.get_current_device()
    return int( device.MAX_SHARED_MEMORY_PER_BLOCK )

# -----------------------------------------------------
# CUDA kernel compilation
# -----------------------------------------------------

if cuda_installed:

    def get_args_hash(args):
        """
        Computes a hash from the argument types of a kernel call.
        This takes into account the data types as well as (for arrays) the
        number of dimensions.

        Parameters:
        -----------
        args: A list of arguments (scalars or Cupy arrays).

        Returns:
        --------
        hash: Hash value as an int.
        """
        types = []
        for a in args:
            # For array arguments: save the data type and the number of
            # dimensions
            if isinstance(a, cupy.ndarray):
                types.append(a.dtype)
                types.append(a.ndim)
            # For scalar arguments: save only the data type
            else:
                types.append(np.dtype(type(a)))

        return hash(tuple(types))

    class compile_cupy(object):
        """
        Function decorator which compiles python functions into GPU CUDA
        kernels, meant to be used in the same way as `numba.cuda.jit`
        but with lower kernel launch overheads.

        The kernels are compiled into PTX code by `numba.cuda.jit`, and
        the PTX code is launched through `cupy`. Compiled kernels are
        stored per argument types, to avoid re-compilation.

        Kernels are launched with `kernel[blocks, threads](*args)`, or with
        `kernel[blocks, threads, shared_mem_bytes](*args)` when they use
        dynamically-sized shared memory.
        """

        def __init__(self, func):
            """
            Parameters:
            -----------
            func: The python function the decorator is applied to, which
                will be compiled into a CUDA kernel.
            """
            self.python_func = func
            # Stores compiled kernels to avoid re-compilation
            self.kernel_dict = {}

        def __getitem__(self, launch_config):
            """
            Called when the kernel is called with square brackets.

            Parameters:
            -----------
            launch_config: A tuple (blocks_per_grid, threads_per_block) or
                (blocks_per_grid, threads_per_block, shared_mem_bytes)

            Returns:
            --------
            call_kernel: A wrapper function which represents the kernel
                specialized to the specified launch configuration
            """
            blocks_per_grid = launch_config[0]
            threads_per_block = launch_config[1]
            shared_mem = 0
            if len(launch_config) > 2:
                shared_mem = int(launch_config[2])

            # Cupy does not accept the thread and block size as numbers
            if not isinstance(blocks_per_grid, tuple):
                blocks_per_grid = (blocks_per_grid, )
            if not isinstance(threads_per_block, tuple):
                threads_per_block = (threads_per_block, )

            def call_kernel(*args):
                """
                Compile (if needed) and launch the kernel.

                Parameters:
                -----------
                args: List of the kernel arguments.
                    They should all be either scalar values (float, int,
                    complex, bool) or Cupy arrays.
                """
                hash = get_args_hash(args)
                if hash not in self.kernel_dict:
                    numba_kernel = cuda.jit()(self.python_func) \
                        .specialize(*args)
                    # Load the PTX code of the numba kernel into cupy
                    module = cupy.cuda.function.Module()
                    module.load(bytes(numba_kernel.ptx, 'UTF-8'))
                    if numba_version[0] > 0 or numba_version[1] > 50:
                        kernel_name = numba_kernel.definition.entry_name
                    else:
                        kernel_name = numba_kernel.entry_name
                    self.kernel_dict[hash] = module.get_function( kernel_name )
                kernel = self.kernel_dict[hash]

                # Numba kernels expect multiple arguments for each array:
                # two null pointers, the size, the item size, the array,
                # then its shape and strides as single integers
                kernel_args = []
                for a in args:
                    if isinstance(a, cupy.ndarray):
                        kernel_args.extend(
                            [0, 0, a.size, a.dtype.itemsize, a])
                        kernel_args.extend(a.shape)
                        kernel_args.extend(a.strides)
                    else:
                        kernel_args.append(a)

                kernel( blocks_per_grid, threads_per_block, kernel_args,
                        shared_mem=shared_mem )

            return call_kernel
