# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the structure that deposits the charge and current of a
batch of particles onto the arrays of a grid.
"""
import warnings
import numpy as np
from scipy.constants import c
from .deposition.particle_shapes import get_shape_order
from .deposition.numpy_methods import deposit_numpy, get_axis_positions
from .deposition.threading_methods import get_deposit_direct_numba, \
    get_deposit_tiled_numba, sum_reduce_threading_buffer
from .utilities.sorting import TileLayout
from picscatter.load_balance import CostMeasurement, check_cost_algo

# Check if threading is enabled
from picscatter.utils.threading import nthreads, get_chunk_indices, \
    default_fast_memory_bytes
# Check if CUDA is available, then import CUDA functions
from picscatter.utils.cuda import cuda_installed
if cuda_installed:
    import cupy
    from picscatter.utils.cuda import cuda_tpb_bpg_1d, \
        get_shared_memory_per_block
    from .deposition.cuda_methods import get_deposit_direct_cuda
    from .deposition.cuda_methods_shared import get_deposit_tiled_cuda
    from .utilities.cuda_sorting import bin_particles_gpu

class Depositor(object):
    """
    Class that deposits the charge density (and the current) of batches
    of particles onto the arrays of a given grid.

    The deposition uses a shape factor of order 0 to 3, and one of two
    algorithms:
    - 'direct': every particle adds its contribution directly to the
      destination array (with atomic additions on GPU, and with one
      private copy of the array per thread on CPU)
    - 'tiled': the particles are first sorted by tile; the particles of
      each tile are deposited into a small private buffer (in the GPU
      shared memory, or in the CPU cache), which is then added to the
      destination array.
    """

    def __init__( self, grid, particle_shape=1, algorithm='direct',
                  tile_size=8, use_cuda=False, fast_memory_bytes=None,
                  cost_algo='disabled', use_numpy=False ):
        """
        Initialize the depositor and check its configuration

        Parameters
        ----------
        grid : a GridGeometry object
            The grid onto which the particles deposit

        particle_shape : int or str, optional
            The order of the shape factor (0, 1, 2 or 3), or its name
            ('ngp', 'linear', 'quadratic' or 'cubic')

        algorithm : str, optional
            Either 'direct' or 'tiled'

        tile_size : int or tuple of ints, optional
            Number of cells per tile along each axis (only for 'tiled')

        use_cuda : bool, optional
            Whether to perform the deposition on the GPU

        fast_memory_bytes : int, optional
            Size (in bytes) of the fast memory that is available to the
            buffer of one tile (only for 'tiled'). On GPU, this defaults
            to the shared memory per block; on CPU, this defaults to
            the environment variable PICSCATTER_FAST_MEMORY_BYTES (or
            256 KiB when it is not set). A value of 0 indicates that no
            fast memory is available, in which case the direct algorithm
            is used instead.

        cost_algo : str, optional
            How the cost of each deposition is measured, when a cost
            ledger is passed to the deposition methods.
            One of 'disabled', 'timers', 'heuristic' or 'gpuclock'.

        use_numpy : bool, optional
            Whether to use the (slow) numpy implementation instead of
            the compiled kernels. Only compatible with 'direct' on CPU.
        """
        self.grid = grid
        self.order = get_shape_order( particle_shape )

        # Define whether or not to use the GPU
        self.use_cuda = use_cuda
        if (self.use_cuda==True) and (cuda_installed==False):
            warnings.warn(
                'Cuda not available for the deposition.\n'
                'Performing the deposition on the CPU.')
            self.use_cuda = False
        self.use_numpy = use_numpy
        if self.use_numpy and self.use_cuda:
            raise ValueError("`use_numpy` cannot be combined with `use_cuda`.")

        # Check the cost measurement
        check_cost_algo( cost_algo, self.use_cuda )
        self.cost_algo = cost_algo

        # Check the algorithm and the size of the tiles
        if algorithm not in ['direct', 'tiled']:
            raise ValueError("`algorithm` should be either 'direct' or "
                             "'tiled' (got '%s')." %algorithm)
        if self.use_numpy and algorithm != 'direct':
            raise ValueError("The numpy deposition only supports "
                             "the 'direct' algorithm.")
        self.algorithm = algorithm
        self.tile_layout = None
        self.fast_memory_bytes = fast_memory_bytes
        if algorithm == 'tiled':
            self._setup_tiles( tile_size )

        # Generate the kernels (compiled on first use)
        if self.use_numpy:
            self.kernel = None
        elif self.use_cuda:
            if self.algorithm == 'direct':
                self.kernel = get_deposit_direct_cuda( self.order, grid.dim )
            else:
                self.kernel = get_deposit_tiled_cuda( self.order, grid.dim )
        else:
            if self.algorithm == 'direct':
                self.kernel = get_deposit_direct_numba( self.order, grid.dim )
            else:
                self.kernel = get_deposit_tiled_numba( self.order, grid.dim )

    def _setup_tiles( self, tile_size ):
        """
        Decompose the grid into tiles, and check that the buffer of a tile
        fits in the fast memory
        """
        if self.fast_memory_bytes is None:
            if self.use_cuda:
                self.fast_memory_bytes = get_shared_memory_per_block()
            else:
                self.fast_memory_bytes = default_fast_memory_bytes
        if self.fast_memory_bytes == 0:
            warnings.warn(
                'No fast memory available for the tiled deposition.\n'
                'Performing the direct deposition instead.')
            self.algorithm = 'direct'
            return

        self.tile_layout = TileLayout( self.grid, tile_size )
        if not self.use_cuda:
            # On CPU, tiles are merged concurrently, color by color
            self.tile_layout.check_tile_size( self.order )
        # The node-centered arrays have the largest buffers
        buffer_bytes = self.tile_layout.buffer_bytes(
            self.grid.nodal_staggering(), self.order )
        if buffer_bytes > self.fast_memory_bytes:
            raise ValueError("Tile size too big for the fast memory of the "
                "tiled deposition: the buffer of a tile requires %d bytes, "
                "while %d bytes are available. Use a smaller `tile_size`."
                %(buffer_bytes, self.fast_memory_bytes))

    # Deposition methods
    # ------------------

    def deposit_charge( self, batch, rho, q, staggering=None,
                        cost=None, box=0 ):
        """
        Deposit the charge density of the particles onto `rho`

        Parameters
        ----------
        batch : a ParticleBatch object
            The particles to deposit

        rho : ndarray of floats (numpy or cupy array)
            The destination array, including guard cells
            (see GridGeometry.zeros). Is modified by this function.

        q : float (in Coulombs)
            Charge of the species (for ionizable species: the charge
            of a particle with an ionization level of 1)

        staggering : tuple of 0 or 1, optional
            Staggering of `rho` along each axis (Default: node-centered)

        cost : a CostLedger object, optional
            Ledger to which the cost of this deposition is added

        box : int, optional
            Index of the ledger entry that corresponds to this grid
        """
        if staggering is None:
            staggering = self.grid.nodal_staggering()
        self._check_array( rho, staggering, 'rho' )
        # Skip deposition for neutral particles (e.g. photons)
        if q == 0 or batch.Ntot == 0:
            return

        weight = batch.effective_weights()
        with self._measure( cost, box, batch.Ntot ):
            self._deposit( batch, [weight], q/self.grid.cell_volume,
                           [rho], [staggering] )

    def deposit_current( self, batch, jx, jy, jz, q, cost=None, box=0 ):
        """
        Deposit the current density of the particles onto `jx`, `jy`, `jz`
        (i.e. `jr`, `jt`, `jz` in the 'rz' geometry), with the
        staggering of the Yee grid

        Parameters
        ----------
        batch : a ParticleBatch object
            The particles to deposit (their momenta need to be set)

        jx, jy, jz : ndarrays of floats (numpy or cupy arrays)
            The destination arrays (modified by this function)

        q, cost, box :
            See `deposit_charge`
        """
        if not batch.has_momenta:
            raise ValueError("The deposition of the current requires "
                             "the momenta of the particles.")
        arrays = [ jx, jy, jz ]
        staggerings = [ self.grid.yee_staggering('J', icomp)
                        for icomp in range(3) ]
        for array, staggering, name in zip( arrays, staggerings,
                                            ['jx', 'jy', 'jz'] ):
            self._check_array( array, staggering, name )
        if q == 0 or batch.Ntot == 0:
            return

        # Weight times velocity, for each component
        weight = c*batch.effective_weights()*batch.inv_gamma
        if self.grid.dim == 'rz':
            _, cos, sin = get_axis_positions( 'rz', batch.x, batch.y, batch.z )
            weights = [ weight*(cos*batch.ux + sin*batch.uy),
                        weight*(cos*batch.uy - sin*batch.ux),
                        weight*batch.uz ]
        else:
            weights = [ weight*batch.ux, weight*batch.uy, weight*batch.uz ]

        with self._measure( cost, box, 3*batch.Ntot ):
            self._deposit( batch, weights, q/self.grid.cell_volume,
                           arrays, staggerings )

    def _measure( self, cost, box, n_particles ):
        return CostMeasurement( self.cost_algo, cost, box, n_particles,
                    n_stencil_points=(self.order+1)**self.grid.ndim,
                    ncomp=self.grid.ncomp )

    def _check_array( self, array, staggering, name ):
        expected_shape = self.grid.array_shape( staggering )
        shape = tuple( array.shape )
        # In 'rz' with a single mode, the mode axis can be omitted
        if self.grid.dim == 'rz' and self.grid.ncomp == 1:
            valid = shape in [ expected_shape, expected_shape[:-1] ]
        else:
            valid = (shape == expected_shape)
        if not valid:
            raise ValueError("The array `%s` has shape %s, while the "
                "grid expects %s." %(name, shape, expected_shape))
        if not array.flags.c_contiguous:
            raise ValueError("The array `%s` should be C-contiguous." %name)

    def _deposit( self, batch, weights, q_over_vol, arrays, staggerings ):
        """
        Deposit each of the particle quantities `weights` onto the
        corresponding array of `arrays`
        """
        if self.use_numpy:
            for w, array, staggering in zip( weights, arrays, staggerings ):
                xmin, invdx, shift, lo = \
                    self.grid.axis_parameters( staggering )
                deposit_numpy( batch.x, batch.y, batch.z, w, q_over_vol,
                    self.grid.dim, self.grid.ndim, self.order,
                    xmin, invdx, shift, lo, self.grid.as_array4(array),
                    self.grid.n_rz_modes )
        elif self.use_cuda:
            self._deposit_gpu( batch, weights, q_over_vol,
                               arrays, staggerings )
        else:
            self._deposit_cpu( batch, weights, q_over_vol,
                               arrays, staggerings )

    def _deposit_cpu( self, batch, weights, q_over_vol, arrays, staggerings ):
        x, y, z = batch.x, batch.y, batch.z
        n_rz_modes = self.grid.n_rz_modes
        if self.algorithm == 'tiled':
            # The particles are binned once for all the arrays
            layout = self.tile_layout
            permutation, offsets = layout.bin_particles( x, y, z )
        else:
            ptcl_chunk_indices = get_chunk_indices( batch.Ntot, nthreads )

        for w, array, staggering in zip( weights, arrays, staggerings ):
            grid4 = self.grid.as_array4( array )
            xmin, invdx, shift, lo = self.grid.axis_parameters( staggering )
            if self.algorithm == 'direct':
                # Thread-local copies of the array
                grid_global = np.zeros( (nthreads,) + grid4.shape )
                self.kernel( x, y, z, w, q_over_vol, xmin, invdx, shift, lo,
                    grid_global, n_rz_modes, nthreads, ptcl_chunk_indices )
                sum_reduce_threading_buffer( grid_global, grid4 )
            else:
                buffer_shape = layout.buffer_shape( staggering, self.order )
                for tiles in layout.colors:
                    self.kernel( x, y, z, w, q_over_vol,
                        xmin, invdx, shift, lo, grid4, n_rz_modes,
                        permutation, offsets, tiles,
                        layout.n_tiles, layout.tile_size, buffer_shape )

    def _deposit_gpu( self, batch, weights, q_over_vol, arrays, staggerings ):
        # Transfer the particle data to the GPU
        d_x = cupy.asarray( batch.x )
        d_y = cupy.asarray( batch.y )
        d_z = cupy.asarray( batch.z )
        n_rz_modes = self.grid.n_rz_modes
        if self.algorithm == 'tiled':
            layout = self.tile_layout
            permutation, offsets = bin_particles_gpu( layout, d_x, d_y, d_z )
            d_n_tiles = cupy.asarray( layout.n_tiles )
            d_tile_size = cupy.asarray( layout.tile_size )
        else:
            bpg, tpb = cuda_tpb_bpg_1d( batch.Ntot )

        for w, array, staggering in zip( weights, arrays, staggerings ):
            # Arrays that are on the CPU are copied to the GPU and back
            on_cpu = isinstance( array, np.ndarray )
            d_array = cupy.asarray( array ) if on_cpu else array
            grid4 = self.grid.as_array4( d_array )
            d_w = cupy.asarray( w )
            xmin, invdx, shift, lo = [ cupy.asarray(a) for a in
                self.grid.axis_parameters( staggering ) ]
            if self.algorithm == 'direct':
                self.kernel[bpg, tpb]( d_x, d_y, d_z, d_w, q_over_vol,
                    xmin, invdx, shift, lo, grid4, n_rz_modes )
            else:
                buffer_shape = layout.buffer_shape( staggering, self.order )
                shared_bytes = layout.buffer_bytes( staggering, self.order )
                self.kernel[layout.n_tiles_total, 128, shared_bytes](
                    d_x, d_y, d_z, d_w, q_over_vol,
                    xmin, invdx, shift, lo, grid4, n_rz_modes,
                    permutation, offsets, d_n_tiles, d_tile_size,
                    cupy.asarray( buffer_shape ) )
            if on_cpu:
                array[...] = d_array.get()
