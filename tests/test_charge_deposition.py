# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This test file is part of picscatter (Particle-In-Cell scatter layer).

It verifies the charge deposition on CPU (direct algorithm):
- the total deposited charge is conserved, for all shapes and geometries
- known single-particle configurations (1D linear, azimuthal modes)
- the compiled kernels agree with the numpy implementation
- the deposition is deterministic for a fixed number of threads

Usage :
from the top-level directory of picscatter run
$ python tests/test_charge_deposition.py
"""
import numpy as np
import pytest
from scipy.constants import e
from picscatter import GridGeometry, ParticleBatch, Depositor
from picscatter.utils.threading import get_chunk_indices

# Parameters
# ----------
N = 500          # Number of macroparticles
n_guard = 3      # Number of guard cells (enough for cubic shapes)

# Grids used in the tests (one per geometry)
grid_params = {
    '1d': dict( n_cells=(20,), dx=(0.5e-6,), xmin=(-2.e-6,) ),
    '2d': dict( n_cells=(12, 16), dx=(1.e-6, 0.5e-6), xmin=(-6.e-6, 0.) ),
    'rz': dict( n_cells=(10, 16), dx=(1.e-6, 0.5e-6), xmin=(0., 0.),
                n_rz_modes=3 ),
    '3d': dict( n_cells=(8, 10, 12), dx=(1.e-6, 1.e-6, 0.5e-6),
                xmin=(0., -5.e-6, 0.) ) }

def make_grid( dim ):
    return GridGeometry( dim, n_guard=n_guard, **grid_params[dim] )

def random_batch( grid, N, seed=0, ionization=False ):
    """
    Draw particles uniformly within the valid domain of `grid`
    (in 'rz', within a cylinder of radius rmax)
    """
    np.random.seed(seed)
    lo = np.array( grid.xmin )
    hi = lo + np.array( grid.n_cells )*np.array( grid.dx )
    coords = {}
    if grid.dim == 'rz':
        r = hi[0]*np.random.rand(N)
        theta = 2*np.pi*np.random.rand(N)
        coords['x'] = r*np.cos(theta)
        coords['y'] = r*np.sin(theta)
        coords['z'] = lo[1] + (hi[1]-lo[1])*np.random.rand(N)
    else:
        for axis, l, h in zip( grid.axes, lo, hi ):
            coords[axis] = l + (h - l)*np.random.rand(N)
    w = 1.e6*(1. + np.random.rand(N))
    ionization_level = None
    if ionization:
        ionization_level = np.random.randint( 0, 4, N )
    return ParticleBatch( w, ionization_level=ionization_level, **coords )

# -------------
# Test function
# -------------

def test_conservation():
    "Function that is run by py.test, when doing `python -m pytest`"
    for dim in ['1d', '2d', 'rz', '3d']:
        grid = make_grid( dim )
        batch = random_batch( grid, N )
        for order in range(4):
            depositor = Depositor( grid, particle_shape=order )
            rho = grid.zeros()
            depositor.deposit_charge( batch, rho, q=-e )
            total = grid.as_array4(rho)[..., 0].sum()*grid.cell_volume
            assert np.allclose( total, batch.total_charge(-e), rtol=1.e-12 )

def test_conservation_single_particle():
    """The total charge does not depend on the position in the cell"""
    grid = make_grid( '2d' )
    for order in range(4):
        depositor = Depositor( grid, particle_shape=order )
        for frac in [ 0., 0.1, 0.5, 0.73 ]:
            batch = ParticleBatch( np.array([2.]),
                x=np.array([ (1.+frac)*grid.dx[0] ]),
                z=np.array([ (5.+frac)*grid.dx[1] ]) )
            rho = grid.zeros()
            depositor.deposit_charge( batch, rho, q=1. )
            assert np.isclose( rho.sum()*grid.cell_volume, 2. )
            # Exactly (order+1)**2 points are touched (with frac != 0)
            if frac not in [0., 0.5]:
                assert np.count_nonzero( rho ) == (order+1)**2

def test_1d_linear_example():
    """
    1D grid with 10 node-centered cells of size 1: a particle at 3.25
    deposits 0.75 on point 3 and 0.25 on point 4
    """
    grid = GridGeometry( '1d', n_cells=(10,), dx=(1.,), n_guard=n_guard )
    batch = ParticleBatch( np.array([1.]), z=np.array([3.25]) )
    rho = grid.zeros()
    Depositor( grid, particle_shape='linear' ).deposit_charge( batch, rho, 1. )
    expected = np.zeros_like( rho )
    expected[ 3 + n_guard ] = 0.75
    expected[ 4 + n_guard ] = 0.25
    assert np.allclose( rho, expected, rtol=0, atol=1.e-15 )
    assert np.isclose( rho.sum(), 1. )

def test_cell_centered_staggering():
    """On a cell-centered axis, the particle is shifted by half a cell"""
    grid = GridGeometry( '1d', n_cells=(10,), dx=(1.,), n_guard=n_guard )
    batch = ParticleBatch( np.array([1.]), z=np.array([3.75]) )
    rho = grid.zeros( (0,) )
    Depositor( grid, particle_shape=1 ).deposit_charge( batch, rho, 1.,
                                                        staggering=(0,) )
    assert rho.shape == (10 + 2*n_guard,)
    assert np.isclose( rho[ 3 + n_guard ], 0.75 )
    assert np.isclose( rho[ 4 + n_guard ], 0.25 )

def test_rz_modes():
    """
    Particle at theta=0: the cosine part of each mode is twice the
    monopole, the sine part is 0. At theta=pi/2, the mode 1 is a pure sine.
    """
    grid = make_grid( 'rz' )
    depositor = Depositor( grid, particle_shape=1 )
    r = 3.3e-6
    z = 4.1e-6

    # theta = 0
    batch = ParticleBatch( np.array([1.]), x=np.array([r]),
                           y=np.array([0.]), z=np.array([z]) )
    rho = grid.zeros()
    depositor.deposit_charge( batch, rho, q=e )
    assert np.allclose( rho[..., 1], 2*rho[..., 0] )
    assert np.all( rho[..., 2] == 0. )
    assert np.allclose( rho[..., 3], 2*rho[..., 0] )
    assert np.all( rho[..., 4] == 0. )
    assert np.isclose( rho[..., 0].sum()*grid.cell_volume, e )

    # theta = pi/2: cos(theta) = 0, sin(theta) = 1, cos(2 theta) = -1
    batch = ParticleBatch( np.array([1.]), x=np.array([0.]),
                           y=np.array([r]), z=np.array([z]) )
    rho = grid.zeros()
    depositor.deposit_charge( batch, rho, q=e )
    scale = abs( rho ).max()
    assert np.allclose( rho[..., 1], 0., atol=1.e-14*scale )
    assert np.allclose( rho[..., 2], 2*rho[..., 0] )
    assert np.allclose( rho[..., 3], -2*rho[..., 0] )

def test_rz_on_axis():
    """A particle at r=0 is treated as having theta=0"""
    grid = make_grid( 'rz' )
    batch = ParticleBatch( np.array([1.]), x=np.array([0.]),
                           y=np.array([0.]), z=np.array([2.e-6]) )
    rho = grid.zeros()
    Depositor( grid, particle_shape=2 ).deposit_charge( batch, rho, q=1. )
    assert np.all( np.isfinite(rho) )
    assert np.allclose( rho[..., 1], 2*rho[..., 0] )

def test_rz_modes_superposition():
    """
    The modes of several particles in the same cells are the sum of the
    modes of each particle (exp(i m theta) is computed per particle)
    """
    grid = make_grid( 'rz' )
    theta = np.array([ 0.3, 2.1, -1.2 ])
    r = np.array([ 3.3e-6, 3.1e-6, 3.6e-6 ])
    z = np.array([ 4.1e-6, 4.3e-6, 4.2e-6 ])
    w = np.array([ 1., 2., 0.5 ])
    for order in range(4):
        for algorithm in ['direct', 'tiled']:
            depositor = Depositor( grid, particle_shape=order,
                                   algorithm=algorithm, tile_size=8 )
            rho_all = grid.zeros()
            depositor.deposit_charge( ParticleBatch( w, x=r*np.cos(theta),
                y=r*np.sin(theta), z=z ), rho_all, q=e )
            rho_sum = grid.zeros()
            for ip in range(3):
                sl = slice( ip, ip+1 )
                depositor.deposit_charge( ParticleBatch( w[sl],
                    x=r[sl]*np.cos(theta[sl]), y=r[sl]*np.sin(theta[sl]),
                    z=z[sl] ), rho_sum, q=e )
            scale = abs( rho_all ).max()
            assert np.allclose( rho_all, rho_sum, atol=1.e-12*scale )
            # Mode 2 of the first particle alone
            rho_one = grid.zeros()
            depositor.deposit_charge( ParticleBatch( w[:1],
                x=r[:1]*np.cos(theta[:1]), y=r[:1]*np.sin(theta[:1]),
                z=z[:1] ), rho_one, q=e )
            assert np.allclose( rho_one[..., 3],
                                2*np.cos(0.6)*rho_one[..., 0] )
            assert np.allclose( rho_one[..., 4],
                                2*np.sin(0.6)*rho_one[..., 0] )

def test_numpy_versus_numba():
    for dim in ['1d', '2d', 'rz', '3d']:
        grid = make_grid( dim )
        batch = random_batch( grid, N, seed=3, ionization=True )
        for order in range(4):
            rho_numba = grid.zeros()
            rho_numpy = grid.zeros()
            Depositor( grid, particle_shape=order ).deposit_charge(
                batch, rho_numba, q=e )
            Depositor( grid, particle_shape=order,
                       use_numpy=True ).deposit_charge( batch, rho_numpy, q=e )
            assert np.allclose( rho_numba, rho_numpy, rtol=1.e-10,
                                atol=1.e-10*abs(rho_numpy).max() )

def test_chunk_indices():
    """The particles are divided among the threads in contiguous chunks"""
    for Ntot, nthreads in [ (10, 3), (2, 4), (0, 2), (500, 1), (1001, 8) ]:
        chunks = get_chunk_indices( Ntot, nthreads )
        assert chunks.dtype == np.uint64
        assert len(chunks) == nthreads + 1
        assert chunks[0] == 0 and chunks[-1] == Ntot
        sizes = np.diff( chunks.astype(np.int64) )
        assert np.all( sizes >= 0 )
        assert sizes.max() - sizes.min() <= 1

def test_determinism():
    """Depositing the same batch twice gives bit-identical arrays"""
    grid = make_grid( '3d' )
    batch = random_batch( grid, N, seed=4 )
    depositor = Depositor( grid, particle_shape='cubic' )
    rho1 = grid.zeros()
    rho2 = grid.zeros()
    depositor.deposit_charge( batch, rho1, q=e )
    depositor.deposit_charge( batch, rho2, q=e )
    assert np.array_equal( rho1, rho2 )

def test_accumulation():
    """The deposition adds to the existing values of the array"""
    grid = make_grid( '2d' )
    batch = random_batch( grid, N, seed=5 )
    depositor = Depositor( grid )
    rho = grid.zeros()
    depositor.deposit_charge( batch, rho, q=e )
    rho_twice = rho.copy()
    depositor.deposit_charge( batch, rho_twice, q=e )
    assert np.allclose( rho_twice, 2*rho )

def test_ionization_level():
    """Particles with an ionization level of 0 do not deposit"""
    grid = make_grid( '1d' )
    w = np.array([ 1., 1. ])
    z = np.array([ 1.e-6, 5.e-6 ])
    batch = ParticleBatch( w, z=z, ionization_level=np.array([0, 2]) )
    rho = grid.zeros()
    Depositor( grid ).deposit_charge( batch, rho, q=e )
    reference = grid.zeros()
    Depositor( grid ).deposit_charge(
        ParticleBatch( np.array([2.]), z=z[1:] ), reference, q=e )
    assert np.allclose( rho, reference )

def test_neutral_and_empty():
    grid = make_grid( '2d' )
    depositor = Depositor( grid )
    rho = grid.zeros()
    depositor.deposit_charge( random_batch( grid, N ), rho, q=0. )
    assert np.all( rho == 0. )
    depositor.deposit_charge( ParticleBatch( np.zeros(0) ), rho, q=e )
    assert np.all( rho == 0. )

def test_invalid_arrays():
    grid = make_grid( '2d' )
    depositor = Depositor( grid )
    batch = random_batch( grid, 10 )
    with pytest.raises( ValueError ):
        depositor.deposit_charge( batch, np.zeros((5, 5)), q=e )
    with pytest.raises( ValueError ):
        ParticleBatch( np.ones(3), x=np.zeros(4) )

if __name__ == '__main__' :

    test_conservation()
    test_conservation_single_particle()
    test_1d_linear_example()
    test_cell_centered_staggering()
    test_rz_modes()
    test_rz_on_axis()
    test_rz_modes_superposition()
    test_numpy_versus_numba()
    test_chunk_indices()
    test_determinism()
    test_accumulation()
    test_ionization_level()
    test_neutral_and_empty()
    test_invalid_arrays()
