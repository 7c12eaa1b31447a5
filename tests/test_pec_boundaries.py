# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This test file is part of picscatter (Particle-In-Cell scatter layer).

It verifies the perfect electric conductor (PEC) boundaries on CPU:
- tangential E and normal B vanish on the boundary, and the guard cells
  hold the mirror image of the valid cells
- the charge and current of the guard cells are folded into the domain
- the zero-derivative condition for the pressure

The 1D grid has 10 cells and 3 guard cells: the valid cells are the
array indices 3 to 12, and the boundary nodes are the indices 3 and 13.

Usage :
from the top-level directory of picscatter run
$ python tests/test_pec_boundaries.py
"""
import numpy as np
import pytest
from picscatter import GridGeometry, ParticleBatch, Depositor, PECBoundary

# Parameters
# ----------
n_cells = 10
n_guard = 3
lo = n_guard              # Lower boundary node
hi = n_cells + n_guard    # Upper boundary node

def make_1d( field_boundary_hi='pec', particle_boundary='absorbing' ):
    grid = GridGeometry( '1d', n_cells=(n_cells,), dx=(1.,), n_guard=n_guard )
    pec = PECBoundary( grid, ['pec'], [field_boundary_hi],
                       [particle_boundary], [particle_boundary] )
    return grid, pec

def random_field( grid, staggering, seed=0 ):
    np.random.seed(seed)
    return np.random.rand( *grid.array_shape(staggering) )

# -------------
# Test function
# -------------

def test_efield():
    "Function that is run by py.test, when doing `python -m pytest`"
    grid, pec = make_1d()
    Ex, Ey, Ez = [ random_field( grid, grid.yee_staggering('E', icomp), icomp )
                   for icomp in range(3) ]
    Ez_interior = Ez[lo:hi].copy()
    pec.apply_to_efield( Ex, Ey, Ez )

    # Tangential component: zero on the boundary, odd image
    assert Ex[lo] == 0. and Ex[hi] == 0.
    assert Ex[lo-1] == -Ex[lo+1]
    assert Ex[lo-2] == -Ex[lo+2]
    assert Ex[hi+1] == -Ex[hi-1]
    assert Ey[lo] == 0. and Ey[hi] == 0.
    # Normal component (cell-centered): even image, interior untouched
    assert Ez[lo-1] == Ez[lo]
    assert Ez[lo-2] == Ez[lo+1]
    assert Ez[hi] == Ez[hi-1]
    assert Ez[hi+1] == Ez[hi-2]
    assert np.array_equal( Ez[lo:hi], Ez_interior )

    # Applying the condition again does not change anything
    E_before = [ Ex.copy(), Ey.copy(), Ez.copy() ]
    pec.apply_to_efield( Ex, Ey, Ez )
    for field, before in zip( [Ex, Ey, Ez], E_before ):
        assert np.array_equal( field, before )

def test_bfield():
    grid, pec = make_1d()
    Bx, By, Bz = [ random_field( grid, grid.yee_staggering('B', icomp), icomp )
                   for icomp in range(3) ]
    pec.apply_to_bfield( Bx, By, Bz )
    # Normal component (node-centered): zero on the boundary, odd image
    assert Bz[lo] == 0. and Bz[hi] == 0.
    assert Bz[lo-1] == -Bz[lo+1]
    assert Bz[hi+1] == -Bz[hi-1]
    # Tangential components (cell-centered): even image
    assert Bx[lo-1] == Bx[lo]
    assert By[hi] == By[hi-1]

def test_rho_absorbing():
    grid, pec = make_1d()
    rho = grid.zeros()
    rho[lo-1] = 1.
    rho[lo+1] = 5.
    pec.apply_to_rho( rho )
    assert rho[lo+1] == 4.
    assert rho[lo-1] == -4.
    assert rho[lo] == 0.

def test_rho_reflecting():
    grid, pec = make_1d( particle_boundary='reflecting' )
    rho = grid.zeros()
    rho[lo-1] = 1.
    rho[lo+1] = 5.
    pec.apply_to_rho( rho )
    assert rho[lo+1] == 6.
    assert rho[lo-1] == -6.

def test_j_normal():
    """The normal current of the guard cells is added to its mirror"""
    grid, pec = make_1d()
    jx, jy, jz = [ random_field( grid, grid.yee_staggering('J', icomp), icomp )
                   for icomp in range(3) ]
    jz_lo = jz[lo] + jz[lo-1]
    jz_hi = jz[hi-1] + jz[hi]
    jx_lo = jx[lo+1] - jx[lo-1]
    pec.apply_to_j( jx, jy, jz )
    assert np.isclose( jz[lo], jz_lo )
    assert jz[lo-1] == jz[lo]
    assert np.isclose( jz[hi-1], jz_hi )
    assert jz[hi] == jz[hi-1]
    # Tangential current: zero on the boundary, opposite image
    assert jx[lo] == 0.
    assert np.isclose( jx[lo+1], jx_lo )
    assert jx[lo-1] == -jx[lo+1]

def test_deposited_charge_folded():
    """
    The charge of a particle close to the wall ends up in the domain
    (with an absorbing wall, its image has the opposite sign)
    """
    grid, pec = make_1d()
    batch = ParticleBatch( np.array([1.]), z=np.array([0.3]) )
    rho = grid.zeros()
    Depositor( grid, particle_shape=3 ).deposit_charge( batch, rho, q=1. )
    assert rho[lo-1] != 0.
    pec.apply_to_rho( rho )
    assert rho[lo] == 0.
    assert rho[lo-1] == -rho[lo+1]

def test_pressure():
    grid, pec = make_1d()
    pe = random_field( grid, grid.nodal_staggering() )
    pec.apply_to_pressure( pe )
    assert pe[lo] == pe[lo+1]
    assert pe[lo-1] == pe[lo+1]
    assert pe[lo-2] == pe[lo+2]
    assert pe[hi] == pe[hi-1]
    assert pe[hi+1] == pe[hi-1]

def test_open_side():
    """A side that is not PEC is left untouched"""
    grid, pec = make_1d( field_boundary_hi='open' )
    rho = random_field( grid, grid.nodal_staggering() )
    before = rho.copy()
    pec.apply_to_rho( rho )
    assert np.array_equal( rho[lo+n_guard+1:], before[lo+n_guard+1:] )
    assert rho[lo] == 0.
    pe = random_field( grid, grid.nodal_staggering() )
    before = pe.copy()
    pec.apply_to_pressure( pe )
    assert np.array_equal( pe[lo+1:], before[lo+1:] )

def test_no_pec():
    grid = GridGeometry( '2d', n_cells=(6, 6), dx=(1., 1.), n_guard=2 )
    pec = PECBoundary( grid, ['open', 'periodic'], ['open', 'periodic'] )
    assert not pec.is_any_boundary_pec()
    E = [ random_field( grid, grid.yee_staggering('E', icomp), icomp )
          for icomp in range(3) ]
    before = [ field.copy() for field in E ]
    pec.apply_to_efield( *E )
    for field, field_before in zip( E, before ):
        assert np.array_equal( field, field_before )

def test_2d_tangential_field():
    """Ey is tangential to all the boundaries of a 2D grid"""
    ng = 2
    grid = GridGeometry( '2d', n_cells=(6, 8), dx=(1., 1.), n_guard=ng )
    pec = PECBoundary( grid, ['pec', 'pec'], ['pec', 'pec'] )
    assert pec.is_any_boundary_pec()
    E = [ random_field( grid, grid.yee_staggering('E', icomp), icomp )
          for icomp in range(3) ]
    pec.apply_to_efield( *E )
    Ey = E[1]
    assert np.all( Ey[ng, :] == 0. )
    assert np.all( Ey[6+ng, :] == 0. )
    assert np.all( Ey[:, ng] == 0. )
    assert np.all( Ey[:, 8+ng] == 0. )
    # Ex is normal to the x boundaries and tangential to the z boundaries
    Ex = E[0]
    assert np.all( Ex[ng+1:6+ng-1, ng] == 0. )
    assert np.all( Ex[ng-1, ng+1:8+ng] == Ex[ng, ng+1:8+ng] )

def test_rz_radial_scaling():
    """Er is rescaled by r_mirror/r_guard across the upper radial wall"""
    ng = 2
    grid = GridGeometry( 'rz', n_cells=(4, 4), dx=(1., 1.), n_guard=ng )
    pec = PECBoundary( grid, ['open', 'open'], ['pec', 'open'] )
    E = [ random_field( grid, grid.yee_staggering('E', icomp), icomp )
          for icomp in range(3) ]
    pec.apply_to_efield( *E )
    Er = E[0]
    assert np.allclose( Er[4+ng, :, 0], 3.5/4.5*Er[3+ng, :, 0] )

def test_3d_efield_and_bfield():
    """
    In 3D, each component is normal to the boundaries of its own axis and
    tangential to the others. The grid has 2 guard cells, so that the
    boundary nodes are the indices 2 and 6 (x), 2 and 7 (y), 2 and 8 (z).
    """
    ng = 2
    grid = GridGeometry( '3d', n_cells=(4, 5, 6), dx=(1., 1., 1.), n_guard=ng )
    pec = PECBoundary( grid, ['pec']*3, ['pec']*3 )
    assert np.array_equal( pec.tangent, 1 - np.eye( 3, dtype=np.int64 ) )

    E = [ random_field( grid, grid.yee_staggering('E', icomp), icomp )
          for icomp in range(3) ]
    pec.apply_to_efield( *E )
    Ex, Ey, Ez = E
    assert Ex.shape == (8, 10, 11)
    # Ex is tangential to the y and z boundaries
    assert np.all( Ex[:, 2, :] == 0. ) and np.all( Ex[:, 7, :] == 0. )
    assert np.all( Ex[:, :, 2] == 0. ) and np.all( Ex[:, :, 8] == 0. )
    # Even image across x, odd image across y
    assert np.array_equal( Ex[1, 3:7, 3:8], Ex[2, 3:7, 3:8] )
    assert np.array_equal( Ex[2:6, 1, 3:8], -Ex[2:6, 3, 3:8] )
    # Corner guard cells: mirrored across y and z (two sign flips)
    assert np.array_equal( Ex[2:6, 1, 1], Ex[2:6, 3, 3] )
    assert np.array_equal( Ex[2:6, 8, 9], Ex[2:6, 6, 7] )
    # Ey is tangential to the x boundaries, Ez is normal to the z boundaries
    assert np.all( Ey[2, :, :] == 0. ) and np.all( Ey[6, :, :] == 0. )
    assert np.array_equal( Ez[3:6, 3:7, 1], Ez[3:6, 3:7, 2] )
    assert np.all( Ez[3:6, 3:7, 7] != 0. )

    B = [ random_field( grid, grid.yee_staggering('B', icomp), icomp+3 )
          for icomp in range(3) ]
    pec.apply_to_bfield( *B )
    Bx, By, Bz = B
    assert Bz.shape == (8, 9, 11)
    # The normal component of B vanishes on the boundary, odd image
    assert np.all( Bx[2] == 0. ) and np.all( Bx[6] == 0. )
    assert np.array_equal( Bx[1, 2:7, 2:8], -Bx[3, 2:7, 2:8] )
    assert np.all( Bz[:, :, 2] == 0. ) and np.all( Bz[:, :, 8] == 0. )
    assert np.array_equal( Bz[2:6, 2:7, 1], -Bz[2:6, 2:7, 3] )
    # The tangential components have an even image
    assert np.array_equal( By[1, 3:7, 2:8], By[2, 3:7, 2:8] )

    # Applying the conditions again does not change anything
    before = [ field.copy() for field in E + B ]
    pec.apply_to_efield( *E )
    pec.apply_to_bfield( *B )
    for field, field_before in zip( E + B, before ):
        assert np.array_equal( field, field_before )

def test_2d_rho_and_j_folding():
    """
    In 2D, the guard cells along an edge are folded into the domain,
    axis by axis. The corner guard cells (beyond both walls) are not
    folded. The boundary nodes are the indices 2 and 6 along both axes.
    """
    grid = GridGeometry( '2d', n_cells=(4, 4), dx=(1., 1.), n_guard=2 )
    pec = PECBoundary( grid, ['pec', 'pec'], ['pec', 'pec'] )

    rho = grid.zeros()
    assert rho.shape == (9, 9)
    rho[3, 3] = 5.
    rho[1, 3] = 1.    # Beyond the lower x wall
    rho[3, 1] = 2.    # Beyond the lower z wall
    rho[1, 1] = 7.    # Corner guard cell
    pec.apply_to_rho( rho )
    # Absorbing boundaries: the image charges have the opposite sign
    assert rho[3, 3] == 2.
    assert rho[1, 3] == -2.
    assert rho[3, 1] == -2.
    assert rho[1, 1] == 7.
    assert np.all( rho[2, 2:7] == 0. ) and np.all( rho[6, 2:7] == 0. )
    assert np.all( rho[2:7, 2] == 0. ) and np.all( rho[2:7, 6] == 0. )

    # jx is normal to the x walls and tangential to the z walls
    jx, jy, jz = [ grid.zeros( grid.yee_staggering('J', icomp) )
                   for icomp in range(3) ]
    assert jx.shape == (8, 9)
    jx[2, 3] = 5.
    jx[1, 3] = 1.     # Mirror of the cell 2 across the lower x wall
    jx[2, 1] = 2.     # Mirror of the node 3 across the lower z wall
    jx[1, 1] = 7.
    pec.apply_to_j( jx, jy, jz )
    assert jx[2, 3] == 4.
    assert jx[1, 3] == 4.
    assert jx[2, 1] == -4.
    assert np.all( jx[2:6, 2] == 0. ) and np.all( jx[2:6, 6] == 0. )
    assert np.all( jy == 0. ) and np.all( jz == 0. )

def test_invalid_boundaries():
    grid = GridGeometry( '2d', n_cells=(6, 6), dx=(1., 1.), n_guard=2 )
    with pytest.raises( ValueError ):
        PECBoundary( grid, ['pec'], ['pec'] )
    with pytest.raises( ValueError ):
        PECBoundary( grid, ['pec', 'pec'], ['pec', 'pec'],
                     ['absorbing', 'thermal'], ['absorbing', 'absorbing'] )

if __name__ == '__main__' :

    test_efield()
    test_bfield()
    test_rho_absorbing()
    test_rho_reflecting()
    test_j_normal()
    test_deposited_charge_folded()
    test_pressure()
    test_open_side()
    test_no_pec()
    test_2d_tangential_field()
    test_rz_radial_scaling()
    test_3d_efield_and_bfield()
    test_2d_rho_and_j_folding()
    test_invalid_boundaries()
