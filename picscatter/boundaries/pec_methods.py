# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
"""
This file is part of picscatter (Particle-In-Cell scatter layer)
It defines the per-point rules of the perfect electric conductor (PEC)
boundary conditions.

These functions are written in plain python, and are compiled by the
modules that use them (with `numba.njit` on CPU, and with
`numba.cuda.jit(device=True)` on GPU). They operate on one point
(i, j, k) and one component n of a 4D array (i, j, k, component), and
use the tables of the PECBoundary object:

- is_pec : 2darray of ints, shape (3, 2)
    1 if the lower (iside=0) or upper (iside=1) boundary along an axis is PEC
- nodal : 1darray of 3 ints
    Staggering of the array (1 for node-centered axes)
- dom_lo, dom_hi : 1darrays of 3 ints
    Array indices of the first and last valid cells
- mirrorfac : 2darray of ints, shape (3, 2)
    The mirror of the index `i` across a boundary is `mirrorfac - i`
"""

def set_field_on_pec( field, i, j, k, n, flip, is_pec, nodal,
                      dom_lo, dom_hi, radial_scaling ):
    """
    Apply the PEC condition to a component of the E or B field

    - On a PEC boundary (node-centered axes only), the components that
      are flipped (tangential E, normal B) are set to 0.
    - In the guard cells, the field is set to the value at the mirror
      location across the boundary, with the sign inverted for the
      flipped components.

    Parameters
    ----------
    flip : 1darray of 3 ints
        1 if this component is flipped across the boundaries of an axis
    radial_scaling : bool
        Whether to scale the guard value by r_mirror/r_guard across the
        upper radial boundary ('rz' geometry, radial component)
    """
    on_boundary = False
    guard_cell = False
    sign = 1.
    m0 = i
    m1 = j
    m2 = k
    for idim in range(3):
        if idim == 0:
            index = i
        elif idim == 1:
            index = j
        else:
            index = k
        for iside in range(2):
            if is_pec[idim, iside] == 0:
                continue
            # Number of points past the boundary
            if iside == 0:
                ig = dom_lo[idim] - index
            else:
                ig = index - (dom_hi[idim] + nodal[idim])
            if ig == 0:
                if flip[idim] == 1 and nodal[idim] == 1:
                    on_boundary = True
            elif ig > 0:
                # Mirror location inside the domain
                if iside == 0:
                    mirror = dom_lo[idim] + ig - (1 - nodal[idim])
                else:
                    mirror = dom_hi[idim] + 1 - ig
                guard_cell = True
                if flip[idim] == 1:
                    sign *= -1.
                if radial_scaling and idim == 0 and iside == 1:
                    # Only exact for the first guard cell
                    # of a cell-centered radial component
                    rguard = index - dom_lo[0] + 0.5*(1 - nodal[0])
                    rmirror = mirror - dom_lo[0] + 0.5*(1 - nodal[0])
                    sign *= rmirror/rguard
                if idim == 0:
                    m0 = mirror
                elif idim == 1:
                    m1 = mirror
                else:
                    m2 = mirror

    if on_boundary:
        field[i, j, k, n] = 0.
    elif guard_cell:
        # The mirror may not be available locally
        if m0 >= 0 and m0 < field.shape[0] and \
            m1 >= 0 and m1 < field.shape[1] and \
            m2 >= 0 and m2 < field.shape[2]:
            field[i, j, k, n] = sign*field[m0, m1, m2, n]

def set_rho_or_j_from_pec( field, i, j, k, n, mirrorfac, psign, is_pec,
                           tangent ):
    """
    Fold the charge or current deposited in the guard cells back into
    the domain (image charges), then set the guard cells to the image
    of the valid cells.

    Parameters
    ----------
    psign : 2darray of floats, shape (3, 2)
        Sign with which the guard value is added to its mirror
    tangent : 1darray of 3 ints
        1 if this quantity is tangential to the boundaries of an axis
        (its image in the guard cells then has the opposite sign)
    """
    # Fold the guard cells into the domain
    for idim in range(3):
        for iside in range(2):
            if is_pec[idim, iside] == 0:
                continue
            m0 = i
            m1 = j
            m2 = k
            if idim == 0:
                index = i
                m0 = mirrorfac[idim, iside] - i
                mirror = m0
            elif idim == 1:
                index = j
                m1 = mirrorfac[idim, iside] - j
                mirror = m1
            else:
                index = k
                m2 = mirrorfac[idim, iside] - k
                mirror = m2
            if mirror == index:
                # On the boundary
                field[i, j, k, n] = 0.
            elif mirror >= 0 and mirror < field.shape[idim]:
                field[i, j, k, n] += psign[idim, iside]*field[m0, m1, m2, n]

    # Set the image in the guard cells
    for idim in range(3):
        for iside in range(2):
            if is_pec[idim, iside] == 0:
                continue
            m0 = i
            m1 = j
            m2 = k
            if idim == 0:
                index = i
                m0 = mirrorfac[idim, iside] - i
                mirror = m0
            elif idim == 1:
                index = j
                m1 = mirrorfac[idim, iside] - j
                mirror = m1
            else:
                index = k
                m2 = mirrorfac[idim, iside] - k
                mirror = m2
            if mirror != index and mirror >= 0 and mirror < field.shape[idim]:
                if tangent[idim] == 1:
                    field[m0, m1, m2, n] = -field[i, j, k, n]
                else:
                    field[m0, m1, m2, n] = field[i, j, k, n]

def set_neumann_on_pec( field, i, j, k, n, mirrorfac, is_pec ):
    """
    Apply a zero-derivative condition across the PEC boundaries
    (e.g. for a pressure): a point on the boundary takes the value of
    its neighbor inside the domain, and the guard cells take the value
    of their mirror inside the domain.
    """
    for idim in range(3):
        for iside in range(2):
            if is_pec[idim, iside] == 0:
                continue
            m0 = i
            m1 = j
            m2 = k
            if idim == 0:
                index = i
                mirror = mirrorfac[idim, iside] - i
            elif idim == 1:
                index = j
                mirror = mirrorfac[idim, iside] - j
            else:
                index = k
                mirror = mirrorfac[idim, iside] - k
            if mirror == index:
                # On the boundary: use the neighbor inside the domain
                if iside == 0:
                    mirror += 1
                else:
                    mirror -= 1
                if mirror >= 0 and mirror < field.shape[idim]:
                    if idim == 0:
                        m0 = mirror
                    elif idim == 1:
                        m1 = mirror
                    else:
                        m2 = mirror
                    field[i, j, k, n] = field[m0, m1, m2, n]
            elif mirror >= 0 and mirror < field.shape[idim]:
                if idim == 0:
                    m0 = mirror
                elif idim == 1:
                    m1 = mirror
                else:
                    m2 = mirror
                field[m0, m1, m2, n] = field[i, j, k, n]
