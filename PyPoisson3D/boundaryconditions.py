from jax import jit
import jax.numpy as jnp

# This file contains functions that describe the fixed (Dirichlet) boundary of the lattice.
# The boundary is the first and last site along each axis; everything else is interior.

def interior_slicer():
    """
    Returns the slice selecting the interior sites of a 3D field.
    """
    return (slice(1, -1), slice(1, -1), slice(1, -1))

def is_boundary_site(i, j, k, shape):
    """
    Checks whether a lattice site lies on the fixed boundary.

    Args:
        i, j, k (int): Indices of the site.
        shape (tuple): Extents (nx, ny, nz) of the lattice.

    Returns:
        bool: True if the site is on a boundary face.
    """
    nx, ny, nz = shape
    return i <= 0 or j <= 0 or k <= 0 or i >= nx - 1 or j >= ny - 1 or k >= nz - 1

@jit
def apply_dirichlet_boundary_condition(field, value):
    """
    Apply a uniform Dirichlet boundary condition to the given field.

    Args:
        field (ndarray): The field to which the boundary condition is applied.
        value (float): The value held on every boundary face.

    Returns:
        ndarray: The field with the boundary values set.
    """
    field = field.at[0, :, :].set(value)
    field = field.at[-1, :, :].set(value)
    field = field.at[:, 0, :].set(value)
    field = field.at[:, -1, :].set(value)
    field = field.at[:, :, 0].set(value)
    field = field.at[:, :, -1].set(value)

    return field

def interior_sum(field):
    """
    Sums a field over the interior sites only.
    """
    return jnp.sum(field[interior_slicer()])
