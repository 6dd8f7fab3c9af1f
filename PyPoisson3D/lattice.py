import numpy as np
import jax
from jax import jit
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class
# import external libraries

from PyPoisson3D.boundaryconditions import (
    apply_dirichlet_boundary_condition, interior_slicer, is_boundary_site
)
# import functions from the PyPoisson3D package


@jit
def six_point_average(phi, rho, i, j, k, factor):
    """
    Computes the finite difference estimate of the potential at a single lattice site from its six neighbours.

    Args:
        phi (ndarray): The potential field.
        rho (ndarray): The charge density.
        i, j, k (int): Indices of the site, which must be an interior site.
        factor (float): dx**2 / permittivity.

    Returns:
        float: The next value of the potential at the site.
    """
    neighbours = phi[i+1, j, k] + phi[i-1, j, k] \
                + phi[i, j+1, k] + phi[i, j-1, k] \
                + phi[i, j, k+1] + phi[i, j, k-1]
    return (neighbours + factor * rho[i, j, k]) / 6.0


@jit
def central_difference_gradient(phi, dx):
    """
    Computes the gradient of a scalar field with central differences on the interior of the lattice.

    Args:
        phi (ndarray): The scalar field.
        dx (float): The spatial discretisation step.

    Returns:
        tuple of ndarray: (d/dx, d/dy, d/dz), set to zero on the boundary sites.
    """
    grad_x = jnp.zeros_like(phi)
    grad_y = jnp.zeros_like(phi)
    grad_z = jnp.zeros_like(phi)
    # the one-sided neighbour of a boundary site lies outside the domain

    grad_x = grad_x.at[1:-1, 1:-1, 1:-1].set( (phi[2:, 1:-1, 1:-1] - phi[:-2, 1:-1, 1:-1]) / (2*dx) )
    grad_y = grad_y.at[1:-1, 1:-1, 1:-1].set( (phi[1:-1, 2:, 1:-1] - phi[1:-1, :-2, 1:-1]) / (2*dx) )
    grad_z = grad_z.at[1:-1, 1:-1, 1:-1].set( (phi[1:-1, 1:-1, 2:] - phi[1:-1, 1:-1, :-2]) / (2*dx) )

    return grad_x, grad_y, grad_z


@register_pytree_node_class
class PoissonLattice:
    """
    Class representing the potential and charge density of the Poisson equation on a regular 3D lattice.

    The potential is stored at the stated extents and the first and last index along each axis is the fixed
    (Dirichlet) boundary, so interior sites run from 1 to n-2 on every axis. The relaxation update rules only
    write interior sites.

    Attributes:
        nx, ny, nz (int): Number of lattice sites in each dimension.
        permittivity (float): Permittivity in the Poisson equation.
        dx (float): Spatial discretisation step.
        potential (ndarray): Potential at every lattice site, shape (nx, ny, nz).
        charge_density (ndarray): Charge density at every lattice site, shape (nx, ny, nz).

    Methods:
        initialise(initial_value, noise, key): Fills the interior with a base value plus uniform noise.
        get_potential(i, j, k): Returns the potential at a site.
        set_potential(i, j, k, value): Sets the potential at a site.
        get_charge_density(i, j, k): Returns the charge density at a site.
        set_charge_density(i, j, k, charge): Sets the charge density at a site.
        set_point_charge_dist(): Places a unit point charge at the centre of the lattice.
        set_line_current_dist(): Places a unit line current along z through the centre of the lattice.
        set_boundary_value(value): Sets the fixed potential on the boundary.
        next_jacobi_value(i, j, k): Finite difference estimate of the potential at a site.
        electric_field(i, j, k): E = -grad(phi) at a site.
        magnetic_field(i, j, k): B = curl(A) at a site, A = (0, 0, phi).
        electric_field_grid(): E over the whole lattice.
        magnetic_field_grid(): B over the whole lattice.
        copy(): Returns an independent copy of the lattice.
        tree_flatten(): Flattens the object for jax.
        tree_unflatten(aux_data, children): Reconstructs the object from flattened data.
    """

    def __init__(self, nx, ny, nz, permittivity=1.0, dx=1.0, potential=None, charge_density=None):
        if nx <= 0 or ny <= 0 or nz <= 0:
            raise ValueError(f"Lattice extents must be positive, got ({nx}, {ny}, {nz})")

        self.nx = nx
        self.ny = ny
        self.nz = nz
        self.permittivity = permittivity
        self.dx = dx

        if potential is None:
            potential = jnp.zeros((nx, ny, nz), dtype=float)
        if charge_density is None:
            charge_density = jnp.zeros((nx, ny, nz), dtype=float)
        # zero potential everywhere gives the default zero boundary

        self.potential = potential
        self.charge_density = charge_density

    def get_shape(self):
        return self.nx, self.ny, self.nz

    def get_centre(self):
        return self.nx // 2, self.ny // 2, self.nz // 2

    def initialise(self, initial_value, noise, key):
        """
        Sets the potential at every interior site to initial_value + U(-noise, noise).

        Args:
            initial_value (float): Base value of the potential away from the boundary.
            noise (float): Maximum magnitude of the uniform noise.
            key (jax.random.PRNGKey): Random number generator key.
        """
        slicer = interior_slicer()
        interior_shape = self.potential[slicer].shape
        values = initial_value + jax.random.uniform(key, shape=interior_shape, dtype=self.potential.dtype, \
                                                    minval=-noise, maxval=noise)
        self.potential = self.potential.at[slicer].set(values)

    def get_potential(self, i, j, k):
        return self.potential[i, j, k]

    def set_potential(self, i, j, k, value):
        self.potential = self.potential.at[i, j, k].set(value)

    def __getitem__(self, index):
        return self.potential[index]

    def get_charge_density(self, i, j, k):
        return self.charge_density[i, j, k]

    def set_charge_density(self, i, j, k, charge):
        self.charge_density = self.charge_density.at[i, j, k].set(charge)

    def set_point_charge_dist(self):
        i, j, k = self.get_centre()
        self.set_charge_density(i, j, k, 1.0)

    def set_line_current_dist(self):
        # current along z through the centre of the x-y plane
        i, j, _ = self.get_centre()
        self.charge_density = self.charge_density.at[i, j, :].set(1.0)

    def set_boundary_value(self, value):
        self.potential = apply_dirichlet_boundary_condition(self.potential, value)

    def update_factor(self):
        return self.dx**2 / self.permittivity

    def next_jacobi_value(self, i, j, k):
        """
        Calculates the next value of the potential at an interior site from its six neighbours:
        (sum of neighbours + dx**2 / permittivity * rho) / 6.
        """
        return six_point_average(self.potential, self.charge_density, i, j, k, self.update_factor())

    def electric_field(self, i, j, k):
        """
        Calculates the electric field E = -grad(phi) at a site using central differences.

        Returns:
            ndarray: (Ex, Ey, Ez), the zero vector at boundary sites.
        """
        if is_boundary_site(i, j, k, self.get_shape()):
            return jnp.zeros(3, dtype=self.potential.dtype)

        phi = self.potential
        return jnp.array([
            -(phi[i+1, j, k] - phi[i-1, j, k]) / (2*self.dx),
            -(phi[i, j+1, k] - phi[i, j-1, k]) / (2*self.dx),
            -(phi[i, j, k+1] - phi[i, j, k-1]) / (2*self.dx),
        ])

    def magnetic_field(self, i, j, k):
        """
        Calculates the magnetic field B = curl(A) at a site, treating the potential as the z-component of the
        vector potential of a current along z.

        Returns:
            ndarray: (Bx, By, 0), the zero vector at boundary sites.
        """
        if is_boundary_site(i, j, k, self.get_shape()):
            return jnp.zeros(3, dtype=self.potential.dtype)

        phi = self.potential
        return jnp.array([
            (phi[i, j+1, k] - phi[i, j-1, k]) / (2*self.dx),
            -(phi[i+1, j, k] - phi[i-1, j, k]) / (2*self.dx),
            0.0,
        ])

    def electric_field_grid(self):
        grad_x, grad_y, grad_z = central_difference_gradient(self.potential, self.dx)
        return -grad_x, -grad_y, -grad_z

    def magnetic_field_grid(self):
        grad_x, grad_y, _ = central_difference_gradient(self.potential, self.dx)
        return grad_y, -grad_x, jnp.zeros_like(grad_x)

    def copy(self):
        return PoissonLattice(self.nx, self.ny, self.nz, self.permittivity, self.dx, \
                              potential=jnp.array(self.potential), charge_density=jnp.array(self.charge_density))

    def tree_flatten(self):
        children = (self.potential, self.charge_density)
        aux_data = (self.nx, self.ny, self.nz, self.permittivity, self.dx)
        return children, aux_data

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        potential, charge_density = children
        nx, ny, nz, permittivity, dx = aux_data
        return cls(nx, ny, nz, permittivity, dx, potential=potential, charge_density=charge_density)


def distance_from_centre(lattice):
    """
    Computes the distance of every lattice site from the integer-divided centre, in lattice units.

    Args:
        lattice (PoissonLattice): The lattice.

    Returns:
        ndarray: Distances with shape (nx, ny, nz).
    """
    xc, yc, zc = lattice.get_centre()
    i, j, k = np.meshgrid(np.arange(lattice.nx), np.arange(lattice.ny), np.arange(lattice.nz), indexing='ij')
    return np.sqrt( (xc - i)**2 + (yc - j)**2 + (zc - k)**2 )


def lattice_records(lattice, field='electric'):
    """
    Builds the table written by write_lattice, one row per site ordered with k outermost and i innermost.

    Args:
        lattice (PoissonLattice): The lattice to tabulate.
        field (str): 'electric' for E = -grad(phi) or 'magnetic' for B = curl(A).

    Returns:
        numpy.ndarray: Rows of (i, j, k, r, phi, Fx, Fy, Fz, |F|) with shape (nx*ny*nz, 9).
    """
    if field == 'electric':
        Fx, Fy, Fz = lattice.electric_field_grid()
    elif field == 'magnetic':
        Fx, Fy, Fz = lattice.magnetic_field_grid()
    else:
        raise ValueError(f"Unknown field: {field}")

    Fx, Fy, Fz = np.asarray(Fx), np.asarray(Fy), np.asarray(Fz)
    magnitude = np.sqrt(Fx**2 + Fy**2 + Fz**2)
    i, j, k = np.meshgrid(np.arange(lattice.nx), np.arange(lattice.ny), np.arange(lattice.nz), indexing='ij')
    columns = [i, j, k, distance_from_centre(lattice), np.asarray(lattice.potential), Fx, Fy, Fz, magnitude]

    # transpose to (k, j, i) so that i varies fastest
    return np.stack([np.transpose(c, (2, 1, 0)).reshape(-1) for c in columns], axis=-1)


def _write_blocks(rows, nx, ny, out, fmt):
    for block_start in range(0, rows.shape[0], nx):
        np.savetxt(out, rows[block_start:block_start+nx], fmt=fmt)
        out.write('\n')
        if (block_start // nx + 1) % ny == 0:
            out.write('\n')
    # blank line after every j row and after every k block for gnuplot style splot


def write_lattice(lattice, out, field='electric'):
    """
    Writes the combined dump of the lattice in the form i j k r phi Fx Fy Fz |F|.

    Args:
        lattice (PoissonLattice): The lattice to write.
        out (file-like): Text stream to write to.
        field (str): 'electric' or 'magnetic'.
    """
    rows = lattice_records(lattice, field)
    _write_blocks(rows, lattice.nx, lattice.ny, out, fmt='%d %d %d %g %g %g %g %g %g')


def write_potential(lattice, out):
    """
    Writes the potential in the form i j k phi.
    """
    rows = lattice_records(lattice)[:, [0, 1, 2, 4]]
    _write_blocks(rows, lattice.nx, lattice.ny, out, fmt='%d %d %d %g')


def write_field(lattice, out, field='electric'):
    """
    Writes a field in the form i j k Fx Fy Fz.
    """
    rows = lattice_records(lattice, field)[:, [0, 1, 2, 5, 6, 7]]
    _write_blocks(rows, lattice.nx, lattice.ny, out, fmt='%d %d %d %g %g %g')
