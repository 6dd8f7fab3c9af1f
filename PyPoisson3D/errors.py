from jax import jit
import jax.numpy as jnp
# import external libraries

from PyPoisson3D.boundaryconditions import interior_slicer
# import functions from the PyPoisson3D package

@jit
def _interior_laplacian(phi, dx):
    return ( phi[2:, 1:-1, 1:-1] + phi[:-2, 1:-1, 1:-1] \
           + phi[1:-1, 2:, 1:-1] + phi[1:-1, :-2, 1:-1] \
           + phi[1:-1, 1:-1, 2:] + phi[1:-1, 1:-1, :-2] - 6*phi[1:-1, 1:-1, 1:-1] ) / (dx*dx)

def compute_poisson_residual(lattice):
    """
    Compute the relative residual of the discrete Poisson equation laplacian(phi) + rho/eps = 0.

    Args:
        lattice (PoissonLattice): The lattice holding the potential and the charge density.

    Returns:
        float: Mean |laplacian(phi) + rho/eps| over the interior, relative to the mean |rho/eps|.
    """
    source = lattice.charge_density[interior_slicer()] / lattice.permittivity

    if source.size == 0:
        return 0.0

    poisson_error = _interior_laplacian(lattice.potential, lattice.dx) + source
    magnitude = jnp.mean(jnp.abs(source)) + 1e-16
    return float(jnp.mean(jnp.abs(poisson_error)) / magnitude)

def compute_electric_divergence_error(lattice):
    """
    Compute the error in Gauss's law, mean |div(E) - rho/eps|, using the electric field of the lattice.

    The divergence is only evaluated where its stencil stays within the interior sites, where E is defined.

    Args:
        lattice (PoissonLattice): The lattice holding the potential and the charge density.

    Returns:
        float: The mean absolute error of div(E) - rho/eps.
    """
    Ex, Ey, Ez = lattice.electric_field_grid()
    dx = lattice.dx
    divE = (Ex[3:-1, 2:-2, 2:-2] - Ex[1:-3, 2:-2, 2:-2]) / (2*dx) \
         + (Ey[2:-2, 3:-1, 2:-2] - Ey[2:-2, 1:-3, 2:-2]) / (2*dx) \
         + (Ez[2:-2, 2:-2, 3:-1] - Ez[2:-2, 2:-2, 1:-3]) / (2*dx)
    source = lattice.charge_density[2:-2, 2:-2, 2:-2] / lattice.permittivity

    if divE.size == 0:
        return 0.0

    return float(jnp.mean(jnp.abs(divE - source)))
