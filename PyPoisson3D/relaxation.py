from typing import List, NamedTuple
import itertools
from jax import jit
from jax import lax
import jax.numpy as jnp
import numpy as np
from scipy import stats
from tqdm import tqdm
# import external libraries

from PyPoisson3D.lattice import PoissonLattice, six_point_average
from PyPoisson3D.boundaryconditions import interior_slicer, interior_sum
# import functions from the PyPoisson3D package


class RelaxationNotConverged(RuntimeError):
    """Raised when an iteration cap is reached before the convergence measure drops below the precision."""


@jit
def jacobi_sweep(phi, rho, factor):
    """
    Computes one Jacobi pass over the interior of the lattice, reading only the previous potential.

    Args:
        phi (ndarray): The potential from the previous iteration.
        rho (ndarray): The charge density.
        factor (float): dx**2 / permittivity.

    Returns:
        tuple: (updated potential, sum of |updated - previous| over the interior sites)
    """
    average = ( phi[2:, 1:-1, 1:-1] + phi[:-2, 1:-1, 1:-1] \
              + phi[1:-1, 2:, 1:-1] + phi[1:-1, :-2, 1:-1] \
              + phi[1:-1, 1:-1, 2:] + phi[1:-1, 1:-1, :-2] \
              + factor * rho[1:-1, 1:-1, 1:-1] ) / 6.0
    updated = phi.at[interior_slicer()].set(average)
    return updated, interior_sum(jnp.abs(updated - phi))


@jit
def sor_sweep(phi, rho, factor, omega):
    """
    Computes one in-place successive over-relaxation pass over the interior of the lattice.

    Sites are visited with i outermost and k innermost, so later sites see the values already written by
    earlier sites in the same pass. Each site is set to (1 - omega) * old + omega * six point average;
    omega = 1 is the Gauss-Seidel update.

    Args:
        phi (ndarray): The potential.
        rho (ndarray): The charge density.
        factor (float): dx**2 / permittivity.
        omega (float): The over-relaxation parameter.

    Returns:
        tuple: (updated potential, sum of |new - old| accumulated during the pass)
    """
    nx, ny, nz = phi.shape
    mx, my, mz = max(nx - 2, 0), max(ny - 2, 0), max(nz - 2, 0)
    convergence = jnp.zeros((), dtype=phi.dtype)

    if mx * my * mz == 0:
        return phi, convergence
    # no interior sites to update

    def body_fun(n, val):
        phi, convergence = val
        i = n // (my * mz) + 1
        j = (n // mz) % my + 1
        k = n % mz + 1
        # interior site visited at step n of the pass

        current = phi[i, j, k]
        updated = (1 - omega) * current + omega * six_point_average(phi, rho, i, j, k, factor)
        phi = phi.at[i, j, k].set(updated)
        return phi, convergence + jnp.abs(updated - current)

    return lax.fori_loop(0, mx * my * mz, body_fun, (phi, convergence))


def jacobi_update(current_lattice, updated_lattice):
    """
    Updates the potential according to the Jacobi algorithm.

    Args:
        current_lattice (PoissonLattice): Lattice the update is based on, left untouched.
        updated_lattice (PoissonLattice): Lattice the updated potential is written into.

    Returns:
        float: Sum over the interior of |updated - current|.
    """
    potential, convergence = jacobi_sweep(current_lattice.potential, current_lattice.charge_density, \
                                          current_lattice.update_factor())
    updated_lattice.potential = potential
    return float(convergence)


def gauss_seidel_update(lattice):
    """
    Updates the potential in place according to the Gauss-Seidel algorithm.

    Returns:
        float: Sum over the interior of |new - old| accumulated during the pass.
    """
    return sor_update(1.0, lattice)


def sor_update(sor_parameter, lattice):
    """
    Updates the potential in place with successive over-relaxation: x(n+1) = w f(x(n)) + (1-w) x(n) where f is
    the Gauss-Seidel update.

    Args:
        sor_parameter (float): The over-relaxation parameter omega.
        lattice (PoissonLattice): Lattice to be updated.

    Returns:
        float: Sum over the interior of |new - old| accumulated during the pass.
    """
    potential, convergence = sor_sweep(lattice.potential, lattice.charge_density, \
                                       lattice.update_factor(), sor_parameter)
    lattice.potential = potential
    return float(convergence)


def lattice_difference(lattice1, lattice2):
    """
    Calculates sum_{i,j,k} |phi_1(i,j,k) - phi_2(i,j,k)| over the interior sites.
    """
    return float(interior_sum(jnp.abs(lattice1.potential - lattice2.potential)))


class RelaxationState:
    """
    Lattices owned by the relaxation loop. Jacobi needs the updated buffer, the in-place methods leave it as None.
    """

    def __init__(self, current, updated=None):
        self.current = current
        self.updated = updated

    def swap(self):
        self.current, self.updated = self.updated, self.current


class JacobiRelaxation:
    name = "jacobi"

    def prepare(self, lattice):
        return RelaxationState(lattice, lattice.copy())

    def apply_one_iteration(self, state):
        convergence = jacobi_update(state.current, state.updated)
        state.swap()
        # this pass's updated lattice is the next pass's previous lattice
        return convergence


class GaussSeidelRelaxation:
    name = "gauss_seidel"

    def prepare(self, lattice):
        return RelaxationState(lattice)

    def apply_one_iteration(self, state):
        return gauss_seidel_update(state.current)


class SORRelaxation:
    name = "sor"

    def __init__(self, sor_parameter):
        self.sor_parameter = sor_parameter

    def prepare(self, lattice):
        return RelaxationState(lattice)

    def apply_one_iteration(self, state):
        return sor_update(self.sor_parameter, state.current)


def build_relaxation_strategy(method, sor_parameter=1.0):
    """
    Selects the relaxation update rule by name.

    Args:
        method (str): 'jacobi', 'gauss_seidel' or 'sor'.
        sor_parameter (float): Over-relaxation parameter, only used by 'sor'.

    Returns:
        object: Strategy with prepare(lattice) and apply_one_iteration(state) methods.
    """
    method = method.lower().replace('-', '_')
    if method == 'jacobi':
        return JacobiRelaxation()
    elif method == 'gauss_seidel':
        return GaussSeidelRelaxation()
    elif method == 'sor':
        return SORRelaxation(sor_parameter)
    raise ValueError(f"Unknown relaxation method: {method}")


def relaxation_iterations(state, strategy):
    """
    Yields (iteration, convergence) after every pass of the update rule, starting at iteration 1.
    The generator never ends on its own; the caller decides when the lattice has converged.
    """
    for iteration in itertools.count(1):
        yield iteration, strategy.apply_one_iteration(state)


class RelaxationResult(NamedTuple):
    lattice: PoissonLattice
    iterations: int
    convergence: float
    history: List[float]


def relax(lattice, strategy, precision, max_iterations=None, verbose=False, print_interval=1000):
    """
    Repeatedly applies the update rule until the convergence measure falls strictly below the precision.

    Args:
        lattice (PoissonLattice): The initialised lattice, charge density already set.
        strategy (object): Update rule from build_relaxation_strategy.
        precision (float): Convergence threshold.
        max_iterations (int, optional): Iteration cap. None, the default, loops until converged.
        verbose (bool): Show a tqdm progress bar.
        print_interval (int): Print "iteration convergence" every print_interval iterations, 0 to disable.

    Returns:
        RelaxationResult: The final lattice, the number of iterations, the final convergence measure and the
        convergence measure of every iteration. The final lattice is the lattice passed in, updated for every
        method.

    Raises:
        RelaxationNotConverged: If max_iterations is reached before convergence.
    """
    state = strategy.prepare(lattice)
    history = []

    iterations = relaxation_iterations(state, strategy)
    progress = tqdm(iterations, desc=strategy.name) if verbose else iterations

    try:
        for iteration, convergence in progress:
            history.append(convergence)

            if verbose:
                progress.set_postfix(convergence=convergence)

            if print_interval and iteration % print_interval == 0:
                print(f"{iteration} {convergence}")

            if convergence < precision:
                break
            # the lattice has converged

            if max_iterations is not None and iteration >= max_iterations:
                raise RelaxationNotConverged(
                    f"{strategy.name} did not converge to {precision} in {max_iterations} iterations, "
                    f"last convergence measure {convergence}"
                )
    finally:
        if verbose:
            progress.close()

    lattice.potential = state.current.potential
    # Jacobi swaps buffers, so the final potential may live in the second lattice

    return RelaxationResult(lattice, iteration, convergence, history)


def convergence_rate(history, tail=0.5):
    """
    Estimates the asymptotic reduction of the convergence measure per iteration.

    A line is fitted to log(convergence) against iteration over the last part of the history.

    Args:
        history (list): Convergence measure of every iteration.
        tail (float): Fraction of the history to fit.

    Returns:
        float: exp(slope), the factor the convergence measure shrinks by per iteration.
    """
    history = np.asarray(history, dtype=float)
    iterations = np.arange(1, len(history) + 1)
    start = int(len(history) * (1 - tail))
    iterations, history = iterations[start:], history[start:]
    positive = history > 0
    # log of a zero convergence measure is undefined

    if np.count_nonzero(positive) < 2:
        return 0.0

    res = stats.linregress(iterations[positive], np.log(history[positive]))
    return float(np.exp(res.slope))
