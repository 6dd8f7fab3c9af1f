import itertools
import unittest
from unittest import mock
import jax
import jax.numpy as jnp
from tqdm import tqdm

from PyPoisson3D.lattice import PoissonLattice
from PyPoisson3D.relaxation import (
    jacobi_update, gauss_seidel_update, sor_update, lattice_difference,
    build_relaxation_strategy, relaxation_iterations, relax, convergence_rate,
    JacobiRelaxation, GaussSeidelRelaxation, SORRelaxation, RelaxationNotConverged
)

jax.config.update("jax_enable_x64", True)

def point_charge_lattice(n, noise=0.0, seed=0):
    lattice = PoissonLattice(n, n, n, 1.0, 1.0)
    lattice.initialise(0.0, noise, jax.random.PRNGKey(seed))
    lattice.set_point_charge_dist()
    return lattice

class TestUpdateRules(unittest.TestCase):

    def test_jacobi_update_reads_previous_lattice_only(self):
        current = point_charge_lattice(5)
        updated = current.copy()
        convergence = jacobi_update(current, updated)
        # only the site holding the charge changes on the first pass from zero
        self.assertTrue(jnp.allclose(updated.get_potential(2, 2, 2), 1.0 / 6.0))
        self.assertEqual(float(updated.get_potential(2, 2, 3)), 0.0)
        self.assertTrue(jnp.all(current.potential == 0))
        self.assertAlmostEqual(convergence, 1.0 / 6.0)

    def test_gauss_seidel_update_sees_earlier_sites(self):
        lattice = point_charge_lattice(5)
        convergence = gauss_seidel_update(lattice)
        self.assertTrue(jnp.allclose(lattice.get_potential(2, 2, 2), 1.0 / 6.0))
        self.assertTrue(jnp.allclose(lattice.get_potential(2, 2, 3), 1.0 / 36.0))
        self.assertEqual(float(lattice.get_potential(2, 2, 1)), 0.0)
        # sites earlier in the sweep than the charge are still zero
        self.assertAlmostEqual(convergence, float(jnp.sum(lattice.potential)))

    def test_sor_update_blends(self):
        lattice = point_charge_lattice(5)
        sor_update(1.5, lattice)
        self.assertTrue(jnp.allclose(lattice.get_potential(2, 2, 2), 1.5 / 6.0))

    def test_sor_with_unit_parameter_matches_gauss_seidel(self):
        gs_lattice = point_charge_lattice(6, noise=0.2, seed=3)
        sor_lattice = gs_lattice.copy()
        for _ in range(10):
            gs_convergence = gauss_seidel_update(gs_lattice)
            sor_convergence = sor_update(1.0, sor_lattice)
            self.assertEqual(gs_convergence, sor_convergence)
            self.assertTrue(jnp.array_equal(gs_lattice.potential, sor_lattice.potential))

    def test_boundary_is_never_written(self):
        for update in [gauss_seidel_update, lambda l: sor_update(1.7, l)]:
            lattice = point_charge_lattice(6, noise=0.5)
            lattice.set_boundary_value(2.0)
            for _ in range(5):
                update(lattice)
            self.assertTrue(jnp.all(lattice.potential[0, :, :] == 2.0))
            self.assertTrue(jnp.all(lattice.potential[:, -1, :] == 2.0))
            self.assertTrue(jnp.all(lattice.potential[:, :, -1] == 2.0))

        current = point_charge_lattice(6, noise=0.5)
        current.set_boundary_value(2.0)
        updated = current.copy()
        jacobi_update(current, updated)
        self.assertTrue(jnp.all(updated.potential[-1, :, :] == 2.0))
        self.assertTrue(jnp.all(updated.potential[:, 0, :] == 2.0))

    def test_convergence_measure_zero_when_unchanged(self):
        lattice = PoissonLattice(5, 5, 5, 1.0, 1.0)
        lattice.set_boundary_value(1.0)
        lattice.initialise(1.0, 0.0, jax.random.PRNGKey(0))
        # the constant field is the fixed point without charge
        self.assertEqual(gauss_seidel_update(lattice), 0.0)
        self.assertEqual(sor_update(1.5, lattice), 0.0)
        self.assertEqual(jacobi_update(lattice, lattice.copy()), 0.0)

    def test_convergence_measure_is_non_negative(self):
        lattice = point_charge_lattice(6, noise=1.0, seed=5)
        for _ in range(5):
            self.assertGreater(gauss_seidel_update(lattice), 0.0)

    def test_lattice_difference(self):
        lattice1 = PoissonLattice(4, 4, 4, 1.0, 1.0)
        lattice2 = lattice1.copy()
        lattice2.set_potential(1, 1, 1, -0.5)
        lattice2.set_potential(2, 1, 2, 0.25)
        lattice2.set_potential(0, 0, 0, 10.0)
        # boundary sites are not part of the measure
        self.assertAlmostEqual(lattice_difference(lattice1, lattice2), 0.75)

    def test_no_interior(self):
        lattice = PoissonLattice(2, 5, 5, 1.0, 1.0)
        self.assertEqual(gauss_seidel_update(lattice), 0.0)
        self.assertEqual(jacobi_update(lattice, lattice.copy()), 0.0)

class TestRelaxationDriver(unittest.TestCase):

    def test_build_relaxation_strategy(self):
        self.assertIsInstance(build_relaxation_strategy('jacobi'), JacobiRelaxation)
        self.assertIsInstance(build_relaxation_strategy('Gauss-Seidel'), GaussSeidelRelaxation)
        strategy = build_relaxation_strategy('SOR', 1.9)
        self.assertIsInstance(strategy, SORRelaxation)
        self.assertEqual(strategy.sor_parameter, 1.9)
        with self.assertRaises(ValueError):
            build_relaxation_strategy('multigrid')

    def test_relaxation_iterations(self):
        strategy = GaussSeidelRelaxation()
        state = strategy.prepare(point_charge_lattice(5))
        pairs = list(itertools.islice(relaxation_iterations(state, strategy), 4))
        self.assertEqual([iteration for iteration, _ in pairs], [1, 2, 3, 4])
        self.assertTrue(all(convergence >= 0 for _, convergence in pairs))

    def test_jacobi_swaps_lattices(self):
        strategy = JacobiRelaxation()
        lattice = point_charge_lattice(5)
        state = strategy.prepare(lattice)
        strategy.apply_one_iteration(state)
        self.assertIs(state.updated, lattice)
        self.assertTrue(jnp.allclose(state.current.get_potential(2, 2, 2), 1.0 / 6.0))

    def test_constant_boundary_fixed_point(self):
        b = 1.5
        for method in ['jacobi', 'gauss_seidel', 'sor']:
            lattice = PoissonLattice(6, 6, 6, 1.0, 1.0)
            lattice.set_boundary_value(b)
            lattice.initialise(b, 0.01, jax.random.PRNGKey(7))
            strategy = build_relaxation_strategy(method, 1.4)
            result = relax(lattice, strategy, 1e-8, max_iterations=10000, print_interval=0)
            self.assertLess(result.convergence, 1e-8)
            self.assertTrue(jnp.allclose(result.lattice.potential, b, atol=1e-6), msg=method)

    def test_jacobi_matches_gauss_seidel(self):
        jacobi = relax(point_charge_lattice(7), JacobiRelaxation(), 1e-12, max_iterations=10000, print_interval=0)
        gauss_seidel = relax(point_charge_lattice(7), GaussSeidelRelaxation(), 1e-12, max_iterations=10000, print_interval=0)
        sor = relax(point_charge_lattice(7), SORRelaxation(1.5), 1e-12, max_iterations=10000, print_interval=0)
        self.assertTrue(jnp.allclose(jacobi.lattice.potential, gauss_seidel.lattice.potential, atol=1e-9))
        self.assertTrue(jnp.allclose(sor.lattice.potential, gauss_seidel.lattice.potential, atol=1e-9))
        self.assertGreater(jacobi.iterations, gauss_seidel.iterations)
        # Gauss-Seidel converges faster than Jacobi

    def test_point_charge_end_to_end(self):
        first = relax(point_charge_lattice(5), JacobiRelaxation(), 1e-6, max_iterations=1000, print_interval=0)
        second = relax(point_charge_lattice(5), JacobiRelaxation(), 1e-6, max_iterations=1000, print_interval=0)
        self.assertEqual(first.iterations, second.iterations)
        self.assertEqual(len(first.history), first.iterations)
        self.assertLess(first.convergence, 1e-6)
        self.assertEqual(first.convergence, first.history[-1])
        self.assertTrue(all(c >= 1e-6 for c in first.history[:-1]))
        # deterministic without noise, stops at the first measure below the precision

        phi = first.lattice.potential
        self.assertTrue(jnp.allclose(phi, jnp.flip(phi, axis=0), atol=1e-10))
        self.assertTrue(jnp.allclose(phi, jnp.flip(phi, axis=1), atol=1e-10))
        self.assertTrue(jnp.allclose(phi, jnp.flip(phi, axis=2), atol=1e-10))
        self.assertTrue(jnp.allclose(phi, jnp.transpose(phi, (1, 0, 2)), atol=1e-10))
        self.assertTrue(jnp.allclose(phi, jnp.transpose(phi, (2, 1, 0)), atol=1e-10))
        # symmetric about the centre
        self.assertEqual(float(jnp.max(phi)), float(phi[2, 2, 2]))

    def test_max_iterations(self):
        with self.assertRaises(RelaxationNotConverged):
            relax(point_charge_lattice(5), GaussSeidelRelaxation(), 0.0, max_iterations=5, print_interval=0)

    def test_jacobi_leaves_final_state_in_callers_lattice(self):
        lattice = point_charge_lattice(5)
        result = relax(lattice, JacobiRelaxation(), 1.0, print_interval=0)
        self.assertEqual(result.iterations, 1)
        # one pass leaves the swapped buffers pointing at the copy
        self.assertIs(result.lattice, lattice)
        self.assertTrue(jnp.allclose(lattice.get_potential(2, 2, 2), 1.0 / 6.0))

        lattice = point_charge_lattice(7)
        result = relax(lattice, JacobiRelaxation(), 1e-6, max_iterations=10000, print_interval=0)
        reference = relax(point_charge_lattice(7), GaussSeidelRelaxation(), 1e-10, max_iterations=10000, print_interval=0)
        self.assertTrue(jnp.allclose(lattice.potential, reference.lattice.potential, atol=1e-5))

    def test_progress_bar_closed_when_not_converged(self):
        with mock.patch.object(tqdm, 'close', autospec=True) as close:
            with self.assertRaises(RelaxationNotConverged):
                relax(point_charge_lattice(5), JacobiRelaxation(), 0.0, max_iterations=3, verbose=True, print_interval=0)
            self.assertTrue(close.called)

    def test_verbose_relax(self):
        result = relax(point_charge_lattice(5), SORRelaxation(1.2), 1e-6, max_iterations=1000, verbose=True, print_interval=2)
        self.assertLess(result.convergence, 1e-6)

    def test_convergence_rate(self):
        result = relax(point_charge_lattice(7), GaussSeidelRelaxation(), 1e-10, max_iterations=10000, print_interval=0)
        rate = convergence_rate(result.history)
        self.assertGreater(rate, 0.0)
        self.assertLess(rate, 1.0)
        self.assertEqual(convergence_rate([1.0]), 0.0)

if __name__ == '__main__':
    unittest.main()
