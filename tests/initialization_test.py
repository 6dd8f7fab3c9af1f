import os
import tempfile
import unittest
import jax
import jax.numpy as jnp

from PyPoisson3D.initialization import default_parameters, build_lattice, initialize_simulation
from PyPoisson3D.relaxation import JacobiRelaxation, SORRelaxation
from PyPoisson3D.utils import load_config_file

jax.config.update("jax_enable_x64", True)

class TestInitialization(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.simulation_parameters, self.output_parameters, self.constants = default_parameters()
        self.simulation_parameters.update({"Nx": 6, "Ny": 7, "Nz": 8, "seed": 0})

    def tearDown(self):
        self.tmp.cleanup()

    def test_default_parameters(self):
        simulation_parameters, output_parameters, constants = default_parameters()
        self.assertEqual(simulation_parameters["method"], "jacobi")
        self.assertEqual(simulation_parameters["precision"], 0.001)
        self.assertEqual((simulation_parameters["Nx"], simulation_parameters["Ny"], simulation_parameters["Nz"]), (100, 100, 100))
        self.assertIsNone(simulation_parameters["max_iterations"])
        self.assertEqual(constants["permittivity"], 1.0)
        self.assertIsNone(output_parameters["output_dir"])

    def test_build_lattice_electro(self):
        self.constants["permittivity"] = 4.0
        lattice = build_lattice(self.simulation_parameters, self.constants)
        self.assertEqual(lattice.get_shape(), (6, 7, 8))
        self.assertEqual(lattice.permittivity, 4.0)
        self.assertEqual(lattice.get_charge_density(3, 3, 4), 1.0)
        self.assertEqual(float(jnp.sum(lattice.charge_density)), 1.0)

    def test_build_lattice_magneto(self):
        self.simulation_parameters["problem"] = "magneto"
        self.constants["permeability"] = 0.5
        lattice = build_lattice(self.simulation_parameters, self.constants)
        self.assertEqual(lattice.permittivity, 2.0)
        self.assertTrue(jnp.all(lattice.charge_density[3, 3, :] == 1.0))

    def test_build_lattice_noise_is_seeded(self):
        self.simulation_parameters["noise"] = 0.1
        first = build_lattice(self.simulation_parameters, self.constants)
        second = build_lattice(self.simulation_parameters, self.constants)
        self.assertTrue(jnp.array_equal(first.potential, second.potential))

    def test_build_lattice_unknown_problem(self):
        self.simulation_parameters["problem"] = "gravity"
        with self.assertRaises(ValueError):
            build_lattice(self.simulation_parameters, self.constants)

    def test_initialize_simulation(self):
        output_dir = os.path.join(self.tmp.name, "run")
        config = {
            "simulation_parameters": {"Nx": 5, "Ny": 5, "Nz": 5, "method": "SOR", "sor_parameter": 1.3},
            "output": {"output_dir": output_dir},
        }
        lattice, strategy, simulation_parameters, output_parameters, constants = initialize_simulation(config)
        self.assertIsInstance(strategy, SORRelaxation)
        self.assertEqual(strategy.sor_parameter, 1.3)
        self.assertEqual(simulation_parameters["method"], "sor")
        self.assertIsNotNone(simulation_parameters["seed"])
        self.assertTrue(os.path.isdir(output_dir))
        self.assertEqual(lattice.get_shape(), (5, 5, 5))

    def test_initialize_simulation_magneto_from_command_line(self):
        config = load_config_file(["-r", "5", "-c", "5", "-t", "5", "-p", "4.0", "--magneto", \
                                   "--permeability", "0.5", "-o", self.tmp.name, "--seed", "0"])
        lattice, _, simulation_parameters, _, constants = initialize_simulation(config)
        self.assertEqual(simulation_parameters["problem"], "magneto")
        self.assertEqual(constants["permeability"], 0.5)
        self.assertEqual(lattice.permittivity, 2.0)
        # the lattice is solved with 1 / permeability, the permittivity plays no part

    def test_initialize_simulation_unknown_method(self):
        config = {"simulation_parameters": {"method": "multigrid"}, "output": {"output_dir": self.tmp.name}}
        with self.assertRaises(ValueError):
            initialize_simulation(config)

    def test_initialize_simulation_defaults_to_jacobi(self):
        config = {"simulation_parameters": {"Nx": 4, "Ny": 4, "Nz": 4}, "output": {"output_dir": self.tmp.name}}
        _, strategy, *_ = initialize_simulation(config)
        self.assertIsInstance(strategy, JacobiRelaxation)

if __name__ == '__main__':
    unittest.main()
