import jax
# import external libraries

from PyPoisson3D.lattice import PoissonLattice
from PyPoisson3D.relaxation import build_relaxation_strategy
from PyPoisson3D.utils import (
    update_parameters_from_toml, make_dir, get_time_stamp, clock_seed, print_parameters
)
# import functions from the PyPoisson3D package


def default_parameters():
    """
    Returns dictionaries of default parameters for the simulation.

    Returns:
    tuple: Simulation parameters, output parameters and constants.
    """
    simulation_parameters = {
        "name": "Poisson Simulation",
        "method": "jacobi",  # relaxation method: jacobi, gauss_seidel, sor
        "problem": "electro",  # electro: point charge, magneto: line current
        "dx": 1.0,  # spatial discretisation step
        "initial_value": 0.0,  # initial value of the potential away from the boundary
        "noise": 0.0,  # maximum magnitude of the initial noise
        "precision": 0.001,  # precision of convergence
        "Nx": 100,  # number of lattice sites in x
        "Ny": 100,  # number of lattice sites in y
        "Nz": 100,  # number of lattice sites in z
        "sor_parameter": 1.0,  # successive over-relaxation parameter
        "seed": None,  # seed for the initial noise, taken from the clock if None
        "max_iterations": None,  # iteration cap, None loops until converged
        "verbose": False,  # boolean for showing a progress bar
    }
    # dictionary for simulation parameters

    output_parameters = {
        "output_dir": None,  # output directory, a time stamp if None
        "print_interval": 1000,  # iterations between progress lines
        "write_lattice": True,  # write poissonOutput.dat
        "write_convergence": True,  # write the convergence measure of every iteration
        "plot_potential": False,  # plot the potential through the centre plane
        "plot_convergence": False,  # plot the convergence history
        "write_vtk": False,  # write the potential and field as a VTK grid
    }
    # dictionary for writing/plotting data

    constants = {
        "permittivity": 1.0,  # permittivity in the Poisson equation
        "permeability": 1.0,  # permeability for the magnetostatic problem
    }

    return simulation_parameters, output_parameters, constants
    # return the dictionaries


def setup_write_dir(output_parameters):
    if output_parameters['output_dir'] is None:
        output_parameters['output_dir'] = get_time_stamp()
    make_dir(output_parameters['output_dir'])


def build_lattice(simulation_parameters, constants):
    """
    Builds and initialises the lattice described by the parameters.

    Args:
        simulation_parameters (dict): Extents, discretisation, initial value, noise, seed and problem.
        constants (dict): Permittivity and permeability.

    Returns:
        PoissonLattice: The lattice with the initial potential and the source term set.
    """
    problem = simulation_parameters['problem']
    if problem == 'electro':
        permittivity = constants['permittivity']
    elif problem == 'magneto':
        permittivity = 1.0 / constants['permeability']
        # laplacian(A) = -mu J has the same form as laplacian(phi) = -rho / eps
    else:
        raise ValueError(f"Unknown problem: {problem}")

    lattice = PoissonLattice(simulation_parameters['Nx'], simulation_parameters['Ny'], simulation_parameters['Nz'], \
                             permittivity, simulation_parameters['dx'])

    key = jax.random.PRNGKey(simulation_parameters['seed'])
    lattice.initialise(simulation_parameters['initial_value'], simulation_parameters['noise'], key)
    # initialise the lattice with some value and random noise, the boundary stays at zero

    if problem == 'electro':
        lattice.set_point_charge_dist()
    else:
        lattice.set_line_current_dist()

    return lattice


def initialize_simulation(config):
    """
    Initializes the simulation from a configuration dictionary.

    Args:
        config (dict): Configuration with optional 'simulation_parameters', 'output' and 'constants' tables.
            If None, default parameters are used.

    Returns:
        tuple: A tuple containing the following elements:
            lattice (PoissonLattice): The initialised lattice.
            strategy (object): The relaxation update rule.
            simulation_parameters (dict): Dictionary containing simulation parameters.
            output_parameters (dict): Dictionary containing output parameters.
            constants (dict): Dictionary containing physical constants.
    """

    simulation_parameters, output_parameters, constants = default_parameters()
    # load the default parameters

    if config is not None:
        simulation_parameters, output_parameters, constants = update_parameters_from_toml(config, \
                                                        simulation_parameters, output_parameters, constants)

    print(f"Initializing Simulation: { simulation_parameters['name'] }\n")

    if simulation_parameters['seed'] is None:
        simulation_parameters['seed'] = clock_seed()
    # seed the random number generator using the system clock

    strategy = build_relaxation_strategy(simulation_parameters['method'], simulation_parameters['sor_parameter'])
    simulation_parameters['method'] = strategy.name
    # select the update rule once

    lattice = build_lattice(simulation_parameters, constants)

    setup_write_dir(output_parameters)
    # setup the write directory

    print_parameters(simulation_parameters, constants)

    return lattice, strategy, simulation_parameters, output_parameters, constants
