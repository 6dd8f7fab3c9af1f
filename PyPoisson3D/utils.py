import os
import time
import argparse
import importlib.metadata
from datetime import datetime
import jax
import numpy as np
import toml
import tqdm
import matplotlib
import pyevtk
# import external libraries

def make_dir(path):
    """
    Create a directory if it does not exist.
    Args:
        path (str): The path to the directory to be created.
    """

    if not os.path.exists(path):
        os.makedirs(path)

def get_time_stamp():
    """
    Returns the current date and time as a string that can be used as a directory name.
    """
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

def clock_seed():
    """
    Seed for the random number generator taken from the system clock.
    """
    return time.time_ns() % 2**32

def build_argument_parser():
    """
    Builds the command line parser. Every option defaults to None so that only the options given on the
    command line override the configuration file.
    """
    parser = argparse.ArgumentParser(description="3D Poisson equation solver using Jax")
    parser.add_argument('--config', type=str, default=None, help='Path to the configuration file')
    parser.add_argument('-x', '--spatial-discretisation', type=float, dest='dx', help='Spatial discretisation step size.')
    parser.add_argument('-p', '--permittivity', type=float, help='Permittivity in the Poisson equation.')
    parser.add_argument('--permeability', type=float, help='Permeability for the line current of the magnetostatic problem.')
    parser.add_argument('-v', '--initial-value', type=float, dest='initial_value', help='Initial value of the potential.')
    parser.add_argument('-n', '--noise', type=float, help='Maximum magnitude of initial noise.')
    parser.add_argument('-d', '--precision', type=float, help='Precision of convergence.')
    parser.add_argument('-r', '--x-range', type=int, dest='Nx', help='Total number of x points in the simulation domain.')
    parser.add_argument('-c', '--y-range', type=int, dest='Ny', help='Total number of y points in the simulation domain.')
    parser.add_argument('-t', '--z-range', type=int, dest='Nz', help='Total number of z points in the simulation domain.')
    parser.add_argument('-o', '--output', type=str, dest='output_dir', help='Name of output directory to save output files into.')
    parser.add_argument('-w', '--sor-parameter', type=float, dest='sor_parameter', help='Parameter for the successive over-relaxation algorithm.')
    parser.add_argument('--seed', type=int, help='Seed for the initial noise, taken from the clock by default.')
    parser.add_argument('--max-iterations', type=int, dest='max_iterations', help='Stop with an error after this many iterations.')
    parser.add_argument('--Jacobi', action='store_true', help='Use Jacobi relaxation method.')
    parser.add_argument('--Gauss-Seidel', action='store_true', dest='gauss_seidel', help='Use Gauss-Seidel relaxation method (takes precedence over Jacobi).')
    parser.add_argument('--SOR', action='store_true', dest='sor', help='Use successive over-relaxation, takes overall precedence.')
    parser.add_argument('--magneto', action='store_true', help='Solve for the vector potential of a line current instead of a point charge.')
    parser.add_argument('--verbose', action='store_true', help='Show a progress bar while relaxing.')
    return parser

def arguments_to_config(args, config=None):
    """
    Merges parsed command line arguments into a configuration dictionary.

    Args:
        args (argparse.Namespace): The parsed arguments.
        config (dict, optional): Configuration loaded from a TOML file.

    Returns:
        dict: Configuration with 'simulation_parameters', 'output' and 'constants' tables.
    """
    config = dict(config) if config is not None else {}
    simulation_parameters = dict(config.get('simulation_parameters', {}))
    output = dict(config.get('output', {}))
    constants = dict(config.get('constants', {}))

    for key in ['dx', 'initial_value', 'noise', 'precision', 'Nx', 'Ny', 'Nz', 'sor_parameter', 'seed', 'max_iterations']:
        value = getattr(args, key)
        if value is not None:
            simulation_parameters[key] = value

    if args.sor:
        simulation_parameters['method'] = 'sor'
    elif args.gauss_seidel:
        simulation_parameters['method'] = 'gauss_seidel'
    elif args.Jacobi:
        simulation_parameters['method'] = 'jacobi'
    # SOR takes precedence over Gauss-Seidel which takes precedence over Jacobi

    if args.magneto:
        simulation_parameters['problem'] = 'magneto'
    if args.verbose:
        simulation_parameters['verbose'] = True
    if args.permittivity is not None:
        constants['permittivity'] = args.permittivity
    if args.permeability is not None:
        constants['permeability'] = args.permeability
    if args.output_dir is not None:
        output['output_dir'] = args.output_dir

    config['simulation_parameters'] = simulation_parameters
    config['output'] = output
    config['constants'] = constants
    return config

def load_config_file(argv=None):
    """
    Parses command-line arguments, loads the configuration file in TOML format if one is given and applies the
    command line options on top of it.

    Args:
        argv (list, optional): Command line arguments, sys.argv[1:] by default.

    Returns:
        dict: The configuration as a dictionary.

    Raises:
        SystemExit: If the command-line arguments are not provided correctly.
        FileNotFoundError: If the specified configuration file does not exist.
        toml.TomlDecodeError: If the configuration file is not a valid TOML file.
    """
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    # argument parser for the configuration file

    config = None
    if args.config is not None:
        print(f"Using Configuration File: {args.config}")
        config = toml.load(args.config)
    # load the configuration file

    return arguments_to_config(args, config)

def update_parameters_from_toml(config, simulation_parameters, output_parameters, constants):
    """
    Update the default parameters with values from a TOML config. Unknown keys are ignored.

    Args:
        config (dict): Dictionary containing the configuration values.
        simulation_parameters (dict): Dictionary of default simulation parameters.
        output_parameters (dict): Dictionary of default output parameters.
        constants (dict): Dictionary of default constants.

    Returns:
        tuple: Updated simulation parameters, output parameters and constants.
    """

    for section, parameters in [("simulation_parameters", simulation_parameters), ("output", output_parameters), \
                                ("constants", constants)]:
        for key, value in config.get(section, {}).items():
            if key in parameters:
                parameters[key] = value

    return simulation_parameters, output_parameters, constants

def problem_constants(simulation_parameters, constants):
    """
    Returns the constant the problem is solved with: the permittivity for the point charge or the permeability
    for the line current.
    """
    if simulation_parameters["problem"] == "magneto":
        return {"permeability": constants["permeability"]}
    return {"permittivity": constants["permittivity"]}

def format_parameters(simulation_parameters, constants):
    """
    Formats the input parameters as aligned 'name: value' lines.
    """
    rows = [
        ("Solution-method", simulation_parameters['method']),
        ("Problem", simulation_parameters['problem']),
        ("Spatial-discretisation", simulation_parameters['dx']),
        *[(name.capitalize(), value) for name, value in problem_constants(simulation_parameters, constants).items()],
        ("Initial-value", simulation_parameters['initial_value']),
        ("Noise", simulation_parameters['noise']),
        ("Precision", simulation_parameters['precision']),
        ("x-range", simulation_parameters['Nx']),
        ("y-range", simulation_parameters['Ny']),
        ("z-range", simulation_parameters['Nz']),
        ("SOR-parameter", simulation_parameters['sor_parameter']),
        ("Seed", simulation_parameters['seed']),
    ]
    return "\n".join(f"{name + ':':<30}{value}" for name, value in rows)

def print_parameters(simulation_parameters, constants):
    print(format_parameters(simulation_parameters, constants) + "\n")

def package_versions():
    """
    Versions of the package and the libraries it is run with.
    """
    try:
        version = importlib.metadata.version('PyPoisson3D')
    except importlib.metadata.PackageNotFoundError:
        version = "unknown"

    return {
        "PyPoisson3D": version,
        "jax": jax.__version__,
        "numpy": np.__version__,
        "toml": toml.__version__,
        "tqdm": tqdm.__version__,
        "matplotlib": matplotlib.__version__,
        "pyevtk": getattr(pyevtk, "__version__", "unknown"),
    }

def dump_parameters_to_toml(simulation_parameters, output_parameters, constants):
    """
    Dump the input parameters into input.toml in the output directory.
    """
    output_file = os.path.join(output_parameters["output_dir"], "input.toml")

    config = {
        "simulation_parameters": simulation_parameters,
        "output": output_parameters,
        "constants": problem_constants(simulation_parameters, constants),
    }

    with open(output_file, 'w') as f:
        toml.dump(config, f)

def dump_results_to_toml(simulation_stats, output_parameters):
    """
    Dump the statistics of a finished run (iterations until convergence, run time, ...) into results.toml.

    Args:
        simulation_stats (dict): Dictionary of simulation statistics.
        output_parameters (dict): Dictionary of output parameters.
    """
    output_file = os.path.join(output_parameters["output_dir"], "results.toml")

    config = {
        "simulation_stats": simulation_stats,
        "version": {
            "date": datetime.now().strftime("%Y-%m-%d"),
        },
        "package_versions": package_versions(),
    }

    with open(output_file, 'w') as f:
        toml.dump(config, f)
