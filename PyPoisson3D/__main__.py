# Relaxation solver for the Poisson equation on a 3D lattice using the Jax library.
# Solves for the electrostatic potential of a point charge or the vector potential of a line current
# with the Jacobi, Gauss-Seidel or successive over-relaxation algorithms.

import time
import jax
# Importing relevant libraries

from PyPoisson3D.utils import (
    load_config_file, dump_parameters_to_toml, dump_results_to_toml
)

from PyPoisson3D.initialization import (
    initialize_simulation
)

from PyPoisson3D.relaxation import relax

from PyPoisson3D.errors import compute_poisson_residual, compute_electric_divergence_error

from PyPoisson3D.plotting import (
    write_convergence_history, write_lattice_dump, plot_potential_slice, plot_convergence, write_vtk
)
# Importing functions from the PyPoisson3D package


def run_PyPoisson3D(config):
    ##################################### INITIALIZE SIMULATION ################################################

    lattice, strategy, simulation_parameters, output_parameters, constants = initialize_simulation(config)
    # initialize the simulation

    output_dir = output_parameters['output_dir']
    dump_parameters_to_toml(simulation_parameters, output_parameters, constants)
    # save the input parameters

    ############################################################################################################

    ###################################################### RELAXATION LOOP #####################################

    start = time.time()
    # start the timer

    result = relax(lattice, strategy, simulation_parameters['precision'], \
                   max_iterations=simulation_parameters['max_iterations'], \
                   verbose=simulation_parameters['verbose'], \
                   print_interval=output_parameters['print_interval'])
    # relax the lattice until the convergence measure drops below the precision

    duration = time.time() - start
    # calculate the time spent relaxing

    ############################################################################################################

    field = 'electric' if simulation_parameters['problem'] == 'electro' else 'magnetic'

    if output_parameters['write_lattice']:
        write_lattice_dump(result.lattice, output_dir, field)
    if output_parameters['write_convergence']:
        write_convergence_history(result.history, output_dir)
    if output_parameters['plot_potential']:
        plot_potential_slice(result.lattice, output_dir)
    if output_parameters['plot_convergence']:
        plot_convergence(result.history, output_dir)
    if output_parameters['write_vtk']:
        write_vtk(result.lattice, output_dir, field)
    # save the potential, field and convergence data

    simulation_stats = {
        "iterations": result.iterations,
        "convergence": float(result.convergence),
        "total_time": duration,
        "time_per_iteration": duration / result.iterations,
        "poisson_residual": compute_poisson_residual(result.lattice),
    }
    if simulation_parameters["problem"] == "electro":
        simulation_stats["gauss_law_error"] = compute_electric_divergence_error(result.lattice)
    # discrepancy between div(E) and rho/eps for the point charge
    dump_results_to_toml(simulation_stats, output_parameters)
    # save the statistics of the run

    return result, simulation_stats, simulation_parameters, output_parameters, constants


def main(argv=None):
    ###################### JAX SETTINGS ########################################################################
    jax.config.update("jax_enable_x64", True)
    # set Jax to use 64 bit precision
    jax.config.update('jax_platform_name', 'cpu')
    # set Jax to use CPUs
    ############################################################################################################

    config = load_config_file(argv)
    # load the configuration file and command line options

    result, simulation_stats, *_ = run_PyPoisson3D(config)
    # run the relaxation

    print(f"{'Number-of-iterations-until-convergence: ':<30}{result.iterations}")
    print(f"{'Time-take-to-execute(s): ':<30}{simulation_stats['total_time']}\n")


if __name__ == "__main__":
    main()
    # run the main function
