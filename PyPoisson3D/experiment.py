import copy
import os
import epyc
# import external libraries

from PyPoisson3D.__main__ import run_PyPoisson3D
from PyPoisson3D.relaxation import convergence_rate
# import functions from the PyPoisson3D package

class PoissonExperiment(epyc.Experiment):
    """
    A class to represent a single relaxation run of the PyPoisson3D solver.
    Attributes
    ----------
    config : dict
        Configuration parameters for the experiment.
    Methods
    -------
    __init__(self, config):
        Initializes the experiment with the given configuration.
    run(self):
        Relaxes the lattice to convergence and returns a dictionary containing the duration of the run,
        the number of iterations, the final convergence measure, the asymptotic convergence rate and the
        parameters of the run.
    """

    def __init__(self, config):
        super().__init__()
        self.config = config

    def run(self):

        result, simulation_stats, simulation_parameters, output_parameters, constants = run_PyPoisson3D(self.config)
        # relax the lattice

        return {
            'duration': simulation_stats['total_time'],
            'iterations': result.iterations,
            'convergence': result.convergence,
            'convergence_rate': convergence_rate(result.history),
            'final_lattice': result.lattice,
            'simulation_parameters': simulation_parameters,
            'output_parameters': output_parameters,
            'constants': constants,
        }

class ParameterScan(epyc.Lab):
    def __init__(self, name, run_dir, base_config, section, param_name, param_values):
        """
        Initialize the experiment with the given parameters.
        Args:
            name (str): The name of the experiment.
            run_dir (str): The directory where the experiment will be run.
            base_config (dict): The base configuration for the experiment.
            section (str): The section of the configuration to modify.
            param_name (str): The name of the parameter to vary.
            param_values (list): The values of the parameter to test.
        """

        super().__init__()
        self.name = name
        self.run_dir = run_dir
        self.section = section
        self.base_config = base_config
        self.param_name = param_name
        self.param_values = param_values

    def parameters(self):
        for value in self.param_values:
            config = copy.deepcopy(self.base_config)
            config.setdefault(self.section, {})[self.param_name] = value
            experiment_dir = f'{self.run_dir}/{self.name}/{self.param_name}_{value}'.replace(' ', '_')

            if not os.path.exists(experiment_dir):
                print(f'Creating directory {experiment_dir}')
                os.makedirs(experiment_dir)
            # create the directory for the experiment

            config.setdefault('output', {})['output_dir'] = experiment_dir
            yield config, value

    def build(self, params):
        config, _ = params
        return PoissonExperiment(config)

class SORParameterScan(ParameterScan):
    """
    Scan of the over-relaxation parameter omega for the SOR method.
    """

    def __init__(self, name, run_dir, base_config, omegas):
        base_config = copy.deepcopy(base_config)
        base_config.setdefault('simulation_parameters', {})['method'] = 'sor'
        super().__init__(name, run_dir, base_config, 'simulation_parameters', 'sor_parameter', omegas)

def sor_parameter_range(start, stop, step, decimals=3):
    """
    Evenly spaced over-relaxation parameters from start to stop inclusive, rounded to the given number of decimals
    so that the values make clean directory names.
    """
    count = int(round((stop - start) / step)) + 1
    return [round(start + n * step, decimals) for n in range(count)]
