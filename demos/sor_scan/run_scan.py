import argparse
import toml
import numpy as np
import matplotlib
matplotlib.use('agg')
import matplotlib.pyplot as plt
# import external libraries

from PyPoisson3D.experiment import SORParameterScan, sor_parameter_range
# import the SOR scan from the PyPoisson3D package


parser = argparse.ArgumentParser(description="Scan of the SOR parameter for the 3D Poisson solver")
parser.add_argument('--config', type=str, default="config.toml", help='Path to the configuration file')
args = parser.parse_args()
# argument parser for the configuration file
base_config = toml.load(args.config)

omegas = sor_parameter_range(1.95, 1.97, 0.001)
# omega values around the optimum for a 100^3 lattice

scan = SORParameterScan(
    name="sor_scan",
    run_dir="runs",
    base_config=base_config,
    omegas=omegas,
)

iterations = []
rates = []

for parameter in scan.parameters():
    experiment = scan.build(parameter)
    results = experiment.run()
    iterations.append(results["iterations"])
    rates.append(results["convergence_rate"])
    # log the iterations needed for each omega

with open("sor_scan.txt", "w") as f:
    for omega, n, rate in zip(omegas, iterations, rates):
        f.write(f"{omega} {n} {rate}\n")

best = int(np.argmin(iterations))
print(f"Fastest convergence: omega = {omegas[best]} in {iterations[best]} iterations")

plt.plot(omegas, iterations, 'o-')
plt.xlabel("SOR parameter")
plt.ylabel("Iterations until convergence")
plt.tight_layout()
plt.savefig("sor_scan.png", dpi=200)
