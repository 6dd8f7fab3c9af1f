import os
import numpy as np
import matplotlib
matplotlib.use('agg')
import matplotlib.pyplot as plt
from pyevtk.hl import gridToVTK
# import external libraries

from PyPoisson3D.lattice import write_lattice
# import functions from the PyPoisson3D package

def write_convergence_history(history, path):
    """
    Write the convergence measure of every iteration to convergence.txt, one 'iteration, convergence' per line.
    """
    iterations = np.arange(1, len(history) + 1)
    np.savetxt(os.path.join(path, "convergence.txt"), np.column_stack([iterations, history]), \
               fmt=['%d', '%.17g'], delimiter=", ")

def write_lattice_dump(lattice, path, field='electric'):
    """
    Write the potential and its field to poissonOutput.dat in a single pass over the lattice.
    """
    with open(os.path.join(path, "poissonOutput.dat"), "w") as f:
        write_lattice(lattice, f, field)

def plot_potential_slice(lattice, path, name='potential'):
    """
    Plots the potential through the centre z plane and saves it as a PNG file.

    Args:
        lattice (PoissonLattice): The lattice to plot.
        path (str): The directory path where the plot will be saved.
        name (str): The name of the plot.
    """
    k = lattice.nz // 2
    field_slice = np.asarray(lattice.potential[:, :, k])
    extent = [0, (lattice.nx - 1) * lattice.dx, 0, (lattice.ny - 1) * lattice.dx]

    plt.title(f'{name} at z index {k}')
    plt.imshow(np.swapaxes(field_slice, 0, 1), origin='lower', extent=extent)
    plt.colorbar(label=name)
    plt.xlabel('x')
    plt.ylabel('y')
    plt.tight_layout()
    plt.savefig(os.path.join(path, f'{name}_slice.png'), dpi=300)
    plt.clf()  # Clear the current figure
    plt.close('all')  # Close all figures to free up memory

def plot_convergence(history, path):
    """
    Plots the convergence measure against iteration on a log scale and saves it as convergence.png.
    """
    iterations = np.arange(1, len(history) + 1)
    plt.semilogy(iterations, history)
    plt.xlabel("Iteration")
    plt.ylabel("Convergence measure")
    plt.title("Relaxation Convergence")
    plt.grid(True, which="both", linestyle="--", alpha=0.5)
    plt.tight_layout()
    plt.savefig(os.path.join(path, "convergence.png"), dpi=200)
    plt.clf()
    plt.close('all')

def write_vtk(lattice, path, field='electric'):
    """
    Save the potential, charge density and field of the lattice as a VTK rectilinear grid (potential.vtr).

    Args:
        lattice (PoissonLattice): The lattice to save.
        path (str): The directory path where the file will be saved.
        field (str): 'electric' or 'magnetic'.
    """
    x = np.arange(lattice.nx) * lattice.dx
    y = np.arange(lattice.ny) * lattice.dx
    z = np.arange(lattice.nz) * lattice.dx

    if field == 'electric':
        Fx, Fy, Fz = lattice.electric_field_grid()
        name = 'E'
    else:
        Fx, Fy, Fz = lattice.magnetic_field_grid()
        name = 'B'

    gridToVTK(os.path.join(path, "potential"), x, y, z, \
            pointData = {"phi": np.ascontiguousarray(lattice.potential), \
                         "rho": np.ascontiguousarray(lattice.charge_density), \
                         f"{name}_x": np.ascontiguousarray(Fx), \
                         f"{name}_y": np.ascontiguousarray(Fy), \
                         f"{name}_z": np.ascontiguousarray(Fz)})
    # save the lattice in the vtk file format
