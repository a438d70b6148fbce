"""
Python interface for depositing particles with PyCIC.
It writes a random particle file next to this script and deposits it.

Run on 4 processes with: mpirun -np 4 python example.py
"""

from pathlib import Path
from mpi4py import MPI
from pycic import iostream
from pycic.main import run

path = Path(__file__).parent.absolute()

param = {
    "input_file": f"{path}/particles_n100000.bin",
    "output_file": f"{path}/Mesh.out",
    "nthreads": 4,
    "out_of_bounds": "raise",
    "particle_mass": 1.0,
    "verbose": 2,
}

if MPI.COMM_WORLD.Get_rank() == 0:
    iostream.generate_input_file(
        param["input_file"],
        ncells_x=128,
        ncells_y=128,
        npoints=100000,
        niterations=5,
        seed=42,
    )
MPI.COMM_WORLD.Barrier()

# Run deposition
global_mesh, total_time = run(param)

if MPI.COMM_WORLD.Get_rank() == 0:
    print(f"{global_mesh.sum()=} {total_time=}")
    print("Run Completed!")
