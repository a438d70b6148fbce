"""
Cloud-in-Cell deposition of 2D particles on a uniform grid, distributed
over MPI processes and Numba threads.

The MPI layer lives in pycic.communication and pycic.main; the deposition
kernels in pycic.mesh do not need MPI.
"""
