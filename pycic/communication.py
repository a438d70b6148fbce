"""
This module contains the MPI collectives moving particles and meshes
between processes.

Particles are decomposed by ownership: every rank receives a contiguous
shard of the particle sequence and deposits it on a full-size local mesh.
"""

import logging
from typing import Optional
import numpy as np
import numpy.typing as npt
from mpi4py import MPI
from pycic import utils
from pycic.iostream import Header


def broadcast_header(
    comm: MPI.Comm, header: Optional[Header], root: int = 0
) -> Header:
    """Share the input header read by the root rank

    Parameters
    ----------
    comm : MPI.Comm
        Communicator
    header : Header, optional
        Header on root, ignored elsewhere
    root : int, optional
        Rank holding the header, by default 0

    Returns
    -------
    Header
        Header on every rank
    """
    values = np.zeros(4, dtype=np.int64)
    if comm.Get_rank() == root:
        values[:] = header
    comm.Bcast([values, MPI.INT64_T], root=root)
    return Header(*(int(v) for v in values))


def scatter_points(
    comm: MPI.Comm,
    points: Optional[npt.NDArray[np.float64]],
    npoints: int,
    root: int = 0,
) -> npt.NDArray[np.float64]:
    """Distribute contiguous shards of the particle sequence

    Rank r receives the r-th shard of utils.partition, in rank order

    Parameters
    ----------
    comm : MPI.Comm
        Communicator
    points : npt.NDArray[np.float64], optional
        Position [npoints, 2] on root, ignored elsewhere
    npoints : int
        Total number of particles
    root : int, optional
        Rank holding the particles, by default 0

    Returns
    -------
    npt.NDArray[np.float64]
        Local position [N_local, 2]
    """
    rank = comm.Get_rank()
    counts, offsets = utils.partition(npoints, comm.Get_size())
    local = np.empty((counts[rank], 2), dtype=np.float64)
    if rank == root:
        points = np.ascontiguousarray(points, dtype=np.float64).reshape(-1, 2)
        if points.shape[0] != npoints:
            raise ValueError(f"{points.shape[0]=}, should be {npoints=}")
        # Two doubles per particle
        sendbuf = [
            points,
            (2 * counts).tolist(),
            (2 * offsets).tolist(),
            MPI.DOUBLE,
        ]
    else:
        sendbuf = None
    comm.Scatterv(sendbuf, [local, MPI.DOUBLE], root=root)
    logging.info(f"Rank {rank} received {counts[rank]} particles")
    return local


def reduce_mesh(
    comm: MPI.Comm,
    local_mesh: npt.NDArray[np.float64],
    root: int = 0,
) -> Optional[npt.NDArray[np.float64]]:
    """Sum local meshes on the root rank

    Parameters
    ----------
    comm : MPI.Comm
        Communicator
    local_mesh : npt.NDArray[np.float64]
        Local mesh [grid_height, grid_width]
    root : int, optional
        Rank receiving the sum, by default 0

    Returns
    -------
    npt.NDArray[np.float64], optional
        Global mesh on root, None elsewhere
    """
    local_mesh = np.ascontiguousarray(local_mesh, dtype=np.float64)
    if comm.Get_rank() == root:
        global_mesh = np.zeros_like(local_mesh)
        recvbuf = [global_mesh, MPI.DOUBLE]
    else:
        global_mesh = None
        recvbuf = None
    comm.Reduce([local_mesh, MPI.DOUBLE], recvbuf, op=MPI.SUM, root=root)
    return global_mesh

