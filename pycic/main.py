#!/usr/bin/env python
"""\
Main executable module to deposit particles on a 2D grid with MPI and threads

Usage: mpirun -np 4 pycic particles.bin 8
"""
__version__ = "1.0.0"
__status__ = "Production"

import argparse
import logging
import sys
from functools import partial
from time import perf_counter
from typing import Callable, Dict, Optional, Tuple
import numpy as np
import numpy.typing as npt
import pandas as pd
from mpi4py import MPI
from rich.logging import RichHandler
from pycic import communication, iostream, mesh, utils
from pycic.grid import GridConfig

DEFAULTS = {
    "output_file": "Mesh.out",
    "verbose": 1,
    "out_of_bounds": "raise",
    "particle_mass": 1.0,
}


def set_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="%d/%m/%Y %I:%M:%S %p",
        handlers=[
            RichHandler(
                show_time=False,
                show_level=False,
                show_path=False,
                enable_link_path=False,
                markup=True,
            )
        ],
        force=True,
    )


def accumulate(
    comm: MPI.Comm,
    config: GridConfig,
    source: Callable[[], npt.NDArray[np.float64]],
    npoints: int,
    niterations: int,
    nthreads: int,
    weight: float = 1.0,
    root: int = 0,
    out_of_bounds: str = "raise",
) -> Tuple[npt.NDArray[np.float64], float]:
    """Run the accumulation rounds on this rank

    Every round, the root rank pulls the full particle sequence from the
    source and scatters it. The local mesh is reset by each deposition, so
    only the last round is kept while the time is summed over all rounds.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator
    config : GridConfig
        Grid configuration
    source : Callable[[], npt.NDArray[np.float64]]
        Returns the position [npoints, 2] of the next round, called on root only
    npoints : int
        Number of particles per round
    niterations : int
        Number of rounds
    nthreads : int
        Number of threads
    weight : float, optional
        Particle mass, by default 1.0
    root : int, optional
        Rank holding the particles, by default 0
    out_of_bounds : str, optional
        Policy for particles outside the grid, by default "raise"

    Returns
    -------
    Tuple[npt.NDArray[np.float64], float]
        Local mesh [grid_height, grid_width] and deposition time (in seconds)
    """
    rank = comm.Get_rank()
    local_mesh = np.zeros(config.shape, dtype=np.float64)
    buffers = None
    if nthreads > 1:
        buffers = np.zeros((nthreads,) + config.shape, dtype=np.float64)
    total_time = 0.0
    for iteration in range(niterations):
        all_points = source() if rank == root else None
        position = communication.scatter_points(comm, all_points, npoints, root=root)
        del all_points

        comm.Barrier()
        t_start = perf_counter()
        mesh.CIC(
            local_mesh,
            position,
            config,
            nthreads,
            weight=weight,
            buffers=buffers,
            out_of_bounds=out_of_bounds,
        )
        total_time += perf_counter() - t_start
        logging.info(f"{iteration=} {total_time=}")
    return local_mesh, total_time


def run(
    param, comm: Optional[MPI.Comm] = None
) -> Tuple[Optional[npt.NDArray[np.float64]], float]:
    """This is the main function to deposit the particles of an input file

    Parameters
    ----------
    param : dict or pd.Series
        Parameter container
    comm : MPI.Comm, optional
        Communicator, by default MPI.COMM_WORLD

    Returns
    -------
    Tuple[Optional[npt.NDArray[np.float64]], float]
        Global mesh (None except on rank 0) and deposition time (in seconds)
    """
    if comm is None:
        comm = MPI.COMM_WORLD
    rank = comm.Get_rank()

    if isinstance(param, Dict):
        param = pd.Series(param, dtype=object)
    elif isinstance(param, pd.Series):
        param = param.copy()
    else:
        raise ValueError(f"{type(param)=}, should be a dictionnary or a Pandas Series")
    for key, value in DEFAULTS.items():
        if key not in param.index:
            param[key] = value

    if param["verbose"] == 0:
        logging_level = logging.ERROR
    elif param["verbose"] == 1:
        logging_level = logging.WARNING
    elif param["verbose"] == 2:
        logging_level = logging.INFO
    else:
        raise ValueError(f"{param['verbose']=}, should be 0, 1 or 2")
    set_logging(logging_level if rank == 0 else logging.ERROR)

    nthreads = int(param["nthreads"])
    if nthreads < 1:
        raise ValueError(f"{nthreads=}, should be at least 1")
    param["nthreads_numba"] = utils.set_num_threads(nthreads)
    logging.warning(f"{comm.Get_size()=} {param['nthreads']=}")

    # Every rank raises if the root cannot open the input
    stream = None
    open_error = None
    if rank == 0:
        try:
            stream = open(param["input_file"], "rb")
        except OSError as e:
            open_error = e
    if comm.bcast(open_error is not None, root=0):
        if open_error is not None:
            raise open_error
        raise OSError(f"Rank 0 could not open {param['input_file']}")
    try:
        header = iostream.read_header(stream) if rank == 0 else None
        header = communication.broadcast_header(comm, header)
        config = GridConfig.from_cells(header.ncells_x, header.ncells_y)
        logging.warning(f"{header=}")
        logging.warning(f"\n[bold blue]----- Deposit particles -----[/bold blue]\n")
        local_mesh, total_time = accumulate(
            comm,
            config,
            partial(iostream.read_points, stream, header.npoints),
            header.npoints,
            header.niterations,
            nthreads,
            weight=float(param["particle_mass"]),
            out_of_bounds=param["out_of_bounds"],
        )
    finally:
        if stream is not None:
            stream.close()

    global_mesh = communication.reduce_mesh(comm, local_mesh)
    if rank == 0:
        iostream.write_mesh_to_ascii_file(global_mesh, param["output_file"])
        logging.warning(f"Interpolation execution time = {total_time:f} seconds")
    return global_mesh, total_time


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser printing on rank 0 only, errors exit every rank with status 1"""

    def _print_message(self, message, file=None):
        if MPI.COMM_WORLD.Get_rank() == 0:
            super()._print_message(message, file)

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def main(argv=None) -> int:
    parser = ArgumentParser(
        prog="pycic",
        description="Cloud-in-Cell deposition of 2D particles with MPI and threads",
    )
    parser.add_argument("input_file", help="Binary particle file")
    parser.add_argument("nthreads", type=int, help="Number of threads per process")
    args = parser.parse_args(argv)
    if args.nthreads < 1:
        parser.error(f"{args.nthreads=}, should be at least 1")

    comm = MPI.COMM_WORLD
    try:
        run({"input_file": args.input_file, "nthreads": args.nthreads}, comm)
    except Exception:
        logging.exception(f"Rank {comm.Get_rank()} failed, abort")
        comm.Abort(1)
    return 0


def generate(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="pycic-generate",
        description="Write a binary file of uniform random particles",
    )
    parser.add_argument("output_file", help="Binary particle file")
    parser.add_argument("--ncells_x", type=int, default=64)
    parser.add_argument("--ncells_y", type=int, default=64)
    parser.add_argument("--npoints", type=int, default=100000)
    parser.add_argument("--niterations", type=int, default=1)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args(argv)
    set_logging(logging.WARNING)
    iostream.generate_input_file(
        args.output_file,
        args.ncells_x,
        args.ncells_y,
        args.npoints,
        args.niterations,
        seed=args.seed,
    )
    return 0


if __name__ == "__main__":
    from rich import print

    print(
        r"""
         ____        ____ ___ ____
        |  _ \ _   _/ ___|_ _/ ___|
        | |_) | | | | |    | | |
        |  __/| |_| | |___ | | |___
        |_|    \__, |\____|___\____|
               |___/
        """
    )
    print(f"VERSION: {__version__}")
    print(f"{'':{'-'}<{71}}\n")
    sys.exit(main())
