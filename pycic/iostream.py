"""
This module contains the input/output functions: binary particle files
and ASCII meshes.

Input files hold a header of four native C ints (ncells_x, ncells_y,
npoints, niterations) followed by niterations * npoints records of two
native doubles (x, y).
"""

import logging
from typing import BinaryIO, Iterable, NamedTuple
import numpy as np
import numpy.typing as npt
from pycic import utils


class Header(NamedTuple):
    """Input file header"""

    ncells_x: int
    ncells_y: int
    npoints: int
    niterations: int


HEADER_DTYPE = np.dtype(np.intc)
POINT_DTYPE = np.dtype(np.float64)


def read_header(stream: BinaryIO) -> Header:
    """Read input file header

    Parameters
    ----------
    stream : BinaryIO
        Binary stream positioned at the start of the file

    Returns
    -------
    Header
        Grid dimensions, number of particles per iteration and iterations

    Examples
    --------
    >>> import io
    >>> import numpy as np
    >>> from pycic.iostream import read_header
    >>> read_header(io.BytesIO(np.array([4, 2, 10, 3], dtype=np.intc).tobytes()))
    Header(ncells_x=4, ncells_y=2, npoints=10, niterations=3)
    """
    nbytes = len(Header._fields) * HEADER_DTYPE.itemsize
    data = stream.read(nbytes)
    if len(data) < nbytes:
        raise EOFError(f"Header truncated, read {len(data)} bytes out of {nbytes}")
    header = Header(*(int(v) for v in np.frombuffer(data, dtype=HEADER_DTYPE)))
    if header.ncells_x < 1 or header.ncells_y < 1:
        raise ValueError(f"{header=}, number of cells should be at least 1")
    if header.npoints < 0 or header.niterations < 0:
        raise ValueError(f"{header=}, counts should be positive or null")
    return header


def read_points(stream: BinaryIO, npoints: int) -> npt.NDArray[np.float64]:
    """Read the particles of one iteration

    Parameters
    ----------
    stream : BinaryIO
        Binary stream positioned at the next record
    npoints : int
        Number of particles

    Returns
    -------
    npt.NDArray[np.float64]
        Position [npoints, 2]

    Examples
    --------
    >>> import io
    >>> import numpy as np
    >>> from pycic.iostream import read_points
    >>> stream = io.BytesIO(np.array([0.1, 0.2, 0.3, 0.4]).tobytes())
    >>> read_points(stream, 2).tolist()
    [[0.1, 0.2], [0.3, 0.4]]
    """
    nbytes = 2 * npoints * POINT_DTYPE.itemsize
    data = stream.read(nbytes)
    if len(data) < nbytes:
        raise EOFError(f"Particles truncated, read {len(data)} bytes out of {nbytes}")
    return np.frombuffer(data, dtype=POINT_DTYPE).reshape(npoints, 2).copy()


def random_points(npoints: int, rng: np.random.Generator) -> npt.NDArray[np.float64]:
    """Uniform particles in the unit square

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.iostream import random_points
    >>> random_points(8, np.random.default_rng(42)).shape
    (8, 2)
    """
    return rng.random((npoints, 2))


def write_input_file(
    filename: str, header: Header, rounds: Iterable[npt.NDArray[np.float64]]
) -> None:
    """Write binary particle file

    Parameters
    ----------
    filename : str
        Filename
    header : Header
        File header
    rounds : Iterable[npt.NDArray[np.float64]]
        Position [npoints, 2] of each iteration

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.iostream import Header, write_input_file
    >>> header = Header(4, 4, 3, 1)
    >>> write_input_file("particles.bin", header, [np.random.rand(3, 2)])
    """
    with open(filename, "wb") as f:
        f.write(np.asarray(header, dtype=HEADER_DTYPE).tobytes())
        niterations = 0
        for position in rounds:
            position = np.ascontiguousarray(position, dtype=POINT_DTYPE)
            if position.shape != (header.npoints, 2):
                raise ValueError(
                    f"{position.shape=}, should be ({header.npoints}, 2)"
                )
            f.write(position.tobytes())
            niterations += 1
    if niterations != header.niterations:
        raise ValueError(f"{niterations=}, should be {header.niterations}")


@utils.time_me
def generate_input_file(
    filename: str,
    ncells_x: int,
    ncells_y: int,
    npoints: int,
    niterations: int,
    seed: int = 0,
) -> Header:
    """Write binary particle file with uniform random particles

    Parameters
    ----------
    filename : str
        Filename
    ncells_x : int
        Number of cells along x
    ncells_y : int
        Number of cells along y
    npoints : int
        Number of particles per iteration
    niterations : int
        Number of iterations
    seed : int, optional
        Random seed, by default 0

    Returns
    -------
    Header
        Header written in the file
    """
    header = Header(ncells_x, ncells_y, npoints, niterations)
    rng = np.random.default_rng(seed)
    write_input_file(
        filename, header, (random_points(npoints, rng) for _ in range(niterations))
    )
    logging.warning(f"Particles written at ...{filename=} {header=}")
    return header


def write_mesh_to_ascii_file(mesh: npt.NDArray[np.float64], filename: str) -> None:
    """Write mesh to ascii file, one grid row per line

    Parameters
    ----------
    mesh : npt.NDArray[np.float64]
        Mesh [grid_height, grid_width]
    filename : str
        Filename

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.iostream import write_mesh_to_ascii_file
    >>> write_mesh_to_ascii_file(np.zeros((3, 3)), "Mesh.out")
    """
    logging.warning(f"Write mesh in {filename}")
    np.savetxt(filename, mesh, fmt="%f", delimiter=" ")
