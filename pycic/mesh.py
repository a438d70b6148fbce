"""
This module contains the cloud-in-cell mass assignment on a 2D uniform grid.

The parallel deposition does not use atomics: every thread scatters its
particles into a private copy of the mesh, then the copies are summed
cell by cell into the output mesh.
"""

import logging
import math
from typing import NamedTuple, Optional, Tuple
import numpy as np
import numpy.typing as npt
from numba import njit, prange
from pycic import utils
from pycic.grid import GridConfig


class Point(NamedTuple):
    """Particle position and mass"""

    x: float
    y: float
    weight: float = 1.0


@njit(inline="always", fastmath=False)
def cic_stencil(
    x: float, y: float, step_x: float, step_y: float
) -> Tuple[int, int, float, float, float, float]:
    """Cloud-in-Cell stencil of one particle

    Parameters
    ----------
    x : float
        Position along x
    y : float
        Position along y
    step_x : float
        Cell width
    step_y : float
        Cell height

    Returns
    -------
    Tuple[int, int, float, float, float, float]
        Cell column, cell row, and areas deposited on the bottom-left,
        bottom-right, top-left and top-right nodes

    Examples
    --------
    >>> from pycic.mesh import cic_stencil
    >>> i, j, a1, a2, a3, a4 = cic_stencil(0.25, 0.25, 0.5, 0.5)
    >>> (i, j, a1, a2, a3, a4)
    (0, 0, 0.0625, 0.0625, 0.0625, 0.0625)
    """
    i = math.floor(x / step_x)
    j = math.floor(y / step_y)
    dx = x - i * step_x
    dy = y - j * step_y
    wx = step_x - dx
    wy = step_y - dy
    return i, j, wx * wy, dx * wy, wx * dy, dx * dy


def valid_particles(
    position: npt.NDArray[np.float64], config: GridConfig
) -> npt.NDArray[np.bool_]:
    """Particles whose four nodes lie inside the mesh

    Parameters
    ----------
    position : npt.NDArray[np.float64]
        Position [N_part, 2]
    config : GridConfig
        Grid configuration

    Returns
    -------
    npt.NDArray[np.bool_]
        Mask [N_part]

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.grid import GridConfig
    >>> from pycic.mesh import valid_particles
    >>> position = np.array([[0.5, 0.5], [1.0, 0.2], [-0.1, 0.3]])
    >>> valid_particles(position, GridConfig.from_cells(4, 4)).tolist()
    [True, False, False]
    """
    x = position[:, 0]
    y = position[:, 1]
    # x/step can round up to ncells even when x < extent
    i = np.floor(x / config.step_x)
    j = np.floor(y / config.step_y)
    return (
        (x >= 0)
        & (x < config.extent_x)
        & (y >= 0)
        & (y < config.extent_y)
        & (i < config.ncells_x)
        & (j < config.ncells_y)
    )


def deposit_point(
    out: npt.NDArray[np.float64], point: Point, config: GridConfig
) -> None:
    """Add one particle to a mesh

    Parameters
    ----------
    out : npt.NDArray[np.float64]
        Mesh [grid_height, grid_width]
    point : Point
        Particle
    config : GridConfig
        Grid configuration

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.grid import GridConfig
    >>> from pycic.mesh import Point, deposit_point
    >>> config = GridConfig.from_cells(2, 2)
    >>> out = np.zeros(config.shape)
    >>> deposit_point(out, Point(0.5, 0.5), config)
    >>> float(out[1, 1])
    0.25
    """
    if not valid_particles(np.array([[point.x, point.y]]), config)[0]:
        raise ValueError(f"{point=} outside of the grid")
    i, j, area1, area2, area3, area4 = cic_stencil(
        point.x, point.y, config.step_x, config.step_y
    )
    out[j, i] += area1 * point.weight
    out[j, i + 1] += area2 * point.weight
    out[j + 1, i] += area3 * point.weight
    out[j + 1, i + 1] += area4 * point.weight


@njit(["void(f8[:,::1], f8[:,::1], f8, f8, f8)"], fastmath=False, cache=True)
def CIC_seq(
    out: npt.NDArray[np.float64],
    position: npt.NDArray[np.float64],
    step_x: float,
    step_y: float,
    weight: float,
) -> None:
    """Cloud-in-Cell interpolation (sequential)

    Adds the particles to the mesh, which is not reset

    Parameters
    ----------
    out : npt.NDArray[np.float64]
        Mesh [grid_height, grid_width]
    position : npt.NDArray[np.float64]
        Position [N_part, 2]
    step_x : float
        Cell width
    step_y : float
        Cell height
    weight : float
        Particle mass
    """
    for n in range(position.shape[0]):
        i, j, area1, area2, area3, area4 = cic_stencil(
            position[n, 0], position[n, 1], step_x, step_y
        )
        out[j, i] += area1 * weight
        out[j, i + 1] += area2 * weight
        out[j + 1, i] += area3 * weight
        out[j + 1, i + 1] += area4 * weight


@njit(
    ["void(f8[:,:,::1], f8[:,::1], i8[::1], f8, f8, f8)"],
    fastmath=False,
    cache=True,
    parallel=True,
)
def CIC_thread_private(
    buffers: npt.NDArray[np.float64],
    position: npt.NDArray[np.float64],
    bounds: npt.NDArray[np.int64],
    step_x: float,
    step_y: float,
    weight: float,
) -> None:
    """Cloud-in-Cell scatter into thread-private meshes

    Chunk t deposits particles bounds[t] to bounds[t+1] into buffers[t] only

    Parameters
    ----------
    buffers : npt.NDArray[np.float64]
        Private meshes [N_threads, grid_height, grid_width]
    position : npt.NDArray[np.float64]
        Position [N_part, 2]
    bounds : npt.NDArray[np.int64]
        Chunk boundaries [N_threads + 1]
    step_x : float
        Cell width
    step_y : float
        Cell height
    weight : float
        Particle mass
    """
    for t in prange(buffers.shape[0]):
        for n in range(bounds[t], bounds[t + 1]):
            i, j, area1, area2, area3, area4 = cic_stencil(
                position[n, 0], position[n, 1], step_x, step_y
            )
            buffers[t, j, i] += area1 * weight
            buffers[t, j, i + 1] += area2 * weight
            buffers[t, j + 1, i] += area3 * weight
            buffers[t, j + 1, i + 1] += area4 * weight


@njit(["void(f8[:,::1], f8[:,:,::1])"], fastmath=False, cache=True, parallel=True)
def reduce_thread_private(
    out: npt.NDArray[np.float64], buffers: npt.NDArray[np.float64]
) -> None:
    """Sum thread-private meshes

    Parameters
    ----------
    out : npt.NDArray[np.float64]
        Mesh [grid_height, grid_width]
    buffers : npt.NDArray[np.float64]
        Private meshes [N_threads, grid_height, grid_width]
    """
    nthreads = buffers.shape[0]
    for j in prange(out.shape[0]):
        for i in range(out.shape[1]):
            total = 0.0
            for t in range(nthreads):
                total += buffers[t, j, i]
            out[j, i] = total


@utils.time_me
def CIC(
    out: npt.NDArray[np.float64],
    position: npt.NDArray[np.float64],
    config: GridConfig,
    nthreads: int,
    weight: float = 1.0,
    buffers: Optional[npt.NDArray[np.float64]] = None,
    out_of_bounds: str = "raise",
) -> None:
    """Cloud-in-Cell interpolation

    Computes the mass on the grid nodes from the particle distribution.
    The mesh is reset first, so it only holds the particles of this call

    Parameters
    ----------
    out : npt.NDArray[np.float64]
        Mesh [grid_height, grid_width]
    position : npt.NDArray[np.float64]
        Position [N_part, 2]
    config : GridConfig
        Grid configuration
    nthreads : int
        Number of thread-private meshes
    weight : float, optional
        Particle mass, by default 1.0
    buffers : npt.NDArray[np.float64], optional
        Scratch meshes [N_threads, grid_height, grid_width] reused between calls
    out_of_bounds : str, optional
        "raise" or "discard" particles outside the grid, by default "raise"

    Examples
    --------
    >>> import numpy as np
    >>> from pycic.grid import GridConfig
    >>> from pycic.mesh import CIC
    >>> config = GridConfig.from_cells(16, 16)
    >>> position = np.random.rand(1000, 2)
    >>> out = np.empty(config.shape)
    >>> CIC(out, position, config, nthreads=2)
    """
    policy = out_of_bounds.casefold()
    if policy not in ("raise", "discard"):
        raise ValueError(f"{out_of_bounds=}, should be 'raise' or 'discard'")
    if nthreads < 1:
        raise ValueError(f"{nthreads=}, should be at least 1")
    if out.shape != config.shape or out.dtype != np.float64:
        raise ValueError(
            f"{out.shape=} {out.dtype=}, should be {config.shape} float64"
        )
    if not out.flags.c_contiguous:
        raise ValueError("Output mesh should be C-contiguous")

    out.fill(0)
    position = np.ascontiguousarray(position, dtype=np.float64).reshape(-1, 2)
    mask = valid_particles(position, config)
    nbad = position.shape[0] - np.count_nonzero(mask)
    if nbad > 0:
        if policy == "raise":
            raise ValueError(f"{nbad} particles outside of the grid")
        logging.warning(f"Discard {nbad} particles outside of the grid")
        position = np.ascontiguousarray(position[mask])

    weight = float(weight)
    if nthreads == 1:
        CIC_seq(out, position, config.step_x, config.step_y, weight)
        return

    shape = (nthreads,) + config.shape
    if buffers is None:
        buffers = np.zeros(shape, dtype=np.float64)
    elif (
        buffers.shape != shape
        or buffers.dtype != np.float64
        or not buffers.flags.c_contiguous
    ):
        raise ValueError(
            f"{buffers.shape=} {buffers.dtype=}, should be C-contiguous {shape} float64"
        )
    else:
        buffers.fill(0)
    bounds = utils.chunk_offsets(position.shape[0], nthreads)
    CIC_thread_private(buffers, position, bounds, config.step_x, config.step_y, weight)
    reduce_thread_private(out, buffers)
