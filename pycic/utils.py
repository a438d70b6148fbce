"""
This module contains utility functions and decorators for timing,
work partitioning and thread configuration.
"""

from time import perf_counter
from typing import Tuple, Callable
import numpy as np
import numpy.typing as npt
import numba
import logging


def time_me(func: Callable) -> Callable:
    """Decorator time

    Parameters
    ----------
    func : Callable
        Function to time

    Returns
    -------
    Callable
        Function wrapper which logs time (in seconds)

    Examples
    --------
    >>> from pycic.utils import time_me
    >>> @time_me
    ... def example_function():
    ...     pass
    >>> example_function()
    """

    def time_func(*args, **kw):
        t1 = perf_counter()
        result = func(*args, **kw)
        logging.info(
            f"Function {func.__name__:->40} took {perf_counter() - t1:.12f} seconds{'':{'-'}<{10}}"
        )
        return result

    return time_func


def partition(
    npoints: int, nparts: int
) -> Tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
    """Split a sequence fairly into contiguous parts

    The first npoints % nparts parts receive one extra element.

    Parameters
    ----------
    npoints : int
        Number of elements in the sequence
    nparts : int
        Number of parts (MPI ranks or threads)

    Returns
    -------
    Tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]
        Counts and offsets [nparts]

    Examples
    --------
    >>> from pycic.utils import partition
    >>> counts, offsets = partition(10, 4)
    >>> counts.tolist(), offsets.tolist()
    ([3, 3, 2, 2], [0, 3, 6, 8])
    """
    if nparts < 1:
        raise ValueError(f"{nparts=}, should be at least 1")
    if npoints < 0:
        raise ValueError(f"{npoints=}, should be positive or null")
    base, remainder = divmod(npoints, nparts)
    counts = np.full(nparts, base, dtype=np.int64)
    counts[:remainder] += 1
    offsets = np.zeros(nparts, dtype=np.int64)
    np.cumsum(counts[:-1], out=offsets[1:])
    return counts, offsets


def chunk_offsets(npoints: int, nchunks: int) -> npt.NDArray[np.int64]:
    """Chunk boundaries for a parallel loop

    Parameters
    ----------
    npoints : int
        Number of elements
    nchunks : int
        Number of chunks

    Returns
    -------
    npt.NDArray[np.int64]
        Boundaries [nchunks + 1], chunk t spans [out[t], out[t+1])

    Examples
    --------
    >>> from pycic.utils import chunk_offsets
    >>> chunk_offsets(5, 2).tolist()
    [0, 3, 5]
    """
    _, offsets = partition(npoints, nchunks)
    return np.append(offsets, npoints).astype(np.int64)


def set_num_threads(nthreads: int) -> int:
    """Set the number of Numba threads

    The request is capped by the size of the Numba thread pool.

    Parameters
    ----------
    nthreads : int
        Requested number of threads

    Returns
    -------
    int
        Number of threads actually used by Numba

    Examples
    --------
    >>> from pycic.utils import set_num_threads
    >>> set_num_threads(1)
    1
    """
    if nthreads < 1:
        raise ValueError(f"{nthreads=}, should be at least 1")
    max_threads = numba.config.NUMBA_NUM_THREADS
    if nthreads > max_threads:
        logging.warning(
            f"{nthreads=} larger than the Numba thread pool, running on {max_threads} threads"
        )
        nthreads = max_threads
    numba.set_num_threads(nthreads)
    return nthreads
