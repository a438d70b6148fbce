"""
This module defines the uniform grid on which particles are deposited.
"""

from typing import NamedTuple, Tuple


class GridConfig(NamedTuple):
    """Uniform grid covering the unit square

    Attributes
    ----------
    ncells_x : int
        Number of cells along x
    ncells_y : int
        Number of cells along y
    step_x : float
        Cell width, 1/ncells_x
    step_y : float
        Cell height, 1/ncells_y
    """

    ncells_x: int
    ncells_y: int
    step_x: float
    step_y: float

    @classmethod
    def from_cells(cls, ncells_x: int, ncells_y: int) -> "GridConfig":
        """Build grid from number of cells

        Examples
        --------
        >>> from pycic.grid import GridConfig
        >>> GridConfig.from_cells(2, 4).shape
        (5, 3)
        """
        if ncells_x < 1 or ncells_y < 1:
            raise ValueError(f"{ncells_x=} {ncells_y=}, should be at least 1")
        return cls(int(ncells_x), int(ncells_y), 1.0 / ncells_x, 1.0 / ncells_y)

    @property
    def grid_width(self) -> int:
        return self.ncells_x + 1

    @property
    def grid_height(self) -> int:
        return self.ncells_y + 1

    @property
    def shape(self) -> Tuple[int, int]:
        """Mesh shape (rows, columns)"""
        return (self.grid_height, self.grid_width)

    @property
    def size(self) -> int:
        return self.grid_width * self.grid_height

    @property
    def extent_x(self) -> float:
        return self.ncells_x * self.step_x

    @property
    def extent_y(self) -> float:
        return self.ncells_y * self.step_y
