"""
Voxel Data Structures

This module provides:
- Voxel: Immutable voxel value (cell corner, sampled color, block id, alpha)
- VoxelIndex: Sparse map from integer grid cell to Voxel

The index is sparse: a dict keyed on (i, j, k) = floor(coord / step).
Memory scales with the number of occupied cells, not with the bounding
box volume, so thin shells at high resolution stay cheap.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
import math
import numpy as np

from .color import RGB
from .mesh import BoundingBox

Cell = Tuple[int, int, int]

# Absorbs floating-point noise on cell boundaries (in units of step)
_SNAP = 1e-9


@dataclass(frozen=True)
class Voxel:
    """
    A single voxel.

    Attributes:
        position: World-space minimum corner of the cell
        color: Sampled color, normalized (r, g, b)
        block_id: Palette or override block identifier
        alpha: Sampled opacity in [0, 1]
        cell: Integer grid coordinate of the cell
    """
    position: Tuple[float, float, float]
    color: RGB
    block_id: str
    alpha: float
    cell: Cell


class VoxelIndex:
    """
    Sparse voxel store enforcing one voxel per grid cell.

    The first voxel written to a cell is kept; later writes to the same
    cell are dropped. Voxels are never removed or replaced, and iteration
    follows insertion order.

    Args:
        step: Voxel edge length in world units
        bounds: Bounding box being voxelized; cells are clamped to it
    """

    def __init__(self, step: float, bounds: BoundingBox):
        if step <= 0:
            raise ValueError(f"Step must be positive, got {step}")
        self.step = step
        self.bounds = bounds
        self._voxels: Dict[Cell, Voxel] = {}

        # Hits on the maximum face of the box belong to the last cell
        self._cell_min = tuple(math.floor(float(c) / step + _SNAP) for c in bounds.min)
        self._cell_max = tuple(
            max(lo, math.ceil(float(c) / step - _SNAP) - 1)
            for lo, c in zip(self._cell_min, bounds.max)
        )

    def __len__(self) -> int:
        return len(self._voxels)

    def __contains__(self, cell: Cell) -> bool:
        return cell in self._voxels

    def __iter__(self) -> Iterator[Voxel]:
        return iter(self._voxels.values())

    @property
    def cell_range(self) -> Tuple[Cell, Cell]:
        """Inclusive (min, max) cell coordinates covered by the bounds."""
        return self._cell_min, self._cell_max

    def cell_of(self, point: Sequence[float]) -> Cell:
        """
        Quantize a world point to its containing cell.

        Args:
            point: (x, y, z) world position

        Returns:
            (i, j, k) with i = floor(x / step), clamped to the bounds
        """
        cell = []
        for axis in range(3):
            q = math.floor(float(point[axis]) / self.step + _SNAP)
            q = max(self._cell_min[axis], min(self._cell_max[axis], q))
            cell.append(q)
        return (cell[0], cell[1], cell[2])

    def position_of(self, cell: Cell) -> Tuple[float, float, float]:
        """Minimum corner of a cell in world units."""
        return (cell[0] * self.step, cell[1] * self.step, cell[2] * self.step)

    def get(self, cell: Cell) -> Optional[Voxel]:
        return self._voxels.get(cell)

    def insert_if_absent(self, cell: Cell, voxel: Voxel) -> bool:
        """
        Store a voxel unless its cell is already occupied.

        Returns:
            True if the voxel was stored
        """
        if cell in self._voxels:
            return False
        self._voxels[cell] = voxel
        return True

    def voxels(self) -> List[Voxel]:
        """All voxels in insertion order."""
        return list(self._voxels.values())

    def block_counts(self) -> Counter:
        """Number of voxels per block id."""
        return Counter(v.block_id for v in self._voxels.values())

    def to_sparse(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, List[str]]:
        """
        Convert to parallel arrays.

        Returns:
            Tuple of (cells, colors, alphas, block_ids) where:
            - cells: Array of shape (N, 3) with integer cell coordinates
            - colors: Array of shape (N, 3) with normalized colors
            - alphas: Array of shape (N,)
            - block_ids: List of N block identifiers
        """
        voxels = self.voxels()
        if not voxels:
            return (np.zeros((0, 3), dtype=np.int64), np.zeros((0, 3), dtype=np.float64),
                    np.zeros(0, dtype=np.float64), [])
        cells = np.array([v.cell for v in voxels], dtype=np.int64)
        colors = np.array([v.color for v in voxels], dtype=np.float64)
        alphas = np.array([v.alpha for v in voxels], dtype=np.float64)
        return cells, colors, alphas, [v.block_id for v in voxels]
