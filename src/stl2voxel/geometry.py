"""
Grid Geometry

Maps between continuous mesh-space coordinates and discrete voxel indices.

The grid covers the mesh bounding box plus ``padding`` empty voxel layers on
every side. Voxel (i, j, k) occupies the cube

    [origin + (i, j, k) * voxel_size, origin + (i + 1, j + 1, k + 1) * voxel_size)

Both kernels work in "index space", where the grid origin is at 0 and one
voxel is one unit long, so voxel (i, j, k) has its center at
(i + 0.5, j + 0.5, k + 0.5).
"""

from dataclasses import dataclass
from typing import Tuple
import logging
import math
import numpy as np

from .config import DEFAULT_MAX_CELLS, Resolution
from .errors import InvalidResolution


logger = logging.getLogger(__name__)

# Slack when counting cells so that extent / edge == 3.0000000000000004 is 3
_CELL_COUNT_SLACK = 1e-9


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in mesh space."""
    min_corner: np.ndarray
    max_corner: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "min_corner", np.asarray(self.min_corner, dtype=np.float64))
        object.__setattr__(self, "max_corner", np.asarray(self.max_corner, dtype=np.float64))
        if np.any(self.min_corner > self.max_corner):
            raise ValueError(f"Invalid bounding box {self.min_corner} > {self.max_corner}")

    @property
    def extent(self) -> np.ndarray:
        return self.max_corner - self.min_corner

    @property
    def longest_extent(self) -> float:
        return float(np.max(self.extent))

    def center(self) -> np.ndarray:
        return 0.5 * (self.min_corner + self.max_corner)

    def contains(self, point) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.min_corner) and np.all(p <= self.max_corner))


# A voxel cube in mesh space has the same shape as a bounding box
VoxelBox = BoundingBox


@dataclass(frozen=True)
class GridGeometry:
    """
    Uniform voxel grid placement.

    Attributes:
        origin: Mesh-space corner of voxel (0, 0, 0)
        voxel_size: Edge length of every voxel
        dims: Voxel counts (nx, ny, nz), padding included
        padding: Empty layers on each side of the mesh bounds
    """

    origin: np.ndarray
    voxel_size: float
    dims: Tuple[int, int, int]
    padding: int = 1

    @classmethod
    def build(
        cls,
        bounding_box: BoundingBox,
        resolution: Resolution,
        padding: int = 1,
        max_cells: int = DEFAULT_MAX_CELLS
    ) -> "GridGeometry":
        """
        Derive the grid for a mesh bounding box.

        Args:
            bounding_box: Mesh bounds
            resolution: Explicit edge length or target max dimension
            padding: Empty voxel layers on each side (>= 1)
            max_cells: Budget for nx * ny * nz

        Returns:
            GridGeometry

        Raises:
            InvalidResolution: Bad edge length, padding or cell budget
        """
        if padding < 1:
            raise InvalidResolution(f"Padding must be at least one voxel, got {padding}")

        edge = resolution.edge_for_extent(bounding_box.longest_extent)

        extent = bounding_box.extent
        counts = []
        for axis in range(3):
            ratio = extent[axis] / edge
            if not math.isfinite(ratio):
                raise InvalidResolution(f"Voxel edge {edge} is too small for extent {extent[axis]}")
            counts.append(max(1, int(math.ceil(ratio - _CELL_COUNT_SLACK))))

        dims = tuple(int(c + 2 * padding) for c in counts)
        cells = dims[0] * dims[1] * dims[2]
        if cells > max_cells:
            raise InvalidResolution(
                f"Grid {dims[0]}x{dims[1]}x{dims[2]} ({cells} cells) exceeds "
                f"the budget of {max_cells} cells"
            )

        origin = bounding_box.min_corner - padding * edge
        logger.debug(
            "Grid %s, voxel size %g, origin %s (%s)",
            dims, edge, origin, resolution.describe()
        )
        return cls(origin=origin, voxel_size=edge, dims=dims, padding=padding)

    @property
    def cell_count(self) -> int:
        return int(self.dims[0] * self.dims[1] * self.dims[2])

    def world_to_index(self, point) -> Tuple[int, int, int]:
        """Index of the voxel containing ``point`` (floor-based, may be out of range)."""
        p = (np.asarray(point, dtype=np.float64) - self.origin) / self.voxel_size
        i, j, k = np.floor(p).astype(np.int64)
        return (int(i), int(j), int(k))

    def index_to_world(self, i: int, j: int, k: int) -> VoxelBox:
        """Mesh-space cube of voxel (i, j, k)."""
        lo = self.origin + np.array([i, j, k], dtype=np.float64) * self.voxel_size
        return VoxelBox(lo, lo + self.voxel_size)

    def voxel_center(self, i: int, j: int, k: int) -> np.ndarray:
        return self.origin + (np.array([i, j, k], dtype=np.float64) + 0.5) * self.voxel_size

    def contains_index(self, i: int, j: int, k: int) -> bool:
        return 0 <= i < self.dims[0] and 0 <= j < self.dims[1] and 0 <= k < self.dims[2]

    def to_index_space(self, vertices: np.ndarray) -> np.ndarray:
        """Map mesh-space coordinates (any shape ending in 3) into index space."""
        return (np.asarray(vertices, dtype=np.float64) - self.origin) / self.voxel_size

