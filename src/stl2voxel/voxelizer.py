"""
Voxel Data Structures and Voxelization Engine

This module provides:
- VoxelGrid: Dense 3D occupancy array (EMPTY / SURFACE / INTERIOR)
- Voxelizer: Engine running grid geometry, rasterization and interior
  classification over a triangle store
- VoxelizationResult: The frozen grid plus the recoverable warning counters

Memory consideration: one byte per voxel, so a 512³ grid is 128 MB. The
configured cell budget is checked before anything is allocated.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterator, Optional, Tuple
import logging
import time
import warnings
import numpy as np

from .classifier import InteriorClassifier
from .config import VoxelizerConfig
from .errors import DegenerateTriangleSkipped, InvalidMesh, NonManifoldWarning
from .geometry import GridGeometry, VoxelBox
from .rasterizer import Rasterizer


logger = logging.getLogger(__name__)


class Occupancy(IntEnum):
    """Voxel states."""
    EMPTY = 0
    SURFACE = 1
    INTERIOR = 2


@dataclass
class VoxelGrid:
    """
    Dense 3D occupancy grid.

    Cells move EMPTY -> SURFACE during rasterization and EMPTY -> INTERIOR
    during classification. ``freeze()`` ends mutation; the frozen grid is
    what the exporters consume.

    Coordinate system: X-right, Y-back, Z-up, index (0, 0, 0) at ``origin``
    """

    size_x: int
    size_y: int
    size_z: int
    voxel_size: float = 1.0
    origin: np.ndarray = field(default_factory=lambda: np.zeros(3))
    _data: np.ndarray = field(init=False, repr=False)
    _frozen: bool = field(init=False, default=False, repr=False)

    def __post_init__(self):
        """Initialize the occupancy array."""
        self.origin = np.asarray(self.origin, dtype=np.float64)
        self._data = np.zeros((self.size_x, self.size_y, self.size_z), dtype=np.uint8)

    @classmethod
    def for_geometry(cls, geometry: GridGeometry) -> "VoxelGrid":
        """Allocate an empty grid matching ``geometry``."""
        nx, ny, nz = geometry.dims
        return cls(nx, ny, nz, voxel_size=geometry.voxel_size, origin=geometry.origin.copy())

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Get grid dimensions (x, y, z)."""
        return (self.size_x, self.size_y, self.size_z)

    @property
    def data(self) -> np.ndarray:
        """Raw uint8 occupancy array (read-only once frozen)."""
        return self._data

    @property
    def solid(self) -> np.ndarray:
        """Boolean mask of SURFACE or INTERIOR voxels."""
        return self._data != Occupancy.EMPTY

    @property
    def surface(self) -> np.ndarray:
        return self._data == Occupancy.SURFACE

    @property
    def interior(self) -> np.ndarray:
        return self._data == Occupancy.INTERIOR

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def occupied_bounds(self) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
        """Get tight bounds around solid voxels (exclusive upper bound)."""
        occupied = np.argwhere(self.solid)
        if len(occupied) == 0:
            return ((0, 0, 0), (0, 0, 0))
        min_coords = occupied.min(axis=0)
        max_coords = occupied.max(axis=0) + 1
        return (tuple(int(c) for c in min_coords), tuple(int(c) for c in max_coords))

    def occupancy(self, x: int, y: int, z: int) -> Occupancy:
        """State of voxel (x, y, z); EMPTY outside the grid."""
        if not self._in_bounds(x, y, z):
            return Occupancy.EMPTY
        return Occupancy(int(self._data[x, y, z]))

    def is_solid(self, x: int, y: int, z: int) -> bool:
        """Check if a voxel is SURFACE or INTERIOR."""
        return self.occupancy(x, y, z) != Occupancy.EMPTY

    def index_to_world(self, x: int, y: int, z: int) -> VoxelBox:
        """Mesh-space cube of voxel (x, y, z)."""
        lo = self.origin + np.array([x, y, z], dtype=np.float64) * self.voxel_size
        return VoxelBox(lo, lo + self.voxel_size)

    def mark_surface(self, mask: np.ndarray):
        """
        Set SURFACE wherever ``mask`` is True.

        Union semantics: repeated or overlapping masks give the same grid.
        """
        self._check_mutable()
        self._data[np.asarray(mask, dtype=bool)] = Occupancy.SURFACE

    def mark_interior(self, mask: np.ndarray):
        """Set INTERIOR wherever ``mask`` is True and the voxel is EMPTY."""
        self._check_mutable()
        mask = np.asarray(mask, dtype=bool) & (self._data == Occupancy.EMPTY)
        self._data[mask] = Occupancy.INTERIOR

    def freeze(self) -> "VoxelGrid":
        """Make the grid read-only."""
        self._frozen = True
        self._data.flags.writeable = False
        return self

    def _check_mutable(self):
        if self._frozen:
            raise RuntimeError("VoxelGrid is frozen")

    def _in_bounds(self, x: int, y: int, z: int) -> bool:
        """Check if coordinates are within grid bounds."""
        return (
            0 <= x < self.size_x and
            0 <= y < self.size_y and
            0 <= z < self.size_z
        )

    def count(self, state: Occupancy) -> int:
        """Number of voxels in ``state``."""
        return int(np.count_nonzero(self._data == state))

    def count_voxels(self) -> int:
        """Count the number of solid voxels."""
        return int(np.count_nonzero(self.solid))

    def iterate_voxels(self) -> Iterator[Tuple[int, int, int, Occupancy]]:
        """
        Iterate over all solid voxels.

        Yields:
            Tuples of (x, y, z, state)
        """
        indices = np.argwhere(self.solid)
        for x, y, z in indices:
            yield (int(x), int(y), int(z), Occupancy(int(self._data[x, y, z])))

    def to_sparse(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert to sparse representation.

        Returns:
            Tuple of (coordinates, states) where:
            - coordinates: Array of shape (N, 3) with xyz indices
            - states: Array of shape (N,) with Occupancy values
        """
        solid = self.solid
        return np.argwhere(solid), self._data[solid]

    def crop_to_bounds(self) -> "VoxelGrid":
        """
        Create a new grid cropped to the solid region.

        The origin moves with the crop so voxel positions in mesh space are
        unchanged. The copy is frozen if this grid is.
        """
        (min_x, min_y, min_z), (max_x, max_y, max_z) = self.occupied_bounds

        new_size_x = max_x - min_x
        new_size_y = max_y - min_y
        new_size_z = max_z - min_z

        if new_size_x <= 0 or new_size_y <= 0 or new_size_z <= 0:
            return VoxelGrid(1, 1, 1, voxel_size=self.voxel_size, origin=self.origin.copy())

        new_grid = VoxelGrid(
            new_size_x, new_size_y, new_size_z,
            voxel_size=self.voxel_size,
            origin=self.origin + np.array([min_x, min_y, min_z]) * self.voxel_size
        )
        new_grid._data = self._data[
            min_x:max_x,
            min_y:max_y,
            min_z:max_z
        ].copy()
        if self._frozen:
            new_grid.freeze()
        return new_grid


@dataclass
class VoxelizationResult:
    """Finished conversion handed to exporters and callers."""
    grid: VoxelGrid
    geometry: GridGeometry
    degenerate_triangles: int = 0
    non_manifold_by_axis: Dict[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def non_manifold_lines(self) -> int:
        return int(sum(self.non_manifold_by_axis.values()))

    @property
    def has_warnings(self) -> bool:
        return self.degenerate_triangles > 0 or self.non_manifold_lines > 0

    def summary(self) -> dict:
        return {
            "grid_size": self.grid.shape,
            "voxel_size": self.grid.voxel_size,
            "surface_voxels": self.grid.count(Occupancy.SURFACE),
            "interior_voxels": self.grid.count(Occupancy.INTERIOR),
            "solid_voxels": self.grid.count_voxels(),
            "degenerate_triangles": self.degenerate_triangles,
            "non_manifold_lines": self.non_manifold_lines,
            "elapsed": self.elapsed,
        }


class Voxelizer:
    """
    Engine for converting triangle soups to occupancy grids.

    The voxelizer handles:
    - Grid placement from the mesh bounds and requested resolution
    - Surface rasterization
    - Interior classification
    """

    def __init__(self, config: VoxelizerConfig):
        """
        Initialize the voxelizer.

        Args:
            config: Resolution, padding, tolerance and budget settings
        """
        self.config = config
        self.rasterizer = Rasterizer(config.overlap_epsilon_scale, parallel=config.parallel)
        self.classifier = InteriorClassifier(config.overlap_epsilon_scale, parallel=config.parallel)
        self._result: Optional[VoxelizationResult] = None

    def build_geometry(self, triangles) -> GridGeometry:
        """Grid placement for ``triangles`` under the current config."""
        return GridGeometry.build(
            triangles.bounding_box(),
            self.config.resolution,
            padding=self.config.padding,
            max_cells=self.config.max_cells
        )

    def voxelize(self, triangles) -> VoxelizationResult:
        """
        Convert a triangle store to a frozen occupancy grid.

        Args:
            triangles: TriangleStore

        Returns:
            VoxelizationResult

        Raises:
            InvalidMesh: Every triangle is degenerate
            InvalidResolution: Bad or over-budget resolution
            ClassificationError: No surface voxels after rasterization
        """
        start = time.perf_counter()
        self._result = None

        if triangles.degenerate_count == len(triangles):
            raise InvalidMesh(f"All {len(triangles)} triangles are degenerate")

        geometry = self.build_geometry(triangles)
        grid = VoxelGrid.for_geometry(geometry)

        skipped = self.rasterizer.rasterize(triangles, geometry, grid)
        report = self.classifier.classify(triangles, geometry, grid)
        grid.freeze()

        result = VoxelizationResult(
            grid=grid,
            geometry=geometry,
            degenerate_triangles=skipped,
            non_manifold_by_axis=dict(report.non_manifold_by_axis),
            elapsed=time.perf_counter() - start
        )

        if result.degenerate_triangles:
            warnings.warn(
                f"Skipped {result.degenerate_triangles} degenerate triangles",
                DegenerateTriangleSkipped,
                stacklevel=2
            )
        if result.non_manifold_lines:
            warnings.warn(
                f"Inconsistent parity on {result.non_manifold_lines} scan lines",
                NonManifoldWarning,
                stacklevel=2
            )

        logger.info(
            "Voxelized %d triangles into %s grid: %d solid voxels in %.2fs",
            len(triangles), grid.shape, grid.count_voxels(), result.elapsed
        )
        self._result = result
        return result

    @property
    def result(self) -> Optional[VoxelizationResult]:
        """Get the last conversion result."""
        return self._result


def voxelize(triangles, config: VoxelizerConfig) -> VoxelizationResult:
    """Run a full conversion with a fresh Voxelizer."""
    return Voxelizer(config).voxelize(triangles)
