"""
Voxelizer Configuration

Resolution is either an explicit voxel edge length or a target count of
voxels along the longest axis of the mesh bounding box.
"""

from dataclasses import dataclass
from typing import Optional
import math

from .errors import InvalidResolution


# 2**27 cells is 128 MB of uint8 occupancy
DEFAULT_MAX_CELLS = 2 ** 27
DEFAULT_EPSILON_SCALE = 1e-6


@dataclass(frozen=True)
class Resolution:
    """
    Resolution request for a conversion.

    Exactly one of ``voxel_size`` or ``max_dimension`` is set. Use the
    ``edge_length`` and ``target_dimension`` constructors.
    """

    voxel_size: Optional[float] = None
    max_dimension: Optional[int] = None

    def __post_init__(self):
        if (self.voxel_size is None) == (self.max_dimension is None):
            raise InvalidResolution(
                "Specify exactly one of voxel_size or max_dimension"
            )

    @classmethod
    def edge_length(cls, voxel_size: float) -> "Resolution":
        """Explicit voxel edge length in mesh units."""
        return cls(voxel_size=float(voxel_size))

    @classmethod
    def target_dimension(cls, count: int) -> "Resolution":
        """Number of voxels along the longest bounding box axis."""
        return cls(max_dimension=int(count))

    def edge_for_extent(self, longest_extent: float) -> float:
        """
        Resolve the voxel edge length for a box whose longest axis is
        ``longest_extent``.

        Raises:
            InvalidResolution: If the edge length is not positive and finite
        """
        if self.voxel_size is not None:
            edge = self.voxel_size
        else:
            if self.max_dimension < 1:
                raise InvalidResolution(
                    f"Target dimension must be >= 1, got {self.max_dimension}"
                )
            edge = longest_extent / self.max_dimension

        if not math.isfinite(edge) or edge <= 0.0:
            raise InvalidResolution(f"Voxel edge length must be positive and finite, got {edge}")
        return float(edge)

    def describe(self) -> str:
        if self.voxel_size is not None:
            return f"edge={self.voxel_size:g}"
        return f"max_dim={self.max_dimension}"


@dataclass(frozen=True)
class VoxelizerConfig:
    """
    Settings consumed by the voxelization engine.

    Attributes:
        resolution: Voxel edge length or target max dimension
        padding: Empty voxel layers added on each side of the bounding box
        overlap_epsilon_scale: Contact tolerance as a fraction of the voxel edge
        max_cells: Upper bound on nx * ny * nz, checked before allocation
        parallel: Run the numba kernels with prange threads
    """

    resolution: Resolution
    padding: int = 1
    overlap_epsilon_scale: float = DEFAULT_EPSILON_SCALE
    max_cells: int = DEFAULT_MAX_CELLS
    parallel: bool = True

    def __post_init__(self):
        if self.padding < 1:
            raise InvalidResolution(f"Padding must be at least one voxel, got {self.padding}")
        scale = self.overlap_epsilon_scale
        if not math.isfinite(scale) or scale < 0.0 or scale >= 0.1:
            raise InvalidResolution(
                f"overlap_epsilon_scale must be in [0, 0.1), got {scale}"
            )
        if self.max_cells < 1:
            raise InvalidResolution(f"max_cells must be positive, got {self.max_cells}")

    @classmethod
    def from_voxel_size(cls, voxel_size: float, **kwargs) -> "VoxelizerConfig":
        return cls(resolution=Resolution.edge_length(voxel_size), **kwargs)

    @classmethod
    def from_max_dimension(cls, count: int, **kwargs) -> "VoxelizerConfig":
        return cls(resolution=Resolution.target_dimension(count), **kwargs)
