"""
Main StlConverter Class

This is the primary interface for the STL to voxel pipeline.
It orchestrates:
1. Mesh loading (STL or numpy arrays)
2. Grid placement
3. Surface rasterization
4. Interior classification
5. Export to various formats

Example Usage:
    converter = StlConverter()
    converter.load_stl("part.stl")
    converter.set_resolution(max_dimension=64)
    converter.voxelize()
    converter.export_vox("part.vox")
"""

from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Union
import logging
import numpy as np

from .config import Resolution, VoxelizerConfig, DEFAULT_EPSILON_SCALE, DEFAULT_MAX_CELLS
from .triangles import TriangleStore
from .voxelizer import Occupancy, VoxelGrid, VoxelizationResult, Voxelizer
from .exporters import NpzExporter, VFExporter, VoxExporter


logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("vox", "vf", "npz")


class StlConverter:
    """
    High-level interface for mesh voxelization.

    Attributes:
        triangles: The loaded triangle store
        config: Current voxelizer settings
        grid: The frozen voxel grid after voxelize()
        result: The full conversion result after voxelize()
    """

    def __init__(
        self,
        voxel_size: Optional[float] = None,
        max_dimension: int = 64,
        padding: int = 1,
        epsilon_scale: float = DEFAULT_EPSILON_SCALE,
        max_cells: int = DEFAULT_MAX_CELLS,
        parallel: bool = True
    ):
        """
        Initialize the StlConverter.

        Args:
            voxel_size: Explicit voxel edge length (overrides max_dimension)
            max_dimension: Voxels along the longest mesh axis
            padding: Empty voxel layers around the mesh
            epsilon_scale: Contact tolerance as a fraction of the voxel edge
            max_cells: Grid cell budget
            parallel: Use multi-threaded kernels
        """
        if voxel_size is not None:
            resolution = Resolution.edge_length(voxel_size)
        else:
            resolution = Resolution.target_dimension(max_dimension)

        self.config = VoxelizerConfig(
            resolution=resolution,
            padding=padding,
            overlap_epsilon_scale=epsilon_scale,
            max_cells=max_cells,
            parallel=parallel
        )

        self._triangles: Optional[TriangleStore] = None
        self._voxelizer: Optional[Voxelizer] = None
        self._result: Optional[VoxelizationResult] = None
        self._source: Optional[Path] = None

    def load_stl(self, stl_path: Union[str, Path]) -> "StlConverter":
        """
        Load a binary or ASCII STL file.

        Args:
            stl_path: Path to the mesh

        Returns:
            self for method chaining
        """
        self._source = Path(stl_path)
        self._triangles = TriangleStore.from_stl(stl_path)
        self._result = None
        return self

    def load_arrays(
        self,
        vertices: np.ndarray,
        normals: Optional[np.ndarray] = None
    ) -> "StlConverter":
        """
        Load a triangle soup from numpy arrays.

        Args:
            vertices: Array of shape (N, 3, 3)
            normals: Optional array of shape (N, 3)

        Returns:
            self for method chaining
        """
        self._source = None
        self._triangles = TriangleStore.from_arrays(vertices, normals)
        self._result = None
        return self

    def set_resolution(
        self,
        voxel_size: Optional[float] = None,
        max_dimension: Optional[int] = None
    ) -> "StlConverter":
        """
        Choose the grid resolution.

        Args:
            voxel_size: Explicit voxel edge length
            max_dimension: Voxels along the longest mesh axis

        Returns:
            self for method chaining
        """
        resolution = Resolution(voxel_size=voxel_size, max_dimension=max_dimension)
        self.config = replace(self.config, resolution=resolution)
        return self

    def voxelize(self) -> "StlConverter":
        """
        Convert the loaded mesh to a voxel grid.

        Returns:
            self for method chaining
        """
        if self._triangles is None:
            raise RuntimeError("No mesh loaded. Call load_stl() first.")

        self._voxelizer = Voxelizer(self.config)
        self._result = self._voxelizer.voxelize(self._triangles)
        return self

    def _require_result(self) -> VoxelizationResult:
        if self._result is None:
            raise RuntimeError("No voxel grid. Call voxelize() first.")
        return self._result

    def export_vox(self, output_path: Union[str, Path], include_interior: bool = True):
        """
        Export to MagicaVoxel .vox format.

        Args:
            output_path: Output file path
            include_interior: If False, write the surface shell only
        """
        VoxExporter(include_interior=include_interior).export(self._require_result().grid, output_path)

    def export_vf(self, output_path: Union[str, Path], crop: bool = False):
        """
        Export to VoxelFuse .vf format.

        Args:
            output_path: Output file path
            crop: Drop empty padding before writing
        """
        VFExporter(crop=crop).export(self._require_result().grid, output_path)

    def export_npz(self, output_path: Union[str, Path]):
        """Export the raw occupancy array to .npz."""
        NpzExporter().export(self._require_result().grid, output_path)

    def export_all(
        self,
        base_path: Union[str, Path],
        formats: Optional[List[str]] = None
    ) -> List[Path]:
        """
        Export to multiple formats at once.

        Args:
            base_path: Base file path (without extension)
            formats: List of formats to export (default: all)

        Returns:
            Written file paths
        """
        base_path = Path(base_path)
        formats = formats or list(SUPPORTED_FORMATS)

        written = []
        for fmt in formats:
            if fmt not in SUPPORTED_FORMATS:
                raise ValueError(f"Unsupported format: {fmt}")
            path = base_path.with_suffix(f".{fmt}")
            getattr(self, f"export_{fmt}")(path)
            written.append(path)
        return written

    @property
    def triangles(self) -> Optional[TriangleStore]:
        return self._triangles

    @property
    def grid(self) -> Optional[VoxelGrid]:
        """Get the current voxel grid."""
        return self._result.grid if self._result else None

    @property
    def result(self) -> Optional[VoxelizationResult]:
        return self._result

    @property
    def voxel_count(self) -> int:
        """Get the number of solid voxels."""
        if self._result is None:
            return 0
        return self._result.grid.count_voxels()

    def get_stats(self) -> dict:
        """
        Get conversion statistics.

        Returns:
            Dictionary with grid and warning statistics
        """
        if self._result is None:
            return {"error": "No voxel grid"}

        stats = self._result.summary()
        stats["triangle_count"] = len(self._triangles)
        stats["fill_ratio"] = (
            stats["interior_voxels"] / stats["solid_voxels"] if stats["solid_voxels"] else 0.0
        )
        return stats

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "mesh_loaded": self._triangles is not None,
            "voxelized": self._result is not None,
            "resolution": self.config.resolution.describe(),
        }

        if self._triangles is not None:
            box = self._triangles.bounding_box()
            info["triangle_count"] = len(self._triangles)
            info["bounds"] = (box.min_corner.tolist(), box.max_corner.tolist())
            if self._source is not None:
                info["source"] = str(self._source)

        if self._result is not None:
            info["grid_size"] = self._result.grid.shape
            info["voxel_count"] = self._result.grid.count_voxels()
            info["surface_voxels"] = self._result.grid.count(Occupancy.SURFACE)

        return info


class BatchProcessor:
    """
    Batch processing for directories of meshes.

    Use this for converting many STL files with consistent settings.
    """

    def __init__(self, **converter_kwargs):
        """
        Initialize the batch processor.

        Args:
            **converter_kwargs: Arguments passed to StlConverter
        """
        self.converter_kwargs = converter_kwargs

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        pattern: str = "*.stl",
        formats: Optional[List[str]] = None
    ) -> List[str]:
        """
        Convert all meshes in a directory.

        Args:
            input_dir: Input directory
            output_dir: Output directory
            pattern: Glob pattern for input files
            formats: Export formats (default: vox)

        Returns:
            List of output base paths
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        formats = formats or ["vox"]

        outputs = []
        for stl_path in sorted(input_dir.glob(pattern)):
            logger.info("Converting %s", stl_path)
            converter = StlConverter(**self.converter_kwargs)
            converter.load_stl(stl_path)
            converter.voxelize()

            base_path = output_dir / stl_path.stem
            converter.export_all(base_path, formats)
            outputs.append(str(base_path))

        return outputs
