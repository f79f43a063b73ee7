"""
STL to Voxel Converter
======================

Converts triangulated surface meshes (STL) into filled voxel grids for
simulation and rendering.

The voxelization engine accepts arbitrary triangle soups, including open,
non-manifold and partly degenerate meshes, and produces an occupancy grid
in which every voxel is EMPTY, SURFACE or INTERIOR.

Key Features:
- Exact triangle/box separating-axis rasterization with Numba JIT kernels
- Interior fill by per-line crossing parity, voted across three axes
- Recoverable defects counted and reported instead of aborting
- Export to MagicaVoxel (.vox), VoxelFuse (.vf) and NumPy (.npz)

Example Usage:
    from stl2voxel import StlConverter

    converter = StlConverter(max_dimension=64)
    converter.load_stl("part.stl")
    converter.voxelize()
    converter.export_vox("part.vox")
"""

__version__ = "1.0.0"
__author__ = "stl2voxel Team"

from .config import Resolution, VoxelizerConfig
from .errors import (
    VoxelizationError,
    InvalidMesh,
    InvalidResolution,
    ClassificationError,
    DegenerateTriangleSkipped,
    NonManifoldWarning,
)
from .geometry import BoundingBox, GridGeometry
from .triangles import Triangle, TriangleStore
from .rasterizer import Rasterizer, rasterize
from .classifier import InteriorClassifier, classify
from .voxelizer import Occupancy, VoxelGrid, VoxelizationResult, Voxelizer, voxelize
from .converter import StlConverter, BatchProcessor

__all__ = [
    "Resolution",
    "VoxelizerConfig",
    "VoxelizationError",
    "InvalidMesh",
    "InvalidResolution",
    "ClassificationError",
    "DegenerateTriangleSkipped",
    "NonManifoldWarning",
    "BoundingBox",
    "GridGeometry",
    "Triangle",
    "TriangleStore",
    "Rasterizer",
    "rasterize",
    "InteriorClassifier",
    "classify",
    "Occupancy",
    "VoxelGrid",
    "VoxelizationResult",
    "Voxelizer",
    "voxelize",
    "StlConverter",
    "BatchProcessor",
]
