"""
Export modules for voxel grid formats.

Supported formats:
- MagicaVoxel (.vox) - Optimal for voxel editing
- VoxelFuse (.vf) - Multi-material simulation input
- NumPy (.npz) - Raw occupancy for downstream numerical code
"""

from .vox_exporter import VoxExporter, load_vox
from .vf_exporter import VFExporter, load_vf
from .npz_exporter import NpzExporter, load_npz

__all__ = ["VoxExporter", "VFExporter", "NpzExporter", "load_vox", "load_vf", "load_npz"]
