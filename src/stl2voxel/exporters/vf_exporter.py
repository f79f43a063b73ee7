"""
VoxelFuse .vf Format Exporter

Plain-text format read by VoxelFuse. Sections are XML-like tags:

    <coords>      model offset
    <materials>   one row of 10 floats per material, row 0 is empty space
    <size>        x, y, z dimensions
    <voxels>      one line per x slice; inside it one ";"-terminated group
                  per z, each holding comma-terminated material ids along y
    <components>  component count

Every solid voxel (surface or interior) gets material 1.
"""

from pathlib import Path
from typing import Optional, Sequence, Union
import logging
import numpy as np


logger = logging.getLogger(__name__)

EMPTY_MATERIAL = (0.0,) * 10
SOLID_MATERIAL = (1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


def _format_row(values: Sequence[float]) -> str:
    return "".join(f"{v:.1f}," for v in values)


class VFExporter:
    """
    Export occupancy grids to VoxelFuse .vf files.

    Usage:
        exporter = VFExporter()
        exporter.export(voxel_grid, "output.vf")
    """

    def __init__(self, crop: bool = False, material: Optional[Sequence[float]] = None):
        """
        Initialize the exporter.

        Args:
            crop: Drop the empty padding around the solid before writing
            material: 10-float material row for solid voxels
        """
        self.crop = crop
        self.material = tuple(material) if material is not None else SOLID_MATERIAL
        if len(self.material) != 10:
            raise ValueError(f"Material rows hold 10 values, got {len(self.material)}")

    def export(self, grid, output_path: Union[str, Path]):
        """
        Export a VoxelGrid to .vf format.

        Args:
            grid: VoxelGrid instance
            output_path: Output file path
        """
        output_path = Path(output_path)
        if self.crop:
            grid = grid.crop_to_bounds()

        solid = grid.solid.astype(np.uint8)
        size_x, size_y, size_z = solid.shape

        with open(output_path, "w", encoding="utf-8") as f:
            f.write("<coords>\n0,0,0,\n</coords>\n")

            f.write("<materials>\n")
            f.write(_format_row(EMPTY_MATERIAL) + "\n")
            f.write(_format_row(self.material) + "\n")
            f.write("</materials>\n")

            f.write(f"<size>\n{size_x},{size_y},{size_z},\n</size>\n")

            f.write("<voxels>\n")
            for x in range(size_x):
                groups = []
                for z in range(size_z):
                    groups.append("".join(f"{v}," for v in solid[x, :, z]) + ";")
                f.write("".join(groups) + "\n")
            f.write("</voxels>\n")

            f.write("<components>\n0\n</components>\n")

        logger.debug("Wrote %dx%dx%d grid to %s", size_x, size_y, size_z, output_path)


def load_vf(file_path: Union[str, Path]) -> np.ndarray:
    """
    Read the voxel block of a .vf file.

    Returns:
        uint8 array of shape (x, y, z) with material ids
    """
    text = Path(file_path).read_text(encoding="utf-8")

    def section(tag: str) -> str:
        start = text.index(f"<{tag}>") + len(tag) + 2
        return text[start:text.index(f"</{tag}>")].strip()

    size = [int(s) for s in section("size").split(",") if s.strip()]
    if len(size) != 3:
        raise ValueError(f"Invalid <size> section: {size}")

    values = np.zeros(size, dtype=np.uint8)
    lines = [line for line in section("voxels").splitlines() if line.strip()]
    if len(lines) != size[0]:
        raise ValueError(f"Expected {size[0]} x slices, found {len(lines)}")

    for x, line in enumerate(lines):
        groups = [g for g in line.split(";") if g]
        for z, group in enumerate(groups):
            values[x, :, z] = [int(v) for v in group.split(",") if v]
    return values
