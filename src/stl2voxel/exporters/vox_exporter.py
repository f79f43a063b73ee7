"""
MagicaVoxel .vox Format Exporter

The .vox format is a RIFF-style chunk-based binary format used by MagicaVoxel.
It stores voxels as sparse data with a 256-color palette.

File Structure:
- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container)
  - SIZE chunk: dimensions (x, y, z)
  - XYZI chunk: voxel data (x, y, z, color_index per voxel)
  - RGBA chunk: 256-color palette

Occupancy states map to palette indices: SURFACE -> 1, INTERIOR -> 2.

Limitations:
- Maximum 256x256x256 dimensions per model
- Coordinates are uint8
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple, Union
import logging
import struct
import numpy as np

from ..voxelizer import Occupancy


logger = logging.getLogger(__name__)

# VOX format constants
VOX_MAGIC = b'VOX '
VOX_VERSION = 150
VOX_MAX_SIZE = 256

SURFACE_INDEX = 1
INTERIOR_INDEX = 2

DEFAULT_SURFACE_COLOR = (200, 200, 200, 255)
DEFAULT_INTERIOR_COLOR = (110, 140, 200, 255)


class VoxChunk:
    """Base class for VOX chunks."""

    def __init__(self, chunk_id: bytes):
        self.chunk_id = chunk_id
        self.content = b''
        self.children = b''

    def pack(self) -> bytes:
        """Pack the chunk into bytes."""
        return (
            self.chunk_id +
            struct.pack('<II', len(self.content), len(self.children)) +
            self.content +
            self.children
        )


class SizeChunk(VoxChunk):
    """SIZE chunk containing model dimensions."""

    def __init__(self, size_x: int, size_y: int, size_z: int):
        super().__init__(b'SIZE')
        self.content = struct.pack('<III', size_x, size_y, size_z)


class XYZIChunk(VoxChunk):
    """XYZI chunk containing voxel positions and color indices."""

    def __init__(self, voxels: np.ndarray):
        """
        Args:
            voxels: Array of shape (N, 4) with (x, y, z, color_index), all < 256
        """
        super().__init__(b'XYZI')
        voxels = np.asarray(voxels, dtype=np.uint8).reshape(-1, 4)
        self.content = struct.pack('<I', len(voxels)) + voxels.tobytes()


class RGBAChunk(VoxChunk):
    """RGBA chunk containing the 256-color palette."""

    def __init__(self):
        super().__init__(b'RGBA')
        self._palette = np.zeros((256, 4), dtype=np.uint8)
        self._palette[:, 3] = 255

    def set_color(self, color_index: int, rgba: Sequence[int]):
        """
        Set the color used by voxels with ``color_index`` (1-255).

        Palette slot i holds color index i + 1; index 0 is air.
        """
        if 1 <= color_index <= 255:
            self._palette[color_index - 1] = rgba

    def finalize(self):
        """Build the content bytes from the palette."""
        self.content = self._palette.tobytes()


class MainChunk(VoxChunk):
    """MAIN container chunk."""

    def __init__(self):
        super().__init__(b'MAIN')

    def add_child(self, chunk: VoxChunk):
        """Add a child chunk."""
        self.children += chunk.pack()


class VoxExporter:
    """
    Export occupancy grids to MagicaVoxel .vox format.

    Usage:
        exporter = VoxExporter()
        exporter.export(voxel_grid, "output.vox")
    """

    def __init__(
        self,
        include_interior: bool = True,
        surface_color: Sequence[int] = DEFAULT_SURFACE_COLOR,
        interior_color: Sequence[int] = DEFAULT_INTERIOR_COLOR
    ):
        """
        Initialize the exporter.

        Args:
            include_interior: If False, export the surface shell only
            surface_color: RGBA of surface voxels
            interior_color: RGBA of interior voxels
        """
        self.include_interior = include_interior
        self.surface_color = tuple(surface_color)
        self.interior_color = tuple(interior_color)

    def export(self, grid, output_path: Union[str, Path]):
        """
        Export a VoxelGrid to .vox format.

        Args:
            grid: VoxelGrid instance
            output_path: Output file path

        Raises:
            ValueError: Empty grid, or solid region larger than 256 per axis
        """
        output_path = Path(output_path)

        coords, states = grid.to_sparse()
        if not self.include_interior:
            keep = states == Occupancy.SURFACE
            coords, states = coords[keep], states[keep]

        if len(coords) == 0:
            raise ValueError("Cannot export empty voxel grid")

        # Crop to occupied bounds
        min_coords = coords.min(axis=0)
        size = coords.max(axis=0) - min_coords + 1

        if any(s > VOX_MAX_SIZE for s in size):
            raise ValueError(
                f"VOX format limited to 256x256x256. Grid size: {tuple(int(s) for s in size)}"
            )

        coords = coords - min_coords
        color_indices = np.where(states == Occupancy.SURFACE, SURFACE_INDEX, INTERIOR_INDEX)

        voxels = np.column_stack([coords, color_indices])
        size_chunk = SizeChunk(int(size[0]), int(size[1]), int(size[2]))
        xyzi_chunk = XYZIChunk(voxels)

        rgba_chunk = RGBAChunk()
        rgba_chunk.set_color(SURFACE_INDEX, self.surface_color)
        rgba_chunk.set_color(INTERIOR_INDEX, self.interior_color)
        rgba_chunk.finalize()

        main_chunk = MainChunk()
        main_chunk.add_child(size_chunk)
        main_chunk.add_child(xyzi_chunk)
        main_chunk.add_child(rgba_chunk)

        with open(output_path, 'wb') as f:
            f.write(VOX_MAGIC)
            f.write(struct.pack('<I', VOX_VERSION))
            f.write(main_chunk.pack())

        logger.debug("Wrote %d voxels to %s", len(voxels), output_path)


def load_vox(file_path: Union[str, Path]) -> Tuple[Optional[tuple], Optional[np.ndarray], np.ndarray]:
    """
    Load a .vox file.

    Args:
        file_path: Path to .vox file

    Returns:
        Tuple of (dimensions, voxels, palette) where:
        - dimensions: (x, y, z) size
        - voxels: Array of shape (N, 4) with (x, y, z, color_index)
        - palette: Array of shape (256, 4) with RGBA colors
    """
    file_path = Path(file_path)

    with open(file_path, 'rb') as f:
        magic = f.read(4)
        if magic != VOX_MAGIC:
            raise ValueError(f"Invalid VOX file: bad magic {magic}")

        struct.unpack('<I', f.read(4))

        dimensions = None
        voxels = None
        palette = np.zeros((256, 4), dtype=np.uint8)
        palette[:, 3] = 255

        def read_chunk():
            chunk_id = f.read(4)
            if len(chunk_id) < 4:
                return None, None, None
            content_size, children_size = struct.unpack('<II', f.read(8))
            return chunk_id, f.read(content_size), children_size

        main_id, _, main_children_size = read_chunk()
        if main_id != b'MAIN':
            raise ValueError("Expected MAIN chunk")

        bytes_read = 0
        while bytes_read < main_children_size:
            chunk_id, content, children_size = read_chunk()
            if chunk_id is None:
                break
            bytes_read += 12 + len(content) + children_size

            if chunk_id == b'SIZE':
                dimensions = struct.unpack('<III', content[:12])
            elif chunk_id == b'XYZI':
                num_voxels = struct.unpack('<I', content[:4])[0]
                voxels = np.frombuffer(content[4:4 + 4 * num_voxels], dtype=np.uint8)
                voxels = voxels.reshape(num_voxels, 4).copy()
            elif chunk_id == b'RGBA':
                palette = np.frombuffer(content[:1024], dtype=np.uint8).reshape(256, 4).copy()

            if children_size > 0:
                f.read(children_size)

    return dimensions, voxels, palette
