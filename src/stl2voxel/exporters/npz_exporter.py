"""
NumPy .npz Exporter

Stores the raw occupancy array (0 empty, 1 surface, 2 interior) together
with the grid placement, for downstream simulation code that reads numpy.
"""

from pathlib import Path
from typing import Tuple, Union
import logging
import numpy as np


logger = logging.getLogger(__name__)


class NpzExporter:
    """Export occupancy grids to compressed .npz archives."""

    def export(self, grid, output_path: Union[str, Path]):
        output_path = Path(output_path)
        np.savez_compressed(
            output_path,
            occupancy=grid.data,
            origin=grid.origin,
            voxel_size=np.float64(grid.voxel_size),
        )
        logger.debug("Wrote %s grid to %s", grid.shape, output_path)


def load_npz(file_path: Union[str, Path]) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Load an archive written by NpzExporter.

    Returns:
        Tuple of (occupancy, origin, voxel_size)
    """
    with np.load(Path(file_path)) as archive:
        return archive["occupancy"], archive["origin"], float(archive["voxel_size"])
