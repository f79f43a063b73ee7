"""
Triangle Store and STL Ingestion

This module handles:
- Loading binary or ASCII STL files through numpy-stl
- Building triangle soups from raw or indexed numpy arrays
- Reconciling face normals with winding order
- Flagging degenerate (zero-area) triangles

Vertices are stored as a read-only (N, 3, 3) float64 array and normals as a
read-only (N, 3) array of unit vectors that agree with the winding order.
"""

from pathlib import Path
from typing import Iterator, NamedTuple, Optional, Sequence, Union
import logging
import struct
import numpy as np
from stl import mesh as stl_mesh

from .errors import InvalidMesh
from .geometry import BoundingBox


logger = logging.getLogger(__name__)

# Twice-area below this fraction of the squared longest edge is zero area
DEGENERATE_TOLERANCE = 1e-10


class Triangle(NamedTuple):
    """A single mesh triangle with its outward unit normal."""
    v0: np.ndarray
    v1: np.ndarray
    v2: np.ndarray
    normal: np.ndarray

    @property
    def is_degenerate(self) -> bool:
        return bool(_degenerate_mask(np.stack([self.v0, self.v1, self.v2])[None])[0])


def _winding_normals(vertices: np.ndarray) -> np.ndarray:
    """Unnormalized normals from the right-hand rule, shape (N, 3)."""
    e1 = vertices[:, 1] - vertices[:, 0]
    e2 = vertices[:, 2] - vertices[:, 0]
    return np.cross(e1, e2)


def _degenerate_mask(vertices: np.ndarray) -> np.ndarray:
    """True where a triangle has (numerically) zero area."""
    edges = np.stack([
        vertices[:, 1] - vertices[:, 0],
        vertices[:, 2] - vertices[:, 1],
        vertices[:, 0] - vertices[:, 2],
    ], axis=1)
    longest_sq = np.max(np.sum(edges * edges, axis=2), axis=1)
    twice_area = np.linalg.norm(_winding_normals(vertices), axis=1)
    return (longest_sq == 0.0) | (twice_area <= DEGENERATE_TOLERANCE * longest_sq)


class TriangleStore:
    """
    Immutable triangle soup consumed by the voxelization engine.

    Usage:
        store = TriangleStore.from_stl("part.stl")
        box = store.bounding_box()
    """

    def __init__(self, vertices: np.ndarray, normals: Optional[np.ndarray] = None):
        """
        Initialize the store.

        Args:
            vertices: Array of shape (N, 3, 3) with triangle corner positions
            normals: Optional (N, 3) face normals. Triangles whose supplied
                normal opposes the winding are re-wound to match it; zero
                or missing normals are derived from the winding.

        Raises:
            InvalidMesh: If the arrays are empty, misshapen or non-finite
        """
        vertices = np.array(vertices, dtype=np.float64)
        if vertices.ndim != 3 or vertices.shape[1:] != (3, 3):
            raise InvalidMesh(f"Expected vertices of shape (N, 3, 3), got {vertices.shape}")
        if len(vertices) == 0:
            raise InvalidMesh("Mesh contains no triangles")
        if not np.all(np.isfinite(vertices)):
            raise InvalidMesh("Mesh contains non-finite vertex coordinates")

        winding = _winding_normals(vertices)

        if normals is not None:
            normals = np.asarray(normals, dtype=np.float64)
            if normals.shape != (len(vertices), 3):
                raise InvalidMesh(
                    f"Expected normals of shape ({len(vertices)}, 3), got {normals.shape}"
                )
            # Supplied normal wins over winding when they disagree
            flip = np.einsum("ij,ij->i", normals, winding) < 0.0
            if np.any(flip):
                logger.debug("Re-winding %d triangles to match file normals", int(flip.sum()))
                vertices[flip] = vertices[flip][:, [0, 2, 1]]
                winding[flip] = -winding[flip]

        lengths = np.linalg.norm(winding, axis=1)
        unit = np.zeros_like(winding)
        nonzero = lengths > 0.0
        unit[nonzero] = winding[nonzero] / lengths[nonzero, None]

        self._vertices = vertices
        self._normals = unit
        self._degenerate = _degenerate_mask(vertices)
        self._vertices.flags.writeable = False
        self._normals.flags.writeable = False
        self._degenerate.flags.writeable = False

    @classmethod
    def from_stl(cls, stl_path: Union[str, Path]) -> "TriangleStore":
        """
        Load a binary or ASCII STL file.

        Args:
            stl_path: Path to the STL file

        Returns:
            New TriangleStore
        """
        stl_path = Path(stl_path)
        if not stl_path.exists():
            raise FileNotFoundError(f"STL file not found: {stl_path}")

        try:
            data = stl_mesh.Mesh.from_file(str(stl_path), calculate_normals=False)
        except (AssertionError, ValueError, RuntimeError, struct.error) as e:
            raise InvalidMesh(f"Could not parse STL file {stl_path}: {e}") from e

        logger.debug("Loaded %d triangles from %s", len(data.vectors), stl_path)
        return cls(data.vectors, data.normals)

    @classmethod
    def from_arrays(
        cls,
        vertices: np.ndarray,
        normals: Optional[np.ndarray] = None
    ) -> "TriangleStore":
        """Build a store from an (N, 3, 3) vertex array."""
        return cls(vertices, normals)

    @classmethod
    def from_indexed(cls, points: np.ndarray, faces: np.ndarray) -> "TriangleStore":
        """
        Build a store from a shared vertex table and triangle indices.

        Args:
            points: Array of shape (M, 3)
            faces: Integer array of shape (N, 3) indexing into points
        """
        points = np.asarray(points, dtype=np.float64)
        faces = np.asarray(faces)
        if faces.ndim != 2 or faces.shape[1] != 3:
            raise InvalidMesh(f"Expected faces of shape (N, 3), got {faces.shape}")
        if faces.size and (faces.min() < 0 or faces.max() >= len(points)):
            raise InvalidMesh("Face index out of range")
        return cls(points[faces])

    @property
    def vertices(self) -> np.ndarray:
        """Read-only (N, 3, 3) vertex array."""
        return self._vertices

    @property
    def normals(self) -> np.ndarray:
        """Read-only (N, 3) unit normals (zero rows for degenerate triangles)."""
        return self._normals

    def degenerate_mask(self) -> np.ndarray:
        return self._degenerate

    @property
    def degenerate_count(self) -> int:
        return int(self._degenerate.sum())

    def bounding_box(self) -> BoundingBox:
        """Axis-aligned bounds of every vertex."""
        flat = self._vertices.reshape(-1, 3)
        return BoundingBox(flat.min(axis=0), flat.max(axis=0))

    def transformed(
        self,
        scale: float = 1.0,
        offset: Sequence[float] = (0.0, 0.0, 0.0)
    ) -> "TriangleStore":
        """Return a uniformly scaled and translated copy."""
        if scale <= 0:
            raise ValueError(f"Scale must be positive, got {scale}")
        return TriangleStore(self._vertices * scale + np.asarray(offset, dtype=np.float64))

    def permuted(self, order: Sequence[int]) -> "TriangleStore":
        """Return a copy with triangles reordered."""
        order = np.asarray(order)
        return TriangleStore(self._vertices[order], self._normals[order])

    def __len__(self) -> int:
        return len(self._vertices)

    def __getitem__(self, index: int) -> Triangle:
        v = self._vertices[index]
        return Triangle(v[0], v[1], v[2], self._normals[index])

    def __iter__(self) -> Iterator[Triangle]:
        for i in range(len(self._vertices)):
            yield self[i]

    def __repr__(self) -> str:
        return f"TriangleStore(triangles={len(self)}, degenerate={self.degenerate_count})"


def triangles_from_quads(quads: np.ndarray) -> np.ndarray:
    """
    Split quads (N, 4, 3) into triangles (2N, 3, 3) along the 0-2 diagonal.

    Quad q becomes rows 2q and 2q + 1. Winding is preserved, so outward
    quads give outward triangles.
    """
    quads = np.asarray(quads, dtype=np.float64)
    first = quads[:, [0, 1, 2]]
    second = quads[:, [0, 2, 3]]
    return np.stack([first, second], axis=1).reshape(-1, 3, 3)


def box_triangles(
    min_corner: Sequence[float],
    max_corner: Sequence[float]
) -> np.ndarray:
    """
    Triangulate an axis-aligned box with outward winding.

    Returns:
        Array of shape (12, 3, 3)
    """
    (x0, y0, z0), (x1, y1, z1) = min_corner, max_corner
    quads = np.array([
        [[x0, y0, z0], [x0, y0, z1], [x0, y1, z1], [x0, y1, z0]],  # -X
        [[x1, y0, z0], [x1, y1, z0], [x1, y1, z1], [x1, y0, z1]],  # +X
        [[x0, y0, z0], [x1, y0, z0], [x1, y0, z1], [x0, y0, z1]],  # -Y
        [[x0, y1, z0], [x0, y1, z1], [x1, y1, z1], [x1, y1, z0]],  # +Y
        [[x0, y0, z0], [x0, y1, z0], [x1, y1, z0], [x1, y0, z0]],  # -Z
        [[x0, y0, z1], [x1, y0, z1], [x1, y1, z1], [x0, y1, z1]],  # +Z
    ], dtype=np.float64)
    return triangles_from_quads(quads)

