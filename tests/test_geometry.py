"""
Unit tests for grid placement, resolution settings and the triangle store.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stl2voxel.config import Resolution, VoxelizerConfig
from stl2voxel.errors import InvalidMesh, InvalidResolution
from stl2voxel.geometry import BoundingBox, GridGeometry
from stl2voxel.triangles import TriangleStore, box_triangles, triangles_from_quads


class TestResolution(unittest.TestCase):
    """Tests for Resolution and VoxelizerConfig."""

    def test_exactly_one_mode(self):
        with self.assertRaises(ValueError):
            Resolution()
        with self.assertRaises(ValueError):
            Resolution(voxel_size=0.5, max_dimension=10)

    def test_edge_from_max_dimension(self):
        """Longest extent divided by the target count."""
        res = Resolution.target_dimension(8)
        assert res.edge_for_extent(2.0) == 0.25

    def test_explicit_edge(self):
        res = Resolution.edge_length(0.5)
        assert res.edge_for_extent(100.0) == 0.5

    def test_bad_edge_lengths(self):
        """Zero, negative and non-finite edges are rejected."""
        for value in (0.0, -1.0, float("nan"), float("inf")):
            with self.assertRaises(InvalidResolution):
                Resolution.edge_length(value).edge_for_extent(1.0)

    def test_bad_max_dimension(self):
        with self.assertRaises(InvalidResolution):
            Resolution.target_dimension(0).edge_for_extent(1.0)

    def test_flat_extent_with_max_dimension(self):
        """A zero-extent mesh has no edge length to derive."""
        with self.assertRaises(InvalidResolution):
            Resolution.target_dimension(16).edge_for_extent(0.0)

    def test_config_validation(self):
        with self.assertRaises(ValueError):
            VoxelizerConfig.from_voxel_size(0.25, padding=0)
        with self.assertRaises(ValueError):
            VoxelizerConfig.from_voxel_size(0.25, overlap_epsilon_scale=-1e-6)
        with self.assertRaises(ValueError):
            VoxelizerConfig.from_voxel_size(0.25, max_cells=0)

        config = VoxelizerConfig.from_max_dimension(32)
        assert config.padding == 1
        assert config.resolution.max_dimension == 32


class TestGridGeometry(unittest.TestCase):
    """Tests for grid placement."""

    def test_unit_cube_dims(self):
        """Four voxels per axis plus one padding layer each side."""
        box = BoundingBox([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        geometry = GridGeometry.build(box, Resolution.edge_length(0.25))

        assert geometry.dims == (6, 6, 6)
        assert geometry.voxel_size == 0.25
        assert np.allclose(geometry.origin, [-0.25, -0.25, -0.25])
        assert geometry.cell_count == 216

    def test_flat_axis_gets_one_voxel(self):
        """An axis with zero extent still gets a voxel layer."""
        box = BoundingBox([0.0, 0.0, 0.0], [1.0, 1.0, 0.0])
        geometry = GridGeometry.build(box, Resolution.edge_length(0.25), padding=2)
        assert geometry.dims == (8, 8, 5)

    def test_budget_exceeded(self):
        box = BoundingBox([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        with self.assertRaises(InvalidResolution):
            GridGeometry.build(box, Resolution.edge_length(0.01), max_cells=1000)

    def test_padding_must_be_positive(self):
        box = BoundingBox([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
        with self.assertRaises(InvalidResolution):
            GridGeometry.build(box, Resolution.edge_length(0.25), padding=0)

    def test_index_round_trip(self):
        """Every voxel center maps back to its own index."""
        geometry = GridGeometry(
            origin=np.array([0.1, -3.7, 12.345]),
            voxel_size=0.37,
            dims=(7, 5, 4)
        )
        for i in range(7):
            for j in range(5):
                for k in range(4):
                    center = geometry.index_to_world(i, j, k).center()
                    assert geometry.world_to_index(center) == (i, j, k)

    def test_voxel_box(self):
        geometry = GridGeometry(origin=np.zeros(3), voxel_size=0.5, dims=(4, 4, 4))
        box = geometry.index_to_world(1, 2, 3)
        assert np.allclose(box.min_corner, [0.5, 1.0, 1.5])
        assert np.allclose(box.max_corner, [1.0, 1.5, 2.0])
        assert geometry.contains_index(3, 3, 3)
        assert not geometry.contains_index(4, 0, 0)

    def test_bounding_box_validation(self):
        with self.assertRaises(ValueError):
            BoundingBox([1.0, 0.0, 0.0], [0.0, 1.0, 1.0])


class TestTriangleStore(unittest.TestCase):
    """Tests for triangle storage."""

    def test_box_triangles_wind_outward(self):
        tris = box_triangles([0, 0, 0], [1, 1, 1])
        store = TriangleStore(tris)
        centers = tris.mean(axis=1) - 0.5
        assert len(store) == 12
        assert np.all(np.einsum("ij,ij->i", store.normals, centers) > 0)

    def test_quads_split_in_order(self):
        quads = np.arange(24, dtype=np.float64).reshape(2, 4, 3)
        tris = triangles_from_quads(quads)
        assert tris.shape == (4, 3, 3)
        assert np.array_equal(tris[2], quads[1, [0, 1, 2]])
        assert np.array_equal(tris[3], quads[1, [0, 2, 3]])

    def test_normals_rewind(self):
        """A supplied normal opposing the winding flips the triangle."""
        tri = np.array([[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], dtype=np.float64)
        store = TriangleStore(tri, normals=np.array([[0.0, 0.0, -1.0]]))
        assert np.allclose(store.normals[0], [0, 0, -1])
        assert np.array_equal(store.vertices[0], tri[0, [0, 2, 1]])

    def test_zero_normals_use_winding(self):
        tri = np.array([[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], dtype=np.float64)
        store = TriangleStore(tri, normals=np.zeros((1, 3)))
        assert np.allclose(store.normals[0], [0, 0, 1])

    def test_degenerate_flagged(self):
        tris = np.array([
            [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
            [[0, 0, 0], [1, 1, 1], [2, 2, 2]],
            [[3, 3, 3], [3, 3, 3], [3, 3, 3]],
        ], dtype=np.float64)
        store = TriangleStore(tris)
        assert store.degenerate_count == 2
        assert list(store.degenerate_mask()) == [False, True, True]
        assert store[1].is_degenerate
        assert not store[0].is_degenerate

    def test_invalid_input(self):
        with self.assertRaises(InvalidMesh):
            TriangleStore(np.zeros((0, 3, 3)))
        with self.assertRaises(InvalidMesh):
            TriangleStore(np.zeros((4, 3)))
        bad = np.zeros((1, 3, 3))
        bad[0, 0, 0] = np.nan
        with self.assertRaises(InvalidMesh):
            TriangleStore(bad)

    def test_from_indexed(self):
        points = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=np.float64)
        faces = np.array([[0, 2, 1], [0, 1, 3]])
        store = TriangleStore.from_indexed(points, faces)
        assert len(store) == 2
        assert np.array_equal(store.vertices[1], points[[0, 1, 3]])

        with self.assertRaises(InvalidMesh):
            TriangleStore.from_indexed(points, np.array([[0, 1, 9]]))

    def test_read_only(self):
        store = TriangleStore(box_triangles([0, 0, 0], [1, 1, 1]))
        with self.assertRaises(ValueError):
            store.vertices[0, 0, 0] = 5.0

    def test_bounding_box_and_transform(self):
        store = TriangleStore(box_triangles([0, 0, 0], [1, 2, 3]))
        moved = store.transformed(scale=2.0, offset=(1.0, 0.0, -1.0))
        box = moved.bounding_box()
        assert np.allclose(box.min_corner, [1, 0, -1])
        assert np.allclose(box.max_corner, [3, 4, 5])
        assert box.longest_extent == 6.0

    def test_missing_stl(self):
        with self.assertRaises(FileNotFoundError):
            TriangleStore.from_stl("/nonexistent/part.stl")


if __name__ == "__main__":
    unittest.main()
