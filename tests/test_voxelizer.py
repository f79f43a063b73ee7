"""
Unit tests for the voxelization engine.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stl2voxel.config import VoxelizerConfig
from stl2voxel.errors import (
    ClassificationError,
    DegenerateTriangleSkipped,
    InvalidMesh,
    InvalidResolution,
    NonManifoldWarning,
)
from stl2voxel.classifier import InteriorClassifier
from stl2voxel.rasterizer import Rasterizer
from stl2voxel.triangles import TriangleStore, box_triangles
from stl2voxel.voxelizer import Occupancy, VoxelGrid, Voxelizer, voxelize


def unit_cube() -> TriangleStore:
    return TriangleStore(box_triangles([0, 0, 0], [1, 1, 1]))


def octahedron(radius: float = 1.0) -> TriangleStore:
    """Eight faces; half are wound inward and fixed up by their normals."""
    faces, normals = [], []
    for sx in (1, -1):
        for sy in (1, -1):
            for sz in (1, -1):
                faces.append([[sx * radius, 0, 0], [0, sy * radius, 0], [0, 0, sz * radius]])
                normals.append([sx, sy, sz])
    return TriangleStore(np.array(faces, dtype=np.float64), np.array(normals, dtype=np.float64))


def shell(dims, lo, hi) -> np.ndarray:
    """Boolean mask of the one-voxel boundary of the index block [lo, hi]."""
    block = np.zeros(dims, dtype=bool)
    block[lo:hi + 1, lo:hi + 1, lo:hi + 1] = True
    inner = np.zeros(dims, dtype=bool)
    inner[lo + 1:hi, lo + 1:hi, lo + 1:hi] = True
    return block & ~inner


class TestVoxelGrid(unittest.TestCase):
    """Tests for VoxelGrid class."""

    def test_create_grid(self):
        """Test grid creation."""
        grid = VoxelGrid(16, 16, 16)
        assert grid.shape == (16, 16, 16)
        assert grid.count_voxels() == 0
        assert not grid.frozen

    def test_out_of_bounds_is_empty(self):
        grid = VoxelGrid(4, 4, 4)
        assert grid.occupancy(100, 0, 0) == Occupancy.EMPTY
        assert grid.occupancy(-1, 0, 0) == Occupancy.EMPTY
        assert not grid.is_solid(4, 4, 4)

    def test_interior_never_overwrites_surface(self):
        grid = VoxelGrid(4, 4, 4)
        surface = np.zeros((4, 4, 4), dtype=bool)
        surface[1, 1, 1] = True
        grid.mark_surface(surface)
        grid.mark_surface(surface)

        everything = np.ones((4, 4, 4), dtype=bool)
        grid.mark_interior(everything)

        assert grid.occupancy(1, 1, 1) == Occupancy.SURFACE
        assert grid.occupancy(2, 2, 2) == Occupancy.INTERIOR
        assert grid.count(Occupancy.SURFACE) == 1
        assert grid.count(Occupancy.INTERIOR) == 63

    def test_freeze(self):
        grid = VoxelGrid(4, 4, 4).freeze()
        assert grid.frozen
        with self.assertRaises(RuntimeError):
            grid.mark_surface(np.ones((4, 4, 4), dtype=bool))
        with self.assertRaises(ValueError):
            grid.data[0, 0, 0] = 1

    def test_sparse_conversion(self):
        """Test sparse representation."""
        grid = VoxelGrid(8, 8, 8)
        mask = np.zeros((8, 8, 8), dtype=bool)
        mask[0, 0, 0] = True
        mask[7, 7, 7] = True
        grid.mark_surface(mask)

        coords, states = grid.to_sparse()
        assert len(coords) == 2
        assert list(states) == [Occupancy.SURFACE, Occupancy.SURFACE]
        assert [v[:3] for v in grid.iterate_voxels()] == [(0, 0, 0), (7, 7, 7)]

    def test_crop_keeps_world_position(self):
        grid = VoxelGrid(8, 8, 8, voxel_size=0.5, origin=np.array([1.0, 2.0, 3.0]))
        mask = np.zeros((8, 8, 8), dtype=bool)
        mask[2:4, 3, 5] = True
        grid.mark_surface(mask)

        cropped = grid.crop_to_bounds()
        assert cropped.shape == (2, 1, 1)
        assert cropped.count_voxels() == 2
        assert np.allclose(cropped.origin, [2.0, 3.5, 5.5])
        assert np.allclose(
            cropped.index_to_world(0, 0, 0).min_corner,
            grid.index_to_world(2, 3, 5).min_corner
        )


class TestRasterizer(unittest.TestCase):
    """Tests for surface rasterization."""

    def test_unit_cube_shell(self):
        """Faces on voxel boundaries mark only the voxels inside the cube."""
        store = unit_cube()
        geometry = Voxelizer(VoxelizerConfig.from_voxel_size(0.25)).build_geometry(store)
        mask = Rasterizer().surface_mask(store, geometry)

        assert mask.sum() == 56
        assert np.array_equal(mask.astype(bool), shell((6, 6, 6), 1, 4))

    def test_order_independent(self):
        store = octahedron()
        geometry = Voxelizer(VoxelizerConfig.from_max_dimension(12)).build_geometry(store)
        order = np.random.default_rng(7).permutation(len(store))

        first = Rasterizer().surface_mask(store, geometry)
        second = Rasterizer().surface_mask(store.permuted(order), geometry)
        serial = Rasterizer(parallel=False).surface_mask(store, geometry)

        assert np.array_equal(first, second)
        assert np.array_equal(first, serial)

    def test_degenerate_skipped(self):
        tris = np.concatenate([
            box_triangles([0, 0, 0], [1, 1, 1]),
            np.full((1, 3, 3), 0.5),
        ])
        store = TriangleStore(tris)
        geometry = Voxelizer(VoxelizerConfig.from_voxel_size(0.25)).build_geometry(store)
        grid = VoxelGrid.for_geometry(geometry)

        skipped = Rasterizer().rasterize(store, geometry, grid)
        assert skipped == 1
        assert grid.count(Occupancy.SURFACE) == 56

    def test_all_degenerate(self):
        store = TriangleStore(np.array([[[0, 0, 0], [1, 1, 1], [2, 2, 2]]], dtype=np.float64))
        geometry = Voxelizer(VoxelizerConfig.from_voxel_size(0.5)).build_geometry(store)
        with self.assertRaises(InvalidMesh):
            Rasterizer().surface_mask(store, geometry)


class TestInteriorClassifier(unittest.TestCase):
    """Tests for interior classification."""

    def test_empty_surface(self):
        store = unit_cube()
        geometry = Voxelizer(VoxelizerConfig.from_voxel_size(0.25)).build_geometry(store)
        grid = VoxelGrid.for_geometry(geometry)
        with self.assertRaises(ClassificationError):
            InteriorClassifier().classify(store, geometry, grid)

    def test_closed_box_lines_agree(self):
        store = unit_cube()
        geometry = Voxelizer(VoxelizerConfig.from_voxel_size(0.25)).build_geometry(store)
        classifier = InteriorClassifier()

        expected = np.zeros((6, 6, 6), dtype=bool)
        expected[1:5, 1:5, 1:5] = True
        for axis in range(3):
            inside, inconsistent = classifier.axis_inside(store, geometry, axis)
            assert inconsistent == 0
            assert np.array_equal(inside, expected)

    def test_single_triangle_has_no_inside(self):
        """An open sheet never encloses anything."""
        store = TriangleStore(np.array(
            [[[0, 0, 0], [1, 0.2, 0.3], [0.1, 1, 0.5]]], dtype=np.float64
        ))
        geometry = Voxelizer(VoxelizerConfig.from_max_dimension(8)).build_geometry(store)
        classifier = InteriorClassifier()
        for axis in range(3):
            inside, _ = classifier.axis_inside(store, geometry, axis)
            assert not inside.any()


class TestVoxelizer(unittest.TestCase):
    """End-to-end conversion tests."""

    def test_unit_cube(self):
        """Unit cube at edge 0.25: 4x4x4 solid, 2x2x2 interior, no warnings."""
        result = voxelize(unit_cube(), VoxelizerConfig.from_voxel_size(0.25))
        grid = result.grid

        assert grid.shape == (6, 6, 6)
        assert grid.frozen
        assert grid.count_voxels() == 64
        assert grid.count(Occupancy.SURFACE) == 56
        assert grid.count(Occupancy.INTERIOR) == 8
        assert result.degenerate_triangles == 0
        assert result.non_manifold_lines == 0
        assert not result.has_warnings

        for i in range(6):
            for j in range(6):
                for k in range(6):
                    inside = all(1 <= c <= 4 for c in (i, j, k))
                    assert grid.is_solid(i, j, k) == inside

    def test_offset_box_count(self):
        """A 3-unit box at edge 0.5 fills 6^3 voxels wherever it sits."""
        store = TriangleStore(box_triangles([0.3, -1.1, 2.7], [3.3, 1.9, 5.7]))
        result = voxelize(store, VoxelizerConfig.from_voxel_size(0.5))

        assert result.grid.shape == (8, 8, 8)
        assert result.grid.count_voxels() == 216
        assert result.grid.count(Occupancy.INTERIOR) == 64
        assert result.non_manifold_lines == 0

    def test_single_triangle(self):
        store = TriangleStore(np.array([[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], dtype=np.float64))
        with self.assertWarns(NonManifoldWarning):
            result = voxelize(store, VoxelizerConfig.from_max_dimension(4))

        assert result.grid.count(Occupancy.SURFACE) > 0
        assert result.grid.count(Occupancy.INTERIOR) == 0

    def test_open_box(self):
        """Missing top face: other faces still marked, parity reported."""
        tris = box_triangles([0, 0, 0], [1, 1, 1])[:10]
        store = TriangleStore(tris)
        config = VoxelizerConfig.from_voxel_size(0.25)

        with self.assertWarns(NonManifoldWarning):
            first = voxelize(store, config)
        with self.assertWarns(NonManifoldWarning):
            second = voxelize(store, config)

        expected_surface = shell((6, 6, 6), 1, 4)
        expected_surface[2:4, 2:4, 4] = False

        assert np.array_equal(first.grid.surface, expected_surface)
        assert first.non_manifold_by_axis == {"x": 0, "y": 0, "z": 16}
        assert first.grid.count(Occupancy.INTERIOR) == 12
        assert first.grid.occupancy(2, 2, 2) == Occupancy.INTERIOR
        assert np.array_equal(first.grid.data, second.grid.data)

    def test_degenerate_triangle_warning(self):
        tris = np.concatenate([
            box_triangles([0, 0, 0], [1, 1, 1]),
            np.full((1, 3, 3), 0.5),
        ])
        with self.assertWarns(DegenerateTriangleSkipped):
            result = voxelize(TriangleStore(tris), VoxelizerConfig.from_voxel_size(0.25))

        clean = voxelize(unit_cube(), VoxelizerConfig.from_voxel_size(0.25))
        assert result.degenerate_triangles == 1
        assert np.array_equal(result.grid.data, clean.grid.data)

    def test_all_degenerate(self):
        store = TriangleStore(np.zeros((3, 3, 3)))
        with self.assertRaises(InvalidMesh):
            voxelize(store, VoxelizerConfig.from_max_dimension(8))

    def test_over_budget(self):
        with self.assertRaises(InvalidResolution):
            voxelize(unit_cube(), VoxelizerConfig.from_voxel_size(0.01, max_cells=10000))

    def test_octahedron(self):
        result = voxelize(octahedron(), VoxelizerConfig.from_voxel_size(0.25))
        grid = result.grid

        assert grid.shape == (10, 10, 10)
        assert grid.occupancy(4, 4, 4) == Occupancy.INTERIOR
        assert grid.occupancy(5, 5, 5) == Occupancy.INTERIOR
        assert grid.occupancy(1, 1, 1) == Occupancy.EMPTY
        assert grid.count(Occupancy.SURFACE) > 0

    def test_octahedron_on_center_lines(self):
        """Vertices and equator edges on voxel-center lines are claimed once."""
        result = voxelize(octahedron(1.125), VoxelizerConfig.from_voxel_size(0.25))
        data = result.grid.data

        assert result.grid.shape == (11, 11, 11)
        assert result.non_manifold_by_axis == {"x": 0, "y": 0, "z": 0}
        assert np.array_equal(data, data[::-1, :, :])
        assert np.array_equal(data, data[:, ::-1, :])
        assert np.array_equal(data, data[:, :, ::-1])
        assert result.grid.occupancy(5, 5, 5) == Occupancy.INTERIOR

    def test_face_on_center_plane(self):
        """Far faces at index 3.5 cut through voxel centers."""
        store = TriangleStore(box_triangles([0, 0, 0], [1.25, 1.25, 1.25]))
        result = voxelize(store, VoxelizerConfig.from_voxel_size(0.5))
        grid = result.grid

        assert grid.shape == (5, 5, 5)
        assert result.non_manifold_lines == 0
        assert np.array_equal(grid.surface, shell((5, 5, 5), 1, 3))
        assert grid.count(Occupancy.INTERIOR) == 1
        assert grid.occupancy(2, 2, 2) == Occupancy.INTERIOR

    def test_order_independent(self):
        store = octahedron()
        config = VoxelizerConfig.from_max_dimension(16)
        order = np.random.default_rng(3).permutation(len(store))

        first = voxelize(store, config)
        second = voxelize(store.permuted(order), config)
        assert np.array_equal(first.grid.data, second.grid.data)

    def test_scale_invariant(self):
        """Scaling the mesh and the edge length together gives the same grid."""
        store = octahedron()
        small = voxelize(store, VoxelizerConfig.from_voxel_size(0.25))
        large = voxelize(store.transformed(scale=2.0), VoxelizerConfig.from_voxel_size(0.5))

        assert small.grid.shape == large.grid.shape
        assert np.array_equal(small.grid.data, large.grid.data)

    def test_single_thread_matches(self):
        store = octahedron()
        parallel = voxelize(store, VoxelizerConfig.from_max_dimension(12))
        serial = voxelize(store, VoxelizerConfig.from_max_dimension(12, parallel=False))
        assert np.array_equal(parallel.grid.data, serial.grid.data)

    def test_summary(self):
        voxelizer = Voxelizer(VoxelizerConfig.from_voxel_size(0.25))
        assert voxelizer.result is None
        voxelizer.voxelize(unit_cube())

        summary = voxelizer.result.summary()
        assert summary["grid_size"] == (6, 6, 6)
        assert summary["surface_voxels"] == 56
        assert summary["interior_voxels"] == 8
        assert summary["solid_voxels"] == 64
        assert summary["non_manifold_lines"] == 0


if __name__ == "__main__":
    unittest.main()
