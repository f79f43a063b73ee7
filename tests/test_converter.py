"""
Unit tests for the high-level converter and the command line.
"""

import sys
import tempfile
import warnings
from pathlib import Path
import numpy as np
import unittest
from stl import mesh as stl_mesh

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stl2voxel import StlConverter, BatchProcessor
from stl2voxel.cli import main
from stl2voxel.errors import InvalidMesh, NonManifoldWarning
from stl2voxel.exporters import load_vf, load_vox
from stl2voxel.triangles import TriangleStore, box_triangles


def write_stl(path: Path, triangles: np.ndarray):
    """Write a binary STL with numpy-stl."""
    data = stl_mesh.Mesh(np.zeros(len(triangles), dtype=stl_mesh.Mesh.dtype))
    data.vectors[:] = triangles
    data.save(str(path))


class TestStlLoading(unittest.TestCase):
    """Tests for STL ingestion."""

    def test_load_binary(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "cube.stl"
            write_stl(path, box_triangles([0, 0, 0], [1, 1, 1]))
            store = TriangleStore.from_stl(path)

        assert len(store) == 12
        assert store.degenerate_count == 0
        box = store.bounding_box()
        assert np.allclose(box.min_corner, [0, 0, 0])
        assert np.allclose(box.max_corner, [1, 1, 1])

    def test_file_normals_override_winding(self):
        """A stored normal opposing the winding re-winds the triangle."""
        tri = np.array([[[0, 0, 0], [1, 0, 0], [0, 1, 0]]], dtype=np.float64)
        data = stl_mesh.Mesh(np.zeros(1, dtype=stl_mesh.Mesh.dtype))
        data.vectors[:] = tri
        data.normals[:] = [0.0, 0.0, -1.0]

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "flipped.stl"
            data.save(str(path), update_normals=False)
            store = TriangleStore.from_stl(path)

        assert np.allclose(store.normals[0], [0, 0, -1])
        assert np.array_equal(store.vertices[0], tri[0, [0, 2, 1]])

    def test_garbage_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "junk.stl"
            path.write_bytes(b"\x00" * 10)
            with self.assertRaises(InvalidMesh):
                TriangleStore.from_stl(path)


class TestStlConverter(unittest.TestCase):
    """Tests for the StlConverter pipeline."""

    def test_arrays_pipeline(self):
        converter = StlConverter(voxel_size=0.25)
        converter.load_arrays(box_triangles([0, 0, 0], [1, 1, 1])).voxelize()

        assert converter.voxel_count == 64
        stats = converter.get_stats()
        assert stats["triangle_count"] == 12
        assert stats["interior_voxels"] == 8
        assert stats["fill_ratio"] == 8 / 64

        preview = converter.preview()
        assert preview["mesh_loaded"]
        assert preview["voxelized"]
        assert preview["grid_size"] == (6, 6, 6)

    def test_set_resolution(self):
        converter = StlConverter()
        converter.load_arrays(box_triangles([0, 0, 0], [2, 2, 2]))
        converter.set_resolution(max_dimension=4).voxelize()
        assert converter.grid.voxel_size == 0.5
        assert converter.voxel_count == 64

    def test_requires_mesh_and_grid(self):
        converter = StlConverter()
        with self.assertRaises(RuntimeError):
            converter.voxelize()
        with self.assertRaises(RuntimeError):
            converter.export_vox("unused.vox")
        assert converter.get_stats() == {"error": "No voxel grid"}

    def test_export_all(self):
        converter = StlConverter(voxel_size=0.25)
        converter.load_arrays(box_triangles([0, 0, 0], [1, 1, 1])).voxelize()

        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp) / "cube"
            paths = converter.export_all(base)
            assert [p.suffix for p in paths] == [".vox", ".vf", ".npz"]
            assert all(p.exists() for p in paths)

            with self.assertRaises(ValueError):
                converter.export_all(base, ["obj"])

    def test_batch(self):
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            write_stl(tmp / "a.stl", box_triangles([0, 0, 0], [1, 1, 1]))
            write_stl(tmp / "b.stl", box_triangles([0, 0, 0], [2, 1, 1]))

            outputs = BatchProcessor(max_dimension=8).process_directory(tmp, tmp / "out")
            assert len(outputs) == 2
            assert (tmp / "out" / "a.vox").exists()
            assert (tmp / "out" / "b.vox").exists()


class TestCli(unittest.TestCase):
    """Tests for the command line entry point."""

    def test_single_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            write_stl(tmp / "cube.stl", box_triangles([0, 0, 0], [1, 1, 1]))

            code = main([
                str(tmp / "cube.stl"),
                "-o", str(tmp / "out"),
                "--voxel-size", "0.25",
                "-f", "vox", "vf",
                "--single-thread",
            ])
            assert code == 0

            dims, voxels, _ = load_vox(tmp / "out.vox")
            assert dims == (4, 4, 4)
            assert len(voxels) == 64
            assert load_vf(tmp / "out.vf").shape == (6, 6, 6)

    def test_missing_input(self):
        assert main(["/nonexistent/part.stl"]) == 1
        assert main([]) == 1

    def test_strict_open_mesh(self):
        """--strict turns inconsistent parity into a failure."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            write_stl(tmp / "open.stl", box_triangles([0, 0, 0], [1, 1, 1])[:10])
            args = [str(tmp / "open.stl"), "-o", str(tmp / "open"), "-r", "4"]

            assert main(args + ["--strict"]) == 1
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", NonManifoldWarning)
                assert main(args) == 0
            assert (tmp / "open.vox").exists()

    def test_batch_missing_directory(self):
        assert main(["--batch", "/nonexistent/meshes"]) == 1


if __name__ == "__main__":
    unittest.main()
