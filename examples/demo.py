#!/usr/bin/env python3
"""
STL to Voxel Demo Script

This script demonstrates the full conversion pipeline by:
1. Building synthetic test meshes (no STL files needed)
2. Running the voxelization pipeline
3. Exporting to all supported formats
4. Printing statistics, including the warnings an open mesh produces

Run with: python examples/demo.py
"""

import sys
import warnings
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stl2voxel import StlConverter, NonManifoldWarning
from stl2voxel.triangles import box_triangles


def create_test_mesh_box() -> np.ndarray:
    """A 2 x 1 x 0.5 box."""
    return box_triangles([0.0, 0.0, 0.0], [2.0, 1.0, 0.5])


def create_test_mesh_sphere(radius: float = 1.0, rings: int = 16, segments: int = 32) -> np.ndarray:
    """
    UV sphere with outward winding.

    Returns:
        Array of shape (N, 3, 3)
    """
    theta = np.linspace(0.0, np.pi, rings + 1)
    phi = np.linspace(0.0, 2.0 * np.pi, segments + 1)

    def point(r, s):
        return radius * np.array([
            np.sin(theta[r]) * np.cos(phi[s]),
            np.sin(theta[r]) * np.sin(phi[s]),
            np.cos(theta[r]),
        ])

    triangles = []
    for r in range(rings):
        for s in range(segments):
            a, b = point(r, s), point(r, s + 1)
            c, d = point(r + 1, s), point(r + 1, s + 1)
            if r > 0:
                triangles.append([a, c, b])
            if r < rings - 1:
                triangles.append([b, c, d])

    return np.array(triangles)


def create_test_mesh_open_box() -> np.ndarray:
    """A unit box missing its top face."""
    return box_triangles([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])[:10]


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("STL to Voxel - Demo")
    print("=" * 60)
    print()

    # Create output directory
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    test_meshes = [
        ("box", create_test_mesh_box()),
        ("sphere", create_test_mesh_sphere()),
        ("open_box", create_test_mesh_open_box()),
    ]

    total_start = time.time()

    for name, triangles in test_meshes:
        print(f"\n--- Processing: {name} ---")
        print(f"Input: {len(triangles)} triangles")

        mesh_start = time.time()
        converter = StlConverter(max_dimension=32)
        converter.load_arrays(triangles)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            converter.voxelize()

        stats = converter.get_stats()
        print(f"  Grid size: {stats['grid_size']}")
        print(f"  Voxel size: {stats['voxel_size']:.4f}")
        print(f"  Surface voxels: {stats['surface_voxels']}")
        print(f"  Interior voxels: {stats['interior_voxels']}")
        print(f"  Fill ratio: {stats['fill_ratio']:.2f}")
        for w in caught:
            kind = "parity" if issubclass(w.category, NonManifoldWarning) else "mesh"
            print(f"  Warning ({kind}): {w.message}")

        print(f"\n  Exporting...")
        for path in converter.export_all(output_dir / name):
            print(f"    Saved: {path}")

        print(f"    Total time: {(time.time() - mesh_start)*1000:.1f}ms")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


def benchmark_resolution():
    """Benchmark conversion time against grid resolution."""
    print("\n--- Resolution Benchmark ---\n")

    sphere = create_test_mesh_sphere(rings=48, segments=96)

    for size in [32, 64, 128, 256]:
        converter = StlConverter(max_dimension=size)
        converter.load_arrays(sphere)

        start = time.time()
        converter.voxelize()
        elapsed = time.time() - start

        print(f"Max dimension: {size}")
        print(f"  Time: {elapsed*1000:.1f}ms, {converter.voxel_count} solid voxels")
        print()


if __name__ == "__main__":
    run_demo()

    # Uncomment to run benchmark
    # benchmark_resolution()
