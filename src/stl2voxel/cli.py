"""
Command-Line Interface for stl2voxel

Usage:
    stl2voxel part.stl -o part.vox
    stl2voxel part.stl --voxel-size 0.5 -o part --format vox vf npz
    stl2voxel --batch meshes/ --output-dir grids/ --format vf

"""

import argparse
import logging
import sys
import time
import warnings
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_EPSILON_SCALE, DEFAULT_MAX_CELLS
from .converter import BatchProcessor, StlConverter, SUPPORTED_FORMATS
from .errors import DegenerateTriangleSkipped, NonManifoldWarning, VoxelizationError
from .logging_config import setup_logging


logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="stl2voxel",
        description="Convert STL triangle meshes to filled voxel grids",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stl2voxel part.stl -o part.vox
      Voxelize with 64 voxels along the longest axis, export MagicaVoxel

  stl2voxel part.stl --voxel-size 0.25 -o part --format vox vf
      Fixed voxel edge length, export VOX and VoxelFuse

  stl2voxel --batch meshes/ --output-dir grids/ --format npz
      Convert every STL in a directory

Resolution:
  --voxel-size and --resolution are exclusive; without either the
  longest axis is split into 64 voxels.
        """
    )

    # Input
    parser.add_argument(
        "input",
        nargs="?",
        help="Input STL file (binary or ASCII)"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output file path (extension is replaced per format)"
    )

    # Resolution
    resolution = parser.add_mutually_exclusive_group()
    resolution.add_argument(
        "--voxel-size",
        type=float,
        help="Voxel edge length in mesh units"
    )
    resolution.add_argument(
        "-r", "--resolution",
        type=int,
        default=64,
        help="Voxels along the longest mesh axis (default: 64)"
    )

    parser.add_argument(
        "--padding",
        type=int,
        default=1,
        help="Empty voxel layers around the mesh (default: 1)"
    )

    parser.add_argument(
        "--epsilon-scale",
        type=float,
        default=DEFAULT_EPSILON_SCALE,
        help=f"Contact tolerance as a fraction of the voxel edge (default: {DEFAULT_EPSILON_SCALE:g})"
    )

    parser.add_argument(
        "--max-cells",
        type=int,
        default=DEFAULT_MAX_CELLS,
        help=f"Refuse grids larger than this many cells (default: {DEFAULT_MAX_CELLS})"
    )

    parser.add_argument(
        "--single-thread",
        action="store_true",
        help="Run the kernels on one thread"
    )

    # Output settings
    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=list(SUPPORTED_FORMATS),
        default=["vox"],
        help="Output format(s) (default: vox)"
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on degenerate triangles or inconsistent parity"
    )

    # Batch processing
    parser.add_argument(
        "--batch",
        help="Batch process directory of meshes"
    )

    parser.add_argument(
        "--output-dir",
        help="Output directory for batch processing"
    )

    parser.add_argument(
        "--pattern",
        default="*.stl",
        help="File pattern for batch processing (default: *.stl)"
    )

    # Misc
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )

    parser.add_argument(
        "--log-file",
        help="Also write the log to this file"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print grid statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def converter_kwargs(args) -> dict:
    """StlConverter arguments from parsed flags."""
    return {
        "voxel_size": args.voxel_size,
        "max_dimension": args.resolution,
        "padding": args.padding,
        "epsilon_scale": args.epsilon_scale,
        "max_cells": args.max_cells,
        "parallel": not args.single_thread,
    }


def configure_warnings(strict: bool):
    """Escalate recoverable conditions under --strict, otherwise leave them to the log."""
    action = "error" if strict else "ignore"
    warnings.simplefilter(action, DegenerateTriangleSkipped)
    warnings.simplefilter(action, NonManifoldWarning)


def print_stats(stats: dict):
    print("\nVoxel Statistics:")
    print(f"  Triangles: {stats['triangle_count']}")
    print(f"  Grid size: {stats['grid_size']}")
    print(f"  Voxel size: {stats['voxel_size']:g}")
    print(f"  Surface voxels: {stats['surface_voxels']}")
    print(f"  Interior voxels: {stats['interior_voxels']}")
    print(f"  Degenerate triangles: {stats['degenerate_triangles']}")
    print(f"  Non-manifold scan lines: {stats['non_manifold_lines']}")


def process_single(args) -> int:
    """Process a single mesh file."""
    if not args.input:
        print("Error: No input file specified", file=sys.stderr)
        return 1

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    output_base = Path(args.output) if args.output else input_path.with_suffix("")

    start_time = time.time()

    try:
        converter = StlConverter(**converter_kwargs(args))

        logger.info("Loading: %s", input_path)
        converter.load_stl(input_path)

        converter.voxelize()

        if args.stats:
            print_stats(converter.get_stats())

        for path in converter.export_all(output_base, args.format):
            logger.info("Exported: %s", path)

        logger.info("Completed in %.2fs", time.time() - start_time)
        return 0

    except (VoxelizationError, DegenerateTriangleSkipped, NonManifoldWarning,
            ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Conversion failed", exc_info=True)
        return 1


def process_batch(args) -> int:
    """Process a directory of meshes."""
    batch_dir = Path(args.batch)
    if not batch_dir.is_dir():
        print(f"Error: Batch directory not found: {batch_dir}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else batch_dir / "output"

    start_time = time.time()

    try:
        processor = BatchProcessor(**converter_kwargs(args))
        outputs = processor.process_directory(
            batch_dir,
            output_dir,
            pattern=args.pattern,
            formats=args.format
        )

        elapsed = time.time() - start_time
        print(f"Processed {len(outputs)} files in {elapsed:.2f}s")
        print(f"Output directory: {output_dir}")
        return 0

    except (VoxelizationError, DegenerateTriangleSkipped, NonManifoldWarning,
            ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Batch failed", exc_info=True)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    with warnings.catch_warnings():
        configure_warnings(args.strict)
        if args.batch:
            return process_batch(args)
        return process_single(args)


if __name__ == "__main__":
    sys.exit(main())
