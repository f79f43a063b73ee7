"""
Error and Warning Taxonomy

Fatal conditions are exceptions and abort the pipeline before any later
stage runs. Recoverable conditions are warning categories: the engine
counts them on the result and issues one warning per category per
conversion, so callers decide with the standard warnings filters whether
to ignore, log or escalate them.
"""


class VoxelizationError(Exception):
    """Base class for fatal voxelization errors."""


class InvalidMesh(VoxelizationError, ValueError):
    """Empty triangle sequence, malformed arrays, or only degenerate triangles."""


class InvalidResolution(VoxelizationError, ValueError):
    """Non-positive, non-finite or over-budget grid resolution."""


class ClassificationError(VoxelizationError, RuntimeError):
    """No surface voxels exist after rasterization."""


class DegenerateTriangleSkipped(UserWarning):
    """One or more zero-area triangles were skipped during rasterization."""


class NonManifoldWarning(UserWarning):
    """Scan lines ended with inconsistent inside/outside parity."""
