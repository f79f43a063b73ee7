"""
Interior Classifier (parity / crossing method)

Fills enclosed voxels of a surface-marked grid.

Algorithm Overview:
1. For each axis family, intersect every triangle with the lines through
   voxel centers parallel to that axis. Each hit is a crossing event with a
   position along the line and a direction: +1 entering the solid (outward
   normal against the scan direction), -1 exiting.
2. Sort the events per line and walk them in increasing order. A voxel lies
   inside when it is covered by a closed run, i.e. the running count rose
   from zero and came back to zero further along the line.
3. Each family votes; a non-surface voxel becomes INTERIOR when at least two
   of the three families agree.

Hits on an edge or vertex shared by two triangles are claimed by exactly one
of them: edge functions are exactly antisymmetric and ties go to top-left
edges. Triangles parallel to the scan axis never produce crossings, so an
edge lying along a sampled line cannot flip twice.

A crossing coincident with a voxel center is that voxel's surface marking:
the line does not fill that voxel and the count changes after it.

Lines whose count goes negative or does not return to zero are
inconsistent (open or non-manifold geometry). They are counted, and filled
best effort: by even-odd parity when the number of crossings is even,
otherwise by closed runs only. An unclosed run is never filled.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple
import logging
import time
import numpy as np
from numba import njit, prange

from ._threads import kernel_threads
from .config import DEFAULT_EPSILON_SCALE
from .errors import ClassificationError


logger = logging.getLogger(__name__)

AXIS_NAMES = ("x", "y", "z")

# Families needed to call a voxel inside
VOTE_THRESHOLD = 2


@njit(cache=True)
def _edge_function(
    ax: float, ay: float,
    bx: float, by: float,
    px: float, py: float
) -> float:
    """
    Signed doubled area of (a, b, p), positive when p is left of a -> b.

    Computed from the lexicographically smaller endpoint so that
    edge(b, a, p) == -edge(a, b, p) holds exactly in floating point.
    """
    if ax < bx or (ax == bx and ay <= by):
        return (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    return -((ax - bx) * (py - by) - (ay - by) * (px - bx))


@njit(cache=True)
def _is_top_left(ax: float, ay: float, bx: float, by: float) -> bool:
    """Tie-break owner for counter-clockwise edge a -> b."""
    return ay > by or (ay == by and bx < ax)


@njit(cache=True)
def _covers(w: float, ax: float, ay: float, bx: float, by: float) -> bool:
    return w > 0.0 or (w == 0.0 and _is_top_left(ax, ay, bx, by))


@njit(cache=True)
def _oriented(tri: np.ndarray):
    """
    Projected triangle in counter-clockwise order plus its crossing direction.

    Returns:
        (au, av, aw, bu, bv, bw, cu, cv, cw, direction); direction is 0 when
        the triangle is parallel to the scan axis
    """
    au, av, aw = tri[0, 0], tri[0, 1], tri[0, 2]
    bu, bv, bw = tri[1, 0], tri[1, 1], tri[1, 2]
    cu, cv, cw = tri[2, 0], tri[2, 1], tri[2, 2]

    area = _edge_function(au, av, bu, bv, cu, cv)
    if area == 0.0:
        return au, av, aw, bu, bv, bw, cu, cv, cw, 0
    if area > 0.0:
        # Normal along +scan: leaving the solid
        return au, av, aw, bu, bv, bw, cu, cv, cw, -1
    return au, av, aw, cu, cv, cw, bu, bv, bw, 1


@njit(cache=True, parallel=True)
def _count_crossings(
    triangles: np.ndarray,
    skip: np.ndarray,
    nu: int,
    nv: int,
    counts: np.ndarray
):
    """Number of scan lines each triangle crosses."""
    for t in prange(triangles.shape[0]):
        counts[t] = 0
        if skip[t]:
            continue
        au, av, aw, bu, bv, bw, cu, cv, cw, direction = _oriented(triangles[t])
        if direction == 0:
            continue

        i0 = max(0, int(np.ceil(min(au, min(bu, cu)) - 0.5)))
        i1 = min(nu - 1, int(np.floor(max(au, max(bu, cu)) - 0.5)))
        j0 = max(0, int(np.ceil(min(av, min(bv, cv)) - 0.5)))
        j1 = min(nv - 1, int(np.floor(max(av, max(bv, cv)) - 0.5)))

        n = 0
        for i in range(i0, i1 + 1):
            pu = i + 0.5
            for j in range(j0, j1 + 1):
                pv = j + 0.5
                w0 = _edge_function(bu, bv, cu, cv, pu, pv)
                w1 = _edge_function(cu, cv, au, av, pu, pv)
                w2 = _edge_function(au, av, bu, bv, pu, pv)
                if (_covers(w0, bu, bv, cu, cv) and _covers(w1, cu, cv, au, av)
                        and _covers(w2, au, av, bu, bv)):
                    n += 1
        counts[t] = n


@njit(cache=True, parallel=True)
def _collect_crossings(
    triangles: np.ndarray,
    skip: np.ndarray,
    nu: int,
    nv: int,
    offsets: np.ndarray,
    line_ids: np.ndarray,
    positions: np.ndarray,
    directions: np.ndarray
):
    """Write each triangle's crossing events into its slice of the event arrays."""
    for t in prange(triangles.shape[0]):
        if skip[t]:
            continue
        au, av, aw, bu, bv, bw, cu, cv, cw, direction = _oriented(triangles[t])
        if direction == 0:
            continue

        i0 = max(0, int(np.ceil(min(au, min(bu, cu)) - 0.5)))
        i1 = min(nu - 1, int(np.floor(max(au, max(bu, cu)) - 0.5)))
        j0 = max(0, int(np.ceil(min(av, min(bv, cv)) - 0.5)))
        j1 = min(nv - 1, int(np.floor(max(av, max(bv, cv)) - 0.5)))

        slot = offsets[t]
        for i in range(i0, i1 + 1):
            pu = i + 0.5
            for j in range(j0, j1 + 1):
                pv = j + 0.5
                w0 = _edge_function(bu, bv, cu, cv, pu, pv)
                w1 = _edge_function(cu, cv, au, av, pu, pv)
                w2 = _edge_function(au, av, bu, bv, pu, pv)
                if (_covers(w0, bu, bv, cu, cv) and _covers(w1, cu, cv, au, av)
                        and _covers(w2, au, av, bu, bv)):
                    line_ids[slot] = i * nv + j
                    positions[slot] = (w0 * aw + w1 * bw + w2 * cw) / (w0 + w1 + w2)
                    directions[slot] = direction
                    slot += 1


@njit(cache=True)
def _fill_closed_runs(
    row: np.ndarray,
    positions: np.ndarray,
    directions: np.ndarray,
    start: int,
    end: int,
    tol: float
):
    """Mark voxels covered by runs that open and close on this line."""
    length = row.shape[0]
    depth = 0
    run_start = -1
    q = start
    for k in range(length + 1):
        limit = k + 0.5 - tol if k < length else np.inf
        while q < end and positions[q] < limit:
            before = depth
            depth += directions[q]
            if depth < 0:
                depth = 0
            if before == 0 and depth > 0:
                run_start = k
            elif before > 0 and depth == 0:
                run_start = -1
            q += 1
        if k == length:
            break
        if q < end and positions[q] <= k + 0.5 + tol:
            continue
        if depth > 0:
            row[k] = 1

    # Discard a run that never closed
    if depth > 0 and run_start >= 0:
        for k in range(run_start, length):
            row[k] = 0


@njit(cache=True)
def _fill_even_odd(
    row: np.ndarray,
    positions: np.ndarray,
    start: int,
    end: int,
    tol: float
):
    """Mark voxels behind an odd number of crossings, ignoring direction."""
    parity = 0
    q = start
    for k in range(row.shape[0]):
        while q < end and positions[q] < k + 0.5 - tol:
            parity ^= 1
            q += 1
        if q < end and positions[q] <= k + 0.5 + tol:
            continue
        if parity:
            row[k] = 1


@njit(cache=True, parallel=True)
def _walk_lines(
    starts: np.ndarray,
    positions: np.ndarray,
    directions: np.ndarray,
    tol: float,
    inside: np.ndarray,
    inconsistent: np.ndarray
):
    """
    Walk every scan line independently.

    Args:
        starts: (L + 1,) event offsets per line
        positions: Sorted event positions along the scan axis
        directions: +1 entering, -1 exiting
        tol: Coincidence tolerance in voxel units
        inside: (L, length) uint8 output rows
        inconsistent: (L,) uint8 output, 1 for lines with broken parity
    """
    for line in prange(starts.shape[0] - 1):
        s = starts[line]
        e = starts[line + 1]
        if s == e:
            continue

        depth = 0
        consistent = True
        for q in range(s, e):
            depth += directions[q]
            if depth < 0:
                consistent = False
        if depth != 0:
            consistent = False

        if consistent or (e - s) % 2 == 1:
            _fill_closed_runs(inside[line], positions, directions, s, e, tol)
        else:
            _fill_even_odd(inside[line], positions, s, e, tol)

        if not consistent:
            inconsistent[line] = 1


@dataclass
class ClassificationReport:
    """Outcome of interior classification."""
    interior_voxels: int = 0
    non_manifold_by_axis: Dict[str, int] = field(default_factory=dict)

    @property
    def non_manifold_lines(self) -> int:
        return int(sum(self.non_manifold_by_axis.values()))


class InteriorClassifier:
    """
    Interior fill stage.

    Usage:
        classifier = InteriorClassifier()
        report = classifier.classify(store, geometry, grid)
    """

    def __init__(self, epsilon_scale: float = DEFAULT_EPSILON_SCALE, parallel: bool = True):
        """
        Initialize the classifier.

        Args:
            epsilon_scale: Coincidence tolerance as a fraction of the voxel edge
            parallel: If False, run the kernels on a single thread
        """
        self.epsilon_scale = epsilon_scale
        self.parallel = parallel

    def axis_inside(self, triangles, geometry, axis: int) -> Tuple[np.ndarray, int]:
        """
        Inside mask from the scan lines parallel to one axis.

        Args:
            triangles: TriangleStore
            geometry: GridGeometry
            axis: Scan axis (0 = x, 1 = y, 2 = z)

        Returns:
            Tuple of (inside, inconsistent_lines) where inside is a bool
            array in grid (x, y, z) order
        """
        # Cyclic permutation keeps the frame right-handed
        u, v = (axis + 1) % 3, (axis + 2) % 3
        order = [u, v, axis]
        index_tris = geometry.to_index_space(triangles.vertices)[:, :, order]
        index_tris = np.ascontiguousarray(index_tris)
        nu, nv, length = (geometry.dims[c] for c in order)
        skip = np.ascontiguousarray(triangles.degenerate_mask())
        n_lines = nu * nv

        counts = np.zeros(len(index_tris), dtype=np.int64)
        _count_crossings(index_tris, skip, nu, nv, counts)

        offsets = np.zeros(len(counts), dtype=np.int64)
        np.cumsum(counts[:-1], out=offsets[1:])
        total = int(counts.sum())

        line_ids = np.zeros(total, dtype=np.int64)
        positions = np.zeros(total, dtype=np.float64)
        directions = np.zeros(total, dtype=np.int64)
        _collect_crossings(index_tris, skip, nu, nv, offsets, line_ids, positions, directions)

        # Sort by line, then position; entering before exiting at equal positions
        sort = np.lexsort((-directions, positions, line_ids))
        line_ids = line_ids[sort]
        positions = np.ascontiguousarray(positions[sort])
        directions = np.ascontiguousarray(directions[sort])
        starts = np.searchsorted(line_ids, np.arange(n_lines + 1), side="left").astype(np.int64)

        inside = np.zeros((n_lines, length), dtype=np.uint8)
        inconsistent = np.zeros(n_lines, dtype=np.uint8)
        _walk_lines(starts, positions, directions, float(self.epsilon_scale), inside, inconsistent)

        # (u, v, axis) back to (x, y, z)
        inside = inside.reshape(nu, nv, length).astype(bool)
        inside = np.transpose(inside, np.argsort(order))

        logger.debug(
            "Axis %s: %d crossings over %d lines, %d inconsistent",
            AXIS_NAMES[axis], total, n_lines, int(inconsistent.sum())
        )
        return inside, int(inconsistent.sum())

    def classify(self, triangles, geometry, grid) -> ClassificationReport:
        """
        Mark enclosed empty voxels of ``grid`` as INTERIOR.

        Args:
            triangles: TriangleStore
            geometry: GridGeometry matching the grid
            grid: VoxelGrid with surface voxels marked

        Returns:
            ClassificationReport

        Raises:
            ClassificationError: If the grid holds no surface voxels
        """
        surface = grid.surface
        if not surface.any():
            raise ClassificationError("No surface voxels to classify")

        start = time.perf_counter()
        votes = np.zeros(geometry.dims, dtype=np.uint8)
        report = ClassificationReport()

        with kernel_threads(self.parallel):
            for axis in range(3):
                inside, bad_lines = self.axis_inside(triangles, geometry, axis)
                votes += inside
                report.non_manifold_by_axis[AXIS_NAMES[axis]] = bad_lines

        interior = (votes >= VOTE_THRESHOLD) & ~surface
        grid.mark_interior(interior)
        report.interior_voxels = int(interior.sum())

        if report.non_manifold_lines:
            logger.warning(
                "Inconsistent parity on %d scan lines (%s)",
                report.non_manifold_lines,
                ", ".join(f"{k}={v}" for k, v in report.non_manifold_by_axis.items())
            )
        logger.debug(
            "Classified %d interior voxels in %.3fs",
            report.interior_voxels, time.perf_counter() - start
        )
        return report


def classify(
    triangles,
    geometry,
    grid,
    epsilon_scale: float = DEFAULT_EPSILON_SCALE,
    parallel: bool = True
) -> ClassificationReport:
    """Fill interior voxels with a default InteriorClassifier."""
    return InteriorClassifier(epsilon_scale, parallel=parallel).classify(triangles, geometry, grid)
