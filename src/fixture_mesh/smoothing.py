"""
Vertex-relocation smoothing for voxel and heightmap derived meshes.

One relocation pass moves every vertex group towards the weighted centroid of
its neighbour groups: ``p + f * (centroid - p)``. Iterations combine passes:

- strength 0: Taubin, a shrink pass (lambda 0.5) then an inflate pass (mu -0.53)
- strength 1: a single Laplacian pass (lambda 0.5)
- in between: both are computed from the same start and blended linearly

In heightmap-aware mode vertices are classified as top, bottom or wall.
Bottom vertices never move, the others move only in the horizontal plane,
and neighbours across a vertical step are ignored.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import logging
import numpy as np

from fixture_mesh.adjacency import AdjacencyGraph, mesh_adjacency
from fixture_mesh.contracts import (
    MAX_SMOOTHING_VERTICES,
    Mesh,
    SmoothingOptions,
    SmoothingResult,
    VertexSurfaceType,
)
from fixture_mesh.errors import MeshValidationError, ResourceLimitExceeded
from fixture_mesh.geometry import horizontal_axes, vertex_normals
from fixture_mesh.progress import ProgressCallback, emit

logger = logging.getLogger(__name__)

TAUBIN_LAMBDA = 0.5
TAUBIN_MU = -0.53
LAPLACIAN_LAMBDA = 0.5

COT_WEIGHT_MIN = 0.01
COT_WEIGHT_MAX = 10.0

# Neighbours further apart than this fraction of the height range are not
# averaged together in heightmap mode.
HEIGHT_NEIGHBOR_TOLERANCE = 0.15
# Height difference, as a fraction of the range, that makes a neighbour
# higher or lower when classifying.
HEIGHT_STEP_FRACTION = 0.05
BOTTOM_BAND_FRACTION = 0.01

_SURFACE_CODES = (VertexSurfaceType.TOP, VertexSurfaceType.BOTTOM, VertexSurfaceType.WALL)
_TOP, _BOTTOM, _WALL = 0, 1, 2


def strength_label(strength: float) -> str:
    if strength <= 0.0:
        return "Taubin"
    if strength >= 1.0:
        return "Laplacian"
    return f"{round(strength * 100)}%"


@dataclass
class _Relaxation:
    """Static per-call data for relocation passes over vertex groups."""

    src: np.ndarray
    dst: np.ndarray
    weights: np.ndarray
    movable: np.ndarray
    axes: Tuple[int, ...]
    group_count: int

    def relax(self, positions: np.ndarray, factor: float) -> np.ndarray:
        """One Jacobi pass; groups with no weighted neighbours stay put."""
        out = positions.copy()
        total = np.bincount(self.src, weights=self.weights, minlength=self.group_count)
        active = self.movable & (total != 0.0)
        if not np.any(active):
            return out
        for axis in self.axes:
            acc = np.bincount(
                self.src,
                weights=self.weights * positions[self.dst, axis],
                minlength=self.group_count,
            )
            centroid = acc[active] / total[active]
            current = positions[active, axis]
            out[active, axis] = current + factor * (centroid - current)
        return out

    def iterate(self, positions: np.ndarray, strength: float) -> np.ndarray:
        if strength <= 0.0:
            return self.relax(self.relax(positions, TAUBIN_LAMBDA), TAUBIN_MU)
        if strength >= 1.0:
            return self.relax(positions, LAPLACIAN_LAMBDA)
        taubin = self.relax(self.relax(positions, TAUBIN_LAMBDA), TAUBIN_MU)
        laplacian = self.relax(positions, LAPLACIAN_LAMBDA)
        return (1.0 - strength) * taubin + strength * laplacian


def _group_positions(mesh: Mesh, graph: AdjacencyGraph) -> np.ndarray:
    return mesh.positions.astype(np.float64)[graph.representative]


def _classify_groups(
    heights: np.ndarray,
    graph: AdjacencyGraph,
    min_height: float,
    height_range: float,
) -> np.ndarray:
    """Surface code (top/bottom/wall) of every vertex group."""
    n = graph.group_count
    bottom_threshold = min_height + max(0.001, height_range * BOTTOM_BAND_FRACTION)
    step = HEIGHT_STEP_FRACTION * height_range

    diff = heights[graph.edge_dst] - heights[graph.edge_src]
    is_higher = (diff > step).astype(np.float64)
    is_lower = (diff < -step).astype(np.float64)
    is_same = ((diff <= step) & (diff >= -step)).astype(np.float64)
    higher = np.bincount(graph.edge_src, weights=is_higher, minlength=n) > 0
    lower = np.bincount(graph.edge_src, weights=is_lower, minlength=n) > 0
    same = np.bincount(graph.edge_src, weights=is_same, minlength=n) > 0

    codes = np.full(n, _TOP, dtype=np.int64)
    at_bottom = heights <= bottom_threshold
    codes[at_bottom & higher] = _WALL
    codes[at_bottom & ~higher] = _BOTTOM

    upper = ~at_bottom
    codes[upper & lower & higher] = _WALL
    codes[upper & lower & ~higher & ~same] = _WALL
    return codes


def classify_vertices(mesh: Mesh, height_axis: int = 1) -> np.ndarray:
    """Per-slot ``VertexSurfaceType`` array for a heightmap-derived mesh."""
    horizontal_axes(height_axis)
    graph = mesh_adjacency(mesh)
    if graph.group_count == 0:
        return np.zeros(0, dtype=object)
    heights = _group_positions(mesh, graph)[:, height_axis]
    all_heights = mesh.positions[:, height_axis].astype(np.float64)
    min_h = float(all_heights.min())
    codes = _classify_groups(heights, graph, min_h, float(all_heights.max()) - min_h)
    lookup = np.array(_SURFACE_CODES, dtype=object)
    return lookup[codes[graph.group_of]]


def cotangent_weights(mesh: Mesh, graph: AdjacencyGraph) -> Dict[Tuple[int, int], float]:
    """Clamped cotangent weight of every undirected group edge ``(lo, hi)``.

    Each triangle corner contributes ``cot = (a . b) / |a x b|`` to the edge
    opposite it; triangles with repeated groups are skipped.
    """
    faces = mesh.faces
    groups = graph.group_of[faces]
    ok = (
        (groups[:, 0] != groups[:, 1])
        & (groups[:, 1] != groups[:, 2])
        & (groups[:, 0] != groups[:, 2])
    )
    corners = mesh.positions.astype(np.float64)[faces[ok]]
    groups = groups[ok]
    if len(groups) == 0:
        return {}

    edge_lo, edge_hi, cots = [], [], []
    for corner in range(3):
        a_idx, b_idx = (corner + 1) % 3, (corner + 2) % 3
        a = corners[:, a_idx] - corners[:, corner]
        b = corners[:, b_idx] - corners[:, corner]
        cross_len = np.linalg.norm(np.cross(a, b), axis=1)
        dot = np.einsum("ij,ij->i", a, b)
        cot = np.zeros_like(dot)
        valid = cross_len >= 1e-12
        cot[valid] = dot[valid] / cross_len[valid]
        edge_lo.append(np.minimum(groups[:, a_idx], groups[:, b_idx]))
        edge_hi.append(np.maximum(groups[:, a_idx], groups[:, b_idx]))
        cots.append(cot)

    lo = np.concatenate(edge_lo)
    hi = np.concatenate(edge_hi)
    cot = np.concatenate(cots)
    pairs, inverse = np.unique(np.stack([lo, hi], axis=1), axis=0, return_inverse=True)
    summed = np.bincount(inverse.reshape(-1), weights=cot, minlength=len(pairs))
    summed = np.clip(summed, COT_WEIGHT_MIN, COT_WEIGHT_MAX)
    return {(int(p[0]), int(p[1])): float(w) for p, w in zip(pairs, summed)}


def _edge_weights(
    mesh: Mesh,
    graph: AdjacencyGraph,
    src: np.ndarray,
    dst: np.ndarray,
    quality: bool,
) -> np.ndarray:
    if not quality or len(src) == 0:
        return np.ones(len(src), dtype=np.float64)
    table = cotangent_weights(mesh, graph)
    lo = np.minimum(src, dst)
    hi = np.maximum(src, dst)
    return np.array(
        [table.get((int(a), int(b)), 1.0) for a, b in zip(lo, hi)],
        dtype=np.float64,
    )


def _build_relaxation(
    mesh: Mesh,
    graph: AdjacencyGraph,
    positions: np.ndarray,
    options: SmoothingOptions,
    on_progress: Optional[ProgressCallback],
) -> _Relaxation:
    n = graph.group_count
    src, dst = graph.edge_src, graph.edge_dst

    if options.heightmap_aware:
        axis = options.height_axis
        horizontal = horizontal_axes(axis)
        all_heights = mesh.positions[:, axis].astype(np.float64)
        min_h = float(all_heights.min())
        height_range = float(all_heights.max()) - min_h
        heights = positions[:, axis]

        emit(on_progress, "smoothing", 15, "Classifying vertices...")
        codes = _classify_groups(heights, graph, min_h, height_range)
        movable = codes != _BOTTOM

        tolerance = max(0.001, height_range * HEIGHT_NEIGHBOR_TOLERANCE)
        keep = (codes[dst] != _BOTTOM) & (np.abs(heights[dst] - heights[src]) <= tolerance)
        src, dst = src[keep], dst[keep]
        axes: Tuple[int, ...] = horizontal
        logger.debug(
            "Classified %d groups: %d top, %d bottom, %d wall",
            n,
            int(np.count_nonzero(codes == _TOP)),
            int(np.count_nonzero(codes == _BOTTOM)),
            int(np.count_nonzero(codes == _WALL)),
        )
    else:
        movable = np.ones(n, dtype=bool)
        axes = (0, 1, 2)

    emit(on_progress, "smoothing", 20, "Computing neighbour weights...")
    weights = _edge_weights(mesh, graph, src, dst, options.quality)
    return _Relaxation(src, dst, weights, movable, axes, n)


def smooth(
    mesh: Mesh,
    options: Optional[SmoothingOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> SmoothingResult:
    """Blended Taubin/Laplacian smoothing; topology and winding are kept.

    Meshes above the vertex ceiling are returned unchanged with an
    explanatory error and zero iterations.
    """
    if options is None:
        options = SmoothingOptions()
    strength = float(min(1.0, max(0.0, options.strength)))
    label = strength_label(strength)
    method = "heightmap" if options.heightmap_aware else "blended"

    if mesh.vertex_count > MAX_SMOOTHING_VERTICES:
        error = str(ResourceLimitExceeded(f"Mesh too large ({mesh.vertex_count:,} vertices)"))
        logger.warning("Smoothing skipped: %s", error)
        return SmoothingResult(
            success=True,
            geometry=_rebuild(mesh, mesh.positions.copy()),
            iterations=0,
            method=method,
            error=error,
        )

    try:
        if options.iterations < 0:
            raise MeshValidationError(f"iterations must be >= 0, got {options.iterations}")
        if mesh.vertex_count == 0 or options.iterations == 0:
            return SmoothingResult(
                success=True,
                geometry=_rebuild(mesh, mesh.positions.copy()),
                iterations=0,
                method=method,
            )

        emit(on_progress, "smoothing", 0, f"Starting {label} smoothing...")
        emit(on_progress, "smoothing", 10, "Building adjacency...")
        graph = mesh_adjacency(mesh)
        positions = _group_positions(mesh, graph)
        relaxation = _build_relaxation(mesh, graph, positions, options, on_progress)

        for i in range(options.iterations):
            positions = relaxation.iterate(positions, strength)
            emit(
                on_progress,
                "smoothing",
                20 + 70 * (i + 1) / options.iterations,
                f"{label} iteration {i + 1}/{options.iterations}",
            )

        # Only moved groups are written back; heights and bottom vertices
        # keep their original float32 values.
        out = mesh.positions.copy()
        moved = relaxation.movable[graph.group_of]
        for axis in relaxation.axes:
            out[moved, axis] = positions[graph.group_of[moved], axis]

        emit(on_progress, "smoothing", 100, "Smoothing complete")
        logger.info(
            "Smoothing: %d %s iterations on %d vertices", options.iterations, label, mesh.vertex_count
        )
        return SmoothingResult(
            success=True,
            geometry=_rebuild(mesh, out),
            iterations=options.iterations,
            method=method,
        )
    except Exception as exc:
        logger.warning("Smoothing failed, keeping input geometry: %s", exc)
        return SmoothingResult(
            success=False,
            geometry=mesh,
            iterations=0,
            method=method,
            error=str(exc),
        )


def _rebuild(mesh: Mesh, positions: np.ndarray) -> Mesh:
    indices = None if mesh.indices is None else mesh.indices.copy()
    return Mesh(
        positions=positions,
        normals=vertex_normals(positions, mesh.faces),
        indices=indices,
    )
