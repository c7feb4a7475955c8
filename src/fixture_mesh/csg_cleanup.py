"""
Post-CSG artifact cleanup by connected-component filtering.

Boolean operations leave behind slivers and tiny floating fragments. This
module welds coincident corners at a coarse tolerance, groups triangles into
connected components with a union-find, and drops components that are too
small, too thin, or have too few triangles.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import logging
import numpy as np

from fixture_mesh.contracts import CleanupOptions, CleanupResult, Mesh
from fixture_mesh.errors import MeshValidationError
from fixture_mesh.geometry import (
    corner_bounds,
    signed_volume,
    soup_from_corners,
    squared_areas,
)
from fixture_mesh.progress import ProgressCallback, emit

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets with path compression and union by rank."""

    def __init__(self, size: int):
        self.parent: List[int] = list(range(size))
        self.rank: List[int] = [0] * size

    def find(self, x: int) -> int:
        parent = self.parent
        root = x
        while parent[root] != root:
            root = parent[root]
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    def union(self, x: int, y: int) -> None:
        px = self.find(x)
        py = self.find(y)
        if px == py:
            return
        if self.rank[px] < self.rank[py]:
            self.parent[px] = py
        elif self.rank[px] > self.rank[py]:
            self.parent[py] = px
        else:
            self.parent[py] = px
            self.rank[px] += 1


@dataclass
class Component:
    """One connected set of triangles and its size metrics."""

    triangles: np.ndarray
    volume: float
    dimensions: np.ndarray

    @property
    def triangle_count(self) -> int:
        return int(len(self.triangles))

    @property
    def min_dimension(self) -> float:
        return float(np.min(self.dimensions))


def quantized_vertex_ids(corners: np.ndarray, tolerance: float) -> np.ndarray:
    """``(T, 3)`` canonical vertex id per corner, merging points within *tolerance*."""
    if tolerance <= 0.0:
        raise MeshValidationError(
            f"vertex_merge_tolerance must be positive, got {tolerance}"
        )
    pts = np.asarray(corners, dtype=np.float64).reshape(-1, 3)
    if len(pts) == 0:
        return np.zeros((0, 3), dtype=np.int64)
    keys = np.round(pts * (1.0 / tolerance)).astype(np.int64)
    _, inverse = np.unique(keys, axis=0, return_inverse=True)
    return inverse.reshape(-1, 3)


def find_components(corners: np.ndarray, tolerance: float) -> List[np.ndarray]:
    """Triangle index arrays of each connected component.

    Triangles sharing a quantized vertex are connected. Components are
    returned in order of their lowest triangle index, and each array is
    sorted ascending.
    """
    triangle_count = len(corners)
    if triangle_count == 0:
        return []

    vertex_ids = quantized_vertex_ids(corners, tolerance)
    tri_ids = np.repeat(np.arange(triangle_count, dtype=np.int64), 3)
    flat_vertices = vertex_ids.reshape(-1)

    # Union every triangle touching a vertex with the first triangle there.
    order = np.lexsort((tri_ids, flat_vertices))
    sorted_vertices = flat_vertices[order]
    sorted_tris = tri_ids[order]
    starts = np.r_[0, np.flatnonzero(np.diff(sorted_vertices)) + 1]
    first_tri = np.repeat(sorted_tris[starts], np.diff(np.r_[starts, len(sorted_tris)]))

    linked = first_tri != sorted_tris
    uf = UnionFind(triangle_count)
    for a, b in zip(first_tri[linked].tolist(), sorted_tris[linked].tolist()):
        uf.union(a, b)

    groups: Dict[int, List[int]] = {}
    for t in range(triangle_count):
        groups.setdefault(uf.find(t), []).append(t)
    return [np.asarray(tris, dtype=np.int64) for tris in groups.values()]


def measure_component(corners: np.ndarray, triangles: np.ndarray) -> Component:
    comp_corners = corners[triangles]
    lo, hi = corner_bounds(comp_corners)
    return Component(
        triangles=triangles,
        volume=abs(signed_volume(comp_corners)),
        dimensions=hi - lo,
    )


def cleanup_csg(
    mesh: Mesh,
    options: Optional[CleanupOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> CleanupResult:
    """Remove degenerate triangles, slivers and small fragments from CSG output.

    A component survives when its volume, triangle count and smallest
    bounding-box dimension all reach the configured minimums. Volume is the
    divergence-theorem magnitude, exact only for closed components. A mesh
    with a single component is returned with its triangles untouched apart
    from the degenerate ones. On failure the input mesh is handed back
    with ``success=False``.
    """
    if options is None:
        options = CleanupOptions()

    try:
        emit(on_progress, "repairing", 0, "Starting CSG cleanup...")
        actions: List[str] = []
        corners = mesh.corners()
        triangle_count = len(corners)

        emit(on_progress, "repairing", 10, "Removing degenerate triangles...")
        min_area = float(options.min_triangle_area)
        valid = squared_areas(corners) >= min_area * min_area
        degenerate_count = int(triangle_count - np.count_nonzero(valid))
        if degenerate_count > 0:
            actions.append(f"Removed {degenerate_count} degenerate triangles")
        work = corners[valid]

        emit(on_progress, "repairing", 30, "Finding connected components...")
        component_tris = find_components(work, options.vertex_merge_tolerance)
        actions.append(f"Found {len(component_tris)} connected components")

        if len(component_tris) <= 1:
            emit(on_progress, "repairing", 100, "CSG cleanup complete")
            return CleanupResult(
                success=True,
                geometry=soup_from_corners(work),
                original_triangles=triangle_count,
                final_triangles=int(len(work)),
                components_found=len(component_tris),
                components_removed=0,
                degenerate_triangles_removed=degenerate_count,
                actions=actions,
            )

        emit(on_progress, "repairing", 50, "Analyzing component volumes and thickness...")
        components = [measure_component(work, tris) for tris in component_tris]
        components.sort(key=lambda c: c.volume, reverse=True)

        emit(on_progress, "repairing", 70, "Filtering small and thin components...")
        large_enough = [
            c for c in components
            if c.volume >= options.min_volume and c.triangle_count >= options.min_triangles
        ]
        kept = [c for c in large_enough if c.min_dimension >= options.min_thickness]
        thin = [c for c in large_enough if c.min_dimension < options.min_thickness]
        if thin:
            actions.append(
                f"Removed {len(thin)} thin slivers (thickness < {options.min_thickness}mm)"
            )
            for c in thin:
                logger.debug(
                    "Removing thin sliver: thickness=%.3fmm dims=(%.2f, %.2f, %.2f)mm volume=%.2fmm^3",
                    c.min_dimension, *c.dimensions, c.volume,
                )

        if options.keep_largest_n > 0 and len(kept) > options.keep_largest_n:
            kept = kept[: options.keep_largest_n]

        kept_ids = {id(c) for c in kept}
        removed = [c for c in components if id(c) not in kept_ids]
        if removed:
            removed_volume = sum(c.volume for c in removed)
            actions.append(
                f"Removed {len(removed)} small components "
                f"(total volume: {removed_volume:.2f} mm³)"
            )
            for c in removed:
                logger.debug(
                    "Removed component: volume=%.3fmm^3 triangles=%d thickness=%.3fmm",
                    c.volume, c.triangle_count, c.min_dimension,
                )

        emit(on_progress, "repairing", 75, "Rebuilding geometry...")
        if kept:
            keep_tris = np.sort(np.concatenate([c.triangles for c in kept]))
        else:
            keep_tris = np.zeros(0, dtype=np.int64)

        emit(on_progress, "repairing", 90, "Building final geometry...")
        cleaned = soup_from_corners(work[keep_tris])

        emit(on_progress, "repairing", 100, "CSG cleanup complete")
        logger.info(
            "CSG cleanup: %d components, removed %d, %d -> %d triangles",
            len(components), len(removed), triangle_count, cleaned.triangle_count,
        )
        return CleanupResult(
            success=True,
            geometry=cleaned,
            original_triangles=triangle_count,
            final_triangles=cleaned.triangle_count,
            components_found=len(components),
            components_removed=len(removed),
            degenerate_triangles_removed=degenerate_count,
            actions=actions,
        )
    except Exception as exc:
        logger.warning("CSG cleanup failed, keeping input geometry: %s", exc)
        return CleanupResult(
            success=False,
            geometry=mesh,
            original_triangles=mesh.triangle_count,
            final_triangles=mesh.triangle_count,
            error=str(exc),
        )
