"""
Chaikin contour smoothing for stair-stepped walls of heightmap meshes.

Wall vertices are seeded from bottom vertices with a much higher neighbour
and grown upwards through the graph. Wall vertices are then bucketed by
height, each bucket is walked into closed contours, and every contour is
rounded with gentle 7/8 - 1/8 corner cutting in the horizontal plane.
Heights are never touched.
"""

from typing import Dict, List, Optional, Set, Tuple

import logging
import numpy as np

from fixture_mesh.adjacency import AdjacencyGraph, mesh_adjacency
from fixture_mesh.contracts import (
    ContourSmoothingOptions,
    ContourSmoothingResult,
    Mesh,
)
from fixture_mesh.errors import MeshValidationError
from fixture_mesh.geometry import horizontal_axes, soup_from_corners, unweld
from fixture_mesh.progress import ProgressCallback, emit

logger = logging.getLogger(__name__)

MIN_HEIGHT_RANGE = 0.001
SEED_BAND_FRACTION = 0.05
SEED_RISE_FRACTION = 0.10
WALL_STEP_FRACTION = 0.05
MAX_PROPAGATION_ROUNDS = 100

CHAIKIN_NEAR = 0.875
CHAIKIN_FAR = 0.125


def find_wall_groups(heights: np.ndarray, graph: AdjacencyGraph) -> Set[int]:
    """Vertex groups lying on the walls between bottom and top surfaces."""
    walls: Set[int] = set()
    if len(heights) == 0:
        return walls
    min_h = float(heights.min())
    max_h = float(heights.max())
    height_range = max_h - min_h
    if height_range < MIN_HEIGHT_RANGE:
        return walls

    bottom_threshold = min_h + height_range * SEED_BAND_FRACTION
    top_threshold = max_h - height_range * SEED_BAND_FRACTION
    neighbors = [graph.neighbor_groups(g) for g in range(graph.group_count)]

    for g in range(graph.group_count):
        nbrs = neighbors[g]
        if len(nbrs) == 0 or heights[g] > bottom_threshold:
            continue
        if np.any(heights[nbrs] > heights[g] + height_range * SEED_RISE_FRACTION):
            walls.add(g)

    changed = True
    rounds = 0
    while changed and rounds < MAX_PROPAGATION_ROUNDS:
        changed = False
        rounds += 1
        for g in range(graph.group_count):
            if g in walls or heights[g] >= top_threshold:
                continue
            nbrs = neighbors[g]
            if len(nbrs) == 0:
                continue
            touches_wall = any(int(n) in walls for n in nbrs)
            vertical = np.any(np.abs(heights[nbrs] - heights[g]) > height_range * WALL_STEP_FRACTION)
            if touches_wall and vertical:
                walls.add(g)
                changed = True

    logger.debug("Wall detection: %d groups after %d propagation rounds", len(walls), rounds)
    return walls


def extract_contours(
    heights: np.ndarray,
    walls: Set[int],
    graph: AdjacencyGraph,
    tolerance: float,
) -> List[Tuple[float, List[int]]]:
    """Closed walks of wall groups at each height level, as ``(level, groups)``."""
    levels: List[float] = []
    buckets: Dict[float, List[int]] = {}
    for g in sorted(walls):
        h = float(heights[g])
        level = next((lv for lv in levels if abs(lv - h) < tolerance), None)
        if level is None:
            level = h
            levels.append(level)
            buckets[level] = []
        buckets[level].append(g)

    contours: List[Tuple[float, List[int]]] = []
    for level in levels:
        members = buckets[level]
        if len(members) < 3:
            continue
        visited: Set[int] = set()
        for start in members:
            if start in visited:
                continue
            contour: List[int] = []
            current: Optional[int] = start
            while current is not None and current not in visited:
                visited.add(current)
                contour.append(current)
                current = next(
                    (
                        int(n)
                        for n in graph.neighbor_groups(current)
                        if int(n) not in visited
                        and int(n) in walls
                        and abs(float(heights[n]) - level) < tolerance
                    ),
                    None,
                )
            if len(contour) >= 3:
                contours.append((level, contour))
    return contours


def chaikin_closed(points: np.ndarray, iterations: int) -> np.ndarray:
    """Corner-cut a closed 2D polyline, one output point per input point.

    Each input point is mapped to the first generated point that inherits
    from it.
    """
    pts = np.asarray(points, dtype=np.float64)
    origin = np.arange(len(pts))
    for _ in range(iterations):
        nxt = np.roll(pts, -1, axis=0)
        q = CHAIKIN_NEAR * pts + CHAIKIN_FAR * nxt
        r = CHAIKIN_FAR * pts + CHAIKIN_NEAR * nxt
        pts = np.stack([q, r], axis=1).reshape(-1, 2)
        origin = np.stack([origin, np.roll(origin, -1)], axis=1).reshape(-1)
    _, first = np.unique(origin, return_index=True)
    return pts[first]


def contour_smooth(
    mesh: Mesh,
    options: Optional[ContourSmoothingOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ContourSmoothingResult:
    """Round the stair-stepped walls of a heightmap mesh.

    Indexed input is expanded to a triangle soup first and the result is a
    soup. ``boundary_vertices_smoothed`` counts every vertex slot written.
    """
    if options is None:
        options = ContourSmoothingOptions()

    try:
        if options.iterations < 0:
            raise MeshValidationError(f"iterations must be >= 0, got {options.iterations}")
        axis = options.height_axis
        a, b = horizontal_axes(axis)

        emit(on_progress, "smoothing", 0, "Starting boundary smoothing...")
        soup = unweld(mesh)
        positions = soup.positions.copy()

        emit(on_progress, "smoothing", 10, "Building adjacency map...")
        graph = mesh_adjacency(soup)
        group_pos = positions.astype(np.float64)[graph.representative]
        heights = group_pos[:, axis]

        emit(on_progress, "smoothing", 20, "Identifying boundary vertices...")
        walls = find_wall_groups(heights, graph)
        if not walls:
            emit(on_progress, "smoothing", 100, "No boundary vertices found")
            return ContourSmoothingResult(
                success=True,
                geometry=soup_from_corners(positions.reshape(-1, 3, 3)),
                iterations=0,
                boundary_vertices_smoothed=0,
            )

        members = graph.group_members()
        wall_slots = sum(len(members[g]) for g in walls)
        emit(on_progress, "smoothing", 40, f"Found {wall_slots} boundary vertices")

        contours = extract_contours(heights, walls, graph, options.level_tolerance)
        level_count = len({level for level, _ in contours})
        emit(on_progress, "smoothing", 50, f"Extracted {level_count} height-level contours")

        smoothed: Dict[int, np.ndarray] = {}
        for i, (_, contour) in enumerate(contours):
            emit(
                on_progress, "smoothing", 50 + i / len(contours) * 40,
                f"Smoothing contour {i + 1}/{len(contours)}",
            )
            ring = group_pos[contour][:, [a, b]]
            for g, p in zip(contour, chaikin_closed(ring, options.iterations)):
                smoothed[g] = p

        emit(on_progress, "smoothing", 90, "Applying smoothed positions...")
        written = 0
        for g, p in smoothed.items():
            slots = members[g]
            positions[slots, a] = p[0]
            positions[slots, b] = p[1]
            written += len(slots)

        emit(on_progress, "smoothing", 100, "Boundary smoothing complete")
        logger.info(
            "Contour smoothing: %d contours, %d vertices smoothed", len(contours), written
        )
        return ContourSmoothingResult(
            success=True,
            geometry=soup_from_corners(positions.reshape(-1, 3, 3)),
            iterations=options.iterations,
            boundary_vertices_smoothed=written,
        )
    except Exception as exc:
        logger.warning("Contour smoothing failed, keeping input geometry: %s", exc)
        return ContourSmoothingResult(
            success=False,
            geometry=mesh,
            iterations=0,
            error=str(exc),
        )
