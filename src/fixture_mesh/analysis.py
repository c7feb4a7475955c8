"""Read-only topology diagnostics for meshes."""

from typing import List, Optional, Tuple

import logging
import numpy as np

from fixture_mesh.contracts import (
    DECIMATION_THRESHOLD,
    MIN_TRIANGLE_AREA_SQ,
    AnalysisResult,
    BoundingBox,
    Mesh,
)
from fixture_mesh.geometry import squared_areas
from fixture_mesh.progress import ProgressCallback, emit

logger = logging.getLogger(__name__)


def degenerate_mask(mesh: Mesh, epsilon: float = MIN_TRIANGLE_AREA_SQ) -> np.ndarray:
    """True for triangles whose squared cross-product length is below *epsilon*."""
    return squared_areas(mesh.corners()) < epsilon


def edge_usage(faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Unique undirected edges ``(min, max)`` and how many triangles use each."""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return np.zeros((0, 2), dtype=np.int64), np.zeros(0, dtype=np.int64)
    edges = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    edges = np.sort(edges, axis=1)
    unique_edges, counts = np.unique(edges, axis=0, return_counts=True)
    return unique_edges, counts


def analyze(
    mesh: Mesh,
    epsilon: float = MIN_TRIANGLE_AREA_SQ,
    on_progress: Optional[ProgressCallback] = None,
) -> AnalysisResult:
    """Count degenerate faces and classify edges.

    Edges are keyed on vertex slots, so a triangle soup reports every edge
    as a boundary edge; weld it first to analyse its real topology.
    """
    emit(on_progress, "analyzing", 0, "Starting mesh analysis...")

    triangle_count = mesh.triangle_count
    vertex_count = mesh.vertex_count
    issues: List[str] = []

    emit(on_progress, "analyzing", 10, "Checking for degenerate triangles...")
    degenerate_count = int(np.count_nonzero(degenerate_mask(mesh, epsilon)))
    if degenerate_count > 0:
        issues.append(f"Found {degenerate_count} degenerate (zero-area) triangles")

    emit(on_progress, "analyzing", 30, "Analyzing edge topology...")
    _, counts = edge_usage(mesh.faces)
    boundary_edges = int(np.count_nonzero(counts == 1))
    non_manifold_edges = int(np.count_nonzero(counts > 2))

    emit(on_progress, "analyzing", 60, "Computing bounding box...")
    lo, hi = mesh.bounds()
    size = hi - lo
    bounding_box = BoundingBox(
        min=tuple(float(v) for v in lo),
        max=tuple(float(v) for v in hi),
        size=tuple(float(v) for v in size),
    )

    if non_manifold_edges > 0:
        issues.append(f"Found {non_manifold_edges} non-manifold edges")
    if boundary_edges > 0:
        issues.append(f"Found {boundary_edges} boundary edges (mesh has holes)")
    if triangle_count > DECIMATION_THRESHOLD:
        issues.append(
            f"High triangle count ({triangle_count:,}) may impact performance"
        )

    is_manifold = non_manifold_edges == 0 and boundary_edges == 0 and degenerate_count == 0

    emit(on_progress, "analyzing", 100, "Analysis complete")
    logger.info(
        "Analysis: %d triangles, %d vertices, %d boundary / %d non-manifold edges, "
        "%d degenerate",
        triangle_count, vertex_count, boundary_edges, non_manifold_edges, degenerate_count,
    )

    return AnalysisResult(
        is_manifold=is_manifold,
        triangle_count=triangle_count,
        vertex_count=vertex_count,
        has_non_manifold_edges=non_manifold_edges > 0,
        non_manifold_edge_count=non_manifold_edges,
        has_degenerate_faces=degenerate_count > 0,
        degenerate_face_count=degenerate_count,
        boundary_edge_count=boundary_edges,
        bounding_box=bounding_box,
        issues=tuple(issues),
    )
