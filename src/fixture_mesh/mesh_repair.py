"""Degenerate-triangle removal and normal recomputation."""

from typing import List, Optional

import logging
import numpy as np

from fixture_mesh.analysis import degenerate_mask
from fixture_mesh.contracts import MIN_TRIANGLE_AREA_SQ, Mesh, RepairResult
from fixture_mesh.geometry import vertex_normals
from fixture_mesh.progress import ProgressCallback, emit

logger = logging.getLogger(__name__)


def repair(
    mesh: Mesh,
    on_progress: Optional[ProgressCallback] = None,
    epsilon: float = MIN_TRIANGLE_AREA_SQ,
) -> RepairResult:
    """Drop degenerate triangles and rebuild normals.

    The surviving triangles are written out as a triangle soup in their
    original order. Any failure yields ``success=False`` with no geometry.
    """
    try:
        actions: List[str] = []
        emit(on_progress, "repairing", 0, "Starting mesh repair...")

        emit(on_progress, "repairing", 20, "Removing degenerate triangles...")
        keep = ~degenerate_mask(mesh, epsilon)
        faces = mesh.faces[keep]
        removed = int(mesh.triangle_count - len(faces))

        positions = mesh.positions[faces].reshape(-1, 3).copy()
        if removed > 0:
            actions.append(f"Removed {removed} degenerate triangles")

        emit(on_progress, "repairing", 60, "Rebuilding geometry...")
        soup_faces = np.arange(len(positions), dtype=np.int64).reshape(-1, 3)

        emit(on_progress, "repairing", 80, "Computing normals...")
        repaired = Mesh(positions=positions, normals=vertex_normals(positions, soup_faces))
        actions.append("Recomputed vertex normals")

        emit(on_progress, "repairing", 100, "Repair complete")
        logger.info("Repair: removed %d of %d triangles", removed, mesh.triangle_count)
        return RepairResult(
            success=True,
            geometry=repaired,
            triangle_count=repaired.triangle_count,
            actions=actions,
            removed_triangles=removed,
        )
    except Exception as exc:
        logger.warning("Mesh repair failed: %s", exc)
        return RepairResult(
            success=False,
            geometry=None,
            triangle_count=0,
            actions=[],
            error=str(exc),
        )
