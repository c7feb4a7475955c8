"""
Triangle-count reduction strategies behind one ``Simplifier`` interface.

Strategies are tried in order by the decimation driver:
1. ``MeshLabCoarseSimplifier`` brings very large meshes down to a working size.
2. ``QuadricSimplifier`` runs quadric-error edge collapse to the target.
3. ``ManifoldSimplifier`` is a robust second attempt through manifold3d.
4. ``VertexClusteringSimplifier`` snaps vertices to a grid and always terminates.

Every strategy takes a ``Mesh`` and returns a new indexed ``Mesh``. Failures
inside a native library surface as ``ExternalToolFailure``.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import logging
import numpy as np
import trimesh

from fixture_mesh.contracts import DecimationOptions, Mesh
from fixture_mesh.errors import ExternalToolFailure
from fixture_mesh.geometry import average_dimension, indexed_mesh, weld

logger = logging.getLogger(__name__)

StepReporter = Callable[[float, str], None]


def _silent(percent: float, message: str) -> None:
    return None


class Simplifier(ABC):
    """Reduce a mesh to roughly ``target_triangles`` triangles."""

    name: str = "simplifier"

    def __init__(self, options: Optional[DecimationOptions] = None):
        self.options = options or DecimationOptions()

    @abstractmethod
    def simplify(
        self,
        mesh: Mesh,
        target_triangles: int,
        report: StepReporter = _silent,
    ) -> Mesh:
        """Return the reduced mesh or raise ``ExternalToolFailure``."""
        ...

    def _welded(self, mesh: Mesh) -> Mesh:
        """Edge-collapse needs shared vertices; weld triangle soup first."""
        if mesh.is_indexed:
            return mesh
        return weld(mesh, self.options.weld_tolerance)

    def _check_output(self, result: Mesh) -> Mesh:
        if result.triangle_count == 0:
            raise ExternalToolFailure(self.name, "returned no geometry")
        return result


class MeshLabCoarseSimplifier(Simplifier):
    """Fast boundary-preserving quadric collapse via pymeshlab."""

    name = "meshlab_coarse"

    def simplify(self, mesh, target_triangles, report=_silent):
        try:
            import pymeshlab
        except ImportError as exc:
            raise ExternalToolFailure(self.name, f"pymeshlab unavailable: {exc}")

        welded = self._welded(mesh)
        report(10, f"Coarse pass: {welded.triangle_count:,} -> {target_triangles:,} triangles...")
        try:
            ms = pymeshlab.MeshSet()
            ms.add_mesh(
                pymeshlab.Mesh(
                    vertex_matrix=welded.positions.astype(np.float64),
                    face_matrix=welded.faces.astype(np.int32),
                )
            )
            ms.meshing_decimation_quadric_edge_collapse(
                targetfacenum=int(target_triangles),
                preserveboundary=True,
                preservetopology=False,
                qualitythr=0.5,
                planarquadric=True,
            )
            out = ms.current_mesh()
            vertices = np.asarray(out.vertex_matrix(), dtype=np.float64)
            faces = np.asarray(out.face_matrix(), dtype=np.int64)
        except Exception as exc:
            raise ExternalToolFailure(self.name, str(exc))

        report(100, f"Coarse pass complete: {len(faces):,} triangles")
        return self._check_output(indexed_mesh(vertices, faces))


class QuadricSimplifier(Simplifier):
    """Quadric-error-metric decimation through trimesh (fast_simplification backend)."""

    name = "quadric"

    def simplify(self, mesh, target_triangles, report=_silent):
        welded = self._welded(mesh)
        current = welded.triangle_count
        ratio = float(
            np.clip(target_triangles / max(current, 1), self.options.min_ratio, self.options.max_ratio)
        )
        face_count = max(1, int(round(current * ratio)))

        report(10, f"Quadric: {current:,} -> {face_count:,} triangles...")
        tm = trimesh.Trimesh(
            vertices=welded.positions.astype(np.float64),
            faces=welded.faces,
            process=False,
        )
        try:
            simplified = tm.simplify_quadric_decimation(face_count=face_count)
        except ImportError as exc:
            # fast_simplification not installed
            raise ExternalToolFailure(self.name, f"backend unavailable: {exc}")
        except Exception as exc:
            raise ExternalToolFailure(self.name, str(exc))

        if simplified is None:
            raise ExternalToolFailure(self.name, "returned no geometry")
        report(100, f"Quadric complete: {len(simplified.faces):,} triangles")
        return self._check_output(indexed_mesh(simplified.vertices, simplified.faces))


class ManifoldSimplifier(Simplifier):
    """Tolerance-driven simplification through manifold3d.

    Starts at 0.1% of the largest bounding dimension and doubles the
    tolerance until the target is met, for at most ten rounds and never
    past 10% of that dimension.
    """

    name = "manifold"
    max_rounds = 10

    def simplify(self, mesh, target_triangles, report=_silent):
        try:
            import manifold3d as m3d
        except ImportError as exc:
            raise ExternalToolFailure(self.name, f"manifold3d unavailable: {exc}")

        welded = self._welded(mesh)
        report(10, "Converting geometry...")
        try:
            manifold = m3d.Manifold(
                m3d.Mesh(
                    vert_properties=welded.positions.astype(np.float32),
                    tri_verts=welded.faces.astype(np.uint32),
                )
            )
        except Exception as exc:
            raise ExternalToolFailure(self.name, str(exc))

        if manifold.is_empty():
            raise ExternalToolFailure(
                self.name, "mesh could not be converted to a valid manifold"
            )

        report(40, "Computing simplification tolerance...")
        lo, hi = welded.bounds()
        max_dim = float(np.max(hi - lo))
        tolerance = max_dim * 0.001
        max_tolerance = max_dim * 0.1

        simplified = manifold
        current = int(manifold.num_tri())
        rounds = 0
        try:
            while current > target_triangles and tolerance < max_tolerance and rounds < self.max_rounds:
                simplified = simplified.simplify(tolerance)
                current = int(simplified.num_tri())
                tolerance *= 2.0
                rounds += 1
                report(
                    50 + min(40.0, rounds / self.max_rounds * 40.0),
                    f"Simplifying... {current:,} triangles",
                )
            out = simplified.to_mesh()
            vertices = np.asarray(out.vert_properties, dtype=np.float64)[:, :3]
            faces = np.asarray(out.tri_verts, dtype=np.int64)
        except Exception as exc:
            raise ExternalToolFailure(self.name, str(exc))

        report(100, "Manifold simplification complete")
        return self._check_output(indexed_mesh(vertices, faces))


class VertexClusteringSimplifier(Simplifier):
    """Grid snapping; every vertex moves to the centroid of its cell.

    The cell size is ``avg_dim / (100 / sqrt(current / target))``. A triangle
    is dropped when two of its corners share a cell.
    """

    name = "vertex_clustering"

    def simplify(self, mesh, target_triangles, report=_silent):
        current = mesh.triangle_count
        reduction = float(np.sqrt(current / max(target_triangles, 1)))
        avg_dim = average_dimension(mesh)
        cell_size = avg_dim / (100.0 / reduction) if reduction > 0 else 0.0
        if not np.isfinite(cell_size) or cell_size <= 0.0:
            logger.debug("Vertex clustering skipped: zero-size bounding box")
            return indexed_mesh(mesh.positions, mesh.faces)

        report(10, f"Clustering vertices (cell size {cell_size:.4g})...")
        return _cluster_vertices(mesh, cell_size)


def _cluster_vertices(mesh: Mesh, cell_size: float) -> Mesh:
    """Snap vertices into cubic cells of *cell_size* and rebuild faces."""
    pts = mesh.positions.astype(np.float64)
    lo, _ = mesh.bounds()
    key = np.floor((pts - lo) / cell_size).astype(np.int64)
    _, first, inverse = np.unique(key, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)

    # Cells numbered by first appearance for deterministic output order.
    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    cell_of = rank[inverse]

    cell_count = len(first)
    counts = np.bincount(cell_of, minlength=cell_count).astype(np.float64)
    centroids = np.zeros((cell_count, 3), dtype=np.float64)
    for axis in range(3):
        centroids[:, axis] = np.bincount(cell_of, weights=pts[:, axis], minlength=cell_count) / counts

    new_faces = cell_of[mesh.faces]
    keep = (
        (new_faces[:, 0] != new_faces[:, 1])
        & (new_faces[:, 1] != new_faces[:, 2])
        & (new_faces[:, 0] != new_faces[:, 2])
    )
    new_faces = new_faces[keep]

    # Drop cells no surviving triangle references.
    used = np.unique(new_faces.reshape(-1))
    remap = np.full(cell_count, -1, dtype=np.int64)
    remap[used] = np.arange(len(used))
    return indexed_mesh(centroids[used], remap[new_faces])


def default_strategies(options: Optional[DecimationOptions] = None) -> List[Simplifier]:
    """Primary and fallback reducers in trial order."""
    return [
        QuadricSimplifier(options),
        ManifoldSimplifier(options),
        VertexClusteringSimplifier(options),
    ]
