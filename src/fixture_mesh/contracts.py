"""Contracts for the fixture mesh processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from fixture_mesh.errors import MeshValidationError

Vec3 = Tuple[float, float, float]

# Triangle count above which decimation is recommended.
DECIMATION_THRESHOLD = 50_000
DECIMATION_TARGET = 50_000
# The coarse pass reduces very large meshes to this level first.
COARSE_TARGET = 500_000

MIN_TRIANGLE_AREA_SQ = 1e-12
MAX_SMOOTHING_VERTICES = 1_000_000
POSITION_PRECISION = 6


@dataclass(frozen=True, eq=False)
class Mesh:
    """Position/normal/index buffers exchanged with the viewer and importer.

    Without ``indices`` the mesh is a triangle soup and every three
    consecutive positions form one triangle.
    """

    positions: np.ndarray
    normals: Optional[np.ndarray] = None
    indices: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        positions = np.asarray(self.positions, dtype=np.float32)
        if positions.size % 3 != 0:
            raise MeshValidationError(
                f"Position buffer length {positions.size} is not a multiple of 3"
            )
        positions = positions.reshape(-1, 3)
        object.__setattr__(self, "positions", positions)

        if self.normals is not None:
            normals = np.asarray(self.normals, dtype=np.float32).reshape(-1, 3)
            if len(normals) != len(positions):
                raise MeshValidationError(
                    f"Normal buffer has {len(normals)} entries for {len(positions)} vertices"
                )
            object.__setattr__(self, "normals", normals)

        if self.indices is None:
            if len(positions) % 3 != 0:
                raise MeshValidationError(
                    f"Non-indexed mesh has {len(positions)} vertices, not a multiple of 3"
                )
            return

        indices = np.asarray(self.indices)
        if indices.size % 3 != 0:
            raise MeshValidationError(
                f"Index buffer length {indices.size} is not a multiple of 3"
            )
        indices = indices.astype(np.int64).reshape(-1, 3)
        if len(indices) and (indices.min() < 0 or indices.max() >= len(positions)):
            raise MeshValidationError("Index buffer references a missing vertex")
        object.__setattr__(self, "indices", indices.astype(np.uint32))

    @classmethod
    def from_triangles(cls, corners: np.ndarray) -> "Mesh":
        """Build a triangle soup from a ``(T, 3, 3)`` array of corners."""
        return cls(positions=np.asarray(corners, dtype=np.float32).reshape(-1, 3))

    @classmethod
    def from_arrays(
        cls,
        positions: np.ndarray,
        faces: Optional[np.ndarray] = None,
        normals: Optional[np.ndarray] = None,
    ) -> "Mesh":
        """Build a mesh from flat or ``(N, 3)`` buffers, copying them."""
        positions = np.array(positions, dtype=np.float32, copy=True)
        if normals is not None:
            normals = np.array(normals, dtype=np.float32, copy=True)
        if faces is not None:
            faces = np.array(faces, copy=True)
        return cls(positions=positions, normals=normals, indices=faces)

    @property
    def is_indexed(self) -> bool:
        return self.indices is not None

    @property
    def vertex_count(self) -> int:
        return int(len(self.positions))

    @property
    def triangle_count(self) -> int:
        if self.indices is not None:
            return int(len(self.indices))
        return int(len(self.positions) // 3)

    @property
    def faces(self) -> np.ndarray:
        """``(T, 3)`` vertex slots of every triangle."""
        if self.indices is not None:
            return self.indices.astype(np.int64)
        return np.arange(len(self.positions), dtype=np.int64).reshape(-1, 3)

    def corners(self) -> np.ndarray:
        """``(T, 3, 3)`` float64 corner coordinates."""
        return self.positions.astype(np.float64)[self.faces]

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        if len(self.positions) == 0:
            zero = np.zeros(3, dtype=np.float64)
            return zero, zero.copy()
        pts = self.positions.astype(np.float64)
        return pts.min(axis=0), pts.max(axis=0)


class VertexSurfaceType(Enum):
    """Per-vertex role in a heightmap-derived mesh."""

    TOP = "top"
    BOTTOM = "bottom"
    WALL = "wall"


@dataclass(frozen=True)
class BoundingBox:
    min: Vec3
    max: Vec3
    size: Vec3


@dataclass(frozen=True)
class AnalysisResult:
    """Snapshot of a mesh's topology diagnostics."""

    is_manifold: bool
    triangle_count: int
    vertex_count: int
    has_non_manifold_edges: bool
    non_manifold_edge_count: int
    has_degenerate_faces: bool
    degenerate_face_count: int
    boundary_edge_count: int
    bounding_box: BoundingBox
    issues: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_manifold": self.is_manifold,
            "triangle_count": self.triangle_count,
            "vertex_count": self.vertex_count,
            "has_non_manifold_edges": self.has_non_manifold_edges,
            "non_manifold_edge_count": self.non_manifold_edge_count,
            "has_degenerate_faces": self.has_degenerate_faces,
            "degenerate_face_count": self.degenerate_face_count,
            "boundary_edge_count": self.boundary_edge_count,
            "bounding_box": {
                "min": list(self.bounding_box.min),
                "max": list(self.bounding_box.max),
                "size": list(self.bounding_box.size),
            },
            "issues": list(self.issues),
        }


@dataclass
class RepairResult:
    success: bool
    geometry: Optional[Mesh]
    triangle_count: int
    actions: List[str] = field(default_factory=list)
    removed_triangles: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "triangle_count": self.triangle_count,
            "removed_triangles": self.removed_triangles,
            "actions": list(self.actions),
            "error": self.error,
        }


@dataclass
class CleanupOptions:
    """Thresholds for filtering CSG output components."""

    min_volume: float = 5.0  # mm^3
    min_triangles: int = 10
    min_triangle_area: float = 1e-4  # mm^2
    vertex_merge_tolerance: float = 1e-3  # mm
    keep_largest_n: int = 0  # 0 keeps every component that passes
    min_thickness: float = 2.0  # mm, smallest bounding-box dimension


@dataclass
class CleanupResult:
    success: bool
    geometry: Optional[Mesh]
    original_triangles: int = 0
    final_triangles: int = 0
    components_found: int = 0
    components_removed: int = 0
    degenerate_triangles_removed: int = 0
    actions: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def components_kept(self) -> int:
        return self.components_found - self.components_removed

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "original_triangles": self.original_triangles,
            "final_triangles": self.final_triangles,
            "components_found": self.components_found,
            "components_removed": self.components_removed,
            "degenerate_triangles_removed": self.degenerate_triangles_removed,
            "actions": list(self.actions),
            "error": self.error,
        }


@dataclass
class DecimationOptions:
    target_triangles: int = DECIMATION_TARGET
    coarse_threshold: int = COARSE_TARGET
    weld_tolerance: float = 1e-4
    min_ratio: float = 0.01
    max_ratio: float = 0.99


@dataclass
class StageOutcome:
    """One attempted decimation strategy."""

    name: str
    status: str  # "ok" | "failed" | "skipped"
    triangles: int = 0
    message: str = ""


@dataclass
class DecimationResult:
    success: bool
    geometry: Optional[Mesh]
    original_triangles: int
    final_triangles: int
    reduction_percent: float
    stages: List[StageOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "original_triangles": self.original_triangles,
            "final_triangles": self.final_triangles,
            "reduction_percent": self.reduction_percent,
            "stages": [
                {
                    "name": s.name,
                    "status": s.status,
                    "triangles": s.triangles,
                    "message": s.message,
                }
                for s in self.stages
            ],
            "error": self.error,
        }


@dataclass
class SmoothingOptions:
    """Blended Taubin/Laplacian smoothing controls.

    ``strength`` 0 is pure Taubin (volume-preserving, weak), 1 is pure
    Laplacian (strong, shrinks). ``quality`` switches uniform neighbour
    weights to clamped cotangent weights.
    """

    iterations: int = 1
    strength: float = 0.0
    quality: bool = False
    height_axis: int = 1
    heightmap_aware: bool = True


@dataclass
class SmoothingResult:
    success: bool
    geometry: Optional[Mesh]
    iterations: int
    method: str = "blended"
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "iterations": self.iterations,
            "method": self.method,
            "error": self.error,
        }


@dataclass
class ContourSmoothingOptions:
    """Chaikin corner cutting for stair-stepped walls."""

    iterations: int = 3
    level_tolerance: float = 1e-3
    height_axis: int = 1


@dataclass
class ContourSmoothingResult:
    success: bool
    geometry: Optional[Mesh]
    iterations: int
    boundary_vertices_smoothed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "iterations": self.iterations,
            "boundary_vertices_smoothed": self.boundary_vertices_smoothed,
            "error": self.error,
        }
