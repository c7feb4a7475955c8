"""
Buffer-level geometry helpers shared by the processing stages.

Everything here works on plain numpy arrays or on ``Mesh`` and returns new
arrays; nothing mutates its input.
"""

from typing import Tuple

import numpy as np

from fixture_mesh.contracts import Mesh
from fixture_mesh.errors import MeshValidationError, NumericDegeneracyError


def triangle_cross(corners: np.ndarray) -> np.ndarray:
    """``(v1 - v0) x (v2 - v0)`` for each triangle of a ``(T, 3, 3)`` array."""
    corners = np.asarray(corners, dtype=np.float64)
    if len(corners) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])


def squared_areas(corners: np.ndarray) -> np.ndarray:
    """Squared length of each triangle's edge cross product (4x area squared)."""
    cross = triangle_cross(corners)
    return np.einsum("ij,ij->i", cross, cross)


def vertex_normals(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals accumulated from face normals.

    Vertices not referenced by any face, or whose accumulated normal is
    zero, get a zero normal.
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    normals = np.zeros_like(positions)
    if len(faces):
        cross = triangle_cross(positions[faces])
        for corner in range(3):
            np.add.at(normals, faces[:, corner], cross)
    lengths = np.linalg.norm(normals, axis=1)
    valid = lengths > 0.0
    normals[valid] = normals[valid] / lengths[valid][:, None]
    return normals.astype(np.float32)


def soup_from_corners(corners: np.ndarray, with_normals: bool = True) -> Mesh:
    """Non-indexed mesh from ``(T, 3, 3)`` corners, normals recomputed."""
    positions = np.asarray(corners, dtype=np.float32).reshape(-1, 3)
    normals = None
    if with_normals:
        faces = np.arange(len(positions), dtype=np.int64).reshape(-1, 3)
        normals = vertex_normals(positions, faces)
    return Mesh(positions=positions, normals=normals)


def indexed_mesh(positions: np.ndarray, faces: np.ndarray, with_normals: bool = True) -> Mesh:
    """Indexed mesh from vertex and face arrays, normals recomputed."""
    positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    normals = vertex_normals(positions, faces) if with_normals else None
    return Mesh(positions=positions, normals=normals, indices=faces.astype(np.uint32))


def with_recomputed_normals(mesh: Mesh) -> Mesh:
    """Copy of *mesh* with fresh vertex normals."""
    positions = mesh.positions.copy()
    normals = vertex_normals(positions, mesh.faces)
    indices = None if mesh.indices is None else mesh.indices.copy()
    return Mesh(positions=positions, normals=normals, indices=indices)


def weld(mesh: Mesh, tolerance: float = 1e-4) -> Mesh:
    """Merge vertices whose positions agree to *tolerance*; returns indexed geometry.

    Each merged vertex keeps the position of its first occurrence, so welding
    never moves a point by more than the tolerance.
    """
    if tolerance <= 0.0:
        raise MeshValidationError(f"Weld tolerance must be positive, got {tolerance}")
    positions = mesh.positions
    if len(positions) == 0:
        return Mesh(
            positions=np.zeros((0, 3), dtype=np.float32),
            indices=np.zeros((0, 3), dtype=np.uint32),
        )

    key = np.round(positions.astype(np.float64) / tolerance).astype(np.int64)
    _, first, inverse = np.unique(key, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)
    new_positions = positions[first].copy()
    new_faces = inverse[mesh.faces]
    return indexed_mesh(new_positions, new_faces, with_normals=mesh.normals is not None)


def unweld(mesh: Mesh) -> Mesh:
    """Expand an indexed mesh into triangle soup; soup input is copied."""
    if not mesh.is_indexed:
        normals = None if mesh.normals is None else mesh.normals.copy()
        return Mesh(positions=mesh.positions.copy(), normals=normals)
    faces = mesh.faces
    positions = mesh.positions[faces].reshape(-1, 3).copy()
    normals = None
    if mesh.normals is not None:
        normals = mesh.normals[faces].reshape(-1, 3).copy()
    return Mesh(positions=positions, normals=normals)


def extents(mesh: Mesh) -> np.ndarray:
    lo, hi = mesh.bounds()
    return hi - lo


def average_dimension(mesh: Mesh) -> float:
    return float(np.mean(extents(mesh)))


def signed_volume(corners: np.ndarray) -> float:
    """Divergence-theorem volume ``sum(v0 . (v1 x v2)) / 6``.

    Exact only for closed, consistently wound surfaces.
    """
    corners = np.asarray(corners, dtype=np.float64)
    if len(corners) == 0:
        return 0.0
    triple = np.einsum(
        "ij,ij->i", corners[:, 0], np.cross(corners[:, 1], corners[:, 2])
    )
    volume = float(triple.sum() / 6.0)
    if not np.isfinite(volume):
        raise NumericDegeneracyError("Non-finite volume from triangle corners")
    return volume


def corner_bounds(corners: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    pts = np.asarray(corners, dtype=np.float64).reshape(-1, 3)
    if len(pts) == 0:
        zero = np.zeros(3)
        return zero, zero.copy()
    return pts.min(axis=0), pts.max(axis=0)


def horizontal_axes(height_axis: int) -> Tuple[int, int]:
    if height_axis not in (0, 1, 2):
        raise MeshValidationError(f"height_axis must be 0, 1 or 2, got {height_axis}")
    a, b = [axis for axis in range(3) if axis != height_axis]
    return a, b
