"""Conversion between ``Mesh`` buffers, ``trimesh.Trimesh`` and mesh files."""

from pathlib import Path
from typing import Union

import logging
import numpy as np
import trimesh

from fixture_mesh.contracts import Mesh
from fixture_mesh.errors import MeshValidationError
from fixture_mesh.geometry import unweld, weld

logger = logging.getLogger(__name__)

__all__ = ["mesh_from_trimesh", "mesh_to_trimesh", "load_mesh", "save_mesh", "weld", "unweld"]


def mesh_from_trimesh(tm: trimesh.Trimesh, indexed: bool = True) -> Mesh:
    """Copy a trimesh into a ``Mesh``; ``indexed=False`` yields a triangle soup."""
    vertices = np.asarray(tm.vertices, dtype=np.float32)
    faces = np.asarray(tm.faces, dtype=np.int64)
    if indexed:
        normals = None
        if len(vertices) and len(faces):
            normals = np.asarray(tm.vertex_normals, dtype=np.float32)
        return Mesh.from_arrays(vertices, faces=faces, normals=normals)
    return Mesh.from_triangles(vertices[faces])


def mesh_to_trimesh(mesh: Mesh) -> trimesh.Trimesh:
    """Build a ``trimesh.Trimesh`` without merging or reordering anything."""
    return trimesh.Trimesh(
        vertices=mesh.positions.astype(np.float64),
        faces=mesh.faces,
        process=False,
    )


def load_mesh(path: Union[str, Path], indexed: bool = True) -> Mesh:
    """Load STL/OBJ/PLY/GLB. Scenes are flattened into one mesh."""
    loaded = trimesh.load(str(path))
    if isinstance(loaded, trimesh.Scene):
        # to_mesh() applies scene-level transforms before flattening.
        if not loaded.geometry:
            raise MeshValidationError(f"No triangle meshes found in {path}")
        loaded = loaded.to_mesh()
    if not isinstance(loaded, trimesh.Trimesh):
        raise MeshValidationError(f"Unsupported type from trimesh.load: {type(loaded)}")
    if len(loaded.faces) == 0:
        raise MeshValidationError(f"Empty mesh: {path}")

    logger.info("Loaded %s: %d vertices, %d faces", path, len(loaded.vertices), len(loaded.faces))
    return mesh_from_trimesh(loaded, indexed=indexed)


def save_mesh(mesh: Mesh, path: Union[str, Path]) -> None:
    """Export *mesh*; the format follows the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mesh_to_trimesh(mesh).export(str(path))
    logger.info("Wrote %s (%d triangles)", path, mesh.triangle_count)
