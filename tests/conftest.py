"""
Shared test fixtures for the mesh processing pipeline tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
import trimesh

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fixture_mesh.contracts import Mesh


def box_indexed(extents, center=(0.0, 0.0, 0.0)) -> Mesh:
    """Watertight box as an indexed mesh (8 vertices, 12 triangles)."""
    box = trimesh.creation.box(extents=extents)
    box.apply_translation(center)
    return Mesh.from_arrays(box.vertices, faces=box.faces)


def box_soup(extents, center=(0.0, 0.0, 0.0)) -> Mesh:
    """Watertight box as a triangle soup (36 vertex slots)."""
    box = trimesh.creation.box(extents=extents)
    box.apply_translation(center)
    return Mesh.from_triangles(box.vertices[box.faces])


def concat_soups(*meshes: Mesh) -> Mesh:
    return Mesh(positions=np.concatenate([m.positions for m in meshes]))


def grid_faces(nx: int, nz: int) -> np.ndarray:
    """Two triangles per cell of an ``nx`` by ``nz`` vertex grid."""
    faces = []
    for j in range(nz - 1):
        for i in range(nx - 1):
            v00 = j * nx + i
            v10 = v00 + 1
            v01 = v00 + nx
            v11 = v01 + 1
            faces.append([v00, v10, v11])
            faces.append([v00, v11, v01])
    return np.array(faces, dtype=np.int64)


def heightmap_mesh(heights: np.ndarray, spacing: float = 1.0) -> Mesh:
    """Indexed top surface of a heightmap; Y is up, the grid spans X and Z.

    ``heights[j, i]`` is the height of the vertex at ``x = i * spacing``,
    ``z = j * spacing``.
    """
    nz, nx = heights.shape
    xs, zs = np.meshgrid(np.arange(nx) * spacing, np.arange(nz) * spacing, indexing="xy")
    vertices = np.column_stack([xs.reshape(-1), heights.reshape(-1), zs.reshape(-1)])
    return Mesh.from_arrays(vertices, faces=grid_faces(nx, nz))


def plateau_heights(size: int = 9, margin: int = 2, height: float = 1.0) -> np.ndarray:
    """Flat ground at 0 with a square raised plateau in the middle."""
    heights = np.zeros((size, size), dtype=np.float64)
    heights[margin:size - margin, margin:size - margin] = height
    return heights


@pytest.fixture
def unit_cube():
    """Welded unit cube centred at the origin."""
    return box_indexed([1.0, 1.0, 1.0])


@pytest.fixture
def unit_cube_soup():
    """Unit cube stored as a triangle soup."""
    return box_soup([1.0, 1.0, 1.0])


@pytest.fixture
def two_cube_scene():
    """Disjoint cubes with volumes 1.0 and 0.001, as one soup."""
    return concat_soups(
        box_soup([1.0, 1.0, 1.0]),
        box_soup([0.1, 0.1, 0.1], center=(5.0, 0.0, 0.0)),
    )


@pytest.fixture
def collinear_triangle():
    """A single zero-area triangle."""
    return Mesh(positions=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])


@pytest.fixture
def plateau_mesh():
    """9x9 heightmap grid: two rings of ground around a 5x5 plateau at height 1."""
    return heightmap_mesh(plateau_heights())


@pytest.fixture
def sphere_mesh():
    sphere = trimesh.creation.icosphere(subdivisions=3, radius=10.0)
    return Mesh.from_arrays(sphere.vertices, faces=sphere.faces)


@pytest.fixture
def box_mesh_file(tmp_path):
    """A 20mm box written as STL."""
    mesh = trimesh.creation.box(extents=[20, 20, 20])
    path = tmp_path / "box.stl"
    mesh.export(str(path))
    return str(path)
