"""Tests for mesh conversion, welding and file IO."""

import numpy as np
import pytest
import trimesh

from fixture_mesh.errors import MeshValidationError
from fixture_mesh.mesh_io import (
    load_mesh,
    mesh_from_trimesh,
    mesh_to_trimesh,
    save_mesh,
    unweld,
    weld,
)


class TestWeld:
    def test_soup_cube_welds_to_eight_vertices(self, unit_cube_soup):
        welded = weld(unit_cube_soup)
        assert welded.is_indexed
        assert welded.vertex_count == 8
        assert welded.triangle_count == 12

    def test_unweld_expands_corners(self, unit_cube):
        soup = unweld(unit_cube)
        assert not soup.is_indexed
        assert soup.vertex_count == 36
        assert np.array_equal(soup.positions, unit_cube.positions[unit_cube.faces.reshape(-1)])

    def test_weld_keeps_triangle_shapes(self, unit_cube_soup):
        welded = weld(unit_cube_soup)
        assert np.allclose(welded.corners(), unit_cube_soup.corners())

    def test_weld_rejects_bad_tolerance(self, unit_cube_soup):
        with pytest.raises(MeshValidationError):
            weld(unit_cube_soup, 0.0)


class TestTrimeshConversion:
    def test_round_trip(self, sphere_mesh):
        tm = mesh_to_trimesh(sphere_mesh)
        assert len(tm.faces) == sphere_mesh.triangle_count
        back = mesh_from_trimesh(tm)
        assert np.array_equal(back.indices, sphere_mesh.indices)
        assert np.allclose(back.positions, sphere_mesh.positions)

    def test_soup_from_trimesh(self):
        box = trimesh.creation.box(extents=[2, 2, 2])
        soup = mesh_from_trimesh(box, indexed=False)
        assert not soup.is_indexed
        assert soup.triangle_count == 12


class TestFiles:
    def test_load_stl(self, box_mesh_file):
        mesh = load_mesh(box_mesh_file)
        assert mesh.triangle_count == 12
        assert mesh.vertex_count == 8
        lo, hi = mesh.bounds()
        assert np.allclose(hi - lo, [20, 20, 20])

    def test_load_as_soup(self, box_mesh_file):
        mesh = load_mesh(box_mesh_file, indexed=False)
        assert mesh.vertex_count == 36

    def test_save_and_reload(self, sphere_mesh, tmp_path):
        path = tmp_path / "nested" / "sphere.ply"
        save_mesh(sphere_mesh, path)
        assert path.exists()
        back = load_mesh(path)
        assert back.triangle_count == sphere_mesh.triangle_count
