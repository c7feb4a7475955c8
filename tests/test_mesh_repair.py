"""Tests for degenerate-triangle repair."""

import numpy as np

import fixture_mesh.mesh_repair as repair_module
from fixture_mesh.contracts import Mesh
from fixture_mesh.progress import ProgressLog
from fixture_mesh.mesh_repair import repair

from conftest import box_soup, concat_soups


def _with_sliver(mesh: Mesh) -> Mesh:
    sliver = Mesh(positions=[[0, 0, 0], [1, 1, 1], [2, 2, 2]])
    return concat_soups(mesh, sliver)


class TestRepair:
    def test_collinear_triangle_is_removed(self, collinear_triangle):
        result = repair(collinear_triangle)
        assert result.success
        assert result.triangle_count == 0
        assert result.removed_triangles == 1
        assert "Removed 1 degenerate triangles" in result.actions

    def test_clean_mesh_keeps_every_triangle(self, unit_cube):
        result = repair(unit_cube)
        assert result.success
        assert result.triangle_count == 12
        assert result.removed_triangles == 0
        assert result.actions == ["Recomputed vertex normals"]

    def test_output_is_soup_in_original_order(self, unit_cube):
        result = repair(unit_cube)
        assert not result.geometry.is_indexed
        assert np.array_equal(
            result.geometry.positions.reshape(-1, 3, 3),
            unit_cube.positions[unit_cube.indices],
        )

    def test_sliver_removed_rest_untouched(self):
        cube = box_soup([2.0, 2.0, 2.0])
        result = repair(_with_sliver(cube))
        assert result.triangle_count == 12
        assert np.array_equal(result.geometry.positions, cube.positions)

    def test_idempotent(self):
        first = repair(_with_sliver(box_soup([1.0, 1.0, 1.0])))
        second = repair(first.geometry)
        assert first.removed_triangles == 1
        assert second.removed_triangles == 0
        assert second.triangle_count == first.triangle_count

    def test_normals_are_unit_length(self, unit_cube_soup):
        normals = repair(unit_cube_soup).geometry.normals
        assert normals.shape == (36, 3)
        assert np.allclose(np.linalg.norm(normals, axis=1), 1.0, atol=1e-6)

    def test_input_not_mutated(self, unit_cube_soup):
        before = unit_cube_soup.positions.copy()
        repair(unit_cube_soup)
        assert np.array_equal(unit_cube_soup.positions, before)
        assert unit_cube_soup.normals is None

    def test_progress(self, unit_cube):
        log = ProgressLog()
        repair(unit_cube, on_progress=log)
        assert log.percents("repairing") == [0, 20, 60, 80, 100]

    def test_failure_returns_no_geometry(self, unit_cube, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("normals exploded")

        monkeypatch.setattr(repair_module, "vertex_normals", broken)
        result = repair(unit_cube)
        assert not result.success
        assert result.geometry is None
        assert result.triangle_count == 0
        assert "normals exploded" in result.error
