"""Tests for Chaikin contour smoothing of heightmap walls."""

import numpy as np

from fixture_mesh.adjacency import mesh_adjacency
from fixture_mesh.contour_smoothing import chaikin_closed, contour_smooth, find_wall_groups
from fixture_mesh.contracts import ContourSmoothingOptions
from fixture_mesh.geometry import unweld
from fixture_mesh.progress import ProgressLog

from conftest import heightmap_mesh


class TestChaikin:
    def test_unit_square_one_iteration(self):
        square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float64)
        out = chaikin_closed(square, 1)
        assert np.allclose(out, [[0.125, 0], [0.875, 0], [1, 0.875], [0.125, 1]])

    def test_one_point_per_input(self):
        ring = np.random.default_rng(3).random((7, 2))
        assert chaikin_closed(ring, 3).shape == (7, 2)

    def test_zero_iterations(self):
        ring = np.array([[0, 0], [2, 0], [1, 1]], dtype=np.float64)
        assert np.array_equal(chaikin_closed(ring, 0), ring)


class TestWallDetection:
    def test_ring_around_plateau(self, plateau_mesh):
        graph = mesh_adjacency(plateau_mesh)
        heights = plateau_mesh.positions[graph.representative, 1].astype(np.float64)
        walls = find_wall_groups(heights, graph)
        assert len(walls) == 22
        assert all(heights[g] == 0.0 for g in walls)
        # Outer ground ring and far corners stay put.
        assert graph.group_of[0] not in walls
        assert graph.group_of[4 * 9 + 1] in walls

    def test_flat_has_no_walls(self):
        mesh = heightmap_mesh(np.zeros((5, 5)))
        graph = mesh_adjacency(mesh)
        heights = mesh.positions[graph.representative, 1].astype(np.float64)
        assert find_wall_groups(heights, graph) == set()


class TestContourSmooth:
    def test_plateau(self, plateau_mesh):
        result = contour_smooth(plateau_mesh)
        assert result.success
        assert result.iterations == 3
        assert result.boundary_vertices_smoothed > 0

        out = result.geometry
        assert not out.is_indexed
        original = unweld(plateau_mesh).positions
        assert out.positions.shape == original.shape
        assert np.array_equal(out.positions[:, 1], original[:, 1])
        top = original[:, 1] == 1.0
        assert np.array_equal(out.positions[top], original[top])
        assert not np.array_equal(out.positions, original)

    def test_flat_mesh_unchanged(self):
        mesh = heightmap_mesh(np.zeros((5, 5)))
        result = contour_smooth(mesh)
        assert result.success
        assert result.iterations == 0
        assert result.boundary_vertices_smoothed == 0
        assert np.array_equal(result.geometry.positions, unweld(mesh).positions)

    def test_negative_iterations_fail(self, plateau_mesh):
        result = contour_smooth(plateau_mesh, ContourSmoothingOptions(iterations=-1))
        assert not result.success
        assert result.geometry is plateau_mesh

    def test_progress(self, plateau_mesh):
        log = ProgressLog()
        contour_smooth(plateau_mesh, on_progress=log)
        percents = log.percents("smoothing")
        assert percents[:5] == [0, 10, 20, 40, 50]
        assert percents[-2:] == [90, 100]
        assert log.is_monotonic("smoothing")
