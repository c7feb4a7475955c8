"""Tests for topology analysis."""

import numpy as np

import fixture_mesh.analysis as analysis_module
from fixture_mesh.analysis import analyze, edge_usage
from fixture_mesh.contracts import Mesh
from fixture_mesh.progress import ProgressLog


class TestAnalyze:
    def test_degenerate_triangle(self, collinear_triangle):
        result = analyze(collinear_triangle)
        assert result.has_degenerate_faces
        assert result.degenerate_face_count == 1
        assert not result.is_manifold
        assert "Found 1 degenerate (zero-area) triangles" in result.issues

    def test_welded_cube_is_manifold(self, unit_cube):
        result = analyze(unit_cube)
        assert result.is_manifold
        assert result.boundary_edge_count == 0
        assert result.non_manifold_edge_count == 0
        assert not result.has_non_manifold_edges
        assert result.issues == ()

    def test_soup_counts(self, unit_cube_soup):
        result = analyze(unit_cube_soup)
        assert result.triangle_count == unit_cube_soup.positions.size // 9
        assert result.vertex_count == unit_cube_soup.positions.size // 3

    def test_soup_edges_are_all_boundary(self, unit_cube_soup):
        result = analyze(unit_cube_soup)
        assert result.boundary_edge_count == 36
        assert not result.is_manifold

    def test_open_triangle(self):
        mesh = Mesh(positions=np.eye(3), indices=[0, 1, 2])
        result = analyze(mesh)
        assert result.boundary_edge_count == 3
        assert "Found 3 boundary edges (mesh has holes)" in result.issues

    def test_non_manifold_fan(self):
        positions = np.array(
            [[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, -1, 0], [0, 0, 1]], dtype=np.float32
        )
        mesh = Mesh(positions=positions, indices=[0, 1, 2, 1, 0, 3, 0, 1, 4])
        result = analyze(mesh)
        assert result.non_manifold_edge_count == 1
        assert result.has_non_manifold_edges
        assert "Found 1 non-manifold edges" in result.issues

    def test_bounding_box(self, unit_cube):
        box = analyze(unit_cube).bounding_box
        assert np.allclose(box.min, (-0.5, -0.5, -0.5))
        assert np.allclose(box.size, (1.0, 1.0, 1.0))

    def test_high_triangle_count_issue(self, unit_cube, monkeypatch):
        monkeypatch.setattr(analysis_module, "DECIMATION_THRESHOLD", 10)
        result = analyze(unit_cube)
        assert any("High triangle count (12)" in issue for issue in result.issues)
        # advisory only
        assert result.is_manifold

    def test_custom_epsilon(self):
        tiny = Mesh(positions=[[0, 0, 0], [1e-2, 0, 0], [0, 1e-2, 0]])
        assert analyze(tiny).degenerate_face_count == 0
        assert analyze(tiny, epsilon=1e-6).degenerate_face_count == 1

    def test_progress_is_monotonic(self, unit_cube):
        log = ProgressLog()
        analyze(unit_cube, on_progress=log)
        assert log.percents("analyzing") == [0, 10, 30, 60, 100]
        assert log.is_monotonic("analyzing")

    def test_result_is_fresh_each_call(self, unit_cube):
        assert analyze(unit_cube) is not analyze(unit_cube)


class TestEdgeUsage:
    def test_edges_are_canonical(self):
        edges, counts = edge_usage(np.array([[2, 1, 0], [0, 1, 3]]))
        assert edges.tolist() == [[0, 1], [0, 2], [0, 3], [1, 2], [1, 3]]
        assert counts.tolist() == [2, 1, 1, 1, 1]

    def test_no_faces(self):
        edges, counts = edge_usage(np.zeros((0, 3), dtype=np.int64))
        assert edges.shape == (0, 2)
        assert counts.shape == (0,)
