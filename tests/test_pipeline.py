"""End-to-end tests for the processing pipeline."""

import json

import numpy as np

import fixture_mesh.mesh_repair as repair_module
from fixture_mesh import (
    CleanupOptions,
    ContourSmoothingOptions,
    PipelineOptions,
    SmoothingOptions,
    process_mesh,
)
from fixture_mesh.progress import STAGES, ProgressLog


class TestProcessMesh:
    def test_clean_mesh_skips_repair(self, unit_cube):
        result = process_mesh(unit_cube)
        assert result.repair is None
        assert result.errors == []
        assert result.final_geometry is unit_cube

    def test_soup_triggers_repair(self, unit_cube_soup):
        result = process_mesh(unit_cube_soup)
        assert result.repair is not None
        assert result.repair.success
        assert result.final_geometry.triangle_count == 12

    def test_repair_disabled(self, unit_cube_soup):
        result = process_mesh(unit_cube_soup, PipelineOptions(auto_repair=False))
        assert result.repair is None

    def test_decimation_skipped_below_target(self, unit_cube):
        result = process_mesh(unit_cube, PipelineOptions(decimate=True, target_triangles=100))
        assert result.decimation.success
        assert result.decimation.final_triangles == 12
        assert result.decimation.reduction_percent == 0

    def test_cleanup_stage(self, two_cube_scene):
        options = PipelineOptions(cleanup=CleanupOptions(min_volume=0.01, min_thickness=0.0))
        result = process_mesh(two_cube_scene, options)
        assert result.cleanup.components_removed == 1
        assert result.final_geometry.triangle_count == 12

    def test_heightmap_smoothing_stage(self, plateau_mesh):
        options = PipelineOptions(smoothing=SmoothingOptions(iterations=2))
        result = process_mesh(plateau_mesh, options)
        assert result.smoothing.method == "heightmap"
        assert result.smoothing.iterations == 2

    def test_contour_smoothing_stage(self, plateau_mesh):
        options = PipelineOptions(contour_smoothing=ContourSmoothingOptions())
        result = process_mesh(plateau_mesh, options)
        assert result.smoothing.boundary_vertices_smoothed > 0
        assert not result.final_geometry.is_indexed

    def test_progress_ends_complete(self, unit_cube_soup):
        log = ProgressLog()
        process_mesh(unit_cube_soup, PipelineOptions(decimate=True), on_progress=log)
        assert log.events[-1] == ("complete", 100.0, "Processing complete")
        stages = [stage for stage, _, _ in log.events]
        assert stages.index("analyzing") < stages.index("repairing") < stages.index("complete")
        assert set(stages) <= set(STAGES)

    def test_failed_repair_carries_input_forward(self, unit_cube_soup, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("normals exploded")

        monkeypatch.setattr(repair_module, "vertex_normals", broken)
        result = process_mesh(unit_cube_soup)
        assert not result.repair.success
        assert result.final_geometry is unit_cube_soup
        assert result.errors == ["repair: normals exploded"]

    def test_report_is_json(self, two_cube_scene):
        options = PipelineOptions(
            cleanup=CleanupOptions(min_volume=0.01, min_thickness=0.0),
            decimate=True,
            smoothing=SmoothingOptions(heightmap_aware=False),
        )
        report = process_mesh(two_cube_scene, options).to_dict()
        decoded = json.loads(json.dumps(report))
        assert set(decoded) >= {"analysis", "repair", "cleanup", "decimation", "smoothing"}
        assert decoded["final_triangles"] == 12

    def test_input_not_mutated(self, two_cube_scene):
        before = two_cube_scene.positions.copy()
        process_mesh(two_cube_scene, PipelineOptions(smoothing=SmoothingOptions(heightmap_aware=False)))
        assert np.array_equal(two_cube_scene.positions, before)
