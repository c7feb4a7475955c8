"""End-to-end mesh processing: analyze, repair, clean up, decimate, smooth."""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Union

import logging

from fixture_mesh.analysis import analyze
from fixture_mesh.contour_smoothing import contour_smooth
from fixture_mesh.contracts import (
    DECIMATION_TARGET,
    AnalysisResult,
    CleanupOptions,
    CleanupResult,
    ContourSmoothingOptions,
    ContourSmoothingResult,
    DecimationOptions,
    DecimationResult,
    Mesh,
    RepairResult,
    SmoothingOptions,
    SmoothingResult,
)
from fixture_mesh.csg_cleanup import cleanup_csg
from fixture_mesh.decimation import decimate
from fixture_mesh.mesh_repair import repair
from fixture_mesh.progress import ProgressCallback, emit
from fixture_mesh.smoothing import smooth

logger = logging.getLogger(__name__)


@dataclass
class PipelineOptions:
    """Which stages run and how.

    ``smoothing`` selects the blended Taubin/Laplacian engine,
    ``contour_smoothing`` the Chaikin wall smoother; set at most one.
    """

    auto_repair: bool = True
    cleanup: Optional[CleanupOptions] = None
    decimate: bool = False
    target_triangles: int = DECIMATION_TARGET
    decimation: DecimationOptions = field(default_factory=DecimationOptions)
    smoothing: Optional[SmoothingOptions] = None
    contour_smoothing: Optional[ContourSmoothingOptions] = None


@dataclass
class PipelineResult:
    analysis: AnalysisResult
    final_geometry: Mesh
    repair: Optional[RepairResult] = None
    cleanup: Optional[CleanupResult] = None
    decimation: Optional[DecimationResult] = None
    smoothing: Optional[Union[SmoothingResult, ContourSmoothingResult]] = None

    @property
    def errors(self) -> List[str]:
        """Error notes from every stage that reported one."""
        out: List[str] = []
        for name, stage in self._stages().items():
            if stage is not None and stage.error:
                out.append(f"{name}: {stage.error}")
        return out

    def _stages(self) -> Dict[str, object]:
        return {
            "repair": self.repair,
            "cleanup": self.cleanup,
            "decimation": self.decimation,
            "smoothing": self.smoothing,
        }

    def to_dict(self) -> Dict[str, object]:
        report: Dict[str, object] = {
            "analysis": self.analysis.to_dict(),
            "final_triangles": self.final_geometry.triangle_count,
            "final_vertices": self.final_geometry.vertex_count,
        }
        for name, stage in self._stages().items():
            if stage is not None:
                report[name] = stage.to_dict()
        return report


def process_mesh(
    mesh: Mesh,
    options: Optional[PipelineOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> PipelineResult:
    """Run the configured stages in order; each feeds the next.

    A stage that fails leaves the previous geometry in place.
    """
    if options is None:
        options = PipelineOptions()

    analysis = analyze(mesh, on_progress=on_progress)
    result = PipelineResult(analysis=analysis, final_geometry=mesh)
    current = mesh

    if options.auto_repair and analysis.issues:
        result.repair = repair(current, on_progress)
        if result.repair.success and result.repair.geometry is not None:
            current = result.repair.geometry
        else:
            logger.warning("Repair failed, continuing with unrepaired mesh: %s", result.repair.error)

    if options.cleanup is not None:
        result.cleanup = cleanup_csg(current, options.cleanup, on_progress)
        if result.cleanup.success and result.cleanup.geometry is not None:
            current = result.cleanup.geometry

    if options.decimate:
        result.decimation = decimate(
            current,
            options=replace(options.decimation, target_triangles=options.target_triangles),
            on_progress=on_progress,
        )
        if result.decimation.success and result.decimation.geometry is not None:
            current = result.decimation.geometry

    if options.contour_smoothing is not None:
        result.smoothing = contour_smooth(current, options.contour_smoothing, on_progress)
    elif options.smoothing is not None:
        result.smoothing = smooth(current, options.smoothing, on_progress)
    if result.smoothing is not None and result.smoothing.success and result.smoothing.geometry is not None:
        current = result.smoothing.geometry

    emit(on_progress, "complete", 100, "Processing complete")
    result.final_geometry = current
    logger.info(
        "Pipeline: %d -> %d triangles, %d stage errors",
        mesh.triangle_count, current.triangle_count, len(result.errors),
    )
    return result
