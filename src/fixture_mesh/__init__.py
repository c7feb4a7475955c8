"""Mesh processing pipeline for imported and CSG-derived fixture geometry."""

from fixture_mesh.analysis import analyze
from fixture_mesh.contour_smoothing import contour_smooth
from fixture_mesh.contracts import (
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
    VertexSurfaceType,
)
from fixture_mesh.csg_cleanup import cleanup_csg
from fixture_mesh.decimation import decimate
from fixture_mesh.errors import (
    ExternalToolFailure,
    MeshProcessingError,
    MeshValidationError,
    NumericDegeneracyError,
    ResourceLimitExceeded,
)
from fixture_mesh.pipeline import PipelineOptions, PipelineResult, process_mesh
from fixture_mesh.mesh_repair import repair
from fixture_mesh.smoothing import classify_vertices, smooth

__all__ = [
    "AnalysisResult",
    "CleanupOptions",
    "CleanupResult",
    "ContourSmoothingOptions",
    "ContourSmoothingResult",
    "DecimationOptions",
    "DecimationResult",
    "ExternalToolFailure",
    "Mesh",
    "MeshProcessingError",
    "MeshValidationError",
    "NumericDegeneracyError",
    "PipelineOptions",
    "PipelineResult",
    "RepairResult",
    "ResourceLimitExceeded",
    "SmoothingOptions",
    "SmoothingResult",
    "VertexSurfaceType",
    "analyze",
    "classify_vertices",
    "cleanup_csg",
    "contour_smooth",
    "decimate",
    "process_mesh",
    "repair",
    "smooth",
]
