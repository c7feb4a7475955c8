"""
Multi-stage decimation with graceful fallback.

The driver skips meshes already at or below the target, runs an optional
coarse pass on very large meshes, then tries the reducers in order until one
produces usable geometry. If every reducer fails, the best geometry reached
so far is returned with an error note; the caller never receives nothing.
"""

from typing import List, Optional, Sequence

import logging

from fixture_mesh.contracts import (
    DECIMATION_TARGET,
    DecimationOptions,
    DecimationResult,
    Mesh,
    StageOutcome,
)
from fixture_mesh.errors import MeshValidationError
from fixture_mesh.geometry import with_recomputed_normals
from fixture_mesh.progress import ProgressCallback, emit
from fixture_mesh.simplifiers import (
    MeshLabCoarseSimplifier,
    Simplifier,
    default_strategies,
)

logger = logging.getLogger(__name__)

_COARSE_END = 40.0
_REDUCE_START = 45.0


class _Progress:
    """Forward decimation progress, never letting the percentage go backwards."""

    def __init__(self, on_progress: Optional[ProgressCallback]):
        self.on_progress = on_progress
        self.last = 0.0

    def __call__(self, percent: float, message: str) -> None:
        self.last = max(self.last, float(percent))
        emit(self.on_progress, "decimating", self.last, message)

    def window(self, start: float, span: float):
        def _report(percent: float, message: str) -> None:
            self(start + percent * span / 100.0, message)
        return _report


def _reduction(original: int, final: int) -> float:
    if original <= 0:
        return 0.0
    return (original - final) / original * 100.0


def _attempt(
    simplifier: Simplifier,
    mesh: Mesh,
    target: int,
    report,
    stages: List[StageOutcome],
) -> Optional[Mesh]:
    """Run one strategy; record and swallow its failure so the next one can try."""
    try:
        result = simplifier.simplify(mesh, target, report)
        if result.triangle_count == 0:
            raise MeshValidationError("strategy returned an empty mesh")
        if result.triangle_count > mesh.triangle_count:
            raise MeshValidationError(
                f"strategy increased triangle count to {result.triangle_count:,}"
            )
    except Exception as exc:
        logger.warning("Decimation strategy %s failed: %s", simplifier.name, exc)
        stages.append(StageOutcome(simplifier.name, "failed", message=str(exc)))
        return None

    stages.append(StageOutcome(simplifier.name, "ok", triangles=result.triangle_count))
    return result


def decimate(
    mesh: Mesh,
    target_triangles: Optional[int] = None,
    options: Optional[DecimationOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
    strategies: Optional[Sequence[Simplifier]] = None,
    coarse: Optional[Simplifier] = None,
) -> DecimationResult:
    """Reduce *mesh* to at most roughly *target_triangles* triangles.

    Without an explicit *target_triangles* the target comes from
    ``options.target_triangles``. ``strategies`` overrides the ordered
    reducers (quadric, manifold, vertex clustering) and ``coarse`` the
    large-mesh pre-pass; both default to the library-backed implementations.
    ``final_triangles`` never exceeds ``original_triangles``.
    """
    if options is None:
        options = DecimationOptions(
            target_triangles=DECIMATION_TARGET if target_triangles is None else target_triangles
        )
    if target_triangles is None:
        target_triangles = options.target_triangles
    original = mesh.triangle_count

    if target_triangles < 1:
        error = f"target_triangles must be at least 1, got {target_triangles}"
        logger.warning("Decimation rejected: %s", error)
        return DecimationResult(
            success=False,
            geometry=mesh,
            original_triangles=original,
            final_triangles=original,
            reduction_percent=0.0,
            error=str(MeshValidationError(error)),
        )

    if original <= target_triangles:
        logger.info(
            "Decimation skipped: %s triangles already below target %s",
            f"{original:,}", f"{target_triangles:,}",
        )
        return DecimationResult(
            success=True,
            geometry=with_recomputed_normals(mesh),
            original_triangles=original,
            final_triangles=original,
            reduction_percent=0.0,
            stages=[StageOutcome("skip", "skipped", triangles=original)],
        )

    if strategies is None:
        strategies = default_strategies(options)
    if coarse is None:
        coarse = MeshLabCoarseSimplifier(options)

    logger.info("Decimation: %s -> target %s triangles", f"{original:,}", f"{target_triangles:,}")
    progress = _Progress(on_progress)
    stages: List[StageOutcome] = []
    current = mesh

    if current.triangle_count > options.coarse_threshold:
        progress(0, f"Coarse pass: {current.triangle_count:,} -> {options.coarse_threshold:,} triangles...")
        coarse_target = max(options.coarse_threshold, target_triangles)
        reduced = _attempt(coarse, current, coarse_target, progress.window(0, _COARSE_END), stages)
        if reduced is not None:
            current = reduced
            progress(_COARSE_END, f"Coarse pass complete: {current.triangle_count:,} triangles")

    if current.triangle_count <= target_triangles:
        return _finish(mesh, current, stages, progress)

    span = (100.0 - _REDUCE_START) / max(len(strategies), 1)
    for i, simplifier in enumerate(strategies):
        start = _REDUCE_START + i * span
        progress(start, f"{simplifier.name}: {current.triangle_count:,} -> {target_triangles:,} triangles...")
        result = _attempt(simplifier, current, target_triangles, progress.window(start, span), stages)
        if result is not None:
            return _finish(mesh, result, stages, progress)

    final = current.triangle_count
    logger.warning("All decimation methods failed, returning best available geometry")
    return DecimationResult(
        success=True,
        geometry=with_recomputed_normals(current),
        original_triangles=original,
        final_triangles=final,
        reduction_percent=_reduction(original, final),
        stages=stages,
        error=f"Decimation incomplete: reached {final:,} triangles",
    )


def _finish(
    original_mesh: Mesh,
    result: Mesh,
    stages: List[StageOutcome],
    progress: _Progress,
) -> DecimationResult:
    original = original_mesh.triangle_count
    final = result.triangle_count
    progress(100, "Decimation complete")
    logger.info(
        "Decimation: %s -> %s triangles (%.1f%% reduction)",
        f"{original:,}", f"{final:,}", _reduction(original, final),
    )
    return DecimationResult(
        success=True,
        geometry=with_recomputed_normals(result),
        original_triangles=original,
        final_triangles=final,
        reduction_percent=_reduction(original, final),
        stages=stages,
    )
